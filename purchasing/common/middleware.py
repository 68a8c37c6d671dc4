"""
Middleware for propagating the gateway-validated user context
"""
from fastapi import Request, status
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware
import logging

logger = logging.getLogger(__name__)


class UserContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that extracts the user identity from X-User-ID / X-User-Roles
    (already validated upstream) and sets it on request.state
    """

    EXEMPT_PATHS = [
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    ]

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/" or any(request.url.path.startswith(path) for path in self.EXEMPT_PATHS):
            return await call_next(request)

        # Skip for OPTIONS requests (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        user_header = request.headers.get("X-User-ID", "").strip()
        if not user_header:
            return Response(
                content='{"detail":"Missing X-User-ID header","code":"MISSING_USER"}',
                status_code=status.HTTP_401_UNAUTHORIZED,
                media_type="application/json"
            )

        roles_header = request.headers.get("X-User-Roles", "")
        request.state.user_id = user_header
        request.state.user_roles = [r.strip().lower() for r in roles_header.split(",") if r.strip()]

        logger.debug(f"Request to {request.url.path} by user {user_header} roles={request.state.user_roles}")

        response = await call_next(request)
        response.headers["X-User-ID"] = user_header
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response
