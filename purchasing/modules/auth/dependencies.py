"""
Dependencias de autenticación para FastAPI.

La autenticación la resuelve el gateway; aquí solo se lee el contexto que
UserContextMiddleware deja en request.state.
"""
from fastapi import Depends, HTTPException, status, Request

from purchasing.modules.auth.schemas import AuthContext
from purchasing.core.config import settings


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(request: Request) -> AuthContext:
        """
        Obtener contexto de autenticación.
        Requiere X-User-ID (y opcionalmente X-User-Roles).
        """
        user_id = getattr(request.state, "user_id", None)
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="No se pudo identificar al usuario"
            )
        return AuthContext(
            user_id=user_id,
            roles=getattr(request.state, "user_roles", []) or []
        )

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if not any(role in allowed_roles for role in auth_context.roles):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )
            return auth_context
        return role_checker

    @staticmethod
    def require_privileged():
        """Dependencia para acciones reservadas (aprobar, anular, borrar pagos)."""
        return AuthDependencies.require_role(settings.PRIVILEGED_ROLES)


# Instancias de dependencias
get_auth_context = AuthDependencies.get_auth_context
require_privileged = AuthDependencies.require_privileged
