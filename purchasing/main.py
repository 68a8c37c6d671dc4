from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

# Import database components
from purchasing.database.database import sync_engine, Base

# Import middleware
from purchasing.common.middleware import UserContextMiddleware, SecurityHeadersMiddleware
from purchasing.common.exceptions import PurchasingError, CollaboratorRejection, translate_rejection

# Import routers
from purchasing.modules.taxes.router import taxes_router
from purchasing.modules.documents.router import documents_router
from purchasing.modules.payments.router import payments_router
from purchasing.modules.financing.router import financing_router
from purchasing.modules.partners.router import partners_router

# Import models for table creation
import purchasing.modules.taxes.models
import purchasing.modules.partners.models
import purchasing.modules.documents.models
import purchasing.modules.payments.models
import purchasing.modules.financing.models

from purchasing.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Purchasing API",
    description="Purchase document pricing and payment settlement API built with FastAPI and PostgreSQL",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(UserContextMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PurchasingError)
async def purchasing_error_handler(request: Request, exc: PurchasingError):
    payload = exc.to_dict()
    if isinstance(exc, CollaboratorRejection):
        payload["detail"] = translate_rejection(exc)
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=payload)


# Include routers
app.include_router(taxes_router)
app.include_router(documents_router)
app.include_router(payments_router)
app.include_router(financing_router)
app.include_router(partners_router)

# Create database tables (only for development and tests - use migrations in production)
if settings.ENVIRONMENT in ("development", "test"):
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
async def read_root():
    return {
        "message": "Purchasing API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Purchasing API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Currency: {settings.CURRENCY}, default tax rate: {settings.DEFAULT_TAX_RATE}%")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Purchasing API shutting down...")
