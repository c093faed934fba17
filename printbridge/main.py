import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from printbridge.config import get_app_settings
from printbridge.api.v1.router import api_router
from printbridge.core.exceptions import PrintbridgeError
from printbridge.services.gmc_service import GoogleMerchantError
from printbridge.services.printify_service import PrintifyAPIError
from printbridge.services.vendure_client import VendureAPIError

logger = logging.getLogger(__name__)

API_DESCRIPTION = """
Order fulfillment automation between Vendure and Printify.

- **Fulfillment job**: POST /api/v1/fulfillment/run
- **Printify webhooks**: POST /api/v1/webhooks/printify
- **Google Merchant Center sync**: POST /api/v1/gmc/sync
- **Upsell**: GET /api/v1/upsell, POST /api/v1/upsell/verify
- **Health Check**: /health
"""

settings = get_app_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Include API router
app.include_router(api_router)


def error_response(status_code: int, exc: Exception, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "type": type(exc).__name__},
    )


@app.exception_handler(PrintbridgeError)
async def printbridge_exception_handler(request: Request, exc: PrintbridgeError):
    """Domain and configuration errors carry their own status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc.status_code, exc, exc.message)


@app.exception_handler(VendureAPIError)
@app.exception_handler(PrintifyAPIError)
@app.exception_handler(GoogleMerchantError)
async def upstream_exception_handler(request: Request, exc: Exception):
    """Upstream API failures are internal errors for our callers."""
    logger.error(f"{request.method} {request.url.path} upstream error: {exc}")
    return error_response(500, exc, str(exc))


# Global exception handler so unexpected failures still answer with JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Network errors and other unexpected failures."""
    logger.exception(f"{request.method} {request.url.path} failed: {exc}")
    return error_response(500, exc, str(exc) or type(exc).__name__)


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint."""
    from datetime import datetime, timezone

    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
