"""
FastAPI application entry point
"""
import logging
import time

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from langshadow import __version__
from langshadow.core.config import settings
from langshadow.core.database import engine
from langshadow.core.exceptions import (
    ConfigurationError,
    NoTargetError,
    UniquenessExhaustedError,
    UnknownTableError,
)
from langshadow.core.health import get_health_status
from langshadow.core.logging_config import setup_logging
from langshadow.core.redis import close_pools

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="langshadow",
    description="Multi-language shadow rows for relational tables",
    version=__version__,
)


@app.on_event("startup")
async def startup():
    logger.info("Starting langshadow...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Languages: {', '.join(settings.LANGUAGES)} (fallback {settings.FALLBACK_LANGUAGE})")

    health = await get_health_status(engine)
    if health["status"] == "healthy":
        logger.info("All systems healthy")
    else:
        logger.warning(f"Health check issues: {health}")


@app.on_event("shutdown")
async def shutdown():
    """Cleanup on shutdown"""
    logger.info("Shutting down langshadow...")
    close_pools()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "langshadow API",
        "version": __version__,
        "status": "running"
    }


@app.get("/health")
async def health():
    """
    Health check endpoint.
    Returns status of all components.
    """
    return await get_health_status(engine)


@app.get("/health/ready")
async def readiness():
    """
    Readiness probe.
    Returns 200 if ready to accept traffic.
    """
    health_status = await get_health_status(engine)

    if health_status["status"] == "healthy":
        return JSONResponse(content=health_status, status_code=status.HTTP_200_OK)
    return JSONResponse(content=health_status, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


@app.get("/health/live")
async def liveness():
    """Liveness probe."""
    return {"status": "alive"}


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Time: {process_time:.3f}s"
    )
    return response


@app.exception_handler(UnknownTableError)
async def unknown_table_handler(request: Request, exc: UnknownTableError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(NoTargetError)
async def no_target_handler(request: Request, exc: NoTargetError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(UniquenessExhaustedError)
async def uniqueness_exhausted_handler(request: Request, exc: UniquenessExhaustedError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


# Include routers
from langshadow.api.v1 import translations

app.include_router(translations.router, prefix="/api/v1/translations", tags=["translations"])
