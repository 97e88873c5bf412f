"""Main FastAPI application for the media store service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from media_store.core.config import settings
from media_store.core.errors import ServiceError
from media_store.core.logging_config import setup_logging, get_logger
from media_store.api.v1 import media, health
from media_store.api.middleware import RequestLoggingMiddleware, PerformanceLoggingMiddleware
from media_store.api.exception_handlers import (
    service_error_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler,
)
from media_store.services import get_media_store


# Initialize logging system (MUST be done before any logging calls)
setup_logging(debug=settings.is_debug_mode, json_logs=settings.use_json_logs)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: log configuration on startup, release the store client on shutdown."""
    logger.info(
        "application_startup",
        service=settings.SERVICE_NAME,
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
        debug_mode=settings.is_debug_mode,
        storage_backend=settings.STORAGE_BACKEND,
        default_bucket=settings.default_bucket,
        conditional_reference_updates=settings.REFERENCE_UPDATE_CONDITIONAL,
    )

    yield

    logger.info("application_shutdown_initiated")
    try:
        await get_media_store().close()
    except Exception as e:
        logger.error("media_store_cleanup_failed", error=str(e), exc_info=True)
    logger.info("application_shutdown", graceful=True)


app = FastAPI(
    title=settings.SERVICE_NAME,
    description="Media storage with reference-counted deletion on an object store",
    version=settings.VERSION,
    lifespan=lifespan,
)

app.add_exception_handler(ServiceError, service_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# Middleware stack (first added is executed last)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(PerformanceLoggingMiddleware, slow_request_threshold_ms=1000.0)

app.include_router(media.router)
app.include_router(health.router)


@app.get("/")
async def root():
    """Service information."""
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.VERSION,
        "health_check": "/api/v1/health",
        "storage_backend": settings.STORAGE_BACKEND,
    }
