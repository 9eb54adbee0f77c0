"""
SafeVenue - Main FastAPI Application

Predictive risk and crowd analytics service with:
- Request tracing
- Error handling
- Health monitoring
- Metrics collection
- Background alert polling
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request, Response, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.middleware.base import BaseHTTPMiddleware
import uvicorn

from safevenue.api.routes import api_router
from safevenue.core.cache import get_response_cache
from safevenue.core.config import get_settings
from safevenue.core.database import get_database_manager
from safevenue.core.exceptions import SafeVenueError
from safevenue.services.monitoring import get_monitoring_service
from safevenue.services.scheduling import get_scheduler_service

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

API_V1_PREFIX = "/api/v1"


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION}")
    logger.info("=" * 60)
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Data backend: {settings.DATA_BACKEND}, cache backend: {settings.CACHE_BACKEND}")

    try:
        if settings.DATA_BACKEND == "database":
            await get_database_manager().initialize()
            logger.info("✓ Database initialized")

        await get_response_cache().initialize()
        logger.info("✓ Response cache initialized")

        scheduler_service = get_scheduler_service()
        await scheduler_service.initialize()
        await scheduler_service.start()
        logger.info("✓ Scheduler service started")

        logger.info(f"API available at: http://{settings.HOST}:{settings.PORT}{API_V1_PREFIX}")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        raise

    yield

    logger.info("Shutting down...")

    try:
        await get_scheduler_service().stop()
        logger.info("✓ Scheduler stopped")

        await get_response_cache().close()
        logger.info("✓ Cache closed")

        if settings.DATA_BACKEND == "database":
            await get_database_manager().close()
            logger.info("✓ Database closed")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")

    logger.info("Shutdown complete")


# ============================================================================
# Create FastAPI Application
# ============================================================================

app = FastAPI(
    title=settings.APP_NAME,
    description="Predictive Risk & Crowd Analytics Engine",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)


# ============================================================================
# Middleware
# ============================================================================

class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Add request tracking and timing."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.perf_counter()
        monitoring = get_monitoring_service()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            monitoring.record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=500,
                duration=duration
            )
            logger.error(f"Unhandled error in request {request_id}: {e}")
            raise

        duration = time.perf_counter() - start_time
        monitoring.record_http_request(
            method=request.method,
            endpoint=request.url.path,
            status_code=response.status_code,
            duration=duration
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.4f}s"
        return response


# Add middleware (order matters - first added is outermost)
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)

app.add_middleware(RequestTrackingMiddleware)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(SafeVenueError)
async def safevenue_exception_handler(request: Request, exc: SafeVenueError):
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} [{getattr(request.state, 'request_id', None)}]: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "detail": exc.message,
            "request_id": getattr(request.state, "request_id", None)
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors."""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation Error",
            "detail": errors,
            "request_id": getattr(request.state, "request_id", None)
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP Error",
            "detail": exc.detail,
            "request_id": getattr(request.state, "request_id", None)
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions."""
    request_id = getattr(request.state, "request_id", None)
    logger.error(f"Unhandled exception [{request_id}]: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "detail": "An unexpected error occurred" if not settings.DEBUG else str(exc),
            "request_id": request_id
        }
    )


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(api_router, prefix=API_V1_PREFIX)


# ============================================================================
# Root Endpoints
# ============================================================================

@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "operational",
        "docs": "/docs" if settings.DEBUG else None,
        "health": f"{API_V1_PREFIX}/health"
    }


@app.get("/health")
async def health():
    """Simple health check endpoint."""
    return {"status": "healthy"}


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    if not settings.METRICS_ENABLED:
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    monitoring = get_monitoring_service()
    return Response(
        content=monitoring.get_prometheus_metrics(),
        media_type=monitoring.get_prometheus_content_type()
    )


# ============================================================================
# Run Application
# ============================================================================

def run():
    """Run the FastAPI application."""
    uvicorn.run(
        "safevenue.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=settings.WORKERS if not settings.DEBUG else 1,
        log_level="info" if not settings.DEBUG else "debug",
        access_log=True,
    )


if __name__ == "__main__":
    run()
