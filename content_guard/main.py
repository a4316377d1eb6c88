"""
Content Guard - Main Application

FastAPI application hosting the moderation administration API:
- API versioning (/api/v1/)
- Structured logging with structlog
- Prometheus metrics
- Global exception handling
- Optional model preloading at startup
"""

import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from content_guard.core.config import settings
from content_guard.core.logging import setup_logging, get_logger
from content_guard.core.exceptions import register_exception_handlers, ModelInitializationError
from content_guard.core.metrics import set_app_info, http_requests_total, http_request_duration_seconds
from content_guard.api.v1 import api_v1_router
from content_guard.api.dependencies import get_moderation_service
from content_guard.engines.moderation.service import ModerationService


# =============================================================================
# Initialize Logging
# =============================================================================
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.LOG_FORMAT_JSON
)
logger = get_logger(__name__)


# =============================================================================
# Lifespan Handler
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - startup and shutdown.

    With MODEL_PRELOAD the model is loaded before traffic is accepted;
    otherwise the first detection initializes it.
    """
    startup_start = time.time()

    logger.info(
        "application_starting",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    set_app_info(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    if settings.MODEL_PRELOAD:
        logger.info("preloading_nsfw_model")
        try:
            provider = app.dependency_overrides.get(get_moderation_service, get_moderation_service)
            await provider().warmup()
            logger.info("nsfw_model_preloaded")
        except ModelInitializationError as e:
            # Detections stay fail-closed; the next call retries
            logger.warning("nsfw_model_preload_failed", error=e.message)

    startup_time = time.time() - startup_start
    logger.info("application_ready", startup_time_seconds=startup_time)

    yield

    logger.info("application_shutdown_complete")


# =============================================================================
# Create FastAPI Application
# =============================================================================
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Fail-closed NSFW moderation for marketplace image uploads.

    - **Detection**: ONNX NSFW model behind a validator and a fixed 224x224 preprocessor
    - **Decision policy**: safe / uncertain / nsfw thresholds; every failure blocks
    - **Audit trail**: bounded in-memory log with block statistics
    - **Observability**: Structured logging, Prometheus metrics

    All endpoints are versioned under `/api/v1/`
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# =============================================================================
# Middleware
# =============================================================================

cors_origins = settings.CORS_ORIGINS.split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_timing(request: Request, call_next):
    """Track request timing for metrics."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path
    ).observe(duration)

    http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()

    response.headers["X-Process-Time"] = str(duration)

    return response


# =============================================================================
# Register Exception Handlers
# =============================================================================
register_exception_handlers(app)


# =============================================================================
# Include API Routers
# =============================================================================
app.include_router(api_v1_router)


# =============================================================================
# Root Endpoints
# =============================================================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/api/docs",
        "api_v1": "/api/v1",
        "metrics": "/api/v1/metrics"
    }


@app.get("/health", tags=["health"])
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


@app.get("/ready", tags=["health"])
async def ready(service: ModerationService = Depends(get_moderation_service)):
    """Readiness check - the NSFW model must be loaded."""
    engine = service.engine
    model_ready = engine.is_ready

    return JSONResponse(
        status_code=200 if model_ready else 503,
        content={
            "ready": model_ready,
            "checks": {"nsfw_model": model_ready},
            "model_status": engine.status(),
        }
    )


# =============================================================================
# Development Server
# =============================================================================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "content_guard.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
