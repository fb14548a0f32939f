"""
PixelPipe - Main Application

FastAPI application with:
- Image pipeline (normalize, 4x upscale, background removal)
- Batch processing with per-item failure isolation
- Periodic cleanup of the working directories
- Structured logging with structlog
- Prometheus metrics
- Global exception handling
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from pixelpipe.api import api_router
from pixelpipe.core.config import Settings, settings as default_settings
from pixelpipe.core.exceptions import register_exception_handlers
from pixelpipe.core.logging import get_logger, setup_logging
from pixelpipe.core.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    set_app_info,
)
from pixelpipe.core.storage import StorageLayout
from pixelpipe.engines import Collaborators, build_collaborators
from pixelpipe.pipeline.batch import BatchCoordinator
from pixelpipe.pipeline.orchestrator import ImagePipeline
from pixelpipe.services.cleanup import CleanupService

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    collaborators: Optional[Collaborators] = None
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Overrides the environment-derived settings
        collaborators: Overrides the image engines selected by settings
    """
    settings = settings or default_settings

    # =========================================================================
    # Lifespan Handler
    # =========================================================================
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the process-wide services, start cleanup, stop it on shutdown."""
        startup_start = time.time()

        logger.info(
            "application_starting",
            app_name=settings.APP_NAME,
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT
        )
        set_app_info(version=settings.APP_VERSION, environment=settings.ENVIRONMENT)

        storage = StorageLayout.from_settings(settings)
        storage.ensure()

        cleanup_service = CleanupService.from_settings(settings)
        await cleanup_service.initialize()

        pipeline = ImagePipeline(storage, collaborators or build_collaborators(settings))

        app.state.settings = settings
        app.state.pipeline = pipeline
        app.state.batch_coordinator = BatchCoordinator(pipeline, settings.BATCH_CONCURRENCY)
        app.state.cleanup_service = cleanup_service

        startup_time = time.time() - startup_start
        logger.info("application_ready", startup_time_seconds=startup_time)

        try:
            yield
        finally:
            logger.info("application_shutting_down")
            await cleanup_service.shutdown()
            logger.info("application_shutdown_complete")

    # =========================================================================
    # Create FastAPI Application
    # =========================================================================
    app = FastAPI(
        title=settings.APP_NAME,
        description="""
        Image processing service.

        ## Pipeline Stages

        1. **Normalize** - JPG/JPEG converted to PNG
        2. **Upscale** (optional) - Real-ESRGAN 4x
        3. **Remove background** (optional) - rembg

        Upscaling always runs before background removal. Uploaded and
        processed files older than 24 hours are deleted automatically.
        """,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )
    app.state.settings = settings

    # =========================================================================
    # Middleware
    # =========================================================================
    cors_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials="*" not in cors_origins,
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

    register_exception_handlers(app)

    app.include_router(api_router)

    # Static frontend, registered last so /api routes take precedence
    if settings.PUBLIC_DIR.is_dir():
        app.mount("/", StaticFiles(directory=settings.PUBLIC_DIR, html=True), name="public")

    return app


setup_logging(
    log_level=default_settings.LOG_LEVEL,
    json_format=default_settings.LOG_FORMAT_JSON,
    log_file=default_settings.LOG_FILE
)
app = create_app()


# =============================================================================
# Development Server
# =============================================================================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pixelpipe.main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=default_settings.DEBUG,
        log_level="info"
    )
