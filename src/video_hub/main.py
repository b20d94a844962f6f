from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from video_hub import __version__ as APP_VERSION
from video_hub import metrics
from video_hub.api import api_router
from video_hub.config import Settings, settings, validate_settings
from video_hub.handlers import register_exception_handlers
from video_hub.logging_config import configure_logging_from_settings, get_logger
from video_hub.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    UploadSizeLimitMiddleware,
)
from video_hub.schemas import HealthCheckResponse
from video_hub.services.notifier import LiveNotifier
from video_hub.services.storage import VideoStore, build_video_store
from video_hub.services.video_service import VideoService

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Builds the service objects for this process and tears them down on exit.

    Any failure here (bad configuration, unusable storage) aborts startup.
    """
    config: Settings = app.state.settings
    configure_logging_from_settings(config)
    logger.info(f"Starting video hub v{APP_VERSION}")

    validate_settings(config)

    store: VideoStore = app.state.store or build_video_store(config)
    await store.startup()

    notifier = LiveNotifier(replay_buffer_size=config.live.replay_buffer_size)
    app.state.services = {
        "store": store,
        "notifier": notifier,
        "video_service": VideoService(
            store=store,
            notifier=notifier,
            max_upload_bytes=config.storage.max_upload_bytes,
        ),
    }
    app.state.started_at = datetime.now(timezone.utc)
    logger.info(
        "Video hub started",
        extra={"backend": store.backend, "environment": config.ENVIRONMENT},
    )

    try:
        yield
    finally:
        logger.info("Shutting down video hub")
        await notifier.close()
        await store.shutdown()
        logger.info("Video hub shutdown complete")


def create_app(config: Optional[Settings] = None, store: Optional[VideoStore] = None) -> FastAPI:
    """
    Application factory.

    Args:
        config: Settings to use; defaults to the environment-derived settings.
        store: Pre-built video store; defaults to the one selected by config.
    """
    config = config or settings

    app = FastAPI(
        title="Video Hub API",
        description="Video uploads with live gallery updates",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=config.security.cors_credentials,
        allow_methods=config.security.cors_methods,
        allow_headers=config.security.cors_headers,
        expose_headers=["X-Event-Sequence", "x-correlation-id"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(UploadSizeLimitMiddleware, max_upload_bytes=config.storage.max_upload_bytes)
    app.add_middleware(CorrelationIdMiddleware)

    register_exception_handlers(app)

    @app.get("/health", response_model=HealthCheckResponse, tags=["Health"])
    async def health_check(request: Request) -> HealthCheckResponse:
        services = request.app.state.services
        started_at = request.app.state.started_at
        now = datetime.now(timezone.utc)
        return HealthCheckResponse(
            status="healthy",
            timestamp=now,
            version=APP_VERSION,
            uptime=(now - started_at).total_seconds(),
            storage=services["store"].describe(),
            viewers=len(services["notifier"]),
            event_sequence=services["notifier"].sequence,
        )

    @app.get("/metrics", tags=["Monitoring"])
    async def prometheus_metrics() -> Response:
        return Response(content=metrics.render_latest(), media_type=metrics.CONTENT_TYPE_LATEST)

    app.include_router(api_router)

    if config.storage.backend == "local":
        app.mount(
            "/uploads",
            StaticFiles(directory=config.storage.upload_dir, check_dir=False),
            name="uploads",
        )

    if Path(config.STATIC_DIR).is_dir():
        app.mount("/", StaticFiles(directory=config.STATIC_DIR, html=True), name="static")

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    uvicorn.run(
        "video_hub.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    run()
