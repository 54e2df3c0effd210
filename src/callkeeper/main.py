"""
FastAPI application entry point.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from callkeeper.calls.reconciler import ReconcilerConfig, ReconciliationPoller
from callkeeper.calls.router import router as calls_router
from callkeeper.config import get_settings
from callkeeper.notifications.dispatcher import NotificationDispatcher
from callkeeper.notifications.sink import get_notification_sink
from callkeeper.shared.database import get_database_manager
from callkeeper.shared.exceptions import NotFoundError, ValidationError
from callkeeper.shared.logging import CorrelationIdMiddleware, get_logger, setup_logging
from callkeeper.telephony.factory import get_voice_provider
from callkeeper.telephony.webhooks.router import router as webhooks_router
from callkeeper.workers.loop import BackgroundLoop

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    settings = get_settings()
    db_manager = get_database_manager()

    logger.info("Application starting", extra={"env": settings.app_env})

    if settings.database_auto_create:
        await db_manager.create_all()
        logger.info("Database tables ensured")

    provider = get_voice_provider()
    sink = get_notification_sink()

    loops: list[BackgroundLoop] = []
    if settings.reconciler_enabled:
        poller = ReconciliationPoller(
            session_factory=db_manager.session_factory,
            provider=provider,
            config=ReconcilerConfig(stale_minutes=settings.reconciler_stale_minutes),
        )
        loops.append(BackgroundLoop("reconciler", settings.reconciler_interval_seconds, poller.run_once))
    if settings.notifier_enabled:
        dispatcher = NotificationDispatcher(session_factory=db_manager.session_factory, sink=sink)
        loops.append(BackgroundLoop("notifier", settings.notifier_interval_seconds, dispatcher.run_once))

    for loop in loops:
        await loop.start()
    app.state.background_loops = loops

    yield

    logger.info("Shutting down application")

    for loop in loops:
        await loop.stop()

    await sink.close()
    await provider.close()
    await db_manager.close()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Callkeeper API",
        description="Outbound AI voice call lifecycle service",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Map domain exceptions to HTTP responses
    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(ValidationError)
    async def _validation(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.message, "code": exc.code})

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(calls_router)
    app.include_router(webhooks_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
