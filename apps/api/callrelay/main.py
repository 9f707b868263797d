"""FastAPI application for the avatar video-call relay."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, Response

from .core.config import Settings, settings as default_settings
from .routers import rtc
from .services.assistant import AssistantService
from .services.gateway import ConnectionGateway
from .services.rooms import RoomRegistry
from .services.sessions import SessionLifecycleManager
from .services.signaling import SignalingRelay
from .services.uploads import resolve_upload

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await app.state.lifecycle.drain()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application and its relay components.

    ``settings`` configures the relay components only; the llm, avatar and
    uploads modules read the process-wide ``core.config.settings``.
    """

    settings = settings or default_settings
    _configure_logging(settings.log_level)

    app = FastAPI(title="Avatar Call Relay", version="0.1.0", lifespan=_lifespan)

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    registry = RoomRegistry(capacity=settings.room_capacity)
    relay = SignalingRelay(registry)
    lifecycle = SessionLifecycleManager(registry, cleanup_timeout=settings.cleanup_timeout_seconds)
    assistant = AssistantService(relay, lifecycle, timeout=settings.collaborator_timeout_seconds)
    lifecycle.register_cleanup(assistant.close_session_avatar)

    app.state.registry = registry
    app.state.relay = relay
    app.state.lifecycle = lifecycle
    app.state.assistant = assistant
    app.state.gateway = ConnectionGateway(
        relay,
        lifecycle,
        assistant,
        outbox_max_messages=settings.outbox_max_messages,
    )

    app.include_router(rtc.router, prefix="/api/rtc", tags=["rtc"])

    @app.get("/api/health", tags=["meta"])
    async def health() -> dict[str, str]:
        """Simple liveness probe."""

        return {"status": "ok"}

    @app.head("/api/health", tags=["meta"])
    async def health_head() -> Response:
        """Allow HEAD for uptime monitors that only need the status code."""

        return Response(status_code=200)

    @app.get("/uploads/{filename}", tags=["meta"])
    async def uploaded_file(filename: str) -> FileResponse:
        """Serve an image previously attached to a user message."""

        path = resolve_upload(filename)
        if path is None:
            raise HTTPException(status_code=404, detail="File not found")
        return FileResponse(path)

    return app


app = create_app()
