"""FastAPI application factory for the ReelForge API."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from reelforge import __version__
from reelforge.logger import bind_request_context, clear_request_context, configure_logging, get_logger

from .config import WebConfig
from .dependencies import get_app_config, get_config, get_job_manager, get_websocket_manager
from .routers import (
    ideas_router,
    jobs_router,
    projects_router,
    segments_router,
)

logger = get_logger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Wire job broadcasts to the WebSocket manager; drain jobs on exit."""
    ws_manager = get_websocket_manager()
    ws_manager.set_event_loop(asyncio.get_running_loop())
    job_manager = get_job_manager()
    job_manager.set_listener(ws_manager)
    logger.info("app_started", data_dir=str(get_config().data_dir))

    yield

    job_manager.shutdown(wait=True)
    logger.info("app_stopped")


async def _realtime(websocket: WebSocket, client_id: str | None = None) -> None:
    """Subscribe/unsubscribe loop: {"type": "subscribe", "project_id": "..."}."""
    ws_manager = get_websocket_manager()
    cid = client_id or f"client_{uuid4().hex[:8]}"
    await ws_manager.connect(websocket, cid)
    try:
        while True:
            message = await websocket.receive_json()
            project_id = message.get("project_id")
            if not project_id:
                continue
            action = message.get("type")
            if action == "subscribe":
                await ws_manager.subscribe_to_project(cid, project_id)
            elif action == "unsubscribe":
                await ws_manager.unsubscribe_from_project(cid, project_id)
    except WebSocketDisconnect:
        ws_manager.disconnect(cid)


def create_app(config: WebConfig | None = None) -> FastAPI:
    """Build the API app.

    Args:
        config: Web settings; the cached defaults (as adjusted by the CLI)
            when omitted.
    """
    config = config or get_config()
    logging_config = get_app_config().logging
    configure_logging(logging_config.level, logging_config.json_logs, force=True)

    app = FastAPI(
        title="ReelForge API",
        description="Approval-gated AI video production workflow",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or uuid4().hex[:12]
        bind_request_context(request_id, request.headers.get("X-User-Id"))
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-Id"] = request_id
        return response

    for router in (projects_router, segments_router, jobs_router, ideas_router):
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/health")
    def health_check() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    app.add_api_websocket_route("/ws", _realtime)

    return app
