"""Live job and project updates over WebSocket.

A client connects once and subscribes to the projects it is watching.
Two message types are pushed to subscribers of a project:
    {"type": "job_update", "job": {...}}          every job state change
    {"type": "project_update", "project": {...}}  every committed workflow write

Job and engine threads call the synchronous publish_* methods; the sends
are scheduled on the event loop that owns the sockets.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Optional

from fastapi import WebSocket

from reelforge.logger import get_logger

if TYPE_CHECKING:
    from reelforge.workflow import Project
    from reelforge.workflow.jobs import Job

logger = get_logger(__name__)


class WebSocketManager:
    """Tracks open sockets and which projects each client follows."""

    def __init__(self):
        self._sockets: dict[str, WebSocket] = {}
        self._watching: dict[str, set[str]] = {}  # client_id -> project_ids
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    async def connect(self, websocket: WebSocket, client_id: str) -> None:
        await websocket.accept()
        self._sockets[client_id] = websocket
        self._watching.setdefault(client_id, set())

    def disconnect(self, client_id: str) -> None:
        self._sockets.pop(client_id, None)
        self._watching.pop(client_id, None)

    async def subscribe_to_project(self, client_id: str, project_id: str) -> None:
        self._watching.setdefault(client_id, set()).add(project_id)

    async def unsubscribe_from_project(self, client_id: str, project_id: str) -> None:
        self._watching.get(client_id, set()).discard(project_id)

    async def _send(self, client_id: str, message: dict[str, Any]) -> bool:
        """Send to one client; a socket that fails is dropped."""
        websocket = self._sockets.get(client_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.info("websocket_send_failed", client_id=client_id, error=str(e))
            self.disconnect(client_id)
            return False
        return True

    async def _broadcast(self, project_id: str, message: dict[str, Any]) -> None:
        watchers = [cid for cid, projects in self._watching.items() if project_id in projects]
        for client_id in watchers:
            await self._send(client_id, message)

    async def broadcast_job_update(self, job: "Job") -> None:
        """Push a job's state to every client following its project."""
        await self._broadcast(job.project_id, {"type": "job_update", "job": job.to_dict()})

    async def broadcast_project_update(self, project: "Project") -> None:
        """Push a project snapshot to every client following it."""
        await self._broadcast(project.id, {"type": "project_update", "project": project.to_dict()})

    # === Thread-safe entry points ===

    def _schedule(self, project_id: str, message: dict[str, Any]) -> None:
        if self._loop is None or not project_id:
            return
        try:
            asyncio.run_coroutine_threadsafe(self._broadcast(project_id, message), self._loop)
        except RuntimeError:
            # Loop closed during shutdown
            logger.debug("websocket_publish_skipped", project_id=project_id, type=message["type"])

    def publish_job(self, job: "Job") -> None:
        """Snapshot a job now and send it from the event loop."""
        self._schedule(job.project_id, {"type": "job_update", "job": job.to_dict()})

    def publish_project(self, project: "Project") -> None:
        """Snapshot a project now and send it from the event loop."""
        self._schedule(project.id, {"type": "project_update", "project": project.to_dict()})

    async def send_to_client(self, client_id: str, message: dict[str, Any]) -> bool:
        return await self._send(client_id, message)

    @property
    def connection_count(self) -> int:
        return len(self._sockets)

    def get_subscribed_projects(self, client_id: str) -> list[str]:
        return sorted(self._watching.get(client_id, set()))
