"""WebSocket manager for live batch progress."""

from typing import Dict, Set, List
from fastapi import WebSocket
import json
import logging
from datetime import datetime

from trajgen.models.schemas import WebSocketMessage

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manage WebSocket connections subscribed to batch jobs."""

    def __init__(self):
        self.active_connections: Dict[int, Set[WebSocket]] = {}  # job_id -> set of WebSockets
        self.client_subscriptions: Dict[WebSocket, Set[int]] = {}  # WebSocket -> set of job_ids

    async def connect(self, websocket: WebSocket, job_ids: List[int]):
        """Subscribe client to job updates."""
        await websocket.accept()
        self.client_subscriptions[websocket] = set(job_ids)

        for job_id in job_ids:
            if job_id not in self.active_connections:
                self.active_connections[job_id] = set()
            self.active_connections[job_id].add(websocket)

    def disconnect(self, websocket: WebSocket):
        """Unsubscribe client."""
        job_ids = self.client_subscriptions.pop(websocket, set())
        for job_id in job_ids:
            if job_id in self.active_connections:
                self.active_connections[job_id].discard(websocket)
                if not self.active_connections[job_id]:
                    del self.active_connections[job_id]

    async def _send(self, job_id: int, message: WebSocketMessage):
        if job_id not in self.active_connections:
            return

        payload = message.model_dump()
        payload["timestamp"] = datetime.utcnow().isoformat()
        message_json = json.dumps(payload)
        disconnected = []

        for websocket in list(self.active_connections[job_id]):
            try:
                await websocket.send_text(message_json)
            except Exception as e:
                logger.debug("Dropping websocket for job %s: %s", job_id, e)
                disconnected.append(websocket)

        # Clean up disconnected clients
        for ws in disconnected:
            self.disconnect(ws)

    async def broadcast_progress(self, job_id: int, stats: dict):
        """Running totals after each trip slot."""
        await self._send(job_id, WebSocketMessage(type="batch_progress", data={"job_id": job_id, **stats}))

    async def broadcast_finished(self, job_id: int, state: str, stats: dict, error: str = None):
        await self._send(
            job_id,
            WebSocketMessage(
                type="batch_finished",
                data={"job_id": job_id, "state": state, "error": error, **stats},
            ),
        )


# Global connection manager
ws_manager = ConnectionManager()
