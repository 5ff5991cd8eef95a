"""WebSocket connection bookkeeping for the push channel."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Maps connection ids to live WebSockets.

    Implements the transport the fan-out broadcaster sends through. Every
    outbound message is framed as ``{"event": name, "data": payload}``.
    """

    def __init__(self) -> None:
        self._connections: dict[str, WebSocket] = {}

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = websocket
        logger.info("Client connected: %s (%d active)", connection_id, len(self._connections))
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        if self._connections.pop(connection_id, None) is not None:
            logger.info("Client disconnected: %s (%d active)", connection_id, len(self._connections))

    async def send(self, connection_id: str, event: str, payload: dict[str, Any]) -> None:
        websocket = self._connections.get(connection_id)
        if websocket is None:
            raise ConnectionError(f"Connection {connection_id} is closed")
        await websocket.send_json({"event": event, "data": payload})
