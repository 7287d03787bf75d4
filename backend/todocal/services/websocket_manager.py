"""
Registry of open workspace WebSocket connections, keyed by user.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Set
from uuid import UUID

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self):
        # {user_id: {websocket1, websocket2, ...}}
        self.active_connections: Dict[UUID, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: UUID) -> None:
        await websocket.accept()
        async with self._lock:
            self.active_connections.setdefault(user_id, set()).add(websocket)
            count = len(self.active_connections[user_id])
        logger.info("WebSocket connected: user_id=%s connections=%s", user_id, count)

    async def disconnect(self, websocket: WebSocket, user_id: UUID) -> None:
        async with self._lock:
            connections = self.active_connections.get(user_id)
            if connections is not None:
                connections.discard(websocket)
                if not connections:
                    del self.active_connections[user_id]
        logger.info("WebSocket disconnected: user_id=%s", user_id)

    def get_connection_count(self, user_id: UUID | None = None) -> int:
        if user_id is not None:
            return len(self.active_connections.get(user_id, set()))
        return sum(len(connections) for connections in self.active_connections.values())


# Global instance
manager = ConnectionManager()
