# src/infrastructure/messaging/connection_registry.py

import logging
import threading

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Live chat connections keyed by user id (one socket per user)."""

    def __init__(self):
        self._connections: dict[str, WebSocket] = {}
        self._lock = threading.Lock()

    def register(self, user_id: str, websocket: WebSocket) -> None:
        with self._lock:
            self._connections[user_id] = websocket
        logger.info("User %s registered a chat connection", user_id)

    def lookup(self, user_id: str) -> WebSocket | None:
        with self._lock:
            return self._connections.get(user_id)

    def deregister(self, user_id: str, websocket: WebSocket | None = None) -> None:
        with self._lock:
            current = self._connections.get(user_id)
            # A reconnect may already have replaced this socket.
            if current is None or (websocket is not None and current is not websocket):
                return
            del self._connections[user_id]
        logger.info("User %s chat connection closed", user_id)

    async def emit_to_user(self, user_id: str, event: str, payload: dict) -> bool:
        websocket = self.lookup(user_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json({"event": event, "data": payload})
        except Exception:
            logger.exception("Error sending %s to user %s", event, user_id)
            self.deregister(user_id, websocket)
            return False
        return True


connection_registry = ConnectionRegistry()
