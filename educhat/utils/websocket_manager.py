"""
Registry of live websocket connections, one per user.

A reconnect replaces the previous handle for that user (last write wins).
All access happens on the event loop thread and no method awaits between
reading and writing a key, so per-key updates are atomic without a lock.
It is not safe to share across threads.
"""
import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder


logger = logging.getLogger(__name__)


def encode_event(event: str, payload: Any) -> Dict[str, Any]:
    return jsonable_encoder({"event": event, "data": payload}, custom_encoder={ObjectId: str})


class ConnectionManager:

    def __init__(self) -> None:
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        previous = self.register(user_id, websocket)
        if previous is not None and previous is not websocket:
            logger.info("User %s reconnected, replacing stale connection", user_id)

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        self.unregister(user_id, websocket)

    def register(self, user_id: Any, handle: WebSocket) -> Optional[WebSocket]:
        key = str(user_id)
        previous = self.active_connections.get(key)
        self.active_connections[key] = handle
        return previous

    def unregister(self, user_id: Any, handle: Optional[WebSocket] = None) -> bool:
        key = str(user_id)
        current = self.active_connections.get(key)
        if current is None:
            return False
        # a late disconnect of a replaced socket must not drop the new one
        if handle is not None and current is not handle:
            return False
        del self.active_connections[key]
        return True

    def lookup(self, user_id: Any) -> Optional[WebSocket]:
        return self.active_connections.get(str(user_id))

    def clear(self) -> None:
        self.active_connections.clear()

    async def send(self, handle: WebSocket, event: str, payload: Any) -> None:
        await handle.send_json(encode_event(event, payload))
