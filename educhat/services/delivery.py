"""
Best-effort push of events to a recipient's live connection.

Events are dropped, not queued, when the recipient is offline. Transport
failures are logged and swallowed because the state change that produced
the event has already been persisted. There is no retry.
"""
import json
import logging
from typing import Any, Optional

from educhat.utils.realtime_bus import NoopBus, user_channel
from educhat.utils.websocket_manager import ConnectionManager, encode_event


logger = logging.getLogger(__name__)

NEW_MESSAGE = "new_message"
MESSAGE_READ = "message_read"
MESSAGES_READ = "messages_read"


class DeliveryDispatcher:

    def __init__(self, connections: ConnectionManager, bus: Optional[Any] = None) -> None:
        self._connections = connections
        self._bus = bus or NoopBus()

    async def push(self, user_id: Any, event: str, payload: Any) -> bool:
        """Returns True when the event was handed to a transport."""
        uid = str(user_id)
        handle = self._connections.lookup(uid)
        if handle is None:
            return await self._relay(uid, event, payload)
        try:
            await self._connections.send(handle, event, payload)
        except Exception:
            logger.warning("Delivery of %s to user %s failed", event, uid, exc_info=True)
            self._connections.unregister(uid, handle)
            return False
        return True

    async def _relay(self, uid: str, event: str, payload: Any) -> bool:
        if not getattr(self._bus, "enabled", False):
            logger.debug("User %s offline, dropping %s", uid, event)
            return False
        try:
            await self._bus.publish(user_channel(uid), json.dumps(encode_event(event, payload)))
        except Exception:
            logger.warning("Relay of %s to user %s failed", event, uid, exc_info=True)
            return False
        return True
