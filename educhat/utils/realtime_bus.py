import asyncio
import logging
from typing import Awaitable, Callable

import redis.asyncio as redis


logger = logging.getLogger(__name__)


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


class _NoopSubscription:

    async def run(self) -> None:
        await asyncio.Future()

    async def cancel(self) -> None:
        return


class NoopBus:

    enabled = False

    async def publish(self, channel: str, message: str) -> None:
        return

    async def subscribe(self, channel: str, on_message: Callable[[str], Awaitable[None]]):
        return _NoopSubscription()

    async def close(self) -> None:
        return


class _RedisSubscription:

    def __init__(self, pubsub, channel: str, on_message: Callable[[str], Awaitable[None]]) -> None:
        self._pubsub = pubsub
        self._channel = channel
        self._on_message = on_message
        self._running = True

    async def run(self) -> None:
        while self._running:
            try:
                msg = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if msg and msg.get("type") == "message":
                    data = msg.get("data")
                    if isinstance(data, bytes):
                        data = data.decode("utf-8")
                    await self._on_message(data)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("Relay on %s failed", self._channel, exc_info=True)
                await asyncio.sleep(0.5)

    async def cancel(self) -> None:
        self._running = False
        try:
            await self._pubsub.unsubscribe(self._channel)
            await self._pubsub.aclose()
        except Exception:
            logger.debug("Unsubscribe from %s failed", self._channel, exc_info=True)


class RedisBus:
    """Relays delivery events to sockets held by other worker processes."""

    enabled = True

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, on_message: Callable[[str], Awaitable[None]]):
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        return _RedisSubscription(pubsub, channel, on_message)

    async def close(self) -> None:
        await self._redis.aclose()


def create_bus(url: str | None):
    if not url:
        return NoopBus()
    logger.info("Realtime relay enabled via Redis")
    return RedisBus(url)
