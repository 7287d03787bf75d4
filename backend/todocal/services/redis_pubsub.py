"""
Redis relay for the change feed.
Mirrors locally published change events onto a Redis channel and
re-dispatches events published by other API processes to local subscribers.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

from todocal.core.config import settings
from todocal.services.change_feed import ChangeEvent, ChangeFeed, change_feed

logger = logging.getLogger(__name__)


class RedisChangeRelay:
    def __init__(
        self,
        feed: ChangeFeed | None = None,
        url: str | None = None,
        channel: str | None = None,
    ) -> None:
        self.feed = feed or change_feed
        self.url = url or settings.REDIS_URL
        self.channel = channel or settings.REDIS_CHANGES_CHANNEL
        self.redis: Optional[aioredis.Redis] = None
        self.pubsub: Optional[PubSub] = None
        self._listener_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._remove_sink = None

    @property
    def connected(self) -> bool:
        return self.redis is not None

    async def connect(self) -> None:
        try:
            self.redis = aioredis.from_url(self.url, encoding="utf-8", decode_responses=True)
            self.pubsub = self.redis.pubsub()
            await self.pubsub.subscribe(self.channel)
        except Exception as exc:
            logger.error("Failed to connect change relay to Redis: %s", exc)
            self.redis = None
            raise

        self._loop = asyncio.get_running_loop()
        self._remove_sink = self.feed.add_sink(self.forward)
        self._listener_task = asyncio.create_task(self._listen())
        logger.info("Change relay subscribed to Redis channel %r", self.channel)

    async def disconnect(self) -> None:
        if self._remove_sink is not None:
            self._remove_sink()
            self._remove_sink = None

        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

        if self.pubsub:
            await self.pubsub.unsubscribe(self.channel)
            await self.pubsub.close()
            self.pubsub = None

        if self.redis:
            await self.redis.close()
            self.redis = None

        logger.info("Change relay disconnected")

    def forward(self, event: ChangeEvent) -> None:
        """Feed sink; runs in whichever thread published the event."""
        if event.origin != self.feed.origin or self._loop is None:
            return
        asyncio.run_coroutine_threadsafe(self.publish(event), self._loop)

    async def publish(self, event: ChangeEvent) -> None:
        if not self.redis:
            logger.warning("Redis not connected, dropping %s change on %s", event.event_type.value, event.table)
            return
        try:
            await self.redis.publish(self.channel, json.dumps(event.to_dict()))
        except Exception as exc:
            logger.error("Error publishing change to Redis: %s", exc)

    def handle_message(self, raw: str) -> bool:
        """Dispatch a relayed event locally; returns False for our own echoes."""
        event = ChangeEvent.from_dict(json.loads(raw))
        if event.origin == self.feed.origin:
            return False
        self.feed.dispatch(event)
        return True

    async def _listen(self) -> None:
        logger.info("Starting change relay listener...")
        try:
            async for message in self.pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    self.handle_message(message["data"])
                except Exception as exc:
                    logger.error("Error processing relayed change: %s", exc, exc_info=True)
        except asyncio.CancelledError:
            logger.info("Change relay listener cancelled")
            raise
        except Exception as exc:
            logger.error("Change relay listener error: %s", exc, exc_info=True)


# Global instance
change_relay = RedisChangeRelay()
