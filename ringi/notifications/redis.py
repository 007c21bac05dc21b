"""Redis notifier for cross-process delivery of transition events."""

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as redis

from ..contracts import ApplicationEvent
from .base import DEFAULT_TOPIC, BaseNotifier


class RedisNotifier(BaseNotifier):
    """Pushes events onto a Redis list per topic."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def notify(self, event: ApplicationEvent, topic: str = DEFAULT_TOPIC) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.lpush(f"ringi:{topic}", event.to_json())
