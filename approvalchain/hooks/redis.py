"""Redis hook publishing transition events to a list."""

from __future__ import annotations

from typing import Any, Optional

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from ..contracts import TransitionEvent
from .base import TransitionHook


class RedisHook(TransitionHook):
    """Pushes each event as JSON onto ``approvalchain:<topic>``.

    Consumers pop from the other end, so the list behaves as a FIFO queue.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        topic: str = "transitions",
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisHook")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.topic = topic
        self._redis: Optional[Any] = None

    @property
    def queue_name(self) -> str:
        return f"approvalchain:{self.topic}"

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

    async def notify(self, event: TransitionEvent) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self.queue_name, event.model_dump_json())
