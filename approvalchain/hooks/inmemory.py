"""In-memory hook for testing."""

from __future__ import annotations

import asyncio
from typing import List

from ..contracts import TransitionEvent
from .base import TransitionHook


class InMemoryHook(TransitionHook):
    """Collects every event it receives, in delivery order."""

    def __init__(self) -> None:
        self.events: List[TransitionEvent] = []
        self._lock = asyncio.Lock()

    async def notify(self, event: TransitionEvent) -> None:
        async with self._lock:
            self.events.append(event)

    def events_for(self, request_id: str) -> List[TransitionEvent]:
        return [e for e in self.events if e.request_id == request_id]
