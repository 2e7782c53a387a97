"""Audit trail of committed transitions."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List

from ..contracts import TransitionEvent
from ..hooks.base import TransitionHook

logger = logging.getLogger(__name__)


class AuditLog(TransitionHook):
    """Append-only record of who did what to which request, and when."""

    def __init__(self) -> None:
        self._entries: Dict[str, List[TransitionEvent]] = defaultdict(list)

    async def notify(self, event: TransitionEvent) -> None:
        self._entries[event.request_id].append(event)
        logger.debug(f"Audit: {event.outcome} by {event.actor} on {event.request_id}")

    def trail(self, request_id: str) -> List[TransitionEvent]:
        """Return the events for ``request_id`` ordered by timestamp."""
        return sorted(self._entries.get(request_id, []), key=lambda e: e.timestamp)
