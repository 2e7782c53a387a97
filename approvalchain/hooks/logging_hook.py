"""Hook that writes one log line per transition."""

from __future__ import annotations

import logging

from ..contracts import TransitionEvent
from .base import TransitionHook

logger = logging.getLogger(__name__)


class LoggingHook(TransitionHook):
    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    async def notify(self, event: TransitionEvent) -> None:
        logger.log(
            self.level,
            f"{event.outcome} on request={event.request_id} approval={event.approval_id} "
            f"by {event.actor} -> {event.request_status.value}",
        )
