from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from ..constants import DEFAULT_CONFLICT_RETRIES
from ..errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, base: float = 1.5) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, base=base)
    await asyncio.sleep(delay)


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    attempts: int = DEFAULT_CONFLICT_RETRIES,
    base: float = 1.5,
) -> T:
    """Run ``operation`` again after a :class:`ConflictError`.

    ``operation`` must re-read state itself on every call; the last
    ``ConflictError`` propagates once ``attempts`` are used up.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except ConflictError:
            if attempt == attempts:
                raise
            logger.warning(f"Conflict on attempt {attempt}/{attempts}, retrying")
            await schedule_retry(attempt, base=base)
    raise ValueError("attempts must be >= 1")
