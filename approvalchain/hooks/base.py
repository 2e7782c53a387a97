"""Base interface for transition hooks."""

from __future__ import annotations

import abc

from ..contracts import TransitionEvent


class TransitionHook(metaclass=abc.ABCMeta):
    """Side effect run after every committed transition.

    Hooks are fire-and-forget: the engine logs a failing hook and moves on,
    so a hook must never be relied on to veto or undo a transition.
    """

    async def connect(self) -> None:
        """Open any backing connection (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close any backing connection (no-op by default)."""
        pass

    @abc.abstractmethod
    async def notify(self, event: TransitionEvent) -> None:
        """Deliver ``event``."""
        raise NotImplementedError
