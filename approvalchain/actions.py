"""Commit actions: the entity changes an approved request authorizes."""

from __future__ import annotations

from typing import Awaitable, Callable, Dict, Optional

from .contracts import RequestType, TaskRequest

CommitAction = Callable[[TaskRequest], Awaitable[None]]


class CommitActionRegistry:
    """Maps each request type to the coroutine that applies the change.

    Actions may be delivered more than once (see
    :meth:`approvalchain.engine.WorkflowEngine.redeliver`) and must be
    idempotent, e.g. keyed on ``request.id``.
    """

    def __init__(self) -> None:
        self._actions: Dict[RequestType, CommitAction] = {}

    def register(self, request_type: RequestType, action: CommitAction) -> None:
        self._actions[RequestType(request_type)] = action

    def on(self, request_type: RequestType) -> Callable[[CommitAction], CommitAction]:
        """Decorator form of :meth:`register`."""

        def decorator(action: CommitAction) -> CommitAction:
            self.register(request_type, action)
            return action

        return decorator

    def get(self, request_type: RequestType) -> Optional[CommitAction]:
        return self._actions.get(request_type)
