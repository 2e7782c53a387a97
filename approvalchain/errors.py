"""Exception hierarchy for the approval workflow.

Every error raised by the engine, the chain builder, the repositories and the
query service derives from :class:`ApprovalChainError`, so callers can handle
the whole family at one seam (the CLI does exactly that). None of them is
fatal: each describes a condition the caller can recover from, usually by
re-reading current state.
"""

from __future__ import annotations


class ApprovalChainError(Exception):
    """Base class for all approvalchain errors."""


class NotFoundError(ApprovalChainError):
    """Raised when a request or approval id does not exist.

    Args:
        resource: Entity name, e.g. ``"TaskRequest"`` or ``"Approval"``.
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = resource
        if resource_id is not None:
            msg += f" id={resource_id}"
        super().__init__(f"{msg} not found")


class InvalidStateError(ApprovalChainError):
    """Raised when a step is not decidable now or a chain is malformed."""


class UnauthorizedError(ApprovalChainError):
    """Raised when the actor may not decide a step or cancel a request."""

    def __init__(self, actor_id: str, action: str, target: str) -> None:
        self.actor_id = actor_id
        self.action = action
        self.target = target
        super().__init__(f"{actor_id!r} is not authorized to {action} {target}")


class UnknownRequestTypeError(ApprovalChainError):
    """Raised by the chain builder for a type with no configured chain."""

    def __init__(self, request_type: object) -> None:
        self.request_type = request_type
        super().__init__(f"No approval chain configured for request type {request_type!r}")


class ConflictError(ApprovalChainError):
    """Raised when a concurrent writer won the race for the same request.

    Also raised for duplicate request ids or codes on insert. Callers are
    expected to re-read state and retry.
    """


class CommitActionError(ApprovalChainError):
    """Raised when the commit action for an approved request failed.

    The approval itself is already committed; the action can be re-run with
    :meth:`approvalchain.engine.WorkflowEngine.redeliver`.
    """

    def __init__(self, request_id: str, cause: BaseException) -> None:
        self.request_id = request_id
        self.cause = cause
        super().__init__(f"Commit action failed for request {request_id}: {cause}")


class ChannelError(ApprovalChainError):
    """Raised by a query channel that could not produce a payload."""
