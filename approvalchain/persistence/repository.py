"""Repository abstraction for requests and their approval chains."""

from __future__ import annotations

from typing import Protocol

from ..contracts import Approval, RequestStatus, TaskRequest


class RequestRepository(Protocol):
    """Protocol for request/approval persistence backends.

    Every backend must make :meth:`commit_transition` a compare-and-swap on
    ``TaskRequest.version``: the request row and all given approvals are
    written together, or nothing is written and ``ConflictError`` is raised.
    """

    async def create_request(self, request: TaskRequest, approvals: list[Approval]) -> None:
        """Persist a new request together with its full chain."""

    async def get_request(self, request_id: str) -> TaskRequest | None:
        """Retrieve a request by id."""

    async def get_request_by_code(self, request_code: str) -> TaskRequest | None:
        """Retrieve a request by its human-readable code."""

    async def get_approval(self, approval_id: str) -> Approval | None:
        """Retrieve a single approval step by id."""

    async def list_approvals(self, request_id: str) -> list[Approval]:
        """Return every approval of a request ordered by sequence."""

    async def list_requests(self, status: RequestStatus | None = None) -> list[TaskRequest]:
        """Return persisted requests, optionally filtered by status."""

    async def list_active_approvals(self, reviewer_id: str) -> list[Approval]:
        """Return ``Pending`` approvals assigned to ``reviewer_id``."""

    async def commit_transition(
        self, request: TaskRequest, approvals: list[Approval], expected_version: int
    ) -> None:
        """Atomically write a request transition if the version still matches."""

    async def delete_request(self, request_id: str) -> None:
        """Remove a request and the approvals it owns."""
