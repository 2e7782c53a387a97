"""In-memory implementation of the request repository."""

from __future__ import annotations

import asyncio
from typing import Dict

from ..contracts import Approval, ApprovalStatus, RequestStatus, TaskRequest
from ..errors import ConflictError
from .repository import RequestRepository


class InMemoryRequestRepository(RequestRepository):
    """Store requests and approvals in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Reads hand out copies so a caller
    mutating a model never changes committed state.
    """

    def __init__(self) -> None:
        self._requests: Dict[str, TaskRequest] = {}
        self._approvals: Dict[str, Approval] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def create_request(self, request: TaskRequest, approvals: list[Approval]) -> None:
        async with self._lock:
            if request.id in self._requests:
                raise ConflictError(f"Request id {request.id} already exists")
            if any(r.request_code == request.request_code for r in self._requests.values()):
                raise ConflictError(f"Request code {request.request_code} already exists")
            self._requests[request.id] = request.model_copy(deep=True)
            for approval in approvals:
                self._approvals[approval.id] = approval.model_copy(deep=True)

    async def get_request(self, request_id: str) -> TaskRequest | None:
        request = self._requests.get(request_id)
        return request.model_copy(deep=True) if request else None

    async def get_request_by_code(self, request_code: str) -> TaskRequest | None:
        for request in self._requests.values():
            if request.request_code == request_code:
                return request.model_copy(deep=True)
        return None

    async def get_approval(self, approval_id: str) -> Approval | None:
        approval = self._approvals.get(approval_id)
        return approval.model_copy(deep=True) if approval else None

    async def list_approvals(self, request_id: str) -> list[Approval]:
        rows = [a for a in self._approvals.values() if a.request_id == request_id]
        rows.sort(key=lambda a: (a.sequence, a.created_at))
        return [a.model_copy(deep=True) for a in rows]

    async def list_requests(self, status: RequestStatus | None = None) -> list[TaskRequest]:
        return [
            r.model_copy(deep=True)
            for r in self._requests.values()
            if status is None or r.status == status
        ]

    async def list_active_approvals(self, reviewer_id: str) -> list[Approval]:
        return [
            a.model_copy(deep=True)
            for a in self._approvals.values()
            if a.status == ApprovalStatus.PENDING and a.reviewer_id == reviewer_id
        ]

    async def commit_transition(
        self, request: TaskRequest, approvals: list[Approval], expected_version: int
    ) -> None:
        async with self._lock:
            stored = self._requests.get(request.id)
            if stored is None or stored.version != expected_version:
                raise ConflictError(
                    f"Request {request.id} changed concurrently (expected version {expected_version})"
                )
            committed = request.model_copy(deep=True)
            committed.version = expected_version + 1
            self._requests[request.id] = committed
            for approval in approvals:
                self._approvals[approval.id] = approval.model_copy(deep=True)

    async def delete_request(self, request_id: str) -> None:
        async with self._lock:
            self._requests.pop(request_id, None)
            for approval_id in [
                a.id for a in self._approvals.values() if a.request_id == request_id
            ]:
                del self._approvals[approval_id]
