"""Core data contracts for the approval workflow."""

from __future__ import annotations

import math
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class RequestType(str, Enum):
    """Entity kinds whose changes are gated by an approval chain."""

    CLIENTS = "Clients"
    PROJECTS = "Projects"
    CONTRACTS = "Contracts"
    TASKS = "Tasks"
    FINANCIAL = "Financial"
    EMPLOYMENT = "Employment"


class RequestStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


class ApprovalStatus(str, Enum):
    NOT_STARTED = "NotStarted"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    SKIPPED = "Skipped"


class Outcome(str, Enum):
    APPROVE = "Approve"
    REJECT = "Reject"


TERMINAL_REQUEST_STATUSES = frozenset(
    {RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.CANCELLED}
)
SETTLED_APPROVAL_STATUSES = frozenset(
    {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED, ApprovalStatus.SKIPPED}
)


class ChainStep(BaseModel):
    """One reviewer step produced by the chain builder."""

    step_name: str
    reviewer_id: str


class TaskRequest(BaseModel):
    """A business-affecting request waiting on its approval chain.

    ``status`` is a rollup of the request's approvals and is only ever
    written by the workflow engine. ``version`` is the compare-and-swap token
    the repositories check on every transition.
    """

    id: str = Field(default_factory=new_id)
    request_code: str
    request_type: RequestType
    subject_id: str
    subject_name: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    notes: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_by: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES


class Approval(BaseModel):
    """A single reviewer step owned by one :class:`TaskRequest`."""

    id: str = Field(default_factory=new_id)
    request_id: str
    sequence: int = Field(..., ge=1)
    step_name: str
    reviewer_id: str
    status: ApprovalStatus = ApprovalStatus.NOT_STARTED
    remarks: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        """``True`` for the step whose decision is currently awaited."""
        return self.status == ApprovalStatus.PENDING


class TransitionEvent(BaseModel):
    """Published to hooks after every committed transition."""

    request_id: str
    approval_id: Optional[str] = None
    outcome: str
    actor: str
    timestamp: datetime = Field(default_factory=utcnow)
    request_status: RequestStatus


class RequestFilters(BaseModel):
    """Filter set shared with the rest of the console's list screens."""

    search: Optional[str] = None
    request_type: Optional[RequestType] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    def matches(self, request: TaskRequest) -> bool:
        if self.request_type is not None and request.request_type != self.request_type:
            return False
        if self.search:
            needle = self.search.strip().lower()
            haystack = f"{request.request_code} {request.notes or ''}".lower()
            if needle not in haystack:
                return False
        created = request.created_at.date()
        if self.from_date is not None and created < self.from_date:
            return False
        if self.to_date is not None and created > self.to_date:
            return False
        return True


class Page(BaseModel, Generic[T]):
    """One page of results plus paging metadata."""

    items: List[T] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10
    pages: int = 0

    @classmethod
    def paginate(cls, rows: List[T], page: int, limit: int) -> "Page[T]":
        if page < 1:
            raise ValueError("page must be >= 1")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        start = (page - 1) * limit
        return cls(
            items=rows[start : start + limit],
            total=len(rows),
            page=page,
            limit=limit,
            pages=math.ceil(len(rows) / limit),
        )


class PendingItem(BaseModel):
    """A row in a reviewer's queue: the request and its active step."""

    request: TaskRequest
    approval: Approval
