"""Read channels feeding the approval query service."""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, Generic, List, Mapping, Optional, TypeVar

import httpx
from pydantic import BaseModel, Field, ValidationError

from ..constants import DEFAULT_HTTP_TIMEOUT, ROLE_PREFIX
from ..contracts import (
    Approval,
    ApprovalStatus,
    PendingItem,
    RequestFilters,
    TaskRequest,
)
from ..errors import ChannelError
from ..persistence import RequestRepository
from .envelope import extract_items, normalize_response

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Status labels the console has been seen to emit for approval rows.
STATUS_ALIASES: Dict[str, ApprovalStatus] = {
    "موافق": ApprovalStatus.APPROVED,
    "مرفوض": ApprovalStatus.REJECTED,
    "قيد المراجعة": ApprovalStatus.PENDING,
    "not started": ApprovalStatus.NOT_STARTED,
}


class ChannelResult(BaseModel, Generic[T]):
    """Rows returned by a channel; ``complete`` is ``False`` for a partial read."""

    items: List[T] = Field(default_factory=list)
    complete: bool = True


class ApprovalChannel(metaclass=abc.ABCMeta):
    """A source of committed approval data."""

    name = "channel"

    @abc.abstractmethod
    async def fetch_timeline(self, request_id: str) -> ChannelResult[Approval]:
        """Return every approval of ``request_id``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def fetch_pending(
        self, reviewer_id: str, filters: RequestFilters
    ) -> ChannelResult[PendingItem]:
        """Return the active steps assigned to ``reviewer_id``."""
        raise NotImplementedError


class RepositoryChannel(ApprovalChannel):
    """Reads straight from the request repository."""

    name = "repository"

    def __init__(self, repository: RequestRepository) -> None:
        self._repository = repository

    async def fetch_timeline(self, request_id: str) -> ChannelResult[Approval]:
        approvals = await self._repository.list_approvals(request_id)
        return ChannelResult[Approval](items=approvals)

    async def fetch_pending(
        self, reviewer_id: str, filters: RequestFilters
    ) -> ChannelResult[PendingItem]:
        rows: List[PendingItem] = []
        for approval in await self._repository.list_active_approvals(reviewer_id):
            request = await self._repository.get_request(approval.request_id)
            if request is None or not filters.matches(request):
                continue
            rows.append(PendingItem(request=request, approval=approval))
        return ChannelResult[PendingItem](items=rows)


def _status(value: Any) -> ApprovalStatus:
    text = str(value or "").strip()
    try:
        return ApprovalStatus(text)
    except ValueError:
        pass
    alias = STATUS_ALIASES.get(text.lower()) or STATUS_ALIASES.get(text)
    if alias is None:
        raise ChannelError(f"Unknown approval status {text!r}")
    return alias


def _reviewer(row: Mapping[str, Any]) -> str:
    if row.get("reviewer_id"):
        return str(row["reviewer_id"])
    if row.get("required_role"):
        return f"{ROLE_PREFIX}{row['required_role']}"
    return ""


def parse_approval(row: Mapping[str, Any]) -> Approval:
    """Build an :class:`Approval` from a console approval row."""
    return Approval(
        id=str(row.get("approval_id") or row["id"]),
        request_id=str(row["request_id"]),
        sequence=int(row.get("sequence") or row.get("step_level") or row.get("step_no")),
        step_name=row.get("step_name") or row.get("title") or "",
        reviewer_id=_reviewer(row),
        status=_status(row.get("status")),
        remarks=row.get("remarks") or None,
        decided_by=row.get("decided_by"),
        decided_at=row.get("decided_at"),
        created_at=row["created_at"],
    )


def parse_pending(row: Mapping[str, Any]) -> PendingItem:
    """Build a :class:`PendingItem` from a nested or flat pending row."""
    if "request" in row and "approval" in row:
        return PendingItem.model_validate(row)
    approval = parse_approval(row)
    request = TaskRequest(
        id=approval.request_id,
        request_code=row["request_code"],
        request_type=row["request_type"],
        subject_id=str(row.get("subject_id") or ""),
        subject_name=row.get("subject_name"),
        notes=row.get("request_notes") or row.get("notes"),
        created_by=str(row.get("created_by") or row.get("creator_name") or ""),
        created_at=row.get("request_created_at") or row["created_at"],
        updated_at=row.get("updated_at") or row["created_at"],
    )
    return PendingItem(request=request, approval=approval)


class HttpChannel(ApprovalChannel):
    """Reads from the console REST API with :mod:`httpx`.

    Endpoints: ``GET /approvals/fetch/{request_id}`` and
    ``GET /approvals/pending``. Any transport failure, HTTP error status,
    ``success: false`` envelope or unparseable row raises
    :class:`~approvalchain.errors.ChannelError`.
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        max_rows: int = 500,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.timeout = timeout
        self.max_rows = max_rows
        self.headers = dict(headers or {})

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, headers=self.headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params, headers=self.headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise ChannelError(f"GET {url} failed: {exc}") from exc
        except ValueError as exc:
            raise ChannelError(f"GET {url} returned invalid JSON: {exc}") from exc

        normalized = normalize_response(body)
        if not normalized.success:
            raise ChannelError(normalized.error_message(f"GET {url} was not successful"))
        return normalized.data

    async def fetch_timeline(self, request_id: str) -> ChannelResult[Approval]:
        data = await self._get(f"/approvals/fetch/{request_id}")
        rows, total = extract_items(data, key="approvals")
        try:
            approvals = [parse_approval(r) for r in rows]
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            raise ChannelError(f"Malformed approval row for request {request_id}: {exc}") from exc
        complete = total is None or total <= len(approvals)
        return ChannelResult[Approval](items=approvals, complete=complete)

    async def fetch_pending(
        self, reviewer_id: str, filters: RequestFilters
    ) -> ChannelResult[PendingItem]:
        params: Dict[str, Any] = {"reviewer_id": reviewer_id, "page": 1, "limit": self.max_rows}
        if filters.search:
            params["search"] = filters.search
        if filters.request_type is not None:
            params["request_type"] = filters.request_type.value
        if filters.from_date is not None:
            params["from_date"] = filters.from_date.isoformat()
        if filters.to_date is not None:
            params["to_date"] = filters.to_date.isoformat()

        data = await self._get("/approvals/pending", params=params)
        rows, total = extract_items(data, key="approvals")
        try:
            items = [parse_pending(r) for r in rows]
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            raise ChannelError(f"Malformed pending row for {reviewer_id}: {exc}") from exc
        complete = total is None or total <= len(items)
        return ChannelResult[PendingItem](items=items, complete=complete)
