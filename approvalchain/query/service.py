"""Read-side API: reviewer queues and request timelines."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

from ..constants import DEFAULT_PAGE_SIZE
from ..contracts import Approval, ApprovalStatus, Page, PendingItem, RequestFilters
from ..errors import ChannelError
from ..rollup import sort_timeline
from ..security.policy import Authorizer
from .channels import ApprovalChannel, ChannelResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


def merge_by_id(*payloads: Iterable[Approval]) -> List[Approval]:
    """Union approval payloads keyed on ``Approval.id``.

    When two payloads carry the same approval the later payload's copy
    wins. The result is in timeline order.
    """
    merged: dict[str, Approval] = {}
    for payload in payloads:
        for approval in payload:
            merged[approval.id] = approval
    return sort_timeline(merged.values())


def merge_pending(*payloads: Iterable[PendingItem]) -> List[PendingItem]:
    """Union pending rows keyed on the approval id; later payloads win."""
    merged: dict[str, PendingItem] = {}
    for payload in payloads:
        for item in payload:
            merged[item.approval.id] = item
    return list(merged.values())


class ApprovalQueryService:
    """Serves reviewer queues and timelines from a primary channel.

    The fallback channel is consulted only when the primary raises
    :class:`ChannelError` or reports a partial result. Both results are
    merged on approval id before sorting, so a step present in both is
    counted once.

    Reviewer queues are resolved through ``authorizer``: a user sees every
    active step addressed to any of its reviewer keys (its own id and its
    roles).
    """

    def __init__(
        self,
        primary: ApprovalChannel,
        fallback: Optional[ApprovalChannel] = None,
        authorizer: Optional[Authorizer] = None,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._authorizer = authorizer or Authorizer()

    async def _read(
        self,
        what: str,
        fetch: Callable[[ApprovalChannel], Awaitable[ChannelResult[T]]],
    ) -> List[List[T]]:
        payloads: List[List[T]] = []
        try:
            primary = await fetch(self._primary)
        except ChannelError as exc:
            if self._fallback is None:
                raise
            logger.warning(
                f"Primary channel {self._primary.name} failed for {what}: {exc}; "
                f"falling back to {self._fallback.name}"
            )
        else:
            payloads.append(primary.items)
            if primary.complete or self._fallback is None:
                return payloads
            logger.warning(
                f"Primary channel {self._primary.name} returned a partial {what}; "
                f"completing from {self._fallback.name}"
            )

        try:
            fallback = await fetch(self._fallback)
        except ChannelError as exc:
            if not payloads:
                raise
            logger.warning(
                f"Fallback channel {self._fallback.name} failed for {what}: {exc}; "
                f"serving the partial result from {self._primary.name}"
            )
            return payloads
        payloads.append(fallback.items)
        return payloads

    async def timeline_for(self, request_id: str) -> List[Approval]:
        """All approvals of ``request_id`` ordered by (sequence, created_at)."""
        payloads = await self._read(
            f"timeline of {request_id}", lambda channel: channel.fetch_timeline(request_id)
        )
        return merge_by_id(*payloads)

    async def pending_for(
        self,
        reviewer_id: str,
        filters: Optional[RequestFilters] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Page[PendingItem]:
        """Requests whose active step ``reviewer_id`` may decide, newest first."""
        filters = filters or RequestFilters()
        keys = await self._authorizer.reviewer_keys(reviewer_id)
        payloads: List[List[PendingItem]] = []
        for key in sorted(keys):
            payloads.extend(
                await self._read(
                    f"pending queue of {key}",
                    lambda channel, key=key: channel.fetch_pending(key, filters),
                )
            )
        rows = [
            item
            for item in merge_pending(*payloads)
            if item.approval.status == ApprovalStatus.PENDING
            and item.approval.reviewer_id in keys
            and filters.matches(item.request)
        ]
        rows.sort(key=lambda item: item.request.created_at, reverse=True)
        return Page[PendingItem].paginate(rows, page=page, limit=limit)
