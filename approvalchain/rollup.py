"""Status rollup and chain invariant checks.

A request's status is never stored independently of its approvals: it is
always recomputed from the ordered chain with :func:`derive_status`.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .contracts import Approval, ApprovalStatus, RequestStatus
from .errors import InvalidStateError


def sort_timeline(approvals: Iterable[Approval]) -> List[Approval]:
    """Order approvals for display: sequence first, creation time second."""
    return sorted(approvals, key=lambda a: (a.sequence, a.created_at))


def derive_status(approvals: Sequence[Approval]) -> RequestStatus:
    """Compute a request's status from the states of its approvals."""
    statuses = [a.status for a in approvals]
    if ApprovalStatus.REJECTED in statuses:
        return RequestStatus.REJECTED
    if statuses and all(s == ApprovalStatus.APPROVED for s in statuses):
        return RequestStatus.APPROVED
    if ApprovalStatus.PENDING not in statuses and ApprovalStatus.SKIPPED in statuses:
        return RequestStatus.CANCELLED
    return RequestStatus.PENDING


def active_step(approvals: Sequence[Approval]) -> Optional[Approval]:
    """Return the single ``Pending`` approval, if any."""
    pending = [a for a in approvals if a.is_active]
    if len(pending) > 1:
        raise InvalidStateError(
            f"Chain has {len(pending)} active steps: "
            + ", ".join(str(a.sequence) for a in pending)
        )
    return pending[0] if pending else None


def validate_chain(approvals: Sequence[Approval]) -> None:
    """Raise :class:`InvalidStateError` if the chain breaks an invariant."""
    if not approvals:
        raise InvalidStateError("Chain has no approval steps")

    ordered = sort_timeline(approvals)
    sequences = [a.sequence for a in ordered]
    if sequences != list(range(1, len(ordered) + 1)):
        raise InvalidStateError(f"Chain sequences are not contiguous from 1: {sequences}")

    current = active_step(ordered)
    if current is None:
        return
    for approval in ordered:
        if approval.sequence < current.sequence and approval.status != ApprovalStatus.APPROVED:
            raise InvalidStateError(
                f"Step {approval.sequence} is {approval.status.value} before active step "
                f"{current.sequence}"
            )
        if approval.sequence > current.sequence and approval.status not in (
            ApprovalStatus.NOT_STARTED,
            ApprovalStatus.SKIPPED,
        ):
            raise InvalidStateError(
                f"Step {approval.sequence} is {approval.status.value} after active step "
                f"{current.sequence}"
            )
