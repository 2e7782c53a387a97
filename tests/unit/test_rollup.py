"""Status rollup and chain invariant tests."""

from datetime import datetime, timedelta, timezone

import pytest

from approvalchain.contracts import Approval, ApprovalStatus, RequestStatus
from approvalchain.errors import InvalidStateError
from approvalchain.rollup import active_step, derive_status, sort_timeline, validate_chain

A = ApprovalStatus


def _chain(*statuses, sequences=None):
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    sequences = sequences or range(1, len(statuses) + 1)
    return [
        Approval(
            request_id="r",
            sequence=seq,
            step_name=f"s{seq}",
            reviewer_id="x",
            status=status,
            created_at=base + timedelta(seconds=seq),
        )
        for seq, status in zip(sequences, statuses)
    ]


@pytest.mark.parametrize(
    "statuses, expected",
    [
        ((A.PENDING, A.NOT_STARTED), RequestStatus.PENDING),
        ((A.APPROVED, A.PENDING), RequestStatus.PENDING),
        ((A.APPROVED, A.APPROVED), RequestStatus.APPROVED),
        ((A.APPROVED, A.REJECTED, A.SKIPPED), RequestStatus.REJECTED),
        ((A.APPROVED, A.SKIPPED, A.SKIPPED), RequestStatus.CANCELLED),
        ((A.SKIPPED,), RequestStatus.CANCELLED),
    ],
)
def test_derive_status(statuses, expected):
    assert derive_status(_chain(*statuses)) == expected


def test_derive_status_empty_chain_is_pending():
    assert derive_status([]) == RequestStatus.PENDING


def test_validate_chain_accepts_well_formed_chains():
    validate_chain(_chain(A.PENDING, A.NOT_STARTED, A.NOT_STARTED))
    validate_chain(_chain(A.APPROVED, A.PENDING, A.NOT_STARTED))
    validate_chain(_chain(A.APPROVED, A.REJECTED, A.SKIPPED))
    validate_chain(_chain(A.APPROVED, A.APPROVED))


@pytest.mark.parametrize(
    "chain",
    [
        [],
        _chain(A.PENDING, A.NOT_STARTED, sequences=[1, 3]),
        _chain(A.PENDING, A.NOT_STARTED, sequences=[2, 3]),
        _chain(A.PENDING, A.NOT_STARTED, sequences=[1, 1]),
        _chain(A.PENDING, A.PENDING),
        _chain(A.NOT_STARTED, A.PENDING),
        _chain(A.PENDING, A.APPROVED),
    ],
)
def test_validate_chain_rejects_malformed_chains(chain):
    with pytest.raises(InvalidStateError):
        validate_chain(chain)


def test_active_step():
    chain = _chain(A.APPROVED, A.PENDING, A.NOT_STARTED)
    assert active_step(chain).sequence == 2
    assert active_step(_chain(A.APPROVED, A.APPROVED)) is None


def test_sort_timeline_uses_sequence_then_created_at():
    chain = _chain(A.APPROVED, A.APPROVED, A.PENDING)
    chain[0].created_at = chain[2].created_at + timedelta(days=1)
    assert [a.sequence for a in sort_timeline(reversed(chain))] == [1, 2, 3]
