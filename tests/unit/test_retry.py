import pytest

from approvalchain.errors import ConflictError, InvalidStateError
from approvalchain.utils import retry
from approvalchain.utils.retry import compute_backoff, retry_on_conflict


def test_compute_backoff_grows_with_attempt():
    assert 1.5 <= compute_backoff(1, base=1.5, jitter=0) <= 1.5
    assert compute_backoff(3, base=2, jitter=0) == 8
    assert 4 <= compute_backoff(2, base=2, jitter=0.5) <= 4.5


async def _no_sleep(delay):
    return None


@pytest.mark.asyncio
async def test_retry_on_conflict_eventually_succeeds(monkeypatch):
    monkeypatch.setattr(retry.asyncio, "sleep", _no_sleep)
    calls = []

    async def operation():
        calls.append(1)
        if len(calls) < 3:
            raise ConflictError("stale")
        return "done"

    assert await retry_on_conflict(operation, attempts=3) == "done"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_retry_on_conflict_gives_up(monkeypatch):
    monkeypatch.setattr(retry.asyncio, "sleep", _no_sleep)
    calls = []

    async def operation():
        calls.append(1)
        raise ConflictError("stale")

    with pytest.raises(ConflictError):
        await retry_on_conflict(operation, attempts=2)
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_retry_on_conflict_does_not_retry_other_errors():
    calls = []

    async def operation():
        calls.append(1)
        raise InvalidStateError("already decided")

    with pytest.raises(InvalidStateError):
        await retry_on_conflict(operation)
    assert len(calls) == 1
