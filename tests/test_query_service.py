"""Approval query service: reviewer queues, timelines and fallback merging."""

from datetime import date, datetime, timedelta, timezone

import pytest

from approvalchain.chains import ChainBuilder, ChainDefinition, StepDefinition, default_chains
from approvalchain.contracts import (
    Approval,
    ApprovalStatus,
    Outcome,
    RequestFilters,
    RequestType,
)
from approvalchain.engine import WorkflowEngine
from approvalchain.errors import ChannelError
from approvalchain.persistence import InMemoryRequestRepository
from approvalchain.security import RoleAuthorizer
from approvalchain.query import (
    ApprovalChannel,
    ApprovalQueryService,
    ChannelResult,
    RepositoryChannel,
    merge_by_id,
)

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _clock():
    ticks = iter(range(10_000))
    return lambda: T0 + timedelta(hours=next(ticks))


def _engine() -> WorkflowEngine:
    builder = ChainBuilder(
        [
            ChainDefinition(
                request_type=RequestType.CLIENTS,
                steps=[
                    StepDefinition(step_name="Contracts Review", reviewer="carla"),
                    StepDefinition(step_name="Manager Approval", reviewer="max"),
                ],
            ),
            ChainDefinition(
                request_type=RequestType.FINANCIAL,
                steps=[
                    StepDefinition(step_name="Finance Review", reviewer="max"),
                    StepDefinition(step_name="Manager Approval", reviewer="carla"),
                ],
            ),
        ]
    )
    return WorkflowEngine(InMemoryRequestRepository(), builder, clock=_clock())


def _approval(approval_id: str, sequence: int, status=ApprovalStatus.APPROVED, minute=0):
    return Approval(
        id=approval_id,
        request_id="req-1",
        sequence=sequence,
        step_name=f"Step {sequence}",
        reviewer_id="someone",
        status=status,
        created_at=T0 + timedelta(minutes=minute),
    )


class StaticChannel(ApprovalChannel):
    def __init__(self, name, timeline=None, pending=None, complete=True, error=None):
        self.name = name
        self.timeline = timeline or []
        self.pending = pending or []
        self.complete = complete
        self.error = error
        self.calls = 0

    async def fetch_timeline(self, request_id):
        self.calls += 1
        if self.error:
            raise self.error
        return ChannelResult[Approval](items=self.timeline, complete=self.complete)

    async def fetch_pending(self, reviewer_id, filters):
        self.calls += 1
        if self.error:
            raise self.error
        return ChannelResult(items=self.pending, complete=self.complete)


@pytest.mark.asyncio
async def test_scenario_d_pending_follows_active_step():
    engine = _engine()
    service = ApprovalQueryService(RepositoryChannel(engine.repository))
    client = await engine.create_request(RequestType.CLIENTS, "client-1", "Onboard ACME", "u1")
    finance = await engine.create_request(RequestType.FINANCIAL, "loan-9", "Loan payout", "u2")

    carla = await service.pending_for("carla")
    max_ = await service.pending_for("max")
    assert [i.request.id for i in carla.items] == [client.id]
    assert [i.request.id for i in max_.items] == [finance.id]

    first = (await engine.repository.list_approvals(client.id))[0]
    await engine.decide(first.id, Outcome.APPROVE, "carla")

    carla = await service.pending_for("carla")
    max_ = await service.pending_for("max")
    assert carla.total == 0
    assert {i.request.id for i in max_.items} == {client.id, finance.id}
    for item in max_.items:
        assert item.approval.status == ApprovalStatus.PENDING
        assert item.approval.reviewer_id == "max"

    assert (await service.pending_for("nobody")).items == []


@pytest.mark.asyncio
async def test_pending_filters_and_paging():
    engine = _engine()
    service = ApprovalQueryService(RepositoryChannel(engine.repository))
    created = []
    for n in range(5):
        created.append(
            await engine.create_request(
                RequestType.CLIENTS, f"client-{n}", f"Client batch {n}", "u1"
            )
        )
    await engine.create_request(RequestType.FINANCIAL, "loan-1", "Other", "u1")

    page1 = await service.pending_for("carla", page=1, limit=2)
    assert page1.total == 5
    assert page1.pages == 3
    # newest request first
    assert [i.request.id for i in page1.items] == [created[4].id, created[3].id]
    page3 = await service.pending_for("carla", page=3, limit=2)
    assert [i.request.id for i in page3.items] == [created[0].id]

    by_text = await service.pending_for("carla", RequestFilters(search="BATCH 2"))
    assert [i.request.id for i in by_text.items] == [created[2].id]

    by_code = await service.pending_for(
        "carla", RequestFilters(search=created[1].request_code.lower())
    )
    assert [i.request.id for i in by_code.items] == [created[1].id]

    by_type = await service.pending_for("carla", RequestFilters(request_type=RequestType.FINANCIAL))
    assert by_type.total == 0

    in_range = await service.pending_for(
        "carla", RequestFilters(from_date=date(2026, 3, 2), to_date=date(2026, 3, 2))
    )
    assert in_range.total == 5
    after = await service.pending_for("carla", RequestFilters(from_date=date(2026, 3, 3)))
    assert after.total == 0


@pytest.mark.asyncio
async def test_scenario_e_timeline_ordered_by_sequence():
    engine = _engine()
    service = ApprovalQueryService(RepositoryChannel(engine.repository))
    request = await engine.create_request(RequestType.CLIENTS, "client-x", None, "u1")
    step1, step2 = await engine.repository.list_approvals(request.id)
    await engine.decide(step1.id, Outcome.APPROVE, "carla")
    await engine.decide(step2.id, Outcome.APPROVE, "max")

    # A channel handing rows back in decision-time-descending order.
    reversed_channel = StaticChannel(
        "reversed", timeline=list(reversed(await engine.repository.list_approvals(request.id)))
    )
    timeline = await ApprovalQueryService(reversed_channel).timeline_for(request.id)
    assert [a.sequence for a in timeline] == [1, 2]

    direct = await service.timeline_for(request.id)
    assert [a.id for a in direct] == [step1.id, step2.id]


def test_merge_counts_shared_approvals_once():
    shared = [_approval("a1", 1), _approval("a2", 2)]
    primary = shared + [_approval("a3", 3, ApprovalStatus.PENDING)]
    fallback = shared + [_approval("a4", 4, ApprovalStatus.NOT_STARTED)]

    merged = merge_by_id(primary, fallback)
    assert len(merged) == 4
    assert [a.id for a in merged] == ["a1", "a2", "a3", "a4"]


def test_merge_ties_on_sequence_break_by_created_at():
    late = _approval("late", 2, minute=30)
    early = _approval("early", 2, minute=5)
    merged = merge_by_id([late], [early, _approval("first", 1, minute=50)])
    assert [a.id for a in merged] == ["first", "early", "late"]


@pytest.mark.asyncio
async def test_fallback_not_used_when_primary_complete():
    primary = StaticChannel("primary", timeline=[_approval("a1", 1)])
    fallback = StaticChannel("fallback", timeline=[_approval("a2", 2)])
    timeline = await ApprovalQueryService(primary, fallback).timeline_for("req-1")
    assert [a.id for a in timeline] == ["a1"]
    assert fallback.calls == 0


@pytest.mark.asyncio
async def test_fallback_used_when_primary_fails():
    primary = StaticChannel("primary", error=ChannelError("timeout"))
    fallback = StaticChannel("fallback", timeline=[_approval("a2", 2), _approval("a1", 1)])
    timeline = await ApprovalQueryService(primary, fallback).timeline_for("req-1")
    assert [a.id for a in timeline] == ["a1", "a2"]
    assert fallback.calls == 1


@pytest.mark.asyncio
async def test_partial_primary_merged_with_full_fallback():
    full = [_approval("a1", 1), _approval("a2", 2), _approval("a3", 3, ApprovalStatus.PENDING)]
    primary = StaticChannel("primary", timeline=full[:2], complete=False)
    fallback = StaticChannel("fallback", timeline=full)
    timeline = await ApprovalQueryService(primary, fallback).timeline_for("req-1")
    assert [a.id for a in timeline] == ["a1", "a2", "a3"]


@pytest.mark.asyncio
async def test_partial_primary_kept_when_fallback_fails():
    primary = StaticChannel("primary", timeline=[_approval("a1", 1)], complete=False)
    fallback = StaticChannel("fallback", error=ChannelError("down"))
    timeline = await ApprovalQueryService(primary, fallback).timeline_for("req-1")
    assert [a.id for a in timeline] == ["a1"]
    assert fallback.calls == 1

    pending = StaticChannel("primary", pending=[], complete=False)
    page = await ApprovalQueryService(pending, fallback).pending_for("carla")
    assert page.total == 0

@pytest.mark.asyncio
async def test_primary_error_without_fallback_propagates():
    primary = StaticChannel("primary", error=ChannelError("down"))
    with pytest.raises(ChannelError):
        await ApprovalQueryService(primary).timeline_for("req-1")


@pytest.mark.asyncio
async def test_both_channels_failing_raises_last_error():
    primary = StaticChannel("primary", error=ChannelError("primary down"))
    fallback = StaticChannel("fallback", error=ChannelError("fallback down"))
    with pytest.raises(ChannelError, match="fallback down"):
        await ApprovalQueryService(primary, fallback).timeline_for("req-1")


@pytest.mark.asyncio
async def test_pending_fallback_deduplicates_rows():
    engine = _engine()
    await engine.create_request(RequestType.CLIENTS, "client-1", None, "u1")
    await engine.create_request(RequestType.CLIENTS, "client-2", None, "u1")
    direct = RepositoryChannel(engine.repository)
    rows = (await direct.fetch_pending("carla", RequestFilters())).items

    primary = StaticChannel("primary", pending=rows[:1], complete=False)
    service = ApprovalQueryService(primary, direct)
    page = await service.pending_for("carla")
    assert page.total == 2
    assert len({i.approval.id for i in page.items}) == 2


@pytest.mark.asyncio
async def test_pending_drops_rows_not_assigned_to_reviewer():
    engine = _engine()
    request = await engine.create_request(RequestType.CLIENTS, "client-1", None, "u1")
    rows = (await RepositoryChannel(engine.repository).fetch_pending("carla", RequestFilters())).items
    stale = rows[0].model_copy(deep=True)
    stale.approval.reviewer_id = "max"

    page = await ApprovalQueryService(StaticChannel("p", pending=[stale])).pending_for("max")
    assert page.total == 0
    page = await ApprovalQueryService(StaticChannel("p", pending=rows)).pending_for("carla")
    assert [i.request.id for i in page.items] == [request.id]


@pytest.mark.asyncio
async def test_pending_includes_steps_addressed_to_reviewer_roles():
    authorizer = RoleAuthorizer(roles={"alice": ["Financial"], "gus": ["General"]})
    repository = InMemoryRequestRepository()
    engine = WorkflowEngine(
        repository, ChainBuilder(default_chains()), authorizer=authorizer, clock=_clock()
    )
    service = ApprovalQueryService(RepositoryChannel(repository), authorizer=authorizer)
    financial = await engine.create_request(RequestType.FINANCIAL, "inv-1", "Invoice", "u1")
    await engine.create_request(RequestType.CLIENTS, "client-1", None, "u1")

    queue = await service.pending_for("alice")
    assert [i.request.id for i in queue.items] == [financial.id]
    assert queue.items[0].approval.reviewer_id == "role:Financial"
    assert (await service.pending_for("gus")).total == 0
    assert (await service.pending_for("role:Financial")).total == 1

    await engine.decide(queue.items[0].approval.id, Outcome.APPROVE, "alice")
    assert (await service.pending_for("alice")).total == 0
    assert [i.request.id for i in (await service.pending_for("gus")).items] == [financial.id]
