import pytest

from approvalchain import ChainBuilder, Outcome, RequestType, WorkflowEngine
from approvalchain.chains import default_chains
from approvalchain.db import SQLModelRequestRepository
from approvalchain.security import RoleAuthorizer


@pytest.mark.asyncio
async def test_request_db_lifecycle(tmp_path):
    db_path = tmp_path / "test.db"
    db = SQLModelRequestRepository(f"sqlite+aiosqlite:///{db_path}")
    await db.init_db()

    engine = WorkflowEngine(
        db,
        ChainBuilder(default_chains()),
        authorizer=RoleAuthorizer(roles={"gus": ["General"]}),
    )
    request = await engine.create_request(
        RequestType.EMPLOYMENT, "emp-9", "Hire analyst", "alice", payload={"grade": 4}
    )
    (step,) = await db.list_approvals(request.id)
    await engine.decide(step.id, Outcome.APPROVE, "gus", "Welcome aboard")

    async with db.session() as session:
        from approvalchain.db.models import ApprovalRow, TaskRequestRow

        row = await session.get(TaskRequestRow, request.id)
        assert row.status == "Approved"
        assert row.version == 1
        assert row.payload == {"grade": 4}

        approval = await session.get(ApprovalRow, step.id)
        assert approval.status == "Approved"
        assert approval.decided_by == "gus"
        assert approval.remarks == "Welcome aboard"
        assert approval.decided_at is not None

    await db.dispose()
