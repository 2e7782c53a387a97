"""Walk one project request through its default three-step chain."""

import asyncio

from approvalchain import (
    ChainBuilder,
    CommitActionRegistry,
    Outcome,
    RequestType,
    WorkflowEngine,
    get_repository,
)
from approvalchain.chains import default_chains
from approvalchain.hooks import LoggingHook
from approvalchain.security import AuditLog, RoleAuthorizer

actions = CommitActionRegistry()


@actions.on(RequestType.PROJECTS)
async def open_project(request):
    print(f"📁 Project {request.subject_id} opened with budget {request.payload['budget']}")


async def main():
    """Create a request, then approve it step by step."""
    audit = AuditLog()
    engine = WorkflowEngine(
        get_repository(),
        ChainBuilder(default_chains()),
        authorizer=RoleAuthorizer(
            roles={"lena": ["Contracts"], "fred": ["Financial"], "gus": ["General"]}
        ),
        hooks=[LoggingHook(), audit],
        commit_actions=actions,
    )

    request = await engine.create_request(
        RequestType.PROJECTS,
        subject_id="prj-101",
        notes="Harbour warehouse extension",
        created_by="alice",
        payload={"budget": 250000},
    )
    print(f"✅ Created {request.request_code}")

    for step, reviewer in zip(await engine.timeline(request.id), ["lena", "fred", "gus"]):
        request = await engine.decide(step.id, Outcome.APPROVE, reviewer, "Looks good")
        print(f"👍 {step.step_name} approved by {reviewer}: request is {request.status.value}")

    print("\n📜 Audit trail")
    for event in audit.trail(request.id):
        print(f"  {event.timestamp:%H:%M:%S} {event.outcome} by {event.actor}")


if __name__ == "__main__":
    asyncio.run(main())
