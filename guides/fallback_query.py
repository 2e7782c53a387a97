"""Read approval timelines from the console API, falling back to the database.

Set ``CONSOLE_API`` to the REST base URL. When the API is unreachable or
returns a partial list, the rows are merged with the local repository by
approval id.
"""

import asyncio
import logging
import os

from approvalchain import ApprovalQueryService, ChainBuilder, RequestType, WorkflowEngine
from approvalchain.chains import default_chains
from approvalchain.persistence import SQLiteRequestRepository
from approvalchain.query import HttpChannel, RepositoryChannel


async def main():
    logging.basicConfig(level=logging.INFO)
    repository = SQLiteRequestRepository("approvals-demo.db")
    engine = WorkflowEngine(repository, ChainBuilder(default_chains()))
    request = await engine.create_request(
        RequestType.FINANCIAL, "inv-2231", "Supplier invoice", "alice"
    )

    service = ApprovalQueryService(
        HttpChannel(os.getenv("CONSOLE_API", "http://localhost:8000/api"), timeout=2.0),
        RepositoryChannel(repository),
    )
    timeline = await service.timeline_for(request.id)
    print(f"🔎 {request.request_code} has {len(timeline)} step(s)")
    for approval in timeline:
        print(f"  {approval.sequence}. {approval.step_name} [{approval.reviewer_id}] {approval.status.value}")

    queue = await service.pending_for("role:Financial", limit=5)
    print(f"📥 role:Financial has {queue.total} pending approval(s)")
    repository.close()


if __name__ == "__main__":
    asyncio.run(main())
