from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, select

from ..contracts import Approval, ApprovalStatus, RequestStatus, TaskRequest
from ..errors import ConflictError
from .models import ApprovalRow, TaskRequestRow


class SQLModelRequestRepository:
    """Async SQLModel/SQLAlchemy request repository.

    Works against any async SQLAlchemy URL, e.g. ``sqlite+aiosqlite:///x.db``
    or ``postgresql+asyncpg://...``. A transition is a conditional
    ``UPDATE ... WHERE version = :expected`` followed by the approval updates,
    all inside one session transaction.
    """

    def __init__(self, database_url: str) -> None:
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )
        self._initialized = False

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        self._initialized = True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if not self._initialized:
            await self.init_db()
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    async def dispose(self) -> None:
        await self.engine.dispose()

    # ------------------------------------------------------------------
    async def create_request(self, request: TaskRequest, approvals: list[Approval]) -> None:
        async with self.session() as session:
            try:
                session.add(TaskRequestRow.from_model(request))
                await session.flush()
                session.add_all([ApprovalRow.from_model(a) for a in approvals])
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(
                    f"Request {request.request_code} already exists: {exc.orig}"
                ) from exc

    async def get_request(self, request_id: str) -> TaskRequest | None:
        async with self.session() as session:
            row = await session.get(TaskRequestRow, request_id)
            return row.to_model() if row else None

    async def get_request_by_code(self, request_code: str) -> TaskRequest | None:
        async with self.session() as session:
            result = await session.execute(
                select(TaskRequestRow).where(TaskRequestRow.request_code == request_code)
            )
            row = result.scalars().first()
            return row.to_model() if row else None

    async def get_approval(self, approval_id: str) -> Approval | None:
        async with self.session() as session:
            row = await session.get(ApprovalRow, approval_id)
            return row.to_model() if row else None

    async def list_approvals(self, request_id: str) -> list[Approval]:
        async with self.session() as session:
            result = await session.execute(
                select(ApprovalRow)
                .where(ApprovalRow.request_id == request_id)
                .order_by(ApprovalRow.sequence, ApprovalRow.created_at)
            )
            return [row.to_model() for row in result.scalars().all()]

    async def list_requests(self, status: RequestStatus | None = None) -> list[TaskRequest]:
        query = select(TaskRequestRow).order_by(TaskRequestRow.created_at)
        if status is not None:
            query = query.where(TaskRequestRow.status == status.value)
        async with self.session() as session:
            result = await session.execute(query)
            return [row.to_model() for row in result.scalars().all()]

    async def list_active_approvals(self, reviewer_id: str) -> list[Approval]:
        async with self.session() as session:
            result = await session.execute(
                select(ApprovalRow).where(
                    ApprovalRow.reviewer_id == reviewer_id,
                    ApprovalRow.status == ApprovalStatus.PENDING.value,
                )
            )
            return [row.to_model() for row in result.scalars().all()]

    async def commit_transition(
        self, request: TaskRequest, approvals: list[Approval], expected_version: int
    ) -> None:
        async with self.session() as session:
            result = await session.execute(
                update(TaskRequestRow)
                .where(
                    TaskRequestRow.id == request.id,
                    TaskRequestRow.version == expected_version,
                )
                .values(
                    status=request.status.value,
                    updated_at=request.updated_at,
                    version=expected_version + 1,
                )
            )
            if result.rowcount != 1:
                await session.rollback()
                raise ConflictError(
                    f"Request {request.id} changed concurrently (expected version {expected_version})"
                )
            for approval in approvals:
                await session.execute(
                    update(ApprovalRow)
                    .where(ApprovalRow.id == approval.id)
                    .values(
                        status=approval.status.value,
                        remarks=approval.remarks,
                        decided_by=approval.decided_by,
                        decided_at=approval.decided_at,
                    )
                )
            await session.commit()

    async def delete_request(self, request_id: str) -> None:
        async with self.session() as session:
            await session.execute(delete(ApprovalRow).where(ApprovalRow.request_id == request_id))
            await session.execute(delete(TaskRequestRow).where(TaskRequestRow.id == request_id))
            await session.commit()
