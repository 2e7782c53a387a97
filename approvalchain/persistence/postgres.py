"""PostgreSQL implementation of the request repository."""

from __future__ import annotations

import json
from typing import Any

import asyncpg

from ..contracts import Approval, ApprovalStatus, RequestStatus, TaskRequest
from ..errors import ConflictError
from .repository import RequestRepository

_REQUEST_COLUMNS = (
    "id, request_code, request_type, subject_id, subject_name, status, notes, "
    "payload, created_by, created_at, updated_at, version"
)
_APPROVAL_COLUMNS = (
    "id, request_id, sequence, step_name, reviewer_id, status, remarks, "
    "decided_by, decided_at, created_at"
)


def _json(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


class PostgresRequestRepository(RequestRepository):
    """Persist requests and approvals using PostgreSQL.

    Transitions lock the request row with ``SELECT ... FOR UPDATE`` and then
    check the version, so competing deciders on one request serialize while
    different requests never contend.
    """

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS task_requests (
                id TEXT PRIMARY KEY,
                request_code TEXT NOT NULL UNIQUE,
                request_type TEXT NOT NULL,
                subject_id TEXT NOT NULL,
                subject_name TEXT,
                status TEXT NOT NULL,
                notes TEXT,
                payload JSONB,
                created_by TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL,
                version INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS approvals (
                id TEXT PRIMARY KEY,
                request_id TEXT NOT NULL REFERENCES task_requests(id) ON DELETE CASCADE,
                sequence INTEGER NOT NULL,
                step_name TEXT NOT NULL,
                reviewer_id TEXT NOT NULL,
                status TEXT NOT NULL,
                remarks TEXT,
                decided_by TEXT,
                decided_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL,
                UNIQUE (request_id, sequence)
            )
            """
        )

    @staticmethod
    def _row_to_request(row: asyncpg.Record) -> TaskRequest:
        return TaskRequest(
            id=row["id"],
            request_code=row["request_code"],
            request_type=row["request_type"],
            subject_id=row["subject_id"],
            subject_name=row["subject_name"],
            status=row["status"],
            notes=row["notes"],
            payload=_json(row["payload"]) or {},
            created_by=row["created_by"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            version=row["version"],
        )

    @staticmethod
    def _row_to_approval(row: asyncpg.Record) -> Approval:
        return Approval(
            id=row["id"],
            request_id=row["request_id"],
            sequence=row["sequence"],
            step_name=row["step_name"],
            reviewer_id=row["reviewer_id"],
            status=row["status"],
            remarks=row["remarks"],
            decided_by=row["decided_by"],
            decided_at=row["decided_at"],
            created_at=row["created_at"],
        )

    # ------------------------------------------------------------------
    async def create_request(self, request: TaskRequest, approvals: list[Approval]) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    f"INSERT INTO task_requests ({_REQUEST_COLUMNS}) "
                    "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)",
                    request.id,
                    request.request_code,
                    request.request_type.value,
                    request.subject_id,
                    request.subject_name,
                    request.status.value,
                    request.notes,
                    json.dumps(request.payload),
                    request.created_by,
                    request.created_at,
                    request.updated_at,
                    request.version,
                )
                await conn.executemany(
                    f"INSERT INTO approvals ({_APPROVAL_COLUMNS}) "
                    "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)",
                    [
                        (
                            a.id,
                            a.request_id,
                            a.sequence,
                            a.step_name,
                            a.reviewer_id,
                            a.status.value,
                            a.remarks,
                            a.decided_by,
                            a.decided_at,
                            a.created_at,
                        )
                        for a in approvals
                    ],
                )
        except asyncpg.UniqueViolationError as exc:
            raise ConflictError(f"Request {request.request_code} already exists: {exc}") from exc
        finally:
            await conn.close()

    async def get_request(self, request_id: str) -> TaskRequest | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_REQUEST_COLUMNS} FROM task_requests WHERE id = $1", request_id
            )
        finally:
            await conn.close()
        return self._row_to_request(row) if row else None

    async def get_request_by_code(self, request_code: str) -> TaskRequest | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_REQUEST_COLUMNS} FROM task_requests WHERE request_code = $1",
                request_code,
            )
        finally:
            await conn.close()
        return self._row_to_request(row) if row else None

    async def get_approval(self, approval_id: str) -> Approval | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_APPROVAL_COLUMNS} FROM approvals WHERE id = $1", approval_id
            )
        finally:
            await conn.close()
        return self._row_to_approval(row) if row else None

    async def list_approvals(self, request_id: str) -> list[Approval]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_APPROVAL_COLUMNS} FROM approvals WHERE request_id = $1 "
                "ORDER BY sequence, created_at",
                request_id,
            )
        finally:
            await conn.close()
        return [self._row_to_approval(r) for r in rows]

    async def list_requests(self, status: RequestStatus | None = None) -> list[TaskRequest]:
        conn = await self._connect()
        try:
            if status is None:
                rows = await conn.fetch(
                    f"SELECT {_REQUEST_COLUMNS} FROM task_requests ORDER BY created_at"
                )
            else:
                rows = await conn.fetch(
                    f"SELECT {_REQUEST_COLUMNS} FROM task_requests WHERE status = $1 "
                    "ORDER BY created_at",
                    status.value,
                )
        finally:
            await conn.close()
        return [self._row_to_request(r) for r in rows]

    async def list_active_approvals(self, reviewer_id: str) -> list[Approval]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_APPROVAL_COLUMNS} FROM approvals WHERE reviewer_id = $1 AND status = $2",
                reviewer_id,
                ApprovalStatus.PENDING.value,
            )
        finally:
            await conn.close()
        return [self._row_to_approval(r) for r in rows]

    async def commit_transition(
        self, request: TaskRequest, approvals: list[Approval], expected_version: int
    ) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                current = await conn.fetchval(
                    "SELECT version FROM task_requests WHERE id = $1 FOR UPDATE", request.id
                )
                if current is None or current != expected_version:
                    raise ConflictError(
                        f"Request {request.id} changed concurrently (expected version {expected_version})"
                    )
                await conn.execute(
                    "UPDATE task_requests SET status = $1, updated_at = $2, version = $3 WHERE id = $4",
                    request.status.value,
                    request.updated_at,
                    expected_version + 1,
                    request.id,
                )
                await conn.executemany(
                    """
                    UPDATE approvals
                    SET status = $1, remarks = $2, decided_by = $3, decided_at = $4
                    WHERE id = $5 AND request_id = $6
                    """,
                    [
                        (a.status.value, a.remarks, a.decided_by, a.decided_at, a.id, a.request_id)
                        for a in approvals
                    ],
                )
        finally:
            await conn.close()

    async def delete_request(self, request_id: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute("DELETE FROM task_requests WHERE id = $1", request_id)
        finally:
            await conn.close()
