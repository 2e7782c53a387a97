"""SQLite implementation of the request repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

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


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteRequestRepository(RequestRepository):
    """Persist requests and approvals using SQLite.

    The connection runs in autocommit mode; multi-row writes open an explicit
    ``BEGIN IMMEDIATE`` transaction so a transition is all-or-nothing.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._mutex = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS task_requests (
                id TEXT PRIMARY KEY,
                request_code TEXT NOT NULL UNIQUE,
                request_type TEXT NOT NULL,
                subject_id TEXT NOT NULL,
                subject_name TEXT,
                status TEXT NOT NULL,
                notes TEXT,
                payload TEXT,
                created_by TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        cur.execute(
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
                decided_at TEXT,
                created_at TEXT NOT NULL,
                UNIQUE (request_id, sequence)
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS ix_approvals_reviewer_status ON approvals (reviewer_id, status)"
        )

    # ------------------------------------------------------------------
    # Helper methods
    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._mutex:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._mutex:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def _execute(self, query: str, *params: Any) -> None:
        with self._mutex:
            self._conn.execute(query, params)

    @staticmethod
    def _request_params(request: TaskRequest) -> tuple:
        return (
            request.id,
            request.request_code,
            request.request_type.value,
            request.subject_id,
            request.subject_name,
            request.status.value,
            request.notes,
            json.dumps(request.payload),
            request.created_by,
            _ts(request.created_at),
            _ts(request.updated_at),
            request.version,
        )

    @staticmethod
    def _approval_params(approval: Approval) -> tuple:
        return (
            approval.id,
            approval.request_id,
            approval.sequence,
            approval.step_name,
            approval.reviewer_id,
            approval.status.value,
            approval.remarks,
            approval.decided_by,
            _ts(approval.decided_at),
            _ts(approval.created_at),
        )

    @staticmethod
    def _row_to_request(row: sqlite3.Row) -> TaskRequest:
        return TaskRequest(
            id=row["id"],
            request_code=row["request_code"],
            request_type=row["request_type"],
            subject_id=row["subject_id"],
            subject_name=row["subject_name"],
            status=row["status"],
            notes=row["notes"],
            payload=json.loads(row["payload"]) if row["payload"] else {},
            created_by=row["created_by"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            version=row["version"],
        )

    @staticmethod
    def _row_to_approval(row: sqlite3.Row) -> Approval:
        return Approval(
            id=row["id"],
            request_id=row["request_id"],
            sequence=row["sequence"],
            step_name=row["step_name"],
            reviewer_id=row["reviewer_id"],
            status=row["status"],
            remarks=row["remarks"],
            decided_by=row["decided_by"],
            decided_at=_parse_ts(row["decided_at"]),
            created_at=_parse_ts(row["created_at"]),
        )

    def _insert(self, request: TaskRequest, approvals: list[Approval]) -> None:
        with self._mutex:
            cur = self._conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                cur.execute(
                    f"INSERT INTO task_requests ({_REQUEST_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    self._request_params(request),
                )
                cur.executemany(
                    f"INSERT INTO approvals ({_APPROVAL_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [self._approval_params(a) for a in approvals],
                )
            except sqlite3.IntegrityError as exc:
                cur.execute("ROLLBACK")
                raise ConflictError(f"Request {request.request_code} already exists: {exc}") from exc
            except BaseException:
                cur.execute("ROLLBACK")
                raise
            cur.execute("COMMIT")

    def _transition(
        self, request: TaskRequest, approvals: list[Approval], expected_version: int
    ) -> None:
        with self._mutex:
            cur = self._conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                cur.execute(
                    """
                    UPDATE task_requests
                    SET status = ?, updated_at = ?, version = ?
                    WHERE id = ? AND version = ?
                    """,
                    (
                        request.status.value,
                        _ts(request.updated_at),
                        expected_version + 1,
                        request.id,
                        expected_version,
                    ),
                )
                if cur.rowcount != 1:
                    raise ConflictError(
                        f"Request {request.id} changed concurrently (expected version {expected_version})"
                    )
                cur.executemany(
                    """
                    UPDATE approvals
                    SET status = ?, remarks = ?, decided_by = ?, decided_at = ?
                    WHERE id = ? AND request_id = ?
                    """,
                    [
                        (
                            a.status.value,
                            a.remarks,
                            a.decided_by,
                            _ts(a.decided_at),
                            a.id,
                            a.request_id,
                        )
                        for a in approvals
                    ],
                )
            except BaseException:
                cur.execute("ROLLBACK")
                raise
            cur.execute("COMMIT")

    # ------------------------------------------------------------------
    # Repository API
    async def create_request(self, request: TaskRequest, approvals: list[Approval]) -> None:
        await asyncio.to_thread(self._insert, request, approvals)

    async def get_request(self, request_id: str) -> TaskRequest | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_REQUEST_COLUMNS} FROM task_requests WHERE id = ?",
            request_id,
        )
        return self._row_to_request(row) if row else None

    async def get_request_by_code(self, request_code: str) -> TaskRequest | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_REQUEST_COLUMNS} FROM task_requests WHERE request_code = ?",
            request_code,
        )
        return self._row_to_request(row) if row else None

    async def get_approval(self, approval_id: str) -> Approval | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_APPROVAL_COLUMNS} FROM approvals WHERE id = ?",
            approval_id,
        )
        return self._row_to_approval(row) if row else None

    async def list_approvals(self, request_id: str) -> list[Approval]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_APPROVAL_COLUMNS} FROM approvals WHERE request_id = ? ORDER BY sequence, created_at",
            request_id,
        )
        return [self._row_to_approval(r) for r in rows]

    async def list_requests(self, status: RequestStatus | None = None) -> list[TaskRequest]:
        if status is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_REQUEST_COLUMNS} FROM task_requests ORDER BY created_at",
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_REQUEST_COLUMNS} FROM task_requests WHERE status = ? ORDER BY created_at",
                status.value,
            )
        return [self._row_to_request(r) for r in rows]

    async def list_active_approvals(self, reviewer_id: str) -> list[Approval]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_APPROVAL_COLUMNS} FROM approvals WHERE reviewer_id = ? AND status = ?",
            reviewer_id,
            ApprovalStatus.PENDING.value,
        )
        return [self._row_to_approval(r) for r in rows]

    async def commit_transition(
        self, request: TaskRequest, approvals: list[Approval], expected_version: int
    ) -> None:
        await asyncio.to_thread(self._transition, request, approvals, expected_version)

    async def delete_request(self, request_id: str) -> None:
        await asyncio.to_thread(
            self._execute, "DELETE FROM task_requests WHERE id = ?", request_id
        )

    def close(self) -> None:
        self._conn.close()
