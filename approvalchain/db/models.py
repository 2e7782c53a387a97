from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from ..contracts import Approval, TaskRequest


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TaskRequestRow(SQLModel, table=True):
    """A persisted task request."""

    __tablename__ = "task_requests"

    id: str = Field(primary_key=True)
    request_code: str = Field(index=True, unique=True)
    request_type: str
    subject_id: str
    subject_name: Optional[str] = None
    status: str = Field(index=True)
    notes: Optional[str] = None
    payload: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_by: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    version: int = 0

    @classmethod
    def from_model(cls, request: TaskRequest) -> "TaskRequestRow":
        return cls(
            id=request.id,
            request_code=request.request_code,
            request_type=request.request_type.value,
            subject_id=request.subject_id,
            subject_name=request.subject_name,
            status=request.status.value,
            notes=request.notes,
            payload=request.payload,
            created_by=request.created_by,
            created_at=request.created_at,
            updated_at=request.updated_at,
            version=request.version,
        )

    def to_model(self) -> TaskRequest:
        return TaskRequest(
            id=self.id,
            request_code=self.request_code,
            request_type=self.request_type,
            subject_id=self.subject_id,
            subject_name=self.subject_name,
            status=self.status,
            notes=self.notes,
            payload=self.payload or {},
            created_by=self.created_by,
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at),
            version=self.version,
        )


class ApprovalRow(SQLModel, table=True):
    """One reviewer step of a persisted request."""

    __tablename__ = "approvals"
    __table_args__ = (UniqueConstraint("request_id", "sequence"),)

    id: str = Field(primary_key=True)
    request_id: str = Field(foreign_key="task_requests.id", index=True)
    sequence: int
    step_name: str
    reviewer_id: str = Field(index=True)
    status: str = Field(index=True)
    remarks: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))

    @classmethod
    def from_model(cls, approval: Approval) -> "ApprovalRow":
        return cls(
            id=approval.id,
            request_id=approval.request_id,
            sequence=approval.sequence,
            step_name=approval.step_name,
            reviewer_id=approval.reviewer_id,
            status=approval.status.value,
            remarks=approval.remarks,
            decided_by=approval.decided_by,
            decided_at=approval.decided_at,
            created_at=approval.created_at,
        )

    def to_model(self) -> Approval:
        return Approval(
            id=self.id,
            request_id=self.request_id,
            sequence=self.sequence,
            step_name=self.step_name,
            reviewer_id=self.reviewer_id,
            status=self.status,
            remarks=self.remarks,
            decided_by=self.decided_by,
            decided_at=_aware(self.decided_at),
            created_at=_aware(self.created_at),
        )
