"""
Module: taskflow_kernel.models.workflow_event
Responsibility: Append-only persistence of workflow events (the audit trail
    of transitions, rejections, sweep actions, health findings, reminders).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - seq is allocated from the "workflow_event" counter row, so the
      trail has a total order independent of clock resolution.
    - Rows are never updated by the kernel.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from taskflow_kernel.db.base import Base, TZDateTime, UUIDString

if TYPE_CHECKING:
    from taskflow_kernel.domain.transition import WorkflowEvent


class WorkflowEventModel(Base):
    """Persisted WorkflowEvent."""

    __tablename__ = "workflow_events"

    __table_args__ = (
        Index("idx_workflow_events_task_seq", "task_id", "seq"),
        Index("idx_workflow_events_type", "event_type"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    event_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    # No FK: the trail outlives deleted tasks
    task_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    context: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(TZDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<WorkflowEvent #{self.seq} {self.event_type} task={self.task_id}>"

    def to_dto(self) -> WorkflowEvent:
        from taskflow_kernel.domain.status import TaskStatus
        from taskflow_kernel.domain.transition import WorkflowEvent, WorkflowEventType

        return WorkflowEvent(
            event_id=self.event_id,
            event_type=WorkflowEventType(self.event_type),
            task_id=self.task_id,
            from_status=TaskStatus(self.from_status) if self.from_status else None,
            to_status=TaskStatus(self.to_status) if self.to_status else None,
            context=dict(self.context or {}),
            details=dict(self.details or {}),
            timestamp=self.occurred_at,
        )

    @classmethod
    def from_dto(cls, dto: WorkflowEvent, seq: int) -> WorkflowEventModel:
        return cls(
            seq=seq,
            event_id=dto.event_id,
            event_type=dto.event_type.value,
            task_id=dto.task_id,
            from_status=dto.from_status.value if dto.from_status else None,
            to_status=dto.to_status.value if dto.to_status else None,
            context=_jsonable(dict(dto.context)),
            details=_jsonable(dict(dto.details)),
            occurred_at=dto.timestamp,
        )


def _jsonable(value):
    """Coerce UUIDs, datetimes, enums and tuples so the JSON column accepts them."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value
