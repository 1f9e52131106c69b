"""
Module: taskflow_kernel.models.task
Responsibility: ORM persistence for task records.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - status is one of the six TaskStatus values (CHECK constraint, and
      to_dto() raises UnknownStatusError for anything else on load).
    - progress is within 0..100 (CHECK constraint).
    - Deleting a task deletes its sub-tasks (ON DELETE CASCADE plus ORM
      delete-orphan cascade).
    - version is the optimistic-lock counter; SQLAlchemy adds
      ``WHERE version = :expected`` to every UPDATE.

Failure modes:
    - UnknownStatusError from to_dto() for a corrupted status column.
    - StaleDataError at flush when another writer bumped the version
      (translated to OptimisticLockError by SqlAlchemyTaskStore).
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskflow_kernel.db.base import TrackedBase, TZDateTime, UUIDString

if TYPE_CHECKING:
    from taskflow_kernel.domain.task import Task


class TaskModel(TrackedBase):
    """
    Persistent task record.

    Contract:
        The workflow engine writes status, progress, metadata and
        updated_at through SqlAlchemyTaskStore.save(); every other column
        is owned by whoever created the task.
    """

    __tablename__ = "tasks"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'blocked', "
            "'cancelled', 'on_hold')",
            name="ck_tasks_valid_status",
        ),
        CheckConstraint(
            "progress >= 0 AND progress <= 100",
            name="ck_tasks_progress_range",
        ),
        # Timeout / reminder sweeps
        Index("idx_tasks_status_updated", "status", "updated_at"),
        Index("idx_tasks_status_due", "status", "due_date"),
        Index("idx_tasks_parent", "parent_task_id"),
        Index("idx_tasks_assigned_user", "assigned_user_id"),
        Index("idx_tasks_agent", "agent_id"),
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="main")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    parent_task_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=True,
    )

    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    assigned_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    agent_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    due_date: Mapped[datetime | None] = mapped_column(TZDateTime(), nullable=True)

    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    # "metadata" is reserved on declarative classes
    task_metadata: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": lambda current: (current or 0) + 1,
    }

    children: Mapped[list[TaskModel]] = relationship(
        "TaskModel",
        back_populates="parent",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TaskModel.created_at",
    )
    parent: Mapped[TaskModel | None] = relationship(
        "TaskModel",
        back_populates="children",
        remote_side="TaskModel.id",
    )

    def __repr__(self) -> str:
        return f"<Task {self.id} {self.type}:{self.status} {self.title!r}>"

    def to_dto(self) -> Task:
        """Convert ORM model to the domain Task."""
        from taskflow_kernel.domain.status import (
            parse_priority,
            parse_status,
            parse_task_type,
        )
        from taskflow_kernel.domain.task import Task

        return Task(
            task_id=self.id,
            title=self.title,
            description=self.description,
            type=parse_task_type(self.type),
            status=parse_status(self.status),
            priority=parse_priority(self.priority),
            progress=self.progress,
            parent_task_id=self.parent_task_id,
            user_id=self.user_id,
            assigned_user_id=self.assigned_user_id,
            agent_id=self.agent_id,
            project_id=self.project_id,
            due_date=self.due_date,
            tags=tuple(self.tags or ()),
            metadata=_copy_json(self.task_metadata) or {},
            result=_copy_json(self.result),
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: Task) -> TaskModel:
        """Create ORM model from a domain Task (new rows only)."""
        model = cls(id=dto.task_id, title=dto.title)
        model.apply_dto(dto)
        if dto.created_at is not None:
            model.created_at = dto.created_at
        return model

    def apply_dto(self, dto: Task) -> None:
        """Copy every mutable field from ``dto`` onto this row."""
        self.title = dto.title
        self.description = dto.description
        self.type = dto.type.value
        self.status = dto.status.value
        self.priority = dto.priority.value
        self.progress = dto.progress
        self.parent_task_id = dto.parent_task_id
        self.user_id = dto.user_id
        self.assigned_user_id = dto.assigned_user_id
        self.agent_id = dto.agent_id
        self.project_id = dto.project_id
        self.due_date = dto.due_date
        self.tags = list(dto.tags)
        self.task_metadata = _copy_json(dto.metadata) or {}
        self.result = _copy_json(dto.result)
        if dto.updated_at is not None:
            self.updated_at = dto.updated_at


def _copy_json(value: Any) -> Any:
    # JSON columns only detect reassignment, never in-place mutation
    return copy.deepcopy(value)
