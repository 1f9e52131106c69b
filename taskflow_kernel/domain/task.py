"""
Task -- the in-memory representation of a unit of work.

Responsibility:
    The Task entity the engine reads and mutates, plus TaskQuery, the
    selection criteria the automation sweeps hand to the task store.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ORM conversion
    lives in models/task.py (TaskModel.to_dto / TaskModel.from_dto).

Invariants enforced:
    - status/type/priority are coerced to their enums on construction;
      an unknown status raises UnknownStatusError.
    - progress is an int in 0..100 (construction rejects anything else,
      set_progress clamps).
    - Workflow bookkeeping lives under ``metadata["workflow"]``.

Failure modes:
    - UnknownStatusError for an unrecognized status.
    - InvalidProgressError for a non-integer or out-of-range progress.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from taskflow_kernel.domain.status import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    TaskPriority,
    TaskStatus,
    TaskType,
    parse_priority,
    parse_status,
    parse_task_type,
)
from taskflow_kernel.exceptions import InvalidProgressError

WORKFLOW_METADATA_KEY = "workflow"


def clamp_progress(value: object) -> int:
    """
    Interpret ``value`` as a percentage and clamp it into 0..100.

    Raises:
        InvalidProgressError: If ``value`` is not an integer (bools and
            floats with a fractional part are rejected).
    """
    if isinstance(value, bool):
        raise InvalidProgressError(value)
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidProgressError(value)
        value = int(value)
    if not isinstance(value, int):
        try:
            value = int(str(value).strip())
        except ValueError:
            raise InvalidProgressError(value) from None
    return max(0, min(100, value))


@dataclass
class Task:
    """
    A task record as seen by the workflow engine.

    Contract:
        The engine is the single writer of ``status``; it also touches
        ``progress``, ``metadata["workflow"]`` and ``updated_at`` as
        effects of a successful transition.  Everything else belongs to the
        external service that created the task.
    """

    title: str
    type: TaskType = TaskType.MAIN
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    progress: int = 0
    task_id: UUID = field(default_factory=uuid4)
    description: str | None = None
    parent_task_id: UUID | None = None
    user_id: UUID | None = None
    assigned_user_id: UUID | None = None
    agent_id: str | None = None
    project_id: UUID | None = None
    due_date: datetime | None = None
    tags: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    def __post_init__(self) -> None:
        self.status = parse_status(self.status)
        self.type = parse_task_type(self.type)
        self.priority = parse_priority(self.priority)
        if isinstance(self.progress, bool) or not isinstance(self.progress, int):
            raise InvalidProgressError(self.progress)
        if not 0 <= self.progress <= 100:
            raise InvalidProgressError(self.progress)
        self.tags = tuple(self.tags)

    # -- predicates ---------------------------------------------------------

    @property
    def is_main_task(self) -> bool:
        return self.type == TaskType.MAIN

    @property
    def is_sub_task(self) -> bool:
        return self.type == TaskType.SUB

    @property
    def has_parent(self) -> bool:
        return self.parent_task_id is not None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def is_overdue(self, now: datetime) -> bool:
        return (
            self.due_date is not None
            and not self.is_terminal
            and self.due_date < now
        )

    # -- workflow bookkeeping -------------------------------------------------

    @property
    def workflow_metadata(self) -> dict[str, Any]:
        """Read-only copy of ``metadata["workflow"]``."""
        return dict(self.metadata.get(WORKFLOW_METADATA_KEY) or {})

    def record_workflow(self, **values: Any) -> None:
        """Merge ``values`` into ``metadata["workflow"]``."""
        workflow = dict(self.metadata.get(WORKFLOW_METADATA_KEY) or {})
        workflow.update(values)
        self.metadata = {**self.metadata, WORKFLOW_METADATA_KEY: workflow}

    @property
    def blocked_reason(self) -> str | None:
        reason = self.workflow_metadata.get("blocked_reason")
        if not reason:
            reason = self.metadata.get("blocked_reason")
        return reason or None

    def set_progress(self, value: object) -> int:
        self.progress = clamp_progress(value)
        return self.progress

    # -- snapshots (rollback support) -----------------------------------------

    def snapshot(self) -> Task:
        """Deep copy used to restore in-memory state after a failed attempt."""
        return copy.deepcopy(self)

    def restore(self, snapshot: Task) -> None:
        for f in fields(self):
            setattr(self, f.name, copy.deepcopy(getattr(snapshot, f.name)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": str(self.task_id),
            "title": self.title,
            "type": self.type.value,
            "status": self.status.value,
            "priority": self.priority.value,
            "progress": self.progress,
            "parent_task_id": str(self.parent_task_id) if self.parent_task_id else None,
            "assigned_user_id": (
                str(self.assigned_user_id) if self.assigned_user_id else None
            ),
            "agent_id": self.agent_id,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "tags": list(self.tags),
            "metadata": copy.deepcopy(self.metadata),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "version": self.version,
        }


@dataclass(frozen=True)
class TaskQuery:
    """
    Selection criteria understood by every TaskStore implementation.

    All given criteria are ANDed.  ``None`` means "don't filter".
    """

    statuses: frozenset[TaskStatus] | None = None
    types: frozenset[TaskType] | None = None
    updated_before: datetime | None = None
    due_after: datetime | None = None
    due_on_or_before: datetime | None = None
    has_due_date: bool | None = None
    has_children: bool | None = None
    parent_task_id: UUID | None = None
    limit: int | None = None

    def matches(self, task: Task, child_count: int = 0) -> bool:
        """In-memory evaluation; the SQL store translates the same fields."""
        if self.statuses is not None and task.status not in self.statuses:
            return False
        if self.types is not None and task.type not in self.types:
            return False
        if self.updated_before is not None and (
            task.updated_at is None or not task.updated_at < self.updated_before
        ):
            return False
        if self.has_due_date is not None and (task.due_date is not None) != self.has_due_date:
            return False
        if self.due_after is not None and (
            task.due_date is None or not task.due_date > self.due_after
        ):
            return False
        if self.due_on_or_before is not None and (
            task.due_date is None or not task.due_date <= self.due_on_or_before
        ):
            return False
        if self.has_children is not None and (child_count > 0) != self.has_children:
            return False
        if self.parent_task_id is not None and task.parent_task_id != self.parent_task_id:
            return False
        return True
