"""
Workflow health -- pure diagnostic evaluation of a single task.

Responsibility:
    Given a task, its parent and children, the current time and the health
    thresholds, list what looks wrong with the task's workflow and what to
    do about it.  Never mutates anything.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The engine loads
    the relations and calls evaluate_health(); the health sweep reports
    the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Sequence
from uuid import UUID

from taskflow_kernel.domain.status import TERMINAL_STATUSES, TaskStatus
from taskflow_kernel.domain.task import Task

if TYPE_CHECKING:
    from taskflow_config.schema import HealthConfig


@dataclass(frozen=True)
class HealthReport:
    """Diagnostic result for one task."""

    task_id: UUID
    current_status: TaskStatus
    issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()

    @property
    def is_healthy(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": str(self.task_id),
            "current_status": self.current_status.value,
            "is_healthy": self.is_healthy,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
        }


def _hours(value: float) -> str:
    return f"{value:g}h"


def evaluate_health(
    task: Task,
    *,
    parent: Task | None,
    children: Sequence[Task],
    now: datetime,
    config: HealthConfig,
) -> HealthReport:
    """
    Apply the health heuristics to ``task``.

    Heuristics:
        - IN_PROGRESS with no update for longer than the timeout: stalled.
        - MAIN with no sub-tasks once the grace period has passed.
        - BLOCKED with no recorded reason.
        - COMPLETED MAIN with unfinished sub-tasks.
        - SUB IN_PROGRESS under a COMPLETED parent.
        - SUB still active under a CANCELLED parent.
        - Overdue (due date passed, not terminal).
    """
    issues: list[str] = []
    recommendations: list[str] = []

    if task.status == TaskStatus.IN_PROGRESS and task.updated_at is not None:
        timeout = timedelta(hours=config.in_progress_timeout_hours)
        if now - task.updated_at > timeout:
            issues.append(
                "Task has been in progress without updates for more than "
                f"{_hours(config.in_progress_timeout_hours)}"
            )
            recommendations.append("Consider blocking or re-assigning the task")

    if task.is_main_task and not children and task.created_at is not None:
        grace = timedelta(hours=config.empty_main_task_grace_hours)
        if now - task.created_at > grace:
            issues.append("Main task has no sub-tasks defined")
            recommendations.append("Break the task down into sub-tasks")

    if task.status == TaskStatus.BLOCKED and not task.blocked_reason:
        issues.append("Task is blocked without a recorded reason")
        recommendations.append("Record why the task is blocked")

    if task.is_main_task and task.status == TaskStatus.COMPLETED:
        unfinished = [c for c in children if c.status not in TERMINAL_STATUSES]
        if unfinished:
            issues.append(
                f"Main task is completed but {len(unfinished)} sub-task(s) are unfinished"
            )
            recommendations.append("Complete or cancel the remaining sub-tasks")

    if task.is_sub_task and parent is not None:
        if parent.status == TaskStatus.COMPLETED and task.status == TaskStatus.IN_PROGRESS:
            issues.append("Sub-task is in progress but its parent is completed")
            recommendations.append("Complete the sub-task or reopen the parent task")
        if parent.status == TaskStatus.CANCELLED and task.is_active:
            issues.append("Sub-task is still active but its parent is cancelled")
            recommendations.append("Cancel the sub-task")

    if config.flag_overdue and task.is_overdue(now):
        issues.append("Task is past its due date")
        recommendations.append("Re-plan the due date or escalate the task")

    return HealthReport(
        task_id=task.task_id,
        current_status=task.status,
        issues=tuple(issues),
        recommendations=tuple(recommendations),
    )
