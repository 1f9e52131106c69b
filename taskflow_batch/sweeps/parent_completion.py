"""
Sweep: complete MAIN tasks whose sub-tasks are all finished.

Catches parents whose last sub-task finished while parent auto-completion
was disabled, or whose completion attempt failed at the time.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from taskflow_kernel.domain.status import TaskStatus, TaskType
from taskflow_kernel.domain.task import Task, TaskQuery
from taskflow_kernel.domain.transition import WorkflowEventType
from taskflow_kernel.rules.sub_task_completion import (
    count_incomplete_sub_tasks,
    incomplete_sub_task_message,
)
from taskflow_kernel.services.workflow_engine import WorkflowEngine

from taskflow_batch.sweeps.base import SweepDecision, apply_transition


class ParentCompletionSweep:
    """Move MAIN tasks with only finished sub-tasks to COMPLETED."""

    @property
    def sweep_type(self) -> str:
        return "parent_completion"

    @property
    def category(self) -> str:
        return "parent_completed"

    @property
    def description(self) -> str:
        return "Complete main tasks whose sub-tasks are all completed or cancelled"

    @property
    def event_type(self) -> WorkflowEventType:
        return WorkflowEventType.AUTOMATION_ACTION

    def select(
        self,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> tuple[Task, ...]:
        return engine.store.find(
            TaskQuery(
                statuses=frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS}),
                types=frozenset({TaskType.MAIN}),
                has_children=True,
            )
        )

    def evaluate(
        self,
        task: Task,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> SweepDecision:
        children = engine.store.children(task.task_id)
        incomplete = count_incomplete_sub_tasks(children)
        if incomplete:
            return SweepDecision.skip(
                incomplete_sub_task_message(incomplete), incomplete=incomplete
            )
        context = {"auto_completed": True, "reason": "all sub-tasks done"}
        validation = engine.validate_transition(task, TaskStatus.COMPLETED, context)
        if not validation.valid:
            return SweepDecision.skip("; ".join(validation.errors))
        return SweepDecision(
            act=True,
            to_status=TaskStatus.COMPLETED,
            context=context,
            details={"sub_task_count": len(children)},
        )

    def apply(
        self,
        task: Task,
        decision: SweepDecision,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> bool:
        return apply_transition(engine, task, decision)
