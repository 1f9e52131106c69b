"""
Sweep: start the PENDING sub-tasks of IN_PROGRESS main tasks.

Opt-in through ``automation.auto_start_sub_tasks``; with the flag off the
sweep selects nothing.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from taskflow_kernel.domain.status import TaskStatus, TaskType
from taskflow_kernel.domain.task import Task, TaskQuery
from taskflow_kernel.domain.transition import WorkflowEventType
from taskflow_kernel.logging_config import get_logger
from taskflow_kernel.services.workflow_engine import WorkflowEngine

from taskflow_batch.sweeps.base import SweepDecision, apply_transition

logger = get_logger("batch.sweeps.child_start")


class ChildStartSweep:
    """Move PENDING sub-tasks of IN_PROGRESS main tasks to IN_PROGRESS."""

    @property
    def sweep_type(self) -> str:
        return "child_start"

    @property
    def category(self) -> str:
        return "sub_started"

    @property
    def description(self) -> str:
        return "Start pending sub-tasks of in-progress main tasks"

    @property
    def event_type(self) -> WorkflowEventType:
        return WorkflowEventType.AUTOMATION_ACTION

    def select(
        self,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> tuple[Task, ...]:
        if not engine.config.automation.auto_start_sub_tasks:
            logger.debug("child_start_disabled")
            return ()
        parents = engine.store.find(
            TaskQuery(
                statuses=frozenset({TaskStatus.IN_PROGRESS}),
                types=frozenset({TaskType.MAIN}),
                has_children=True,
            )
        )
        candidates: list[Task] = []
        for parent in parents:
            candidates.extend(
                engine.store.find(
                    TaskQuery(
                        statuses=frozenset({TaskStatus.PENDING}),
                        parent_task_id=parent.task_id,
                    )
                )
            )
        return tuple(candidates)

    def evaluate(
        self,
        task: Task,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> SweepDecision:
        context = {
            "auto_started": True,
            "triggered_by_parent_task": str(task.parent_task_id),
        }
        validation = engine.validate_transition(task, TaskStatus.IN_PROGRESS, context)
        if not validation.valid:
            return SweepDecision.skip("; ".join(validation.errors))
        return SweepDecision(
            act=True,
            to_status=TaskStatus.IN_PROGRESS,
            context=context,
            details={"parent_task_id": str(task.parent_task_id)},
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
