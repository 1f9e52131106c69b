"""
Sweep: block IN_PROGRESS tasks that have not been touched in too long.

Tasks with an explicit ``due_date`` are left alone; their deadline is the
owner's business, not the timeout's.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from taskflow_kernel.domain.status import TaskStatus
from taskflow_kernel.domain.task import Task, TaskQuery
from taskflow_kernel.domain.transition import WorkflowEventType
from taskflow_kernel.services.workflow_engine import WorkflowEngine

from taskflow_batch.sweeps.base import SweepDecision, apply_transition, number_parameter


class TimeoutSweep:
    """Move stalled IN_PROGRESS tasks to BLOCKED with reason "timeout"."""

    @property
    def sweep_type(self) -> str:
        return "timeout"

    @property
    def category(self) -> str:
        return "timeout_blocked"

    @property
    def description(self) -> str:
        return "Block in-progress tasks with no update inside the timeout horizon"

    @property
    def event_type(self) -> WorkflowEventType:
        return WorkflowEventType.AUTOMATION_ACTION

    def _timeout_hours(self, engine: WorkflowEngine, parameters: dict[str, Any]) -> float:
        return number_parameter(
            parameters, "timeout_hours", engine.config.automation.timeout_hours
        )

    def select(
        self,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> tuple[Task, ...]:
        horizon = as_of - timedelta(hours=self._timeout_hours(engine, parameters))
        return engine.store.find(
            TaskQuery(
                statuses=frozenset({TaskStatus.IN_PROGRESS}),
                updated_before=horizon,
                has_due_date=False,
            )
        )

    def evaluate(
        self,
        task: Task,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> SweepDecision:
        timeout_hours = self._timeout_hours(engine, parameters)
        context = {"auto_blocked": True, "reason": "timeout", "timeout_hours": timeout_hours}
        validation = engine.validate_transition(task, TaskStatus.BLOCKED, context)
        if not validation.valid:
            return SweepDecision.skip("; ".join(validation.errors))
        idle = as_of - task.updated_at if task.updated_at else None
        return SweepDecision(
            act=True,
            to_status=TaskStatus.BLOCKED,
            context=context,
            details={
                "timeout_hours": timeout_hours,
                "idle_hours": round(idle.total_seconds() / 3600, 2) if idle else None,
            },
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
