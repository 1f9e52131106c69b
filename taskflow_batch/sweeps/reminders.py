"""
Sweeps: reminder events for stale and soon-due tasks.

Both only publish an event per selected task (REMINDER_STALE,
REMINDER_DUE_SOON); delivering the reminder is a downstream consumer's job.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from taskflow_kernel.domain.status import TaskStatus
from taskflow_kernel.domain.task import Task, TaskQuery
from taskflow_kernel.domain.transition import WorkflowEventType
from taskflow_kernel.services.workflow_engine import WorkflowEngine

from taskflow_batch.sweeps.base import SweepDecision, number_parameter


class StaleReminderSweep:
    """PENDING tasks not updated for ``reminder_days``."""

    @property
    def sweep_type(self) -> str:
        return "stale_reminder"

    @property
    def category(self) -> str:
        return "stale_reminders"

    @property
    def description(self) -> str:
        return "Remind owners of pending tasks that have gone stale"

    @property
    def event_type(self) -> WorkflowEventType:
        return WorkflowEventType.REMINDER_STALE

    def _reminder_days(self, engine: WorkflowEngine, parameters: dict[str, Any]) -> float:
        return number_parameter(
            parameters, "reminder_days", engine.config.automation.reminder_days
        )

    def select(
        self,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> tuple[Task, ...]:
        horizon = as_of - timedelta(days=self._reminder_days(engine, parameters))
        return engine.store.find(
            TaskQuery(statuses=frozenset({TaskStatus.PENDING}), updated_before=horizon)
        )

    def evaluate(
        self,
        task: Task,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> SweepDecision:
        stale_for = as_of - task.updated_at if task.updated_at else None
        return SweepDecision(
            act=True,
            details={
                "reminder_days": self._reminder_days(engine, parameters),
                "days_stale": stale_for.days if stale_for else None,
                "assigned_user_id": str(task.assigned_user_id) if task.assigned_user_id else None,
                "agent_id": task.agent_id,
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
        return True


class DueSoonReminderSweep:
    """PENDING or IN_PROGRESS tasks due within ``due_soon_hours``."""

    @property
    def sweep_type(self) -> str:
        return "due_soon_reminder"

    @property
    def category(self) -> str:
        return "due_soon_reminders"

    @property
    def description(self) -> str:
        return "Remind owners of active tasks whose due date is near"

    @property
    def event_type(self) -> WorkflowEventType:
        return WorkflowEventType.REMINDER_DUE_SOON

    def _due_soon_hours(self, engine: WorkflowEngine, parameters: dict[str, Any]) -> float:
        return number_parameter(
            parameters, "due_soon_hours", engine.config.automation.due_soon_hours
        )

    def select(
        self,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> tuple[Task, ...]:
        window_end = as_of + timedelta(hours=self._due_soon_hours(engine, parameters))
        return engine.store.find(
            TaskQuery(
                statuses=frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS}),
                due_after=as_of,
                due_on_or_before=window_end,
            )
        )

    def evaluate(
        self,
        task: Task,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> SweepDecision:
        if task.due_date is None:
            return SweepDecision.skip("no due date")
        remaining = task.due_date - as_of
        return SweepDecision(
            act=True,
            details={
                "due_date": task.due_date.isoformat(),
                "hours_until_due": round(remaining.total_seconds() / 3600, 2),
                "assigned_user_id": str(task.assigned_user_id) if task.assigned_user_id else None,
                "agent_id": task.agent_id,
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
        return True
