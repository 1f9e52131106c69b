"""
Sweep: audit the workflow health of every non-terminal task.

Reports only.  Unhealthy tasks produce a HEALTH_ISSUE event carrying the
issues and recommendations; nothing is mutated.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from taskflow_kernel.domain.status import NON_TERMINAL_STATUSES
from taskflow_kernel.domain.task import Task, TaskQuery
from taskflow_kernel.domain.transition import WorkflowEventType
from taskflow_kernel.services.workflow_engine import WorkflowEngine

from taskflow_batch.sweeps.base import SweepDecision


class HealthSweep:
    """Flag non-terminal tasks whose workflow looks unhealthy."""

    @property
    def sweep_type(self) -> str:
        return "health"

    @property
    def category(self) -> str:
        return "unhealthy"

    @property
    def description(self) -> str:
        return "Report non-terminal tasks with workflow health issues"

    @property
    def event_type(self) -> WorkflowEventType:
        return WorkflowEventType.HEALTH_ISSUE

    def select(
        self,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> tuple[Task, ...]:
        return engine.store.find(TaskQuery(statuses=frozenset(NON_TERMINAL_STATUSES)))

    def evaluate(
        self,
        task: Task,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> SweepDecision:
        report = engine.check_workflow_health(task)
        if report.is_healthy:
            return SweepDecision.skip("healthy")
        return SweepDecision(
            act=True,
            details={
                "issues": list(report.issues),
                "recommendations": list(report.recommendations),
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
