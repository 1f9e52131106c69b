"""
BasicTransitionRule -- the adjacency matrix as the first link of the chain.

Applies to every transition.  Rejects self-transitions and any move the
transition matrix does not list, and records workflow bookkeeping in
``metadata["workflow"]`` once the status has changed.  It never changes
the status itself.
"""

from __future__ import annotations

from typing import Callable

from taskflow_kernel.domain.status import (
    DEFAULT_TRANSITION_MATRIX,
    TaskStatus,
    TransitionMatrix,
)
from taskflow_kernel.domain.task import Task
from taskflow_kernel.domain.transition import TransitionContext
from taskflow_kernel.logging_config import get_logger
from taskflow_kernel.rules.base import BaseWorkflowRule

logger = get_logger("rules.basic_transition")


class BasicTransitionRule(BaseWorkflowRule):
    rule_name = "basic_transition"
    rule_description = "Only transitions listed in the status matrix are allowed"
    rule_priority = 1

    def __init__(self, matrix: TransitionMatrix = DEFAULT_TRANSITION_MATRIX):
        self._matrix = matrix
        self._after_handlers: dict[
            TaskStatus, Callable[[Task, TaskStatus, TransitionContext], None]
        ] = {
            TaskStatus.IN_PROGRESS: self._on_started,
            TaskStatus.COMPLETED: self._on_completed,
            TaskStatus.BLOCKED: self._on_blocked,
            TaskStatus.CANCELLED: self._on_cancelled,
            TaskStatus.ON_HOLD: self._on_hold,
        }

    @property
    def matrix(self) -> TransitionMatrix:
        return self._matrix

    def validate(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> bool:
        if from_status == to_status:
            return self.set_error(f"Task is already {from_status.label}")
        if not self._matrix.can_transition_to(from_status, to_status):
            return self.set_error(
                f"Cannot transition from {from_status.label} to {to_status.label}"
            )
        return True

    def after_transition(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> None:
        handler = self._after_handlers.get(to_status)
        if handler is not None:
            handler(task, from_status, context)

    # -- per-target bookkeeping ---------------------------------------------

    def _on_started(self, task: Task, from_status: TaskStatus, context: TransitionContext) -> None:
        now = context.now.isoformat()
        values = {"last_started_at": now}
        if "started_at" not in task.workflow_metadata:
            values["started_at"] = now
        if context.get("auto_started"):
            values["auto_started"] = True
        task.record_workflow(**values)
        logger.info(
            "task_started",
            extra={
                "task_id": str(task.task_id),
                "from_status": from_status.value,
                "resumed": from_status in (TaskStatus.BLOCKED, TaskStatus.ON_HOLD),
            },
        )

    def _on_completed(self, task: Task, from_status: TaskStatus, context: TransitionContext) -> None:
        task.progress = 100
        task.record_workflow(
            completed_at=context.now.isoformat(),
            auto_completed=bool(context.get("auto_completed", False)),
        )
        logger.info("task_completed", extra={"task_id": str(task.task_id)})

    def _on_blocked(self, task: Task, from_status: TaskStatus, context: TransitionContext) -> None:
        reason = context.get("reason")
        task.record_workflow(
            blocked_at=context.now.isoformat(),
            blocked_reason=reason,
            auto_blocked=bool(context.get("auto_blocked", False)),
        )
        logger.info(
            "task_blocked",
            extra={
                "task_id": str(task.task_id),
                "reason": reason,
                "auto_blocked": bool(context.get("auto_blocked", False)),
            },
        )

    def _on_cancelled(self, task: Task, from_status: TaskStatus, context: TransitionContext) -> None:
        task.record_workflow(
            cancelled_at=context.now.isoformat(),
            cancelled_reason=context.get("reason"),
        )
        logger.info("task_cancelled", extra={"task_id": str(task.task_id)})

    def _on_hold(self, task: Task, from_status: TaskStatus, context: TransitionContext) -> None:
        task.record_workflow(
            on_hold_at=context.now.isoformat(),
            on_hold_reason=context.get("reason"),
        )
        logger.info("task_put_on_hold", extra={"task_id": str(task.task_id)})
