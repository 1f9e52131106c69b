"""
ParentTaskStatusRule -- a sub-task follows its parent's state.

A sub-task may not (re)start while its parent is finished, blocked or on
hold.  When a sub-task completes, the rule checks whether the parent can
now complete too and raises the ``parent_auto_complete_eligible`` flag;
the engine performs the parent transition afterwards.
"""

from __future__ import annotations

from taskflow_kernel.domain.status import TERMINAL_STATUSES, TaskStatus
from taskflow_kernel.domain.task import Task
from taskflow_kernel.domain.transition import (
    PARENT_AUTO_COMPLETE_ELIGIBLE,
    TransitionContext,
)
from taskflow_kernel.logging_config import get_logger
from taskflow_kernel.rules.base import BaseWorkflowRule
from taskflow_kernel.rules.sub_task_completion import count_incomplete_sub_tasks

logger = get_logger("rules.parent_task_status")

_RESTART_TARGETS = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


class ParentTaskStatusRule(BaseWorkflowRule):
    rule_name = "parent_task_status"
    rule_description = "A sub-task's status must be compatible with its parent's"
    rule_priority = 20

    def can_apply(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> bool:
        return task.is_sub_task and task.has_parent

    def validate(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> bool:
        parent = context.parent
        if parent is None:
            return True

        if parent.status in TERMINAL_STATUSES and to_status in _RESTART_TARGETS:
            return self.set_error(
                f"Cannot move sub-task to {to_status.label}: "
                f"parent task is {parent.status.label}"
            )
        if (
            parent.status in (TaskStatus.BLOCKED, TaskStatus.ON_HOLD)
            and to_status == TaskStatus.IN_PROGRESS
        ):
            return self.set_error(
                f"Cannot start sub-task: parent task is {parent.status.label}"
            )
        return True

    def after_transition(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> None:
        if to_status != TaskStatus.COMPLETED:
            return
        if context.config is None or not context.config.auto_complete_parent_task:
            return

        parent = context.parent
        if parent is None or not parent.is_main_task or parent.status in TERMINAL_STATUSES:
            return

        # The store may still hold this sub-task's pre-transition copy
        siblings = [
            task if s.task_id == task.task_id else s
            for s in context.children_of(parent.task_id)
        ]
        remaining = count_incomplete_sub_tasks(siblings)
        if remaining == 0:
            context.flags[PARENT_AUTO_COMPLETE_ELIGIBLE] = True
        logger.info(
            "parent_auto_complete_evaluated",
            extra={
                "task_id": str(task.task_id),
                "parent_task_id": str(parent.task_id),
                "remaining_sub_tasks": remaining,
                "eligible": remaining == 0,
            },
        )
