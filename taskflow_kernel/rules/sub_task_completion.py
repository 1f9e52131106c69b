"""
SubTaskCompletionRule -- a main task completes only after its sub-tasks.

Children that are CANCELLED do not hold the parent back; every other
child must be COMPLETED.
"""

from __future__ import annotations

from typing import Iterable

from taskflow_kernel.domain.status import TaskStatus
from taskflow_kernel.domain.task import Task
from taskflow_kernel.domain.transition import TransitionContext
from taskflow_kernel.logging_config import get_logger
from taskflow_kernel.rules.base import BaseWorkflowRule

logger = get_logger("rules.sub_task_completion")


def count_incomplete_sub_tasks(children: Iterable[Task]) -> int:
    """Children that are neither COMPLETED nor CANCELLED."""
    return sum(
        1
        for child in children
        if child.status not in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)
    )


def incomplete_sub_task_message(count: int) -> str:
    return f"Cannot complete main task: {count} incomplete sub-task(s) remaining"


class SubTaskCompletionRule(BaseWorkflowRule):
    rule_name = "sub_task_completion"
    rule_description = "A main task can only complete once all sub-tasks are done"
    rule_priority = 10

    def can_apply(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> bool:
        return task.is_main_task and to_status == TaskStatus.COMPLETED

    def validate(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> bool:
        incomplete = count_incomplete_sub_tasks(context.children)
        if incomplete > 0:
            return self.set_error(incomplete_sub_task_message(incomplete))
        return True

    def after_transition(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> None:
        children = context.children
        logger.info(
            "main_task_completed_with_sub_tasks",
            extra={
                "task_id": str(task.task_id),
                "sub_tasks_total": len(children),
                "sub_tasks_completed": sum(
                    1 for c in children if c.status == TaskStatus.COMPLETED
                ),
                "sub_tasks_cancelled": sum(
                    1 for c in children if c.status == TaskStatus.CANCELLED
                ),
            },
        )
