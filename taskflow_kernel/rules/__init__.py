"""Workflow rules: protocol, base class, default rules and the rule set."""

from taskflow_kernel.rules.base import BaseWorkflowRule, WorkflowRule, describe_rule
from taskflow_kernel.rules.basic_transition import BasicTransitionRule
from taskflow_kernel.rules.parent_task_status import ParentTaskStatusRule
from taskflow_kernel.rules.registry import RuleSet, default_rule_set
from taskflow_kernel.rules.sub_task_completion import (
    SubTaskCompletionRule,
    count_incomplete_sub_tasks,
)

__all__ = [
    "BaseWorkflowRule",
    "BasicTransitionRule",
    "ParentTaskStatusRule",
    "RuleSet",
    "SubTaskCompletionRule",
    "WorkflowRule",
    "count_incomplete_sub_tasks",
    "default_rule_set",
    "describe_rule",
]
