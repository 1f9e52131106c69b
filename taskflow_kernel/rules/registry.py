"""
Workflow rule set.

Holds the ordered collection of rules the engine evaluates.  Rules are
registered explicitly at construction time; there is no discovery.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from taskflow_kernel.domain.status import (
    DEFAULT_TRANSITION_MATRIX,
    TaskStatus,
    TransitionMatrix,
)
from taskflow_kernel.domain.task import Task
from taskflow_kernel.domain.transition import TransitionContext
from taskflow_kernel.exceptions import DuplicateRuleError, RuleExecutionError
from taskflow_kernel.rules.base import WorkflowRule
from taskflow_kernel.rules.basic_transition import BasicTransitionRule
from taskflow_kernel.rules.parent_task_status import ParentTaskStatusRule
from taskflow_kernel.rules.sub_task_completion import SubTaskCompletionRule


class RuleSet:
    """
    Registry for workflow rules.

    Rules are keyed by name.  ``applicable()`` filters by ``can_apply`` and
    sorts ascending by priority with a stable sort, so rules that share a
    priority run in registration order.
    """

    def __init__(self, rules: Iterable[WorkflowRule] = ()):
        self._rules: dict[str, WorkflowRule] = {}
        for rule in rules:
            self.register(rule)

    def register(self, rule: WorkflowRule) -> None:
        """
        Register a rule.

        Raises:
            DuplicateRuleError: If a rule with the same name exists.
        """
        if rule.name in self._rules:
            raise DuplicateRuleError(rule.name)
        self._rules[rule.name] = rule

    def remove(self, name: str) -> WorkflowRule | None:
        """Unregister and return the named rule (None if absent)."""
        return self._rules.pop(name, None)

    def get(self, name: str) -> WorkflowRule | None:
        return self._rules.get(name)

    def ordered(self) -> tuple[WorkflowRule, ...]:
        """All rules, ascending by priority."""
        return tuple(sorted(self._rules.values(), key=lambda r: r.priority))

    def applicable(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> tuple[WorkflowRule, ...]:
        """
        Rules that apply to this transition, in evaluation order.

        Raises:
            RuleExecutionError: A rule's ``can_apply`` raised.
        """
        applicable = []
        for rule in self.ordered():
            try:
                applies = rule.can_apply(task, from_status, to_status, context)
            except Exception as exc:
                raise RuleExecutionError(rule.name, "can_apply", str(task.task_id), exc) from exc
            if applies:
                applicable.append(rule)
        return tuple(applicable)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(rule.name for rule in self.ordered())

    def __iter__(self) -> Iterator[WorkflowRule]:
        return iter(self.ordered())

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, name: object) -> bool:
        return name in self._rules


def default_rule_set(matrix: TransitionMatrix = DEFAULT_TRANSITION_MATRIX) -> RuleSet:
    """The three rules every deployment ships with."""
    return RuleSet(
        [
            BasicTransitionRule(matrix),
            SubTaskCompletionRule(),
            ParentTaskStatusRule(),
        ]
    )
