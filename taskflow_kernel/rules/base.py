"""
Base workflow rule protocol.

Workflow rules gate status transitions.  For each attempt, every rule whose
``can_apply`` is true validates the move; if all agree, the engine runs the
before hooks, mutates the status, then runs the after hooks.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

from taskflow_kernel.domain.status import TaskStatus
from taskflow_kernel.domain.task import Task
from taskflow_kernel.domain.transition import RuleDescriptor, TransitionContext


@runtime_checkable
class WorkflowRule(Protocol):
    """
    Protocol for workflow rules.

    Each rule is:
    - Named: ``name`` is its identity inside a RuleSet
    - Ordered: lower ``priority`` validates and hooks first
    - Non-blocking in hooks: only ``validate`` may reject a transition
    """

    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def priority(self) -> int: ...

    @property
    def error_message(self) -> str: ...

    def can_apply(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> bool: ...

    def validate(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> bool: ...

    def before_transition(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> None: ...

    def after_transition(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> None: ...


class BaseWorkflowRule(ABC):
    """
    Abstract base class for workflow rules.

    Subclasses set ``rule_name``, ``rule_description`` and ``rule_priority``
    and implement ``validate``.  The last error message is kept per thread
    so a single rule instance can serve concurrent transitions.
    """

    rule_name: str = ""
    rule_description: str = ""
    rule_priority: int = 100

    def _thread_state(self) -> threading.local:
        return self.__dict__.setdefault("_state", threading.local())

    @property
    def name(self) -> str:
        return self.rule_name or type(self).__name__

    @property
    def description(self) -> str:
        return self.rule_description

    @property
    def priority(self) -> int:
        return self.rule_priority

    @property
    def error_message(self) -> str:
        return getattr(self._thread_state(), "error_message", "")

    def set_error(self, message: str) -> bool:
        """Record ``message`` as this thread's error and return False."""
        self._thread_state().error_message = message
        return False

    def clear_error(self) -> None:
        self._thread_state().error_message = ""

    def can_apply(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> bool:
        return True

    @abstractmethod
    def validate(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> bool:
        """Return False (after set_error) to reject the transition."""
        pass

    def before_transition(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> None:
        pass

    def after_transition(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} priority={self.priority}>"


def describe_rule(rule: WorkflowRule) -> RuleDescriptor:
    return RuleDescriptor(
        name=rule.name, description=rule.description, priority=rule.priority
    )
