"""
Transition DTOs -- values that flow through a single transition attempt.

Responsibility:
    TransitionContext (what rules see), ValidationResult and its parts
    (what diagnostics return), BatchTransitionItem / AutoCompleteResult
    (what bulk operations return) and WorkflowEvent (what sinks receive).

Architecture position:
    Kernel > Domain -- zero I/O.  TransitionContext reaches the task store
    only through the loader callables the engine injects.

Invariants enforced:
    - Caller-supplied context data is exposed read-only to rules; rules
      communicate back to the engine only through ``flags``.
    - Parent and children are loaded at most once per context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping
from uuid import UUID, uuid4

from taskflow_kernel.domain.status import TaskStatus
from taskflow_kernel.domain.task import Task

if TYPE_CHECKING:
    from taskflow_config.schema import AutomationConfig

ParentLoader = Callable[[Task], "Task | None"]
ChildrenLoader = Callable[[UUID], "tuple[Task, ...]"]

# Flag set by ParentTaskStatusRule, consumed by the engine after commit.
PARENT_AUTO_COMPLETE_ELIGIBLE = "parent_auto_complete_eligible"

_UNLOADED = object()


class TransitionContext:
    """
    Per-attempt view handed to every rule hook.

    ``data`` is the caller's context mapping (read-only).  ``flags`` is the
    one mutable channel from rules back to the engine.
    """

    def __init__(
        self,
        task: Task,
        data: Mapping[str, Any] | None = None,
        *,
        now: datetime,
        config: AutomationConfig | None = None,
        parent_loader: ParentLoader | None = None,
        children_loader: ChildrenLoader | None = None,
    ):
        self.task = task
        self.data: Mapping[str, Any] = MappingProxyType(dict(data or {}))
        self.flags: dict[str, Any] = {}
        self.now = now
        self.config = config
        self._parent_loader = parent_loader
        self._children_loader = children_loader
        self._parent: Any = _UNLOADED
        self._children: Any = _UNLOADED

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self.data

    @property
    def parent(self) -> Task | None:
        if self._parent is _UNLOADED:
            if self.task.parent_task_id is None or self._parent_loader is None:
                self._parent = None
            else:
                self._parent = self._parent_loader(self.task)
        return self._parent

    @property
    def children(self) -> tuple[Task, ...]:
        if self._children is _UNLOADED:
            self._children = self.children_of(self.task.task_id)
        return self._children

    def children_of(self, task_id: UUID) -> tuple[Task, ...]:
        """Uncached child lookup for any task (e.g. a parent's siblings)."""
        if self._children_loader is None:
            return ()
        return tuple(self._children_loader(task_id))


@dataclass(frozen=True)
class RuleDescriptor:
    """Introspection record for one rule in the chain."""

    name: str
    description: str
    priority: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "priority": self.priority,
        }


@dataclass(frozen=True)
class RuleViolation:
    """A single rule's rejection of a transition."""

    rule: str
    message: str


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating a transition without performing it.

    Guarantees:
        ``valid`` is True iff ``violations`` is empty.
    """

    task_id: UUID
    from_status: TaskStatus
    to_status: TaskStatus
    violations: tuple[RuleViolation, ...] = ()
    applicable_rules: tuple[RuleDescriptor, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.violations

    @property
    def errors(self) -> tuple[str, ...]:
        return tuple(v.message for v in self.violations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": str(self.task_id),
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "valid": self.valid,
            "errors": list(self.errors),
            "applicable_rules": [r.to_dict() for r in self.applicable_rules],
        }


@dataclass(frozen=True)
class BatchTransitionItem:
    """Per-task outcome of a bulk transition."""

    task_id: UUID
    success: bool
    error: str | None = None
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": str(self.task_id),
            "success": self.success,
            "error": self.error,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class AutoCompleteResult:
    """Outcome of trying to auto-complete a sub-task's parent."""

    attempted: bool
    completed: bool
    parent_task_id: UUID | None = None
    errors: tuple[str, ...] = ()


class WorkflowEventType(str, Enum):
    """Kinds of events emitted to sinks."""

    TRANSITION_ATTEMPTED = "transition_attempted"
    TRANSITION_COMPLETED = "transition_completed"
    TRANSITION_REJECTED = "transition_rejected"
    TRANSITION_FAILED = "transition_failed"
    AUTOMATION_ACTION = "automation_action"
    HEALTH_ISSUE = "health_issue"
    REMINDER_STALE = "reminder_stale"
    REMINDER_DUE_SOON = "reminder_due_soon"
    AUTOMATION_FAILED = "automation_failed"


@dataclass(frozen=True)
class WorkflowEvent:
    """
    Immutable record of something the workflow did or observed.

    Carries ``{task_id, from_status, to_status, context, timestamp}`` plus
    free-form ``details`` (rejection reasons, sweep name, health issues).
    """

    event_type: WorkflowEventType
    task_id: UUID
    timestamp: datetime
    from_status: TaskStatus | None = None
    to_status: TaskStatus | None = None
    context: Mapping[str, Any] = field(default_factory=dict)
    details: Mapping[str, Any] = field(default_factory=dict)
    event_id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type.value,
            "task_id": str(self.task_id),
            "from_status": self.from_status.value if self.from_status else None,
            "to_status": self.to_status.value if self.to_status else None,
            "context": dict(self.context),
            "details": dict(self.details),
            "timestamp": self.timestamp.isoformat(),
        }
