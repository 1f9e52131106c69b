"""Pure domain layer: status model, task entity, transition DTOs, health."""

from taskflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from taskflow_kernel.domain.health import HealthReport, evaluate_health
from taskflow_kernel.domain.status import (
    ACTIVE_STATUSES,
    DEFAULT_TRANSITION_MATRIX,
    NON_TERMINAL_STATUSES,
    TERMINAL_STATUSES,
    TaskPriority,
    TaskStatus,
    TaskType,
    TransitionMatrix,
    can_transition_to,
    parse_priority,
    parse_status,
    parse_task_type,
)
from taskflow_kernel.domain.task import Task, TaskQuery, clamp_progress
from taskflow_kernel.domain.transition import (
    AutoCompleteResult,
    BatchTransitionItem,
    RuleDescriptor,
    RuleViolation,
    TransitionContext,
    ValidationResult,
    WorkflowEvent,
    WorkflowEventType,
)

__all__ = [
    "ACTIVE_STATUSES",
    "AutoCompleteResult",
    "BatchTransitionItem",
    "Clock",
    "DEFAULT_TRANSITION_MATRIX",
    "DeterministicClock",
    "HealthReport",
    "NON_TERMINAL_STATUSES",
    "RuleDescriptor",
    "RuleViolation",
    "SystemClock",
    "TERMINAL_STATUSES",
    "Task",
    "TaskPriority",
    "TaskQuery",
    "TaskStatus",
    "TaskType",
    "TransitionContext",
    "TransitionMatrix",
    "ValidationResult",
    "WorkflowEvent",
    "WorkflowEventType",
    "can_transition_to",
    "clamp_progress",
    "evaluate_health",
    "parse_priority",
    "parse_status",
    "parse_task_type",
]
