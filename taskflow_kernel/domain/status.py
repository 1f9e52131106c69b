"""
Status model -- lifecycle states and the legal direct transitions between them.

Responsibility:
    Defines TaskStatus, TaskType and TaskPriority, the static adjacency
    matrix of legal direct transitions, and the boundary parsers that turn
    raw values into enum members.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - A status is always one of the six TaskStatus members; anything else
      raises UnknownStatusError at the parsing boundary.
    - Self-transitions are never legal, whatever the matrix says.
    - COMPLETED and CANCELLED have no outgoing edges (terminal).

Failure modes:
    - UnknownStatusError from parse_status().
    - ValueError from parse_task_type() / parse_priority().
    - ValueError from TransitionMatrix.from_mapping() for a self-loop or an
      edge leaving a terminal status.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping

from taskflow_kernel.exceptions import UnknownStatusError


class TaskStatus(str, Enum):
    """
    Lifecycle status of a task.

    State machine (default matrix):
        PENDING     -> IN_PROGRESS | BLOCKED | CANCELLED
        IN_PROGRESS -> COMPLETED | BLOCKED | ON_HOLD | CANCELLED
        BLOCKED     -> IN_PROGRESS | CANCELLED
        ON_HOLD     -> IN_PROGRESS | CANCELLED
        COMPLETED: terminal
        CANCELLED: terminal
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"

    @property
    def label(self) -> str:
        return _STATUS_PRESENTATION[self][0]

    @property
    def color(self) -> str:
        return _STATUS_PRESENTATION[self][1]

    @property
    def icon(self) -> str:
        return _STATUS_PRESENTATION[self][2]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


# label, color, icon
_STATUS_PRESENTATION: dict[TaskStatus, tuple[str, str, str]] = {
    TaskStatus.PENDING: ("Pending", "warning", "fa-clock"),
    TaskStatus.IN_PROGRESS: ("In Progress", "primary", "fa-play"),
    TaskStatus.COMPLETED: ("Completed", "success", "fa-check"),
    TaskStatus.BLOCKED: ("Blocked", "danger", "fa-ban"),
    TaskStatus.CANCELLED: ("Cancelled", "secondary", "fa-times"),
    TaskStatus.ON_HOLD: ("On Hold", "info", "fa-pause"),
}

TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.CANCELLED}
)
ACTIVE_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.PENDING, TaskStatus.IN_PROGRESS}
)
NON_TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset(TaskStatus) - TERMINAL_STATUSES


class TaskType(str, Enum):
    """Kind of task.  Only MAIN and SUB participate in the hierarchy rules."""

    MAIN = "main"
    SUB = "sub"
    MILESTONE = "milestone"
    BUG = "bug"
    FEATURE = "feature"
    IMPROVEMENT = "improvement"


class TaskPriority(str, Enum):
    """Scheduling priority.  ``weight`` orders tasks (higher is more urgent)."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def weight(self) -> int:
        return _PRIORITY_WEIGHTS[self]


_PRIORITY_WEIGHTS: dict[TaskPriority, int] = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.URGENT: 4,
}


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


def parse_status(value: object) -> TaskStatus:
    """
    Coerce ``value`` to a TaskStatus.

    Accepts a TaskStatus, its value (``"in_progress"``) or its member name
    (``"IN_PROGRESS"``).

    Raises:
        UnknownStatusError: For anything else.
    """
    if isinstance(value, TaskStatus):
        return value
    if isinstance(value, str):
        try:
            return TaskStatus(value)
        except ValueError:
            pass
        member = TaskStatus.__members__.get(value.upper())
        if member is not None:
            return member
    raise UnknownStatusError(value)


def parse_task_type(value: object) -> TaskType:
    if isinstance(value, TaskType):
        return value
    if isinstance(value, str):
        member = TaskType.__members__.get(value.upper())
        if member is not None:
            return member
    raise ValueError(f"Unknown task type: {value!r}")


def parse_priority(value: object) -> TaskPriority:
    if isinstance(value, TaskPriority):
        return value
    if isinstance(value, str):
        member = TaskPriority.__members__.get(value.upper())
        if member is not None:
            return member
    raise ValueError(f"Unknown task priority: {value!r}")


# ---------------------------------------------------------------------------
# Transition matrix
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransitionMatrix:
    """
    Immutable adjacency matrix of legal direct status transitions.

    Contract:
        ``edges`` maps every TaskStatus to the frozenset of statuses
        reachable in one step.  Statuses missing from the mapping have
        no outgoing edges.

    Guarantees:
        - can_transition_to(s, s) is False for every s.
        - Terminal statuses have no outgoing edges.
    """

    edges: Mapping[TaskStatus, frozenset[TaskStatus]]

    def can_transition_to(self, from_status: TaskStatus, to_status: TaskStatus) -> bool:
        if from_status == to_status:
            return False
        return to_status in self.edges.get(from_status, frozenset())

    def targets(self, from_status: TaskStatus) -> tuple[TaskStatus, ...]:
        """Reachable statuses from ``from_status``, in enum order."""
        allowed = self.edges.get(from_status, frozenset())
        return tuple(s for s in TaskStatus if s in allowed)

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[object, Iterable[object]]
    ) -> TransitionMatrix:
        """
        Build a matrix from raw status names (e.g. parsed YAML).

        Raises:
            UnknownStatusError: A key or target is not a status.
            ValueError: Self-loop, or an edge leaving a terminal status.
        """
        edges: dict[TaskStatus, frozenset[TaskStatus]] = {}
        for raw_from, raw_targets in mapping.items():
            from_status = parse_status(raw_from)
            targets = frozenset(parse_status(t) for t in raw_targets)
            if from_status in targets:
                raise ValueError(
                    f"Self-transition is not allowed: {from_status.value}"
                )
            if from_status in TERMINAL_STATUSES and targets:
                raise ValueError(
                    f"Terminal status {from_status.value} cannot have outgoing transitions"
                )
            edges[from_status] = targets
        for status in TaskStatus:
            edges.setdefault(status, frozenset())
        return cls(edges=MappingProxyType(edges))


DEFAULT_TRANSITION_MATRIX = TransitionMatrix.from_mapping(
    {
        TaskStatus.PENDING: (
            TaskStatus.IN_PROGRESS,
            TaskStatus.BLOCKED,
            TaskStatus.CANCELLED,
        ),
        TaskStatus.IN_PROGRESS: (
            TaskStatus.COMPLETED,
            TaskStatus.BLOCKED,
            TaskStatus.ON_HOLD,
            TaskStatus.CANCELLED,
        ),
        TaskStatus.BLOCKED: (TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED),
        TaskStatus.ON_HOLD: (TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED),
        TaskStatus.COMPLETED: (),
        TaskStatus.CANCELLED: (),
    }
)


def can_transition_to(
    from_status: TaskStatus,
    to_status: TaskStatus,
    matrix: TransitionMatrix = DEFAULT_TRANSITION_MATRIX,
) -> bool:
    """Whether ``to_status`` is reachable from ``from_status`` in one step."""
    return matrix.can_transition_to(from_status, to_status)
