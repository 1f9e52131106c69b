"""
Sweep protocol, supporting types, and SweepRegistry.

Contract:
    ``Sweep`` defines the interface every automation sweep implements.
    ``SweepRegistry`` stores registered sweeps keyed by ``sweep_type``.
    ``default_sweep_registry()`` returns a fresh, empty registry.

Architecture:
    taskflow_batch/sweeps.  Sweeps only talk to the WorkflowEngine's
    public contract (its store, can_transition, transition,
    check_workflow_health); they never mutate a task directly.

Invariants enforced:
    - One sweep per ``sweep_type`` string.
    - ``evaluate()`` never mutates; only ``apply()`` may, and the executor
      never calls ``apply()`` in dry-run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from taskflow_kernel.domain.status import TaskStatus
from taskflow_kernel.domain.task import Task
from taskflow_kernel.domain.transition import WorkflowEventType
from taskflow_kernel.exceptions import SweepNotRegisteredError
from taskflow_kernel.services.workflow_engine import WorkflowEngine


# =============================================================================
# Supporting DTOs
# =============================================================================


@dataclass(frozen=True)
class SweepDecision:
    """
    What a sweep intends to do with one task.

    ``act`` false means skip, with ``reason`` saying why.  ``to_status`` and
    ``context`` are set for transition sweeps; ``details`` travels on the
    emitted event and the item result.
    """

    act: bool
    reason: str | None = None
    to_status: TaskStatus | None = None
    context: dict[str, Any] = field(default_factory=dict)
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def skip(cls, reason: str, **details: Any) -> SweepDecision:
        return cls(act=False, reason=reason, details=details)


# =============================================================================
# Sweep Protocol
# =============================================================================


@runtime_checkable
class Sweep(Protocol):
    """
    Protocol for automation sweep implementations.

    Contract:
        - ``sweep_type``: unique key registered in SweepRegistry.
        - ``category``: key of this sweep's count in the command report.
        - ``event_type``: event published for every applied item.
        - ``select()``: candidate tasks, in a deterministic order.
        - ``evaluate()``: decides per task, without side effects.
        - ``apply()``: performs the action; returns False when the engine
          rejected it at apply time.

    Non-goals:
        - Does NOT manage transactions; the executor owns the atomic scope.
        - Does NOT publish events; the executor does, after ``apply()``.
    """

    @property
    def sweep_type(self) -> str: ...

    @property
    def category(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def event_type(self) -> WorkflowEventType: ...

    def select(
        self,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> tuple[Task, ...]: ...

    def evaluate(
        self,
        task: Task,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> SweepDecision: ...

    def apply(
        self,
        task: Task,
        decision: SweepDecision,
        engine: WorkflowEngine,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> bool: ...


def apply_transition(engine: WorkflowEngine, task: Task, decision: SweepDecision) -> bool:
    """Shared ``apply()`` body for sweeps whose action is a transition."""
    if decision.to_status is None:
        raise ValueError("Transition sweep decision has no target status")
    return engine.transition(task, decision.to_status, decision.context)


def number_parameter(
    parameters: dict[str, Any], key: str, default: float
) -> float:
    """Read a non-negative number (hours, days) from sweep parameters, or ``default``."""
    value = parameters.get(key)
    if value is None:
        return float(default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValueError(f"Parameter '{key}' must be a non-negative number, got {value!r}")
    return float(value)


# =============================================================================
# SweepRegistry
# =============================================================================


class SweepRegistry:
    """
    Registry mapping sweep_type strings to Sweep implementations.

    Contract:
        - ``register()`` adds a sweep; raises ValueError on duplicate.
        - ``get()`` retrieves by sweep_type; raises SweepNotRegisteredError.
        - ``list_sweeps()`` returns all registered sweep_type strings.
    """

    def __init__(self) -> None:
        self._sweeps: dict[str, Sweep] = {}

    def register(self, sweep: Sweep) -> None:
        """
        Register a sweep implementation.

        Raises:
            ValueError: If a sweep with the same sweep_type is already registered.
        """
        if sweep.sweep_type in self._sweeps:
            raise ValueError(f"Sweep type '{sweep.sweep_type}' is already registered")
        self._sweeps[sweep.sweep_type] = sweep

    def get(self, sweep_type: str) -> Sweep:
        try:
            return self._sweeps[sweep_type]
        except KeyError:
            raise SweepNotRegisteredError(sweep_type, self.list_sweeps()) from None

    def list_sweeps(self) -> tuple[str, ...]:
        """Return all registered sweep_type strings, sorted."""
        return tuple(sorted(self._sweeps))

    def __len__(self) -> int:
        return len(self._sweeps)

    def __contains__(self, sweep_type: str) -> bool:
        return sweep_type in self._sweeps


def default_sweep_registry() -> SweepRegistry:
    """Create and return a fresh, empty SweepRegistry."""
    return SweepRegistry()
