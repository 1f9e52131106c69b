"""
TaskWorkflowService -- task-id keyed facade over the WorkflowEngine.

Responsibility:
    The entry points a controller exposes (available transitions,
    validate, transition, health, batch transition, progress update,
    transition history).  Loads tasks by id from the engine's store and
    returns DTOs with ``to_dict()`` for serialization.

Architecture position:
    Kernel > Services -- imperative shell.  Sits directly above
    WorkflowEngine; HTTP wiring is out of scope.

Failure modes:
    - TaskNotFoundError for unknown ids (single-task entry points only;
      batch_transition reports missing ids per item).
    - UnknownStatusError for an unknown target status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol
from uuid import UUID

from taskflow_kernel.domain.health import HealthReport
from taskflow_kernel.domain.status import TaskStatus, parse_status
from taskflow_kernel.domain.task import Task
from taskflow_kernel.domain.transition import (
    BatchTransitionItem,
    ValidationResult,
    WorkflowEvent,
    WorkflowEventType,
)
from taskflow_kernel.exceptions import TaskNotFoundError
from taskflow_kernel.services.workflow_engine import WorkflowEngine

_TRANSITION_EVENTS = frozenset(
    {
        WorkflowEventType.TRANSITION_COMPLETED,
        WorkflowEventType.TRANSITION_REJECTED,
        WorkflowEventType.TRANSITION_FAILED,
        WorkflowEventType.AUTOMATION_FAILED,
    }
)


class EventHistory(Protocol):
    """Anything that can list a task's past events (AuditTrailSink, RecordingEventSink)."""

    def history(self, task_id: UUID) -> tuple[WorkflowEvent, ...]: ...


@dataclass(frozen=True)
class AvailableTransitions:
    task_id: UUID
    current_status: TaskStatus
    available: tuple[TaskStatus, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": str(self.task_id),
            "current_status": self.current_status.value,
            "available_transitions": [
                {
                    "status": s.value,
                    "label": s.label,
                    "color": s.color,
                    "icon": s.icon,
                }
                for s in self.available
            ],
        }


@dataclass(frozen=True)
class TransitionResult:
    task_id: UUID
    success: bool
    from_status: TaskStatus
    to_status: TaskStatus
    current_status: TaskStatus
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": str(self.task_id),
            "success": self.success,
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "current_status": self.current_status.value,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class BatchTransitionResult:
    to_status: TaskStatus
    items: tuple[BatchTransitionItem, ...]

    @property
    def succeeded(self) -> int:
        return sum(1 for i in self.items if i.success)

    @property
    def failed(self) -> int:
        return len(self.items) - self.succeeded

    def to_dict(self) -> dict[str, Any]:
        return {
            "to_status": self.to_status.value,
            "total": len(self.items),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [i.to_dict() for i in self.items],
        }


class TaskWorkflowService:
    """Controller-facing workflow operations keyed by task id."""

    def __init__(self, engine: WorkflowEngine, history: EventHistory | None = None):
        self._engine = engine
        self._history = history

    @property
    def engine(self) -> WorkflowEngine:
        return self._engine

    def _load(self, task_id: UUID) -> Task:
        return self._engine.store.load(task_id)

    def available_transitions(self, task_id: UUID) -> AvailableTransitions:
        task = self._load(task_id)
        return AvailableTransitions(
            task_id=task.task_id,
            current_status=task.status,
            available=self._engine.get_available_transitions(task),
        )

    def validate_transition(
        self, task_id: UUID, to_status: TaskStatus | str
    ) -> ValidationResult:
        return self._engine.validate_transition(self._load(task_id), to_status)

    def transition(
        self,
        task_id: UUID,
        to_status: TaskStatus | str,
        context: Mapping[str, Any] | None = None,
    ) -> TransitionResult:
        to_status = parse_status(to_status)
        task = self._load(task_id)
        from_status = task.status
        outcome = self._engine.attempt_transition(task, to_status, context)
        return TransitionResult(
            task_id=task.task_id,
            success=outcome.success,
            from_status=from_status,
            to_status=to_status,
            current_status=task.status,
            errors=tuple(v.message for v in outcome.violations),
        )

    def health(self, task_id: UUID) -> HealthReport:
        return self._engine.check_workflow_health(self._load(task_id))

    def batch_transition(
        self,
        task_ids: Iterable[UUID],
        to_status: TaskStatus | str,
        context: Mapping[str, Any] | None = None,
    ) -> BatchTransitionResult:
        """Unknown ids fail their own item; the rest are transitioned."""
        to_status = parse_status(to_status)
        ids = list(task_ids)
        loaded: dict[int, Task] = {}
        missing: dict[int, BatchTransitionItem] = {}
        for index, task_id in enumerate(ids):
            try:
                loaded[index] = self._load(task_id)
            except TaskNotFoundError as exc:
                missing[index] = BatchTransitionItem(
                    task_id=task_id, success=False, error=str(exc), errors=(str(exc),)
                )

        results = iter(
            self._engine.batch_transition(loaded.values(), to_status, context)
        )
        items = tuple(
            missing[index] if index in missing else next(results)
            for index in range(len(ids))
        )
        return BatchTransitionResult(to_status=to_status, items=items)

    def update_progress(self, task_id: UUID, progress: object) -> Task:
        return self._engine.update_progress(self._load(task_id), progress)

    def transition_history(self, task_id: UUID) -> tuple[WorkflowEvent, ...]:
        """
        Completed, rejected and failed transitions for a task, oldest first.

        Failed automation attempts count as failed transitions.
        """
        if self._history is None:
            return ()
        return tuple(
            e for e in self._history.history(task_id) if e.event_type in _TRANSITION_EVENTS
        )
