"""
AutomationOrchestrator -- DI container and command surface for the sweeps.

Contract:
    Wires the SweepRegistry with the built-in sweeps, creates a
    SweepExecutor over a WorkflowEngine, and runs the two automation
    commands: ``auto-flow`` and ``workflow-schedule``.  Single place where
    all automation dependencies are composed.

Architecture: taskflow_batch (top-level).  The canonical entry point for
    the CLI and the in-process scheduler.

Invariants enforced:
    - Clock injection: every service receives the engine's Clock.
    - Config passed explicitly; nothing is read from global state.
    - Run guard: a command never overlaps itself within one process.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Iterator
from uuid import uuid4

from sqlalchemy.orm import Session

from taskflow_config.schema import WorkflowConfig
from taskflow_kernel.domain.clock import Clock
from taskflow_kernel.exceptions import (
    AutomationAlreadyRunningError,
    UnknownScheduleTypeError,
)
from taskflow_kernel.logging_config import LogContext, get_logger
from taskflow_kernel.services.auditor_service import AuditTrailSink
from taskflow_kernel.services.event_sink import CompositeEventSink, EventSink, LoggingEventSink
from taskflow_kernel.services.task_store import ProjectedTaskStore, SqlAlchemyTaskStore
from taskflow_kernel.services.workflow_engine import WorkflowEngine

from taskflow_batch.domain.types import AutomationRunResult, SweepResult
from taskflow_batch.services.executor import SweepExecutor
from taskflow_batch.sweeps.base import SweepRegistry
from taskflow_batch.sweeps.child_start import ChildStartSweep
from taskflow_batch.sweeps.health import HealthSweep
from taskflow_batch.sweeps.parent_completion import ParentCompletionSweep
from taskflow_batch.sweeps.reminders import DueSoonReminderSweep, StaleReminderSweep
from taskflow_batch.sweeps.timeout import TimeoutSweep

logger = get_logger("batch.orchestrator")

AUTO_FLOW = "auto-flow"
WORKFLOW_SCHEDULE = "workflow-schedule"

AUTO_FLOW_SWEEPS = ("timeout", "parent_completion", "child_start")

SCHEDULE_SWEEPS: dict[str, tuple[str, ...]] = {
    "all": ("timeout", "health", "stale_reminder", "due_soon_reminder"),
    "timeout": ("timeout",),
    "health": ("health",),
    "reminder": ("stale_reminder", "due_soon_reminder"),
}
SCHEDULE_TYPES = tuple(SCHEDULE_SWEEPS)


def _default_sweep_registry() -> SweepRegistry:
    """Create a SweepRegistry pre-loaded with all built-in sweeps."""
    registry = SweepRegistry()
    registry.register(TimeoutSweep())
    registry.register(ParentCompletionSweep())
    registry.register(ChildStartSweep())
    registry.register(HealthSweep())
    registry.register(StaleReminderSweep())
    registry.register(DueSoonReminderSweep())
    return registry


class RunGuard:
    """Non-blocking, per-command mutual exclusion."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running: set[str] = set()

    @contextmanager
    def hold(self, command: str) -> Iterator[None]:
        """
        Raises:
            AutomationAlreadyRunningError: ``command`` is already running.
        """
        with self._lock:
            if command in self._running:
                raise AutomationAlreadyRunningError(command)
            self._running.add(command)
        try:
            yield
        finally:
            with self._lock:
                self._running.discard(command)

    def is_running(self, command: str) -> bool:
        with self._lock:
            return command in self._running


# One guard per process unless a caller supplies its own.
PROCESS_RUN_GUARD = RunGuard()


class AutomationOrchestrator:
    """
    DI container and command runner for the automation sweeps.

    Contract:
        - ``from_session()`` factory creates a fully wired orchestrator.
        - ``run_auto_flow()`` / ``run_workflow_schedule()`` run a command.
        - ``run_sweep()`` runs one registered sweep on its own.

    Non-goals:
        - Does NOT manage session lifecycle -- caller controls commits.
        - Does NOT start the scheduler -- see AutomationScheduler.
    """

    def __init__(
        self,
        engine: WorkflowEngine,
        sweep_registry: SweepRegistry | None = None,
        run_guard: RunGuard | None = None,
    ) -> None:
        self._engine = engine
        self._registry = (
            sweep_registry if sweep_registry is not None else _default_sweep_registry()
        )
        self._executor = SweepExecutor(engine, self._registry)
        self._guard = run_guard or PROCESS_RUN_GUARD

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        config: WorkflowConfig | None = None,
        clock: Clock | None = None,
        event_sink: EventSink | None = None,
        sweep_registry: SweepRegistry | None = None,
        run_guard: RunGuard | None = None,
    ) -> AutomationOrchestrator:
        """
        Create a fully wired orchestrator over a SQLAlchemy session.

        Args:
            session: Session the store and the audit trail write through.
            config: Workflow configuration (defaults when None).
            clock: Optional clock for deterministic testing.
            event_sink: Optional sink; defaults to structured logging plus
                the persisted audit trail.
        """
        store = SqlAlchemyTaskStore(session, clock=clock)
        sink = event_sink or CompositeEventSink(
            [LoggingEventSink(), AuditTrailSink(session)]
        )
        engine = WorkflowEngine(store, config=config, clock=clock, event_sink=sink)
        return cls(engine, sweep_registry=sweep_registry, run_guard=run_guard)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def engine(self) -> WorkflowEngine:
        return self._engine

    @property
    def config(self) -> WorkflowConfig:
        return self._engine.config

    @property
    def sweep_registry(self) -> SweepRegistry:
        return self._registry

    @property
    def executor(self) -> SweepExecutor:
        return self._executor

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def run_sweep(
        self,
        sweep_type: str,
        dry_run: bool = False,
        parameters: dict | None = None,
    ) -> SweepResult:
        return self._executor.run_registered(sweep_type, dry_run, parameters)

    def run_auto_flow(
        self,
        timeout_hours: float | None = None,
        dry_run: bool = False,
    ) -> AutomationRunResult:
        """
        Timeout blocking, parent auto-completion, then child auto-start.

        ``timeout_hours`` defaults to ``automation.timeout_hours`` (72).
        """
        return self._run(AUTO_FLOW, AUTO_FLOW_SWEEPS, timeout_hours, dry_run)

    def run_workflow_schedule(
        self,
        schedule_type: str = "all",
        timeout_hours: float | None = None,
        dry_run: bool = False,
    ) -> AutomationRunResult:
        """
        Timeout detection, health audit and reminders, or one of them.

        Raises:
            UnknownScheduleTypeError: ``schedule_type`` is not one of
                all, timeout, health, reminder.
        """
        sweep_types = SCHEDULE_SWEEPS.get(schedule_type)
        if sweep_types is None:
            raise UnknownScheduleTypeError(schedule_type, SCHEDULE_TYPES)
        return self._run(WORKFLOW_SCHEDULE, sweep_types, timeout_hours, dry_run)

    def _run(
        self,
        command: str,
        sweep_types: tuple[str, ...],
        timeout_hours: float | None,
        dry_run: bool,
    ) -> AutomationRunResult:
        parameters = {}
        if timeout_hours is not None:
            parameters["timeout_hours"] = timeout_hours
        sweeps = [self._registry.get(t) for t in sweep_types]

        with self._guard.hold(command), LogContext.bind(run_id=uuid4()):
            logger.info(
                "automation_run_started",
                extra={
                    "command": command,
                    "sweeps": list(sweep_types),
                    "dry_run": dry_run,
                },
            )
            # One projection per command: later sweeps see earlier sweeps' changes
            projection = ProjectedTaskStore(self._engine.store) if dry_run else None
            results = tuple(
                self._executor.run(sweep, dry_run, parameters, projection)
                for sweep in sweeps
            )
            counts = {r.category: r.applied for r in results}
            result = AutomationRunResult(
                command=command,
                dry_run=dry_run,
                sweep_results=results,
                counts=counts,
            )
            logger.info(
                "automation_run_completed",
                extra={
                    "command": command,
                    "dry_run": dry_run,
                    "counts": counts,
                    "failed": result.failed,
                },
            )
        return result


OrchestratorFactory = Callable[[Session], AutomationOrchestrator]
