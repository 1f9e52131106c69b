"""
AutomationScheduler -- In-process polling scheduler for the two commands.

Contract:
    Polls on ``scheduler.poll_interval_seconds`` and fires ``auto-flow``
    and ``workflow-schedule`` whenever their configured interval has
    elapsed since the last run.  Each firing gets a fresh session from the
    session factory, committed on success and rolled back on failure.

Architecture: taskflow_batch/services.  Drives AutomationOrchestrator
    built per session by an orchestrator factory.

Invariants enforced:
    - All timestamps from the injected Clock.
    - Graceful shutdown: the stop signal is honoured between commands.
    - A failing command never kills the loop.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from taskflow_config.schema import SchedulerConfig, WorkflowConfig
from taskflow_kernel.domain.clock import Clock, SystemClock
from taskflow_kernel.logging_config import get_logger

from taskflow_batch.orchestrator import (
    AUTO_FLOW,
    WORKFLOW_SCHEDULE,
    AutomationOrchestrator,
)

logger = get_logger("batch.scheduler")


class AutomationScheduler:
    """
    In-process polling scheduler for the automation commands.

    Contract:
        - ``tick()`` fires every command whose interval has elapsed.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election); overlapping
          processes rely on the sweeps being idempotent.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        orchestrator_factory: Callable[[Session], AutomationOrchestrator],
        config: WorkflowConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._orchestrator_factory = orchestrator_factory
        self._config = config or WorkflowConfig()
        self._clock = clock or SystemClock()
        self._last_run: dict[str, datetime] = {}
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def scheduler_config(self) -> SchedulerConfig:
        return self._config.scheduler

    def _interval(self, command: str) -> timedelta:
        if command == AUTO_FLOW:
            seconds = self.scheduler_config.auto_flow_interval_seconds
        else:
            seconds = self.scheduler_config.workflow_schedule_interval_seconds
        return timedelta(seconds=seconds)

    def is_due(self, command: str, now: datetime) -> bool:
        last = self._last_run.get(command)
        return last is None or now - last >= self._interval(command)

    def last_run(self, command: str) -> datetime | None:
        return self._last_run.get(command)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> tuple[str, ...]:
        """
        Fire every due command (public for testing).

        Returns the commands that ran successfully.
        """
        now = self._clock.now()
        fired: list[str] = []
        for command in (AUTO_FLOW, WORKFLOW_SCHEDULE):
            if self._stop_event.is_set():
                break
            if not self.is_due(command, now):
                continue
            # A failed run still waits a full interval before retrying.
            self._last_run[command] = now
            if self._fire(command):
                fired.append(command)
        return tuple(fired)

    def _fire(self, command: str) -> bool:
        session = self._session_factory()
        try:
            orchestrator = self._orchestrator_factory(session)
            if command == AUTO_FLOW:
                result = orchestrator.run_auto_flow()
            else:
                result = orchestrator.run_workflow_schedule()
            session.commit()
        except Exception:
            session.rollback()
            logger.exception("scheduled_command_failed", extra={"command": command})
            return False
        finally:
            session.close()
        logger.info(
            "scheduled_command_fired",
            extra={"command": command, "counts": result.counts, "failed": result.failed},
        )
        return True

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="taskflow-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={"poll_interval": self.scheduler_config.poll_interval_seconds},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """
        Signal stop and wait for the scheduler to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background polling loop. Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self.scheduler_config.poll_interval_seconds)
