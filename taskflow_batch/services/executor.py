"""
SweepExecutor -- runs one sweep over all of its candidates.

Contract:
    ``run()`` selects candidates, evaluates each one, and (unless dry-run)
    applies the action inside a per-item atomic store scope.  Returns a
    SweepResult with per-item outcomes and counts.

Architecture: taskflow_batch/services.  Imports from taskflow_batch.domain,
    taskflow_batch.sweeps, and kernel services.

Invariants enforced:
    - Per-item isolation: each apply runs in its own ``store.atomic()``
      scope; an exception rolls back that item only and the sweep goes on.
    - A failed live item is recorded as an AUTOMATION_FAILED event after
      its scope has rolled back, so the failure survives in the audit trail.
    - Dry-run never calls ``apply()`` and never publishes an event, yet
      reports as applied exactly the items a live run would act on.  The
      transitions it would make are staged in a ProjectedTaskStore that
      later sweeps of the same command read through.
    - All timestamps from the engine's injected Clock.
"""

from __future__ import annotations

import time
from typing import Any

from taskflow_kernel.domain.task import Task
from taskflow_kernel.domain.transition import WorkflowEvent, WorkflowEventType
from taskflow_kernel.logging_config import LogContext, get_logger
from taskflow_kernel.services.event_sink import publish_safely
from taskflow_kernel.services.task_store import ProjectedTaskStore
from taskflow_kernel.services.workflow_engine import WorkflowEngine

from taskflow_batch.domain.types import SweepItemResult, SweepItemStatus, SweepResult
from taskflow_batch.sweeps.base import Sweep, SweepDecision, SweepRegistry

logger = get_logger("batch.executor")


class SweepExecutor:
    """
    Sweep execution engine with per-item isolation.

    Contract:
        - ``run()`` executes a Sweep instance.
        - ``run_registered()`` looks the sweep up by type first.

    Non-goals:
        - Does NOT commit -- caller controls transaction boundaries.
        - Does NOT guard against overlapping runs -- the orchestrator does.
    """

    def __init__(self, engine: WorkflowEngine, sweep_registry: SweepRegistry | None = None):
        self._engine = engine
        self._registry = sweep_registry

    @property
    def engine(self) -> WorkflowEngine:
        return self._engine

    def run_registered(
        self,
        sweep_type: str,
        dry_run: bool = False,
        parameters: dict[str, Any] | None = None,
    ) -> SweepResult:
        """
        Raises:
            SweepNotRegisteredError: If sweep_type is not in the registry.
        """
        if self._registry is None:
            raise ValueError("SweepExecutor was built without a sweep registry")
        return self.run(self._registry.get(sweep_type), dry_run, parameters)

    def run(
        self,
        sweep: Sweep,
        dry_run: bool = False,
        parameters: dict[str, Any] | None = None,
        projection: ProjectedTaskStore | None = None,
    ) -> SweepResult:
        """
        Run ``sweep`` once over everything it selects.

        Failures while selecting candidates propagate; failures on a single
        item are recorded against that item.  A dry run stages every
        transition it would make in ``projection`` (a fresh one when none is
        given), so later items and later sweeps sharing that projection see
        the state a live run would have left behind.
        """
        params = dict(parameters or {})
        clock = self._engine.clock
        start_time = time.monotonic()
        started_at = clock.now()

        engine = self._engine
        if dry_run:
            if projection is None:
                projection = ProjectedTaskStore(self._engine.store)
            engine = WorkflowEngine(
                projection,
                rule_set=self._engine.rule_set,
                config=self._engine.config,
                clock=clock,
            )

        with LogContext.bind(sweep=sweep.sweep_type):
            candidates = sweep.select(engine, params, started_at)
            logger.info(
                "sweep_started",
                extra={
                    "sweep_type": sweep.sweep_type,
                    "candidates": len(candidates),
                    "dry_run": dry_run,
                },
            )

            item_results: list[SweepItemResult] = []
            applied = skipped = failed = 0

            for index, task in enumerate(candidates):
                item_start = time.monotonic()
                from_status = task.status
                decision: SweepDecision | None = None
                try:
                    decision = sweep.evaluate(task, engine, params, started_at)
                    if not decision.act:
                        status = SweepItemStatus.SKIPPED
                        reason = decision.reason
                    elif dry_run:
                        status, reason = self._project(engine, projection, task, decision)
                    else:
                        with engine.store.atomic():
                            done = sweep.apply(task, decision, engine, params, started_at)
                        if done:
                            status = SweepItemStatus.APPLIED
                            reason = decision.reason
                            publish_safely(
                                engine.event_sink,
                                WorkflowEvent(
                                    event_type=sweep.event_type,
                                    task_id=task.task_id,
                                    timestamp=clock.now(),
                                    from_status=from_status,
                                    to_status=decision.to_status,
                                    context={"sweep": sweep.sweep_type, **decision.context},
                                    details=dict(decision.details),
                                ),
                            )
                        else:
                            status = SweepItemStatus.SKIPPED
                            reason = "rejected at apply time"
                    item_result = SweepItemResult(
                        item_index=index,
                        task_id=task.task_id,
                        status=status,
                        reason=reason,
                        details=dict(decision.details),
                        duration_ms=int((time.monotonic() - item_start) * 1000),
                    )
                except Exception as exc:
                    error_code = getattr(exc, "code", "UNHANDLED_EXCEPTION")
                    logger.warning(
                        "sweep_item_failed",
                        extra={
                            "sweep_type": sweep.sweep_type,
                            "sweep_task_id": str(task.task_id),
                            "error_code": error_code,
                            "error": str(exc),
                        },
                        exc_info=not hasattr(exc, "code"),
                    )
                    if not dry_run:
                        # The item's scope has rolled back, events recorded inside it included
                        publish_safely(
                            engine.event_sink,
                            WorkflowEvent(
                                event_type=WorkflowEventType.AUTOMATION_FAILED,
                                task_id=task.task_id,
                                timestamp=clock.now(),
                                from_status=from_status,
                                to_status=decision.to_status if decision else None,
                                context={
                                    "sweep": sweep.sweep_type,
                                    **(decision.context if decision else {}),
                                },
                                details={"error_code": error_code, "error": str(exc)},
                            ),
                        )
                    item_result = SweepItemResult(
                        item_index=index,
                        task_id=task.task_id,
                        status=SweepItemStatus.FAILED,
                        error_code=error_code,
                        error_message=str(exc),
                        duration_ms=int((time.monotonic() - item_start) * 1000),
                    )

                if item_result.status == SweepItemStatus.APPLIED:
                    applied += 1
                elif item_result.status == SweepItemStatus.SKIPPED:
                    skipped += 1
                else:
                    failed += 1
                item_results.append(item_result)

            completed_at = clock.now()
            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.info(
                "sweep_completed",
                extra={
                    "sweep_type": sweep.sweep_type,
                    "examined": len(candidates),
                    "applied": applied,
                    "skipped": skipped,
                    "failed": failed,
                    "dry_run": dry_run,
                    "duration_ms": duration_ms,
                },
            )

        return SweepResult(
            sweep_type=sweep.sweep_type,
            category=sweep.category,
            examined=len(candidates),
            applied=applied,
            skipped=skipped,
            failed=failed,
            dry_run=dry_run,
            item_results=tuple(item_results),
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
        )

    @staticmethod
    def _project(
        engine: WorkflowEngine,
        projection: ProjectedTaskStore,
        task: Task,
        decision: SweepDecision,
    ) -> tuple[SweepItemStatus, str]:
        if decision.to_status is None:
            return SweepItemStatus.APPLIED, "dry run"
        projected = engine.preview_transition(task, decision.to_status, decision.context)
        if projected is None:
            return SweepItemStatus.SKIPPED, "rejected at apply time"
        projection.stage(projected)
        return SweepItemStatus.APPLIED, "dry run"
