"""
WorkflowEngine -- rule-gated status transitions.

Responsibility:
    Evaluates the rule set for a requested transition, performs the single
    authoritative status mutation when every applicable rule agrees, runs
    the rule hooks around it, and exposes the introspection and bulk entry
    points built on the same path (available transitions, validation,
    parent auto-completion, child auto-start, batch transition, health).

Architecture position:
    Kernel > Services -- imperative shell.  Depends on the TaskStore
    protocol, the RuleSet, an injected Clock and an optional EventSink.
    Never commits; the caller (or the store's session owner) does.

Invariants enforced:
    - ``task.status`` is only ever assigned in ``_apply_status``; a
      transition does it on the task, a preview on a copy.
    - A rejected transition performs no mutation and runs no hooks.
    - Status change and hook side effects reach the store in a single
      save inside one atomic scope; a raising rule rolls the whole
      attempt back, including the in-memory task.
    - Transitions on the same task id are serialized by TaskLockManager.
    - Parent auto-completion runs at most once per qualifying sub-task
      completion, as a separate transition outside the sub-task's lock.

Failure modes:
    - UnknownStatusError: target or current status is not a TaskStatus.
    - RuleExecutionError: a rule raised instead of returning a result.
    - TaskNotFoundError / OptimisticLockError from the store.
    - TaskLockTimeoutError when another attempt holds the task too long.

Audit relevance:
    Every attempt emits TRANSITION_ATTEMPTED followed by exactly one of
    TRANSITION_COMPLETED, TRANSITION_REJECTED or TRANSITION_FAILED.
"""

from __future__ import annotations

import copy
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from taskflow_config.schema import WorkflowConfig
from taskflow_kernel.domain.clock import Clock, SystemClock
from taskflow_kernel.domain.health import HealthReport, evaluate_health
from taskflow_kernel.domain.status import TaskStatus, parse_status
from taskflow_kernel.domain.task import Task
from taskflow_kernel.domain.transition import (
    PARENT_AUTO_COMPLETE_ELIGIBLE,
    AutoCompleteResult,
    BatchTransitionItem,
    RuleViolation,
    TransitionContext,
    ValidationResult,
    WorkflowEvent,
    WorkflowEventType,
)
from taskflow_kernel.exceptions import RuleExecutionError, TaskflowError
from taskflow_kernel.logging_config import LogContext, get_logger
from taskflow_kernel.rules.base import WorkflowRule, describe_rule
from taskflow_kernel.rules.registry import RuleSet, default_rule_set
from taskflow_kernel.rules.sub_task_completion import count_incomplete_sub_tasks
from taskflow_kernel.services.event_sink import (
    EventSink,
    publish_safely,
    sink_is_thread_safe,
)
from taskflow_kernel.services.locks import TaskLockManager
from taskflow_kernel.services.task_store import TaskStore

logger = get_logger("services.workflow_engine")


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of attempt_transition: success plus the rejecting rules, if any."""

    success: bool
    violations: tuple[RuleViolation, ...] = ()
    parent_follow_up: bool = False


class WorkflowEngine:
    """
    The task workflow state machine.

    Contract:
        Callers hand in a Task (usually freshly loaded from the same store)
        and a target status.  ``transition`` mutates and saves that Task on
        success; every other query method is side-effect free.
    """

    def __init__(
        self,
        store: TaskStore,
        rule_set: RuleSet | None = None,
        config: WorkflowConfig | None = None,
        clock: Clock | None = None,
        event_sink: EventSink | None = None,
        lock_manager: TaskLockManager | None = None,
    ):
        self._store = store
        self._config = config or WorkflowConfig()
        self._rules = rule_set or default_rule_set(self._config.transition_matrix)
        self._clock = clock or SystemClock()
        self._sink = event_sink
        self._locks = lock_manager or TaskLockManager(
            self._config.engine.lock_timeout_seconds
        )

    @property
    def store(self) -> TaskStore:
        return self._store

    @property
    def rule_set(self) -> RuleSet:
        return self._rules

    @property
    def config(self) -> WorkflowConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def event_sink(self) -> EventSink | None:
        return self._sink

    # =========================================================================
    # Evaluation
    # =========================================================================

    def _context(self, task: Task, data: Mapping[str, Any] | None) -> TransitionContext:
        return TransitionContext(
            task,
            data,
            now=self._clock.now(),
            config=self._config.automation,
            parent_loader=self._store.parent,
            children_loader=self._store.children,
        )

    def _evaluate(
        self,
        task: Task,
        to_status: TaskStatus,
        context: TransitionContext,
        *,
        fail_fast: bool,
    ) -> tuple[tuple[WorkflowRule, ...], tuple[RuleViolation, ...]]:
        from_status = parse_status(task.status)
        applicable = self._rules.applicable(task, from_status, to_status, context)
        violations: list[RuleViolation] = []
        for rule in applicable:
            try:
                valid = rule.validate(task, from_status, to_status, context)
            except Exception as exc:
                raise RuleExecutionError(rule.name, "validate", str(task.task_id), exc) from exc
            if not valid:
                message = rule.error_message or f"Rejected by rule {rule.name}"
                violations.append(RuleViolation(rule=rule.name, message=message))
                if fail_fast:
                    break
        return applicable, tuple(violations)

    def can_transition(
        self,
        task: Task,
        to_status: TaskStatus | str,
        context: Mapping[str, Any] | None = None,
    ) -> bool:
        """Dry-run of the rule chain (fail-fast); never mutates."""
        to_status = parse_status(to_status)
        _, violations = self._evaluate(
            task, to_status, self._context(task, context), fail_fast=True
        )
        return not violations

    def validate_transition(
        self,
        task: Task,
        to_status: TaskStatus | str,
        context: Mapping[str, Any] | None = None,
    ) -> ValidationResult:
        """Run every applicable rule and report all reasons for rejection."""
        to_status = parse_status(to_status)
        applicable, violations = self._evaluate(
            task, to_status, self._context(task, context), fail_fast=False
        )
        return ValidationResult(
            task_id=task.task_id,
            from_status=task.status,
            to_status=to_status,
            violations=violations,
            applicable_rules=tuple(describe_rule(r) for r in applicable),
        )

    def get_transition_errors(
        self,
        task: Task,
        to_status: TaskStatus | str,
        context: Mapping[str, Any] | None = None,
    ) -> dict[str, str]:
        """Rule name -> message for every rule that rejects the transition."""
        result = self.validate_transition(task, to_status, context)
        return {v.rule: v.message for v in result.violations}

    def get_available_transitions(self, task: Task) -> tuple[TaskStatus, ...]:
        """Every status ``task`` could move to right now, in enum order."""
        context = self._context(task, None)
        available = []
        for status in TaskStatus:
            _, violations = self._evaluate(task, status, context, fail_fast=True)
            if not violations:
                available.append(status)
        return tuple(available)

    # =========================================================================
    # Transition
    # =========================================================================

    def transition(
        self,
        task: Task,
        to_status: TaskStatus | str,
        context: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Move ``task`` to ``to_status`` if every applicable rule agrees.

        Returns:
            True on success, False when a rule rejected the move.

        Raises:
            RuleExecutionError: A rule raised; the attempt was rolled back.
        """
        return self.attempt_transition(task, to_status, context).success

    def attempt_transition(
        self,
        task: Task,
        to_status: TaskStatus | str,
        context: Mapping[str, Any] | None = None,
    ) -> TransitionOutcome:
        """Like transition(), but also reports why a rejected attempt failed."""
        to_status = parse_status(to_status)
        with LogContext.bind(task_id=task.task_id):
            with self._locks.hold(task.task_id):
                outcome = self._transition_locked(task, to_status, context)
        if outcome.parent_follow_up:
            self.auto_complete_parent_task(task)
        return outcome

    def _transition_locked(
        self,
        task: Task,
        to_status: TaskStatus,
        data: Mapping[str, Any] | None,
    ) -> TransitionOutcome:
        from_status = parse_status(task.status)
        context = self._context(task, data)
        self._emit(WorkflowEventType.TRANSITION_ATTEMPTED, task, from_status, to_status, context)

        try:
            applicable, violations = self._evaluate(task, to_status, context, fail_fast=True)
        except RuleExecutionError as exc:
            self._record_failure(task, from_status, to_status, context, exc)
            raise

        if violations:
            logger.info(
                "transition_rejected",
                extra={
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                    "rule": violations[0].rule,
                    "reason": violations[0].message,
                },
            )
            self._emit(
                WorkflowEventType.TRANSITION_REJECTED,
                task,
                from_status,
                to_status,
                context,
                details={"errors": [v.message for v in violations]},
            )
            return TransitionOutcome(success=False, violations=violations)

        snapshot = task.snapshot()
        try:
            with self._store.atomic():
                self._run_hooks("before_transition", applicable, task, from_status, to_status, context)

                self._apply_status(task, from_status, to_status, applicable, context)
                self._store.save(task)
        except Exception as exc:
            task.restore(snapshot)
            self._record_failure(task, from_status, to_status, context, exc)
            raise

        logger.info(
            "transition_completed",
            extra={
                "from_status": from_status.value,
                "to_status": to_status.value,
                "rules_applied": [r.name for r in applicable],
            },
        )
        self._emit(
            WorkflowEventType.TRANSITION_COMPLETED,
            task,
            from_status,
            to_status,
            context,
            details={"flags": dict(context.flags)} if context.flags else None,
        )
        return TransitionOutcome(
            success=True,
            parent_follow_up=bool(context.flags.get(PARENT_AUTO_COMPLETE_ELIGIBLE)),
        )

    def _apply_status(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        rules: Iterable[WorkflowRule],
        context: TransitionContext,
    ) -> None:
        # Single status mutation point
        task.status = to_status
        task.updated_at = context.now
        self._run_hooks("after_transition", rules, task, from_status, to_status, context)

    def preview_transition(
        self,
        task: Task,
        to_status: TaskStatus | str,
        context: Mapping[str, Any] | None = None,
    ) -> Task | None:
        """
        A copy of ``task`` as a successful transition would leave it.

        Returns None when a rule rejects the move.  Nothing is saved, no
        event is published and no parent follow-up runs; ``task`` itself is
        never touched.

        Raises:
            RuleExecutionError: A rule raised while evaluating or applying.
        """
        to_status = parse_status(to_status)
        projected = copy.deepcopy(task)
        from_status = parse_status(projected.status)
        ctx = self._context(projected, context)
        applicable, violations = self._evaluate(projected, to_status, ctx, fail_fast=True)
        if violations:
            return None
        self._apply_status(projected, from_status, to_status, applicable, ctx)
        return projected

    def _run_hooks(
        self,
        phase: str,
        rules: Iterable[WorkflowRule],
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
    ) -> None:
        for rule in rules:
            hook = getattr(rule, phase)
            try:
                hook(task, from_status, to_status, context)
            except Exception as exc:
                raise RuleExecutionError(rule.name, phase, str(task.task_id), exc) from exc

    def _record_failure(
        self,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
        exc: Exception,
    ) -> None:
        logger.error(
            "transition_failed",
            extra={"from_status": from_status.value, "to_status": to_status.value},
            exc_info=exc,
        )
        self._emit(
            WorkflowEventType.TRANSITION_FAILED,
            task,
            from_status,
            to_status,
            context,
            details={
                "error": str(exc),
                "error_code": getattr(exc, "code", type(exc).__name__),
            },
        )

    def _emit(
        self,
        event_type: WorkflowEventType,
        task: Task,
        from_status: TaskStatus,
        to_status: TaskStatus,
        context: TransitionContext,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        publish_safely(
            self._sink,
            WorkflowEvent(
                event_type=event_type,
                task_id=task.task_id,
                timestamp=context.now,
                from_status=from_status,
                to_status=to_status,
                context=dict(context.data),
                details=dict(details or {}),
            ),
        )

    # =========================================================================
    # Hierarchy automation
    # =========================================================================

    def auto_complete_parent_task(self, sub_task: Task) -> AutoCompleteResult:
        """
        Complete ``sub_task``'s parent if all of the parent's sub-tasks are done.

        The parent is re-read under its own lock, so two sub-tasks finishing
        at once complete the parent exactly once.
        """
        if not sub_task.is_sub_task or sub_task.parent_task_id is None:
            return AutoCompleteResult(attempted=False, completed=False)
        parent_id = sub_task.parent_task_id
        if not self._config.automation.auto_complete_parent_task:
            return AutoCompleteResult(attempted=False, completed=False, parent_task_id=parent_id)

        with self._locks.hold(parent_id):
            parent = self._store.load(parent_id)
            if parent.is_terminal:
                return AutoCompleteResult(
                    attempted=False, completed=False, parent_task_id=parent_id
                )
            if count_incomplete_sub_tasks(self._store.children(parent_id)) > 0:
                return AutoCompleteResult(
                    attempted=False, completed=False, parent_task_id=parent_id
                )

            try:
                outcome = self.attempt_transition(
                    parent,
                    TaskStatus.COMPLETED,
                    {
                        "auto_completed": True,
                        "triggered_by_sub_task": str(sub_task.task_id),
                    },
                )
            except TaskflowError as exc:
                logger.warning(
                    "parent_auto_complete_failed",
                    extra={
                        "parent_task_id": str(parent_id),
                        "sub_task_id": str(sub_task.task_id),
                        "error": str(exc),
                    },
                )
                return AutoCompleteResult(
                    attempted=True,
                    completed=False,
                    parent_task_id=parent_id,
                    errors=(str(exc),),
                )

        logger.info(
            "parent_auto_complete_attempted",
            extra={
                "parent_task_id": str(parent_id),
                "sub_task_id": str(sub_task.task_id),
                "completed": outcome.success,
            },
        )
        return AutoCompleteResult(
            attempted=True,
            completed=outcome.success,
            parent_task_id=parent_id,
            errors=tuple(v.message for v in outcome.violations),
        )

    def auto_start_sub_tasks(self, parent: Task) -> tuple[BatchTransitionItem, ...]:
        """Start every PENDING sub-task of an IN_PROGRESS parent (opt-in)."""
        if not self._config.automation.auto_start_sub_tasks:
            return ()
        if parent.status != TaskStatus.IN_PROGRESS:
            return ()
        pending = [
            child
            for child in self._store.children(parent.task_id)
            if child.status == TaskStatus.PENDING
        ]
        if not pending:
            return ()
        return self.batch_transition(
            pending,
            TaskStatus.IN_PROGRESS,
            {"auto_started": True, "triggered_by_parent_task": str(parent.task_id)},
        )

    # =========================================================================
    # Bulk
    # =========================================================================

    def batch_transition(
        self,
        tasks: Iterable[Task],
        to_status: TaskStatus | str,
        context: Mapping[str, Any] | None = None,
        max_workers: int | None = None,
    ) -> tuple[BatchTransitionItem, ...]:
        """
        Transition each task independently; results come back in input order.

        One task's rejection or error never affects the others.  Runs on a
        bounded thread pool when the store and sink are thread-safe.
        """
        to_status = parse_status(to_status)
        items = list(tasks)
        workers = max_workers or self._config.engine.batch_max_workers
        parallel = (
            workers > 1
            and len(items) > 1
            and self._store.thread_safe
            and sink_is_thread_safe(self._sink)
        )

        def run_one(task: Task) -> BatchTransitionItem:
            try:
                outcome = self.attempt_transition(task, to_status, context)
            except TaskflowError as exc:
                return BatchTransitionItem(
                    task_id=task.task_id, success=False, error=str(exc), errors=(str(exc),)
                )
            except Exception as exc:
                logger.exception(
                    "batch_item_failed", extra={"batch_task_id": str(task.task_id)}
                )
                message = f"{type(exc).__name__}: {exc}"
                return BatchTransitionItem(
                    task_id=task.task_id, success=False, error=message, errors=(message,)
                )
            if outcome.success:
                return BatchTransitionItem(task_id=task.task_id, success=True)
            errors = tuple(v.message for v in outcome.violations)
            return BatchTransitionItem(
                task_id=task.task_id,
                success=False,
                error=errors[0] if errors else "Transition rejected",
                errors=errors,
            )

        if parallel:
            with ThreadPoolExecutor(
                max_workers=min(workers, len(items)),
                thread_name_prefix="taskflow-batch",
            ) as pool:
                results = tuple(pool.map(run_one, items))
        else:
            results = tuple(run_one(task) for task in items)

        succeeded = sum(1 for r in results if r.success)
        logger.info(
            "batch_transition_completed",
            extra={
                "to_status": to_status.value,
                "total": len(results),
                "succeeded": succeeded,
                "failed": len(results) - succeeded,
                "parallel": parallel,
            },
        )
        return results

    def update_progress(self, task: Task, progress: object) -> Task:
        """
        Clamp ``progress`` into 0..100, stamp ``updated_at`` and save.

        Progress is bookkeeping, not a transition: no rules run and the
        status never changes.
        """
        with LogContext.bind(task_id=task.task_id):
            with self._locks.hold(task.task_id):
                previous = task.progress
                snapshot = task.snapshot()
                task.set_progress(progress)
                task.updated_at = self._clock.now()
                try:
                    with self._store.atomic():
                        self._store.save(task)
                except Exception:
                    task.restore(snapshot)
                    raise
        logger.info(
            "progress_updated",
            extra={"previous_progress": previous, "progress": task.progress},
        )
        return task

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def check_workflow_health(self, task: Task) -> HealthReport:
        """Heuristic health report; never mutates."""
        parent = self._store.parent(task) if task.has_parent else None
        children = self._store.children(task.task_id)
        return evaluate_health(
            task,
            parent=parent,
            children=children,
            now=self._clock.now(),
            config=self._config.health,
        )
