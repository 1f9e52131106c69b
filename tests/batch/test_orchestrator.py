"""
Tests for AutomationOrchestrator: command composition, counts, dry-run,
the run guard, and the session-backed wiring.
"""

from datetime import timedelta

import pytest

from taskflow_kernel.domain.status import TaskStatus, TaskType
from taskflow_kernel.domain.task import Task
from taskflow_kernel.domain.transition import WorkflowEventType
from taskflow_kernel.exceptions import (
    AutomationAlreadyRunningError,
    UnknownScheduleTypeError,
)
from taskflow_kernel.services.auditor_service import AuditTrailSink
from taskflow_kernel.services.task_store import SqlAlchemyTaskStore

from taskflow_batch.orchestrator import (
    AUTO_FLOW,
    SCHEDULE_TYPES,
    WORKFLOW_SCHEDULE,
    AutomationOrchestrator,
    RunGuard,
)


@pytest.fixture
def guard() -> RunGuard:
    return RunGuard()


@pytest.fixture
def orchestrator(engine, guard) -> AutomationOrchestrator:
    return AutomationOrchestrator(engine, run_guard=guard)


def _bug(make_task, title, **fields):
    return make_task(title, type=TaskType.BUG, **fields)


class TestAutoFlow:
    def test_runs_three_sweeps_in_order(self, orchestrator, store, make_task, make_family, clock):
        stalled = _bug(make_task, "stalled", status=TaskStatus.IN_PROGRESS)
        clock.advance(hours=73)
        main, _ = make_family("in_progress", ("completed", "completed"))

        result = orchestrator.run_auto_flow()

        assert result.command == AUTO_FLOW
        assert list(result.counts) == ["timeout_blocked", "parent_completed", "sub_started"]
        assert result.counts == {"timeout_blocked": 1, "parent_completed": 1, "sub_started": 0}
        assert result.failed == 0
        assert store.load(stalled.task_id).status is TaskStatus.BLOCKED
        assert store.load(main.task_id).status is TaskStatus.COMPLETED

    def test_timeout_override(self, orchestrator, make_task, clock):
        _bug(make_task, "stalled", status=TaskStatus.IN_PROGRESS)
        clock.advance(hours=5)
        assert orchestrator.run_auto_flow().counts["timeout_blocked"] == 0
        assert orchestrator.run_auto_flow(timeout_hours=4).counts["timeout_blocked"] == 1

    def test_dry_run_matches_live_counts(self, orchestrator, store, make_task, make_family, clock, recording_sink):
        stalled = _bug(make_task, "stalled", status=TaskStatus.IN_PROGRESS)
        clock.advance(hours=80)
        make_family("in_progress", ("cancelled",))

        dry = orchestrator.run_auto_flow(dry_run=True)
        assert dry.dry_run
        assert store.load(stalled.task_id).status is TaskStatus.IN_PROGRESS
        assert recording_sink.events == ()

        live = orchestrator.run_auto_flow()
        assert live.counts == dry.counts

    def test_dry_run_sees_earlier_sweeps(self, orchestrator, store, make_family, clock):
        main, _ = make_family("in_progress", ("completed", "cancelled"))
        clock.advance(hours=80)

        dry = orchestrator.run_auto_flow(dry_run=True)
        assert dry.counts == {"timeout_blocked": 1, "parent_completed": 0, "sub_started": 0}
        assert store.load(main.task_id).status is TaskStatus.IN_PROGRESS

        live = orchestrator.run_auto_flow()
        assert live.counts == dry.counts
        assert store.load(main.task_id).status is TaskStatus.BLOCKED

    def test_second_run_changes_nothing(self, orchestrator, make_task, clock):
        _bug(make_task, "stalled", status=TaskStatus.IN_PROGRESS)
        clock.advance(hours=73)
        orchestrator.run_auto_flow()
        assert set(orchestrator.run_auto_flow().counts.values()) == {0}

    def test_logs_run_with_run_id(self, orchestrator, captured_logs):
        orchestrator.run_auto_flow()
        records = captured_logs()
        started = next(r for r in records if r["message"] == "automation_run_started")
        completed = next(r for r in records if r["message"] == "automation_run_completed")
        assert started["run_id"] == completed["run_id"]
        assert started["sweeps"] == ["timeout", "parent_completion", "child_start"]


class TestWorkflowSchedule:
    def test_all(self, orchestrator, make_task, clock, recording_sink):
        _bug(make_task, "stale")
        _bug(make_task, "stalled", status=TaskStatus.IN_PROGRESS)
        _bug(make_task, "stuck", status=TaskStatus.BLOCKED)
        clock.advance(days=8)
        _bug(make_task, "due soon", due_date=clock.now() + timedelta(hours=5))

        result = orchestrator.run_workflow_schedule()

        assert result.command == WORKFLOW_SCHEDULE
        assert result.counts == {
            "timeout_blocked": 1,
            "unhealthy": 1,
            "stale_reminders": 1,
            "due_soon_reminders": 1,
        }
        assert len(recording_sink.of_type(WorkflowEventType.REMINDER_STALE)) == 1
        assert len(recording_sink.of_type(WorkflowEventType.HEALTH_ISSUE)) == 1

    def test_dry_run_matches_live(self, orchestrator, store, make_task, clock, recording_sink):
        _bug(make_task, "stale")
        stalled = _bug(make_task, "stalled", status=TaskStatus.IN_PROGRESS)
        _bug(make_task, "stuck", status=TaskStatus.BLOCKED)
        clock.advance(days=8)

        dry = orchestrator.run_workflow_schedule(dry_run=True)
        assert store.load(stalled.task_id).status is TaskStatus.IN_PROGRESS
        assert recording_sink.events == ()

        live = orchestrator.run_workflow_schedule()
        assert dry.counts == live.counts
        assert live.counts["timeout_blocked"] == 1
        assert live.counts["unhealthy"] == 1

    @pytest.mark.parametrize(
        "schedule_type, categories",
        [
            ("timeout", ["timeout_blocked"]),
            ("health", ["unhealthy"]),
            ("reminder", ["stale_reminders", "due_soon_reminders"]),
        ],
    )
    def test_single_part(self, orchestrator, schedule_type, categories):
        result = orchestrator.run_workflow_schedule(schedule_type)
        assert list(result.counts) == categories

    def test_unknown_type(self, orchestrator):
        with pytest.raises(UnknownScheduleTypeError) as exc_info:
            orchestrator.run_workflow_schedule("weekly")
        assert exc_info.value.allowed == SCHEDULE_TYPES


class TestRunGuard:
    def test_same_command_cannot_overlap(self, orchestrator, guard):
        with guard.hold(AUTO_FLOW):
            with pytest.raises(AutomationAlreadyRunningError):
                orchestrator.run_auto_flow()
            orchestrator.run_workflow_schedule("health")
        assert not guard.is_running(AUTO_FLOW)

    def test_released_after_failure(self, orchestrator, guard, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("sweep crashed")

        monkeypatch.setattr(orchestrator.executor, "run", explode)
        with pytest.raises(RuntimeError):
            orchestrator.run_auto_flow()
        assert not guard.is_running(AUTO_FLOW)


class TestFromSession:
    def test_wires_sql_store_and_audit_trail(self, session, clock):
        store = SqlAlchemyTaskStore(session, clock=clock)
        task = store.add(Task(title="stalled", type=TaskType.BUG, status=TaskStatus.IN_PROGRESS))
        clock.advance(hours=73)

        orchestrator = AutomationOrchestrator.from_session(
            session, clock=clock, run_guard=RunGuard()
        )
        result = orchestrator.run_sweep("timeout")

        assert result.applied == 1
        assert orchestrator.sweep_registry.list_sweeps() == (
            "child_start",
            "due_soon_reminder",
            "health",
            "parent_completion",
            "stale_reminder",
            "timeout",
        )
        trail = AuditTrailSink(session).history(task.task_id)
        assert [e.event_type for e in trail] == [
            WorkflowEventType.TRANSITION_ATTEMPTED,
            WorkflowEventType.TRANSITION_COMPLETED,
            WorkflowEventType.AUTOMATION_ACTION,
        ]
