"""
Tests for the built-in automation sweeps, run through SweepExecutor
against both task stores.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from taskflow_kernel.domain.status import TaskStatus, TaskType
from taskflow_kernel.domain.transition import WorkflowEventType

from taskflow_batch.domain.types import SweepItemStatus
from taskflow_batch.services.executor import SweepExecutor
from taskflow_batch.sweeps import (
    ChildStartSweep,
    DueSoonReminderSweep,
    HealthSweep,
    ParentCompletionSweep,
    StaleReminderSweep,
    TimeoutSweep,
)


@pytest.fixture
def executor(engine) -> SweepExecutor:
    return SweepExecutor(engine)


def _bug(make_task, title="Bug", **fields):
    return make_task(title, type=TaskType.BUG, **fields)


class TestTimeoutSweep:
    def test_blocks_stalled_tasks_only(self, executor, store, make_task, clock, recording_sink):
        stalled = _bug(make_task, "stalled", status=TaskStatus.IN_PROGRESS)
        with_deadline = _bug(
            make_task,
            "deadline",
            status=TaskStatus.IN_PROGRESS,
            due_date=clock.now() + timedelta(days=30),
        )
        waiting = _bug(make_task, "pending")
        clock.advance(hours=73)
        fresh = _bug(make_task, "fresh", status=TaskStatus.IN_PROGRESS)

        result = executor.run(TimeoutSweep())

        assert (result.examined, result.applied, result.skipped, result.failed) == (1, 1, 0, 0)
        assert result.category == "timeout_blocked"
        blocked = store.load(stalled.task_id)
        assert blocked.status is TaskStatus.BLOCKED
        assert blocked.blocked_reason == "timeout"
        assert blocked.workflow_metadata["auto_blocked"] is True
        for untouched in (with_deadline, waiting, fresh):
            assert store.load(untouched.task_id).status is untouched.status

        (item,) = result.item_results
        assert item.details == {"timeout_hours": 72.0, "idle_hours": 73.0}
        (event,) = recording_sink.of_type(WorkflowEventType.AUTOMATION_ACTION)
        assert event.task_id == stalled.task_id
        assert event.from_status is TaskStatus.IN_PROGRESS
        assert event.to_status is TaskStatus.BLOCKED
        assert event.context["sweep"] == "timeout"
        assert event.context["reason"] == "timeout"

    def test_second_run_is_a_noop(self, executor, make_task, clock):
        _bug(make_task, status=TaskStatus.IN_PROGRESS)
        clock.advance(hours=100)
        assert executor.run(TimeoutSweep()).applied == 1
        second = executor.run(TimeoutSweep())
        assert (second.examined, second.applied) == (0, 0)

    def test_timeout_parameter_overrides_config(self, executor, make_task, clock):
        _bug(make_task, status=TaskStatus.IN_PROGRESS)
        clock.advance(hours=2)
        assert executor.run(TimeoutSweep()).examined == 0
        result = executor.run(TimeoutSweep(), parameters={"timeout_hours": 1})
        assert result.applied == 1
        assert result.item_results[0].details["timeout_hours"] == 1.0

    def test_zero_timeout_selects_every_idle_task(self, executor, make_task, clock):
        _bug(make_task, status=TaskStatus.IN_PROGRESS)
        clock.advance(1)
        assert executor.run(TimeoutSweep(), parameters={"timeout_hours": 0}).applied == 1

    def test_negative_timeout_rejected(self, executor):
        with pytest.raises(ValueError, match="non-negative"):
            executor.run(TimeoutSweep(), parameters={"timeout_hours": -1})

    def test_dry_run_reports_without_acting(self, executor, store, make_task, clock, recording_sink):
        task = _bug(make_task, status=TaskStatus.IN_PROGRESS)
        clock.advance(hours=73)
        dry = executor.run(TimeoutSweep(), dry_run=True)

        assert dry.dry_run
        assert (dry.examined, dry.applied) == (1, 1)
        assert dry.item_results[0].reason == "dry run"
        stored = store.load(task.task_id)
        assert stored.status is TaskStatus.IN_PROGRESS
        assert stored.version == task.version
        assert recording_sink.events == ()

        live = executor.run(TimeoutSweep())
        assert (live.examined, live.applied) == (dry.examined, dry.applied)


class TestParentCompletionSweep:
    def test_completes_parent_with_finished_children(self, executor, store, make_family, recording_sink):
        main, _ = make_family("in_progress", ("completed", "cancelled"))
        result = executor.run(ParentCompletionSweep())
        assert result.applied == 1
        completed = store.load(main.task_id)
        assert completed.status is TaskStatus.COMPLETED
        assert completed.workflow_metadata["auto_completed"] is True
        assert result.item_results[0].details == {"sub_task_count": 2}
        (event,) = recording_sink.of_type(WorkflowEventType.AUTOMATION_ACTION)
        assert event.context["sweep"] == "parent_completion"

    def test_skips_parent_with_open_children(self, executor, store, make_family):
        main, _ = make_family("in_progress", ("completed", "pending"))
        result = executor.run(ParentCompletionSweep())
        (item,) = result.item_results
        assert item.status is SweepItemStatus.SKIPPED
        assert item.reason == "Cannot complete main task: 1 incomplete sub-task(s) remaining"
        assert item.details == {"incomplete": 1}
        assert store.load(main.task_id).status is TaskStatus.IN_PROGRESS

    def test_pending_parent_rejected_by_matrix(self, executor, make_family):
        make_family("pending", ("completed",))
        (item,) = executor.run(ParentCompletionSweep()).item_results
        assert item.status is SweepItemStatus.SKIPPED
        assert item.reason == "Cannot transition from Pending to Completed"

    def test_childless_main_not_selected(self, executor, make_task):
        make_task("lonely", status=TaskStatus.IN_PROGRESS)
        assert executor.run(ParentCompletionSweep()).examined == 0


class TestChildStartSweep:
    def test_disabled_by_default(self, executor, make_family):
        make_family("in_progress", ("pending",))
        assert executor.run(ChildStartSweep()).examined == 0

    def test_starts_pending_children_of_active_parents(self, make_engine, store, make_family):
        executor = SweepExecutor(make_engine(auto_start_sub_tasks=True))
        _, active_children = make_family("in_progress", ("pending", "pending", "completed"))
        _, paused_children = make_family("on_hold", ("pending",))

        result = executor.run(ChildStartSweep())

        assert (result.examined, result.applied) == (2, 2)
        for child in active_children[:2]:
            started = store.load(child.task_id)
            assert started.status is TaskStatus.IN_PROGRESS
            assert started.workflow_metadata["auto_started"] is True
        assert store.load(paused_children[0].task_id).status is TaskStatus.PENDING


class TestHealthSweep:
    def test_reports_unhealthy_non_terminal_tasks(self, executor, store, make_task, recording_sink):
        blocked = _bug(make_task, "blocked", status=TaskStatus.BLOCKED)
        _bug(make_task, "fine")
        _bug(make_task, "done", status=TaskStatus.COMPLETED)

        result = executor.run(HealthSweep())

        assert (result.examined, result.applied, result.skipped) == (2, 1, 1)
        (event,) = recording_sink.of_type(WorkflowEventType.HEALTH_ISSUE)
        assert event.task_id == blocked.task_id
        assert event.to_status is None
        assert event.details["issues"] == ["Task is blocked without a recorded reason"]
        assert len(event.details["recommendations"]) == 1
        assert store.load(blocked.task_id).version == blocked.version


class TestReminderSweeps:
    def test_stale_pending_tasks(self, executor, make_task, clock, recording_sink):
        owner = uuid4()
        stale = _bug(make_task, "stale", assigned_user_id=owner, agent_id="agent-7")
        _bug(make_task, "stale but started", status=TaskStatus.IN_PROGRESS)
        clock.advance(days=8)
        _bug(make_task, "new")

        result = executor.run(StaleReminderSweep())

        assert result.applied == 1
        (event,) = recording_sink.of_type(WorkflowEventType.REMINDER_STALE)
        assert event.task_id == stale.task_id
        assert event.details == {
            "reminder_days": 7.0,
            "days_stale": 8,
            "assigned_user_id": str(owner),
            "agent_id": "agent-7",
        }

    def test_due_soon_window(self, executor, make_task, clock, recording_sink):
        now = clock.now()
        soon = _bug(make_task, "soon", due_date=now + timedelta(hours=12))
        _bug(make_task, "edge", status=TaskStatus.IN_PROGRESS, due_date=now + timedelta(hours=24))
        _bug(make_task, "later", due_date=now + timedelta(hours=48))
        _bug(make_task, "overdue", due_date=now - timedelta(hours=1))
        _bug(make_task, "blocked", status=TaskStatus.BLOCKED, due_date=now + timedelta(hours=1))

        result = executor.run(DueSoonReminderSweep())

        assert (result.examined, result.applied) == (2, 2)
        events = recording_sink.of_type(WorkflowEventType.REMINDER_DUE_SOON)
        by_task = {e.task_id: e for e in events}
        assert by_task[soon.task_id].details["hours_until_due"] == 12.0
        assert by_task[soon.task_id].details["assigned_user_id"] is None
