"""
Tests for the Task entity, TaskQuery and the deterministic clock.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from taskflow_kernel.domain.clock import DeterministicClock, SystemClock
from taskflow_kernel.domain.status import TaskStatus, TaskType
from taskflow_kernel.domain.task import Task, TaskQuery, clamp_progress
from taskflow_kernel.exceptions import InvalidProgressError, UnknownStatusError

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestTaskConstruction:
    def test_defaults(self):
        task = Task(title="Write docs")
        assert task.status is TaskStatus.PENDING
        assert task.type is TaskType.MAIN
        assert task.progress == 0
        assert task.metadata == {}
        assert task.version == 0

    def test_raw_values_coerced_to_enums(self):
        task = Task(title="t", type="sub", status="ON_HOLD", priority="high")
        assert task.type is TaskType.SUB
        assert task.status is TaskStatus.ON_HOLD
        assert task.priority.weight == 3

    def test_unknown_status_rejected(self):
        with pytest.raises(UnknownStatusError):
            Task(title="t", status="archived")

    @pytest.mark.parametrize("progress", [-1, 101, 50.0, True, "10"])
    def test_invalid_progress_rejected(self, progress):
        with pytest.raises(InvalidProgressError):
            Task(title="t", progress=progress)

    def test_tags_become_tuple(self):
        assert Task(title="t", tags=["a", "b"]).tags == ("a", "b")


class TestTaskPredicates:
    def test_hierarchy(self):
        parent_id = uuid4()
        sub = Task(title="s", type=TaskType.SUB, parent_task_id=parent_id)
        assert sub.is_sub_task and sub.has_parent and not sub.is_main_task

    def test_overdue(self):
        task = Task(title="t", due_date=NOW - timedelta(minutes=1))
        assert task.is_overdue(NOW)
        task.status = TaskStatus.COMPLETED
        assert not task.is_overdue(NOW)
        assert not Task(title="t").is_overdue(NOW)


class TestProgress:
    @pytest.mark.parametrize(
        "raw, expected",
        [(50, 50), (-5, 0), (250, 100), (75.0, 75), ("42", 42), (" 7 ", 7)],
    )
    def test_clamp(self, raw, expected):
        assert clamp_progress(raw) == expected

    @pytest.mark.parametrize("raw", [True, 12.5, "half", None])
    def test_clamp_rejects(self, raw):
        with pytest.raises(InvalidProgressError):
            clamp_progress(raw)

    def test_set_progress_clamps(self):
        task = Task(title="t")
        assert task.set_progress(140) == 100
        assert task.progress == 100


class TestWorkflowMetadata:
    def test_record_workflow_merges_without_touching_other_keys(self):
        task = Task(title="t", metadata={"source": "import"})
        task.record_workflow(blocked_reason="waiting")
        task.record_workflow(auto_blocked=True)
        assert task.metadata["source"] == "import"
        assert task.workflow_metadata == {"blocked_reason": "waiting", "auto_blocked": True}

    def test_workflow_metadata_is_a_copy(self):
        task = Task(title="t")
        task.workflow_metadata["x"] = 1
        assert task.workflow_metadata == {}

    def test_blocked_reason_falls_back_to_top_level(self):
        assert Task(title="t", metadata={"blocked_reason": "legacy"}).blocked_reason == "legacy"
        assert Task(title="t").blocked_reason is None

    def test_snapshot_restore(self):
        task = Task(title="t", metadata={"workflow": {"a": 1}})
        snap = task.snapshot()
        task.status = TaskStatus.IN_PROGRESS
        task.record_workflow(a=2)
        task.progress = 30
        task.restore(snap)
        assert task.status is TaskStatus.PENDING
        assert task.workflow_metadata == {"a": 1}
        assert task.progress == 0

    def test_to_dict(self):
        task = Task(title="t", status="blocked", tags=("x",))
        data = task.to_dict()
        assert data["status"] == "blocked"
        assert data["tags"] == ["x"]
        assert data["task_id"] == str(task.task_id)


class TestTaskQuery:
    def test_empty_query_matches_everything(self):
        assert TaskQuery().matches(Task(title="t"))

    def test_updated_before_is_strict(self):
        task = Task(title="t", updated_at=NOW)
        assert not TaskQuery(updated_before=NOW).matches(task)
        assert TaskQuery(updated_before=NOW + timedelta(seconds=1)).matches(task)

    def test_due_window(self):
        task = Task(title="t", due_date=NOW + timedelta(hours=24))
        query = TaskQuery(due_after=NOW, due_on_or_before=NOW + timedelta(hours=24))
        assert query.matches(task)
        assert not TaskQuery(due_after=NOW + timedelta(hours=24)).matches(task)

    def test_has_due_date_and_children(self):
        task = Task(title="t")
        assert TaskQuery(has_due_date=False).matches(task)
        assert not TaskQuery(has_due_date=True).matches(task)
        assert TaskQuery(has_children=True).matches(task, child_count=2)
        assert not TaskQuery(has_children=True).matches(task, child_count=0)

    def test_status_and_type_filters(self):
        task = Task(title="t", type="bug", status="blocked")
        assert TaskQuery(statuses=frozenset({TaskStatus.BLOCKED})).matches(task)
        assert not TaskQuery(types=frozenset({TaskType.MAIN})).matches(task)


class TestClock:
    def test_deterministic_clock_is_frozen(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now() == NOW

    def test_advance(self):
        clock = DeterministicClock()
        assert clock.advance(hours=2) == NOW + timedelta(hours=2)
        assert clock.advance(30) == NOW + timedelta(hours=2, seconds=30)
        assert clock.advance(days=1) == NOW + timedelta(days=1, hours=2, seconds=30)

    def test_set_time_resets_offset(self):
        clock = DeterministicClock()
        clock.advance(hours=5)
        target = datetime(2030, 6, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2024, 1, 1))

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None
