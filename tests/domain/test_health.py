"""
Tests for evaluate_health -- the pure workflow health heuristics.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from taskflow_config.schema import HealthConfig
from taskflow_kernel.domain.health import evaluate_health
from taskflow_kernel.domain.status import TaskStatus, TaskType
from taskflow_kernel.domain.task import Task

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
CONFIG = HealthConfig()


def _task(**fields) -> Task:
    fields.setdefault("title", "t")
    fields.setdefault("created_at", NOW - timedelta(hours=1))
    fields.setdefault("updated_at", NOW - timedelta(hours=1))
    return Task(**fields)


def _report(task, parent=None, children=(), config=CONFIG):
    return evaluate_health(task, parent=parent, children=children, now=NOW, config=config)


class TestHealthyTasks:
    def test_fresh_pending_task_is_healthy(self):
        report = _report(_task(type=TaskType.BUG))
        assert report.is_healthy
        assert report.to_dict()["is_healthy"] is True

    def test_young_main_task_without_children_is_healthy(self):
        assert _report(_task()).is_healthy


class TestIssues:
    def test_stalled_in_progress(self):
        task = _task(
            type=TaskType.FEATURE,
            status=TaskStatus.IN_PROGRESS,
            updated_at=NOW - timedelta(hours=73),
        )
        report = _report(task)
        assert not report.is_healthy
        assert "more than 72h" in report.issues[0]
        assert report.recommendations == ("Consider blocking or re-assigning the task",)

    def test_main_without_sub_tasks_after_grace(self):
        task = _task(created_at=NOW - timedelta(hours=25))
        assert _report(task).issues == ("Main task has no sub-tasks defined",)

    def test_blocked_without_reason(self):
        task = _task(type=TaskType.BUG, status=TaskStatus.BLOCKED)
        assert "Task is blocked without a recorded reason" in _report(task).issues

    def test_blocked_with_reason_is_fine(self):
        task = _task(
            type=TaskType.BUG,
            status=TaskStatus.BLOCKED,
            metadata={"workflow": {"blocked_reason": "vendor"}},
        )
        assert _report(task).is_healthy

    def test_completed_main_with_unfinished_children(self):
        main = _task(status=TaskStatus.COMPLETED)
        children = [
            _task(type=TaskType.SUB, status=TaskStatus.COMPLETED),
            _task(type=TaskType.SUB, status=TaskStatus.BLOCKED),
        ]
        issues = _report(main, children=children).issues
        assert issues == ("Main task is completed but 1 sub-task(s) are unfinished",)

    def test_sub_in_progress_under_completed_parent(self):
        parent = _task(status=TaskStatus.COMPLETED)
        sub = _task(type=TaskType.SUB, status=TaskStatus.IN_PROGRESS, parent_task_id=parent.task_id)
        assert "Sub-task is in progress but its parent is completed" in _report(sub, parent).issues

    def test_active_sub_under_cancelled_parent(self):
        parent = _task(status=TaskStatus.CANCELLED)
        sub = _task(type=TaskType.SUB, parent_task_id=parent.task_id)
        assert _report(sub, parent).issues == (
            "Sub-task is still active but its parent is cancelled",
        )

    def test_overdue(self):
        task = _task(type=TaskType.BUG, due_date=NOW - timedelta(days=1))
        assert _report(task).issues == ("Task is past its due date",)

    def test_overdue_flag_can_be_disabled(self):
        task = _task(type=TaskType.BUG, due_date=NOW - timedelta(days=1))
        assert _report(task, config=HealthConfig(flag_overdue=False)).is_healthy

    def test_thresholds_come_from_config(self):
        task = _task(
            type=TaskType.BUG,
            status=TaskStatus.IN_PROGRESS,
            updated_at=NOW - timedelta(hours=5),
        )
        report = _report(task, config=HealthConfig(in_progress_timeout_hours=4))
        assert "more than 4h" in report.issues[0]

    def test_issues_and_recommendations_pair_up(self):
        task = _task(
            status=TaskStatus.BLOCKED,
            created_at=NOW - timedelta(days=3),
            due_date=NOW - timedelta(hours=1),
            parent_task_id=uuid4(),
        )
        report = _report(task)
        assert len(report.issues) == 3
        assert len(report.recommendations) == len(report.issues)
