"""
Tests for the status model: TaskStatus presentation, parsers and the
transition matrix.
"""

import pytest

from taskflow_kernel.domain.status import (
    ACTIVE_STATUSES,
    DEFAULT_TRANSITION_MATRIX,
    NON_TERMINAL_STATUSES,
    TERMINAL_STATUSES,
    TaskPriority,
    TaskStatus,
    TaskType,
    TransitionMatrix,
    can_transition_to,
    parse_priority,
    parse_status,
    parse_task_type,
)
from taskflow_kernel.exceptions import UnknownStatusError


class TestTaskStatus:
    def test_six_statuses(self):
        assert {s.value for s in TaskStatus} == {
            "pending",
            "in_progress",
            "completed",
            "blocked",
            "cancelled",
            "on_hold",
        }

    @pytest.mark.parametrize(
        "status, label, color, icon",
        [
            (TaskStatus.PENDING, "Pending", "warning", "fa-clock"),
            (TaskStatus.IN_PROGRESS, "In Progress", "primary", "fa-play"),
            (TaskStatus.COMPLETED, "Completed", "success", "fa-check"),
            (TaskStatus.BLOCKED, "Blocked", "danger", "fa-ban"),
            (TaskStatus.CANCELLED, "Cancelled", "secondary", "fa-times"),
            (TaskStatus.ON_HOLD, "On Hold", "info", "fa-pause"),
        ],
    )
    def test_presentation(self, status, label, color, icon):
        assert status.label == label
        assert status.color == color
        assert status.icon == icon

    def test_terminal_and_active_sets(self):
        assert TERMINAL_STATUSES == {TaskStatus.COMPLETED, TaskStatus.CANCELLED}
        assert ACTIVE_STATUSES == {TaskStatus.PENDING, TaskStatus.IN_PROGRESS}
        assert NON_TERMINAL_STATUSES == {
            TaskStatus.PENDING,
            TaskStatus.IN_PROGRESS,
            TaskStatus.BLOCKED,
            TaskStatus.ON_HOLD,
        }
        assert TaskStatus.COMPLETED.is_terminal
        assert not TaskStatus.BLOCKED.is_terminal
        assert TaskStatus.PENDING.is_active
        assert not TaskStatus.ON_HOLD.is_active

    def test_priority_weights_ascend(self):
        weights = [p.weight for p in TaskPriority]
        assert weights == [1, 2, 3, 4]


class TestParsers:
    @pytest.mark.parametrize(
        "raw", [TaskStatus.BLOCKED, "blocked", "BLOCKED", "Blocked"]
    )
    def test_parse_status_accepts_value_and_name(self, raw):
        assert parse_status(raw) is TaskStatus.BLOCKED

    @pytest.mark.parametrize("raw", ["archived", "", None, 3, "in progress"])
    def test_parse_status_rejects_unknown(self, raw):
        with pytest.raises(UnknownStatusError) as exc_info:
            parse_status(raw)
        assert exc_info.value.code == "UNKNOWN_STATUS"
        assert exc_info.value.value == raw

    def test_parse_task_type(self):
        assert parse_task_type("sub") is TaskType.SUB
        assert parse_task_type(TaskType.BUG) is TaskType.BUG
        with pytest.raises(ValueError):
            parse_task_type("epic")

    def test_parse_priority(self):
        assert parse_priority("URGENT") is TaskPriority.URGENT
        with pytest.raises(ValueError):
            parse_priority("critical")


class TestDefaultMatrix:
    @pytest.mark.parametrize(
        "from_status, allowed",
        [
            (
                TaskStatus.PENDING,
                (TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED, TaskStatus.CANCELLED),
            ),
            (
                TaskStatus.IN_PROGRESS,
                (
                    TaskStatus.COMPLETED,
                    TaskStatus.BLOCKED,
                    TaskStatus.CANCELLED,
                    TaskStatus.ON_HOLD,
                ),
            ),
            (TaskStatus.BLOCKED, (TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED)),
            (TaskStatus.ON_HOLD, (TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED)),
            (TaskStatus.COMPLETED, ()),
            (TaskStatus.CANCELLED, ()),
        ],
    )
    def test_targets_in_enum_order(self, from_status, allowed):
        assert DEFAULT_TRANSITION_MATRIX.targets(from_status) == allowed

    def test_no_self_transitions(self):
        for status in TaskStatus:
            assert not can_transition_to(status, status)

    def test_terminal_statuses_are_dead_ends(self):
        for terminal in TERMINAL_STATUSES:
            for target in TaskStatus:
                assert not can_transition_to(terminal, target)

    def test_pending_cannot_complete_directly(self):
        assert not can_transition_to(TaskStatus.PENDING, TaskStatus.COMPLETED)


class TestTransitionMatrixFromMapping:
    def test_missing_statuses_have_no_edges(self):
        matrix = TransitionMatrix.from_mapping({"pending": ["in_progress"]})
        assert matrix.can_transition_to(TaskStatus.PENDING, TaskStatus.IN_PROGRESS)
        assert matrix.targets(TaskStatus.IN_PROGRESS) == ()

    def test_wider_matrix_override(self):
        matrix = TransitionMatrix.from_mapping(
            {"PENDING": ["IN_PROGRESS", "COMPLETED"], "ON_HOLD": ["PENDING"]}
        )
        assert matrix.can_transition_to(TaskStatus.PENDING, TaskStatus.COMPLETED)
        assert matrix.can_transition_to(TaskStatus.ON_HOLD, TaskStatus.PENDING)

    def test_self_loop_rejected(self):
        with pytest.raises(ValueError, match="Self-transition"):
            TransitionMatrix.from_mapping({"blocked": ["blocked"]})

    def test_edge_out_of_terminal_rejected(self):
        with pytest.raises(ValueError, match="Terminal status"):
            TransitionMatrix.from_mapping({"completed": ["in_progress"]})

    def test_unknown_status_rejected(self):
        with pytest.raises(UnknownStatusError):
            TransitionMatrix.from_mapping({"pending": ["archived"]})

    def test_edges_are_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_TRANSITION_MATRIX.edges[TaskStatus.COMPLETED] = frozenset(
                {TaskStatus.PENDING}
            )
