"""
Tests for event sinks, the persisted audit trail and per-task locks.
"""

import threading
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from taskflow_kernel.domain.status import TaskStatus, TaskType
from taskflow_kernel.domain.transition import WorkflowEvent, WorkflowEventType
from taskflow_kernel.exceptions import TaskLockTimeoutError
from taskflow_kernel.services.auditor_service import AuditTrailSink
from taskflow_kernel.services.event_sink import (
    CompositeEventSink,
    LoggingEventSink,
    RecordingEventSink,
    publish_safely,
    sink_is_thread_safe,
)
from taskflow_kernel.services.locks import TaskLockManager
from taskflow_kernel.services.workflow_engine import WorkflowEngine

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class _BrokenSink:
    def publish(self, event):
        raise ConnectionError("sink offline")


def _event(event_type=WorkflowEventType.TRANSITION_COMPLETED, task_id=None, **kwargs):
    return WorkflowEvent(
        event_type=event_type,
        task_id=task_id or uuid4(),
        timestamp=NOW,
        from_status=TaskStatus.PENDING,
        to_status=TaskStatus.IN_PROGRESS,
        **kwargs,
    )


class TestSinks:
    def test_publish_safely_swallows_and_logs(self, captured_logs):
        publish_safely(_BrokenSink(), _event())
        failures = [r for r in captured_logs() if r["message"] == "event_sink_failed"]
        assert failures[0]["sink"] == "_BrokenSink"
        assert failures[0]["exc_type"] == "ConnectionError"

    def test_publish_safely_accepts_no_sink(self):
        publish_safely(None, _event())

    def test_composite_keeps_delivering_after_failure(self):
        recorder = RecordingEventSink()
        composite = CompositeEventSink([_BrokenSink(), recorder])
        composite.publish(_event())
        assert len(recorder.events) == 1

    def test_composite_thread_safety_follows_members(self):
        assert sink_is_thread_safe(CompositeEventSink([RecordingEventSink(), LoggingEventSink()]))
        assert not sink_is_thread_safe(CompositeEventSink([RecordingEventSink(), _BrokenSink()]))

    def test_logging_sink_writes_structured_record(self, captured_logs):
        event = _event(details={"errors": ["nope"]})
        LoggingEventSink().publish(event)
        record = next(
            r for r in captured_logs() if r["message"] == "workflow_transition_completed"
        )
        assert record["event_task_id"] == str(event.task_id)
        assert record["to_status"] == "in_progress"
        assert record["event_details"] == {"errors": ["nope"]}

    def test_recording_sink_filters(self):
        sink = RecordingEventSink()
        task_id = uuid4()
        sink.publish(_event(WorkflowEventType.TRANSITION_ATTEMPTED, task_id))
        sink.publish(_event(WorkflowEventType.HEALTH_ISSUE))
        assert len(sink.of_type(WorkflowEventType.HEALTH_ISSUE)) == 1
        assert len(sink.history(task_id)) == 1
        sink.clear()
        assert sink.events == ()

    def test_engine_survives_broken_sink(self, memory_store, clock):
        from taskflow_kernel.domain.task import Task

        engine = WorkflowEngine(memory_store, clock=clock, event_sink=_BrokenSink())
        task = memory_store.add(Task(title="t", type=TaskType.BUG))
        assert engine.transition(task, TaskStatus.IN_PROGRESS)


class TestAuditTrail:
    def test_history_is_ordered_and_filterable(self, session):
        sink = AuditTrailSink(session)
        task_id = uuid4()
        sink.publish(_event(WorkflowEventType.TRANSITION_ATTEMPTED, task_id))
        sink.publish(_event(WorkflowEventType.TRANSITION_COMPLETED, task_id, context={"reason": "go"}))
        sink.publish(_event(WorkflowEventType.HEALTH_ISSUE))

        history = sink.history(task_id)
        assert [e.event_type for e in history] == [
            WorkflowEventType.TRANSITION_ATTEMPTED,
            WorkflowEventType.TRANSITION_COMPLETED,
        ]
        assert history[1].context == {"reason": "go"}
        assert history[1].to_status is TaskStatus.IN_PROGRESS

        only_completed = sink.history(
            task_id, frozenset({WorkflowEventType.TRANSITION_COMPLETED})
        )
        assert len(only_completed) == 1

    def test_recent_is_newest_first(self, session):
        sink = AuditTrailSink(session)
        first, second = _event(), _event()
        sink.publish(first)
        sink.publish(second)
        assert [e.event_id for e in sink.recent(limit=2)] == [second.event_id, first.event_id]
        assert len(sink.recent(limit=1)) == 1

    def test_engine_transitions_land_in_trail(self, sql_store, session, clock):
        from taskflow_kernel.domain.task import Task

        sink = AuditTrailSink(session)
        engine = WorkflowEngine(sql_store, clock=clock, event_sink=sink)
        task = sql_store.add(Task(title="t", type=TaskType.BUG))
        engine.transition(task, TaskStatus.IN_PROGRESS)
        engine.transition(task, TaskStatus.IN_PROGRESS)

        events = sink.history(task.task_id)
        assert [e.event_type for e in events] == [
            WorkflowEventType.TRANSITION_ATTEMPTED,
            WorkflowEventType.TRANSITION_COMPLETED,
            WorkflowEventType.TRANSITION_ATTEMPTED,
            WorkflowEventType.TRANSITION_REJECTED,
        ]
        assert events[-1].details == {"errors": ["Task is already In Progress"]}


class TestTaskLockManager:
    def test_reentrant_in_same_thread(self):
        locks = TaskLockManager(timeout_seconds=0.1)
        task_id = uuid4()
        with locks.hold(task_id):
            with locks.hold(task_id):
                assert locks.is_locked(task_id)
        assert not locks.is_locked(task_id)

    def test_times_out_when_held_elsewhere(self):
        locks = TaskLockManager(timeout_seconds=5)
        task_id = uuid4()
        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(task_id):
                acquired.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        acquired.wait(5)
        try:
            with pytest.raises(TaskLockTimeoutError) as exc_info:
                with locks.hold(task_id, timeout_seconds=0.05):
                    pass
            assert exc_info.value.timeout_seconds == 0.05
        finally:
            release.set()
            thread.join()
        assert not locks.is_locked(task_id)

    def test_different_tasks_do_not_contend(self):
        locks = TaskLockManager(timeout_seconds=0.05)
        a, b = uuid4(), uuid4()
        with locks.hold(a):
            result = []
            thread = threading.Thread(target=lambda: result.append(_try(locks, b)))
            thread.start()
            thread.join()
        assert result == [True]


def _try(locks, task_id):
    with locks.hold(task_id):
        return True
