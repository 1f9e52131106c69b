"""Kernel services: task store, locks, event sinks, workflow engine and facade."""

from taskflow_kernel.services.auditor_service import AuditTrailSink
from taskflow_kernel.services.event_sink import (
    CompositeEventSink,
    EventSink,
    LoggingEventSink,
    RecordingEventSink,
    publish_safely,
)
from taskflow_kernel.services.locks import TaskLockManager
from taskflow_kernel.services.sequence_service import SequenceService
from taskflow_kernel.services.task_store import (
    InMemoryTaskStore,
    ProjectedTaskStore,
    SqlAlchemyTaskStore,
    TaskStore,
)
from taskflow_kernel.services.workflow_engine import TransitionOutcome, WorkflowEngine
from taskflow_kernel.services.workflow_service import (
    AvailableTransitions,
    BatchTransitionResult,
    TaskWorkflowService,
    TransitionResult,
)

__all__ = [
    "AuditTrailSink",
    "AvailableTransitions",
    "BatchTransitionResult",
    "CompositeEventSink",
    "EventSink",
    "InMemoryTaskStore",
    "LoggingEventSink",
    "ProjectedTaskStore",
    "RecordingEventSink",
    "SequenceService",
    "SqlAlchemyTaskStore",
    "TaskLockManager",
    "TaskStore",
    "TaskWorkflowService",
    "TransitionOutcome",
    "TransitionResult",
    "WorkflowEngine",
    "publish_safely",
]
