"""
Event sinks -- fire-and-forget delivery of WorkflowEvents.

Responsibility:
    Defines the EventSink protocol the engine and the automation sweeps
    publish to, plus the in-process implementations: structured logging,
    in-memory recording (tests, diagnostics) and fan-out.  The persisted
    audit trail lives in auditor_service.AuditTrailSink.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - A failing sink never fails the operation that emitted the event:
      publish_safely() logs the error and returns.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Protocol, runtime_checkable
from uuid import UUID

from taskflow_kernel.domain.transition import WorkflowEvent, WorkflowEventType
from taskflow_kernel.logging_config import get_logger

logger = get_logger("services.events")


@runtime_checkable
class EventSink(Protocol):
    """Receives workflow events.  Delivery mechanics are the sink's business."""

    def publish(self, event: WorkflowEvent) -> None: ...


def publish_safely(sink: EventSink | None, event: WorkflowEvent) -> None:
    """Publish ``event`` and swallow-but-log any sink failure."""
    if sink is None:
        return
    try:
        sink.publish(event)
    except Exception:
        logger.error(
            "event_sink_failed",
            extra={
                "sink": type(sink).__name__,
                "event_type": event.event_type.value,
                "event_task_id": str(event.task_id),
            },
            exc_info=True,
        )


def sink_is_thread_safe(sink: EventSink | None) -> bool:
    return sink is None or bool(getattr(sink, "thread_safe", False))


class LoggingEventSink:
    """Writes every event as a structured log record."""

    thread_safe = True

    _LEVELS = {
        WorkflowEventType.TRANSITION_FAILED: logging.ERROR,
        WorkflowEventType.AUTOMATION_FAILED: logging.ERROR,
        WorkflowEventType.TRANSITION_REJECTED: logging.INFO,
        WorkflowEventType.HEALTH_ISSUE: logging.WARNING,
        WorkflowEventType.TRANSITION_ATTEMPTED: logging.DEBUG,
    }

    def __init__(self, logger_name: str = "workflow.events"):
        self._logger = get_logger(logger_name)

    def publish(self, event: WorkflowEvent) -> None:
        level = self._LEVELS.get(event.event_type, logging.INFO)
        payload = event.to_dict()
        self._logger.log(
            level,
            f"workflow_{event.event_type.value}",
            extra={
                "event_id": payload["event_id"],
                "event_task_id": payload["task_id"],
                "from_status": payload["from_status"],
                "to_status": payload["to_status"],
                "event_context": payload["context"],
                "event_details": payload["details"],
                "event_timestamp": payload["timestamp"],
            },
        )


class RecordingEventSink:
    """Keeps every event in memory, in publish order."""

    thread_safe = True

    def __init__(self) -> None:
        self._events: list[WorkflowEvent] = []
        self._lock = threading.Lock()

    def publish(self, event: WorkflowEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> tuple[WorkflowEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def of_type(self, event_type: WorkflowEventType) -> tuple[WorkflowEvent, ...]:
        return tuple(e for e in self.events if e.event_type == event_type)

    def history(self, task_id: UUID) -> tuple[WorkflowEvent, ...]:
        return tuple(e for e in self.events if e.task_id == task_id)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class CompositeEventSink:
    """Fans one event out to several sinks; one failing sink doesn't starve the rest."""

    def __init__(self, sinks: Iterable[EventSink]):
        self._sinks = tuple(sinks)

    @property
    def thread_safe(self) -> bool:
        return all(sink_is_thread_safe(s) for s in self._sinks)

    @property
    def sinks(self) -> tuple[EventSink, ...]:
        return self._sinks

    def publish(self, event: WorkflowEvent) -> None:
        for sink in self._sinks:
            publish_safely(sink, event)
