"""
AuditTrailSink -- persisted, ordered workflow event trail.

Responsibility:
    Stores every published WorkflowEvent as a WorkflowEventModel row with a
    monotonic ``seq`` and answers history queries (transition_history for a
    task, most recent events).

Architecture position:
    Kernel > Services -- imperative shell, plugged into the engine and the
    automation sweeps as an EventSink.

Invariants enforced:
    - seq comes from SequenceService (locked counter row).
    - Append-only: rows are inserted, never updated.
    - Each insert runs in its own SAVEPOINT so a failed write cannot poison
      the caller's transaction.

Failure modes:
    - Any database error propagates out of publish(); publish_safely()
      in the engine logs it and carries on.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskflow_kernel.domain.transition import WorkflowEvent, WorkflowEventType
from taskflow_kernel.logging_config import get_logger
from taskflow_kernel.models.workflow_event import WorkflowEventModel
from taskflow_kernel.services.sequence_service import SequenceService

logger = get_logger("services.auditor")


class AuditTrailSink:
    """EventSink that persists events through the given session."""

    thread_safe = False

    def __init__(self, session: Session):
        self._session = session
        self._sequences = SequenceService(session)

    def publish(self, event: WorkflowEvent) -> None:
        with self._session.begin_nested():
            seq = self._sequences.next_value(SequenceService.WORKFLOW_EVENT)
            self._session.add(WorkflowEventModel.from_dto(event, seq=seq))
            self._session.flush()
        logger.debug(
            "workflow_event_persisted",
            extra={"seq": seq, "event_type": event.event_type.value},
        )

    def history(
        self,
        task_id: UUID,
        event_types: frozenset[WorkflowEventType] | None = None,
    ) -> tuple[WorkflowEvent, ...]:
        """Events for one task, oldest first."""
        stmt = select(WorkflowEventModel).where(WorkflowEventModel.task_id == task_id)
        if event_types is not None:
            stmt = stmt.where(
                WorkflowEventModel.event_type.in_([t.value for t in event_types])
            )
        rows = self._session.execute(stmt.order_by(WorkflowEventModel.seq)).scalars()
        return tuple(row.to_dto() for row in rows)

    def recent(self, limit: int = 100) -> tuple[WorkflowEvent, ...]:
        """Most recent events across all tasks, newest first."""
        rows = self._session.execute(
            select(WorkflowEventModel)
            .order_by(WorkflowEventModel.seq.desc())
            .limit(limit)
        ).scalars()
        return tuple(row.to_dto() for row in rows)
