"""
taskflow_batch.domain.types -- Pure frozen dataclasses for the sweeps.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections, the same shape as the kernel's DTOs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class SweepItemStatus(str, Enum):
    """Outcome of one examined task within a sweep."""

    APPLIED = "applied"  # Acted on (or would be, in dry-run)
    SKIPPED = "skipped"  # Examined, nothing to do
    FAILED = "failed"  # Evaluation or action raised


@dataclass(frozen=True)
class SweepItemResult:
    """Immutable result of examining a single task."""

    item_index: int
    task_id: UUID
    status: SweepItemStatus
    reason: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_index": self.item_index,
            "task_id": str(self.task_id),
            "status": self.status.value,
            "reason": self.reason,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "details": dict(self.details),
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class SweepResult:
    """
    Immutable result of one sweep over all of its candidates.

    ``examined == applied + skipped + failed`` always holds.  In dry-run,
    ``applied`` counts the items a live run would act on.
    """

    sweep_type: str
    category: str
    examined: int
    applied: int
    skipped: int
    failed: int
    dry_run: bool
    item_results: tuple[SweepItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sweep_type": self.sweep_type,
            "category": self.category,
            "examined": self.examined,
            "applied": self.applied,
            "skipped": self.skipped,
            "failed": self.failed,
            "dry_run": self.dry_run,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "duration_ms": self.duration_ms,
            "items": [r.to_dict() for r in self.item_results],
        }


@dataclass(frozen=True)
class AutomationRunResult:
    """
    Result of one automation command (auto-flow or workflow-schedule).

    ``counts`` maps each sweep's category to its applied count, in the
    order the sweeps ran.
    """

    command: str
    dry_run: bool
    sweep_results: tuple[SweepResult, ...] = ()
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return sum(r.failed for r in self.sweep_results)

    @property
    def examined(self) -> int:
        return sum(r.examined for r in self.sweep_results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "dry_run": self.dry_run,
            "counts": dict(self.counts),
            "failed": self.failed,
            "sweeps": [r.to_dict() for r in self.sweep_results],
        }
