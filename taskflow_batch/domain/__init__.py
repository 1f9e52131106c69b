"""Pure frozen DTOs for the automation layer."""

from taskflow_batch.domain.types import (
    AutomationRunResult,
    SweepItemResult,
    SweepItemStatus,
    SweepResult,
)

__all__ = [
    "AutomationRunResult",
    "SweepItemResult",
    "SweepItemStatus",
    "SweepResult",
]
