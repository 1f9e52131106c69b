"""Automation sweeps and their registry."""

from taskflow_batch.sweeps.base import (
    Sweep,
    SweepDecision,
    SweepRegistry,
    default_sweep_registry,
)
from taskflow_batch.sweeps.child_start import ChildStartSweep
from taskflow_batch.sweeps.health import HealthSweep
from taskflow_batch.sweeps.parent_completion import ParentCompletionSweep
from taskflow_batch.sweeps.reminders import DueSoonReminderSweep, StaleReminderSweep
from taskflow_batch.sweeps.timeout import TimeoutSweep

__all__ = [
    "ChildStartSweep",
    "DueSoonReminderSweep",
    "HealthSweep",
    "ParentCompletionSweep",
    "StaleReminderSweep",
    "Sweep",
    "SweepDecision",
    "SweepRegistry",
    "TimeoutSweep",
    "default_sweep_registry",
]
