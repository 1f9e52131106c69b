"""
Workflow configuration schema.

Frozen dataclasses that the YAML loader produces and that are passed
explicitly into the workflow engine, the sweeps and the orchestrator.
Defaults reproduce the behaviour of a deployment with no config file.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from taskflow_kernel.domain.status import DEFAULT_TRANSITION_MATRIX, TransitionMatrix

# ---------------------------------------------------------------------------
# Automation flags
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AutomationConfig:
    """Flags and horizons for the automated parts of the workflow."""

    auto_complete_parent_task: bool = True
    auto_start_sub_tasks: bool = False
    timeout_hours: float = 72.0
    reminder_days: float = 7.0
    due_soon_hours: float = 24.0


# ---------------------------------------------------------------------------
# Health heuristics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HealthConfig:
    """Thresholds for check_workflow_health."""

    in_progress_timeout_hours: float = 72.0
    empty_main_task_grace_hours: float = 24.0
    flag_overdue: bool = True


# ---------------------------------------------------------------------------
# Engine / scheduler tuning
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    """Concurrency knobs for the workflow engine."""

    batch_max_workers: int = 4
    lock_timeout_seconds: float = 10.0


@dataclass(frozen=True)
class SchedulerConfig:
    """Intervals for the in-process automation scheduler."""

    auto_flow_interval_seconds: float = 3600.0
    workflow_schedule_interval_seconds: float = 86400.0
    poll_interval_seconds: float = 30.0


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkflowConfig:
    """
    Root configuration object.

    ``transitions`` overrides the default adjacency matrix when set.
    """

    automation: AutomationConfig = field(default_factory=AutomationConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    transitions: TransitionMatrix | None = None
    database_url: str | None = None
    source: str | None = None

    @property
    def transition_matrix(self) -> TransitionMatrix:
        return self.transitions or DEFAULT_TRANSITION_MATRIX
