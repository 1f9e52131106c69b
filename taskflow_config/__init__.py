"""
taskflow_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  The returned ``WorkflowConfig`` is passed
    explicitly into the workflow engine, the sweeps and the orchestrator;
    nothing downstream reads files or environment variables itself.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Strict parsing: an invalid file fails loudly with ``ConfigurationError``
      instead of silently falling back to defaults.

Failure modes:
    - ``ConfigurationError`` -- missing file, malformed YAML, unknown keys,
      wrong types, negative thresholds or an invalid transition matrix.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``TASKFLOW_CONFIG_TRACE`` log entry naming the source file and the
    automation flags in effect.
"""

from __future__ import annotations

import os
from pathlib import Path

from taskflow_config.loader import load_workflow_config, parse_workflow_config
from taskflow_config.schema import (
    AutomationConfig,
    EngineConfig,
    HealthConfig,
    SchedulerConfig,
    WorkflowConfig,
)
from taskflow_kernel.logging_config import get_logger

__all__ = [
    "AutomationConfig",
    "EngineConfig",
    "HealthConfig",
    "SchedulerConfig",
    "WorkflowConfig",
    "get_active_config",
    "load_workflow_config",
    "parse_workflow_config",
]

_logger = get_logger("config")

CONFIG_ENV_VAR = "TASKFLOW_CONFIG"

# Bundled defaults
DEFAULT_CONFIG_PATH = Path(__file__).parent / "workflow.yaml"


def get_active_config(path: Path | str | None = None) -> WorkflowConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: explicit ``path``, then the ``TASKFLOW_CONFIG``
    environment variable, then the bundled ``workflow.yaml``.

    Raises:
        ConfigurationError: If the resolved file cannot be parsed.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    config = load_workflow_config(Path(path))

    _logger.info(
        "TASKFLOW_CONFIG_TRACE",
        extra={
            "trace_type": "TASKFLOW_CONFIG_TRACE",
            "config_source": config.source,
            "auto_complete_parent_task": config.automation.auto_complete_parent_task,
            "auto_start_sub_tasks": config.automation.auto_start_sub_tasks,
            "timeout_hours": config.automation.timeout_hours,
            "custom_transitions": config.transitions is not None,
        },
    )
    return config
