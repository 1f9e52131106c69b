"""
Configuration Loader (``taskflow_config.loader``).

Responsibility
--------------
Loads a YAML workflow configuration file and parses it into the frozen
``taskflow_config.schema`` dataclasses.  Runtime callers go through
``taskflow_config.get_active_config()``.

Invariants enforced
-------------------
* Parsing is strict: unknown sections or keys, wrong value types,
  negative thresholds and unknown status names raise ``ConfigurationError``.
* Every parsed object is a frozen dataclass from ``schema.py``.

Failure modes
-------------
* Missing YAML file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` chained from ``yaml.YAMLError``.

Example
-------
::

    automation:
      auto_complete_parent_task: true
      auto_start_sub_tasks: false
      timeout_hours: 72
      reminder_days: 7
    health:
      in_progress_timeout_hours: 48
    engine:
      batch_max_workers: 8
    transitions:
      pending: [in_progress, blocked, cancelled, on_hold]
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from taskflow_config.schema import (
    AutomationConfig,
    EngineConfig,
    HealthConfig,
    SchedulerConfig,
    WorkflowConfig,
)
from taskflow_kernel.domain.status import TransitionMatrix
from taskflow_kernel.exceptions import ConfigurationError, UnknownStatusError

_SECTIONS: dict[str, type] = {
    "automation": AutomationConfig,
    "health": HealthConfig,
    "engine": EngineConfig,
    "scheduler": SchedulerConfig,
}

_TOP_LEVEL_KEYS = frozenset(_SECTIONS) | {"transitions", "database_url"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: if the file is missing, unreadable, not valid
            YAML, or its top level is not a mapping.
    """
    source = str(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError("file not found", source=source) from None
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"malformed YAML: {exc}", source=source) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("top level must be a mapping", source=source)
    return data


def _parse_section(name: str, cls: type, raw: Any, source: str | None) -> Any:
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigurationError(f"section '{name}' must be a mapping", source=source)

    declared = {f.name: f for f in fields(cls)}
    unknown = sorted(set(raw) - set(declared))
    if unknown:
        raise ConfigurationError(
            f"unknown key(s) in '{name}': {', '.join(unknown)}", source=source
        )

    defaults = cls()
    values: dict[str, Any] = {}
    for key, value in raw.items():
        expected = type(getattr(defaults, key))
        path = f"{name}.{key}"
        if expected is bool:
            if not isinstance(value, bool):
                raise ConfigurationError(f"'{path}' must be a boolean", source=source)
        else:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"'{path}' must be a number", source=source)
            if value < 0:
                raise ConfigurationError(f"'{path}' must not be negative", source=source)
            if expected is int:
                if isinstance(value, float) and not value.is_integer():
                    raise ConfigurationError(f"'{path}' must be an integer", source=source)
                value = int(value)
        values[key] = value
    return cls(**values)


def _parse_transitions(raw: Any, source: str | None) -> TransitionMatrix | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ConfigurationError("'transitions' must be a mapping", source=source)
    edges: dict[Any, Any] = {}
    for key, targets in raw.items():
        if targets is None:
            targets = ()
        elif not isinstance(targets, (list, tuple)):
            raise ConfigurationError(
                f"'transitions.{key}' must be a list of statuses", source=source
            )
        edges[key] = targets
    try:
        return TransitionMatrix.from_mapping(edges)
    except UnknownStatusError as exc:
        raise ConfigurationError(f"transitions: {exc}", source=source) from exc
    except ValueError as exc:
        raise ConfigurationError(f"transitions: {exc}", source=source) from exc


def parse_workflow_config(data: dict[str, Any], source: str | None = None) -> WorkflowConfig:
    """Parse an already-loaded mapping into a WorkflowConfig."""
    unknown = sorted(set(data) - _TOP_LEVEL_KEYS)
    if unknown:
        raise ConfigurationError(
            f"unknown section(s): {', '.join(unknown)}", source=source
        )

    sections = {
        name: _parse_section(name, cls, data.get(name), source)
        for name, cls in _SECTIONS.items()
    }

    database_url = data.get("database_url")
    if database_url is not None and not isinstance(database_url, str):
        raise ConfigurationError("'database_url' must be a string", source=source)

    return WorkflowConfig(
        **sections,
        transitions=_parse_transitions(data.get("transitions"), source),
        database_url=database_url,
        source=source,
    )


def load_workflow_config(path: Path) -> WorkflowConfig:
    """Load and parse the YAML file at ``path``."""
    return parse_workflow_config(load_yaml_file(path), source=str(path))
