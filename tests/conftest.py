"""
Pytest fixtures for the taskflow test suite.

Provides:
- In-memory SQLite engine and session per test (no database server needed)
- Deterministic clock
- Both TaskStore implementations, and a ``store`` fixture parametrized
  over them
- A task factory that seeds the current store
- Captured structured logs

Environment Variables:
- None.  Everything runs in-process.
"""

import json
import logging
from io import StringIO
from typing import Any, Callable

import pytest
from sqlalchemy.orm import Session, sessionmaker

from taskflow_config.schema import AutomationConfig, WorkflowConfig
from taskflow_kernel.db.engine import build_engine, create_tables, drop_tables
from taskflow_kernel.domain.clock import DeterministicClock
from taskflow_kernel.domain.task import Task
from taskflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from taskflow_kernel.services.event_sink import RecordingEventSink
from taskflow_kernel.services.task_store import InMemoryTaskStore, SqlAlchemyTaskStore
from taskflow_kernel.services.workflow_engine import WorkflowEngine


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture taskflow logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine, make_task):
            engine.transition(make_task(), TaskStatus.IN_PROGRESS)
            logs = captured_logs()
            assert any(r["message"] == "transition_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("taskflow")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database with all tables."""
    engine = build_engine("sqlite:///:memory:")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Session:
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Clock, stores, engine
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def memory_store(clock) -> InMemoryTaskStore:
    return InMemoryTaskStore(clock=clock)


@pytest.fixture
def sql_store(session, clock) -> SqlAlchemyTaskStore:
    return SqlAlchemyTaskStore(session, clock=clock)


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Runs the test once per TaskStore implementation."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def recording_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def config() -> WorkflowConfig:
    return WorkflowConfig()


@pytest.fixture
def engine(store, config, clock, recording_sink) -> WorkflowEngine:
    return WorkflowEngine(store, config=config, clock=clock, event_sink=recording_sink)


@pytest.fixture
def make_engine(store, clock, recording_sink) -> Callable[..., WorkflowEngine]:
    """Build an engine over the current store with config overrides."""

    def _make(**automation: Any) -> WorkflowEngine:
        cfg = WorkflowConfig(automation=AutomationConfig(**automation))
        return WorkflowEngine(store, config=cfg, clock=clock, event_sink=recording_sink)

    return _make


@pytest.fixture
def make_task(store) -> Callable[..., Task]:
    """
    Seed a task into the current store and return it.

    Usage::

        main = make_task("Release")
        sub = make_task("Docs", type=TaskType.SUB, parent=main)
    """

    def _make(title: str = "Task", parent: Task | None = None, **fields: Any) -> Task:
        if parent is not None:
            fields["parent_task_id"] = parent.task_id
        return store.add(Task(title=title, **fields))

    return _make


@pytest.fixture
def make_family(make_task) -> Callable[..., tuple[Task, list[Task]]]:
    """A MAIN task with one SUB task per given status."""

    def _make(main_status="in_progress", child_statuses=("pending",)):
        main = make_task("Main", type="main", status=main_status)
        children = [
            make_task(f"Sub {i}", parent=main, type="sub", status=status)
            for i, status in enumerate(child_statuses)
        ]
        return main, children

    return _make
