"""
TaskStore -- the persistence contract the workflow engine consumes.

Responsibility:
    Load and save tasks, answer hierarchy questions (children of X, parent
    of Y) and candidate queries for the automation sweeps, and scope a group
    of writes so they commit or roll back together.

Architecture position:
    Kernel > Services -- imperative shell.  The engine depends only on the
    TaskStore protocol; SqlAlchemyTaskStore and InMemoryTaskStore are the
    two shipped implementations.  ProjectedTaskStore overlays staged copies
    on either of them for dry runs.

Invariants enforced:
    - save() is the single path by which task state reaches storage.
    - Saving a task loaded at an older version raises OptimisticLockError
      (lost-update protection across processes).
    - Callers always receive copies; mutating a returned Task never
      changes stored state until save().

Failure modes:
    - TaskNotFoundError from load()/save()/parent() for unknown ids.
    - OptimisticLockError from save() on a version mismatch.
"""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import ContextManager, Iterator, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session, aliased
from sqlalchemy.orm.exc import StaleDataError

from taskflow_kernel.domain.clock import Clock, SystemClock
from taskflow_kernel.domain.task import Task, TaskQuery
from taskflow_kernel.exceptions import OptimisticLockError, TaskNotFoundError
from taskflow_kernel.logging_config import get_logger
from taskflow_kernel.models.task import TaskModel

logger = get_logger("services.task_store")


@runtime_checkable
class TaskStore(Protocol):
    """
    Persistence collaborator of the workflow engine.

    ``thread_safe`` tells the engine whether independent tasks may be
    transitioned from several threads against this store at once.
    """

    thread_safe: bool

    def load(self, task_id: UUID) -> Task: ...

    def save(self, task: Task) -> None: ...

    def children(self, parent_id: UUID) -> tuple[Task, ...]: ...

    def parent(self, task: Task) -> Task | None: ...

    def find(self, query: TaskQuery) -> tuple[Task, ...]: ...

    def atomic(self) -> ContextManager[None]: ...


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


class SqlAlchemyTaskStore:
    """
    TaskStore backed by the ``tasks`` table.

    Contract:
        Flushes but never commits; the caller owns the transaction.
        ``atomic()`` is a SAVEPOINT.
    """

    thread_safe = False

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    @property
    def session(self) -> Session:
        return self._session

    def _get_model(self, task_id: UUID) -> TaskModel:
        model = self._session.get(TaskModel, task_id)
        if model is None:
            raise TaskNotFoundError(str(task_id))
        return model

    def load(self, task_id: UUID) -> Task:
        return self._get_model(task_id).to_dto()

    def add(self, task: Task) -> Task:
        """Insert a new task (seeding / external creation path)."""
        now = self._clock.now()
        if task.created_at is None:
            task.created_at = now
        if task.updated_at is None:
            task.updated_at = now
        model = TaskModel.from_dto(task)
        self._session.add(model)
        self._session.flush()
        task.version = model.version
        return task

    def save(self, task: Task) -> None:
        model = self._get_model(task.task_id)
        if model.version != task.version:
            raise OptimisticLockError("Task", str(task.task_id))
        model.apply_dto(task)
        try:
            self._session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("Task", str(task.task_id)) from exc
        task.version = model.version
        logger.debug(
            "task_saved",
            extra={
                "task_id": str(task.task_id),
                "status": task.status.value,
                "version": task.version,
            },
        )

    def children(self, parent_id: UUID) -> tuple[Task, ...]:
        rows = self._session.execute(
            select(TaskModel)
            .where(TaskModel.parent_task_id == parent_id)
            .order_by(TaskModel.created_at, TaskModel.id)
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    def parent(self, task: Task) -> Task | None:
        if task.parent_task_id is None:
            return None
        return self.load(task.parent_task_id)

    def find(self, query: TaskQuery) -> tuple[Task, ...]:
        stmt = select(TaskModel)
        if query.statuses is not None:
            stmt = stmt.where(TaskModel.status.in_([s.value for s in query.statuses]))
        if query.types is not None:
            stmt = stmt.where(TaskModel.type.in_([t.value for t in query.types]))
        if query.updated_before is not None:
            stmt = stmt.where(TaskModel.updated_at < query.updated_before)
        if query.has_due_date is True:
            stmt = stmt.where(TaskModel.due_date.is_not(None))
        elif query.has_due_date is False:
            stmt = stmt.where(TaskModel.due_date.is_(None))
        if query.due_after is not None:
            stmt = stmt.where(TaskModel.due_date > query.due_after)
        if query.due_on_or_before is not None:
            stmt = stmt.where(TaskModel.due_date <= query.due_on_or_before)
        if query.parent_task_id is not None:
            stmt = stmt.where(TaskModel.parent_task_id == query.parent_task_id)
        if query.has_children is not None:
            child = aliased(TaskModel)
            has_child = exists().where(child.parent_task_id == TaskModel.id)
            stmt = stmt.where(has_child if query.has_children else ~has_child)
        stmt = stmt.order_by(TaskModel.created_at, TaskModel.id)
        if query.limit is not None:
            stmt = stmt.limit(query.limit)
        return tuple(row.to_dto() for row in self._session.execute(stmt).scalars())

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._session.begin_nested():
            yield


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryTaskStore:
    """
    Thread-safe dict-backed TaskStore for tests and embedded use.

    ``atomic()`` keeps a per-thread undo journal, so rolling back one
    thread's scope never discards another thread's writes.
    """

    thread_safe = True

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._tasks: dict[UUID, Task] = {}
        self._lock = threading.RLock()
        self._local = threading.local()

    def _journals(self) -> list[dict[UUID, Task]]:
        journals = getattr(self._local, "journals", None)
        if journals is None:
            journals = self._local.journals = []
        return journals

    def add(self, task: Task) -> Task:
        now = self._clock.now()
        with self._lock:
            if task.created_at is None:
                task.created_at = now
            if task.updated_at is None:
                task.updated_at = now
            task.version = 1
            self._tasks[task.task_id] = copy.deepcopy(task)
        return task

    def load(self, task_id: UUID) -> Task:
        with self._lock:
            stored = self._tasks.get(task_id)
            if stored is None:
                raise TaskNotFoundError(str(task_id))
            return copy.deepcopy(stored)

    def save(self, task: Task) -> None:
        with self._lock:
            stored = self._tasks.get(task.task_id)
            if stored is None:
                raise TaskNotFoundError(str(task.task_id))
            if stored.version != task.version:
                raise OptimisticLockError("Task", str(task.task_id))
            journals = self._journals()
            if journals:
                journals[-1].setdefault(task.task_id, copy.deepcopy(stored))
            task.version += 1
            self._tasks[task.task_id] = copy.deepcopy(task)

    def children(self, parent_id: UUID) -> tuple[Task, ...]:
        with self._lock:
            return tuple(
                copy.deepcopy(t)
                for t in self._tasks.values()
                if t.parent_task_id == parent_id
            )

    def parent(self, task: Task) -> Task | None:
        if task.parent_task_id is None:
            return None
        return self.load(task.parent_task_id)

    def find(self, query: TaskQuery) -> tuple[Task, ...]:
        with self._lock:
            child_counts: dict[UUID, int] = {}
            for t in self._tasks.values():
                if t.parent_task_id is not None:
                    child_counts[t.parent_task_id] = child_counts.get(t.parent_task_id, 0) + 1
            matched = [
                copy.deepcopy(t)
                for t in self._tasks.values()
                if query.matches(t, child_counts.get(t.task_id, 0))
            ]
        if query.limit is not None:
            matched = matched[: query.limit]
        return tuple(matched)

    def all(self) -> tuple[Task, ...]:
        with self._lock:
            return tuple(copy.deepcopy(t) for t in self._tasks.values())

    @contextmanager
    def atomic(self) -> Iterator[None]:
        journals = self._journals()
        journal: dict[UUID, Task] = {}
        journals.append(journal)
        try:
            yield
        except BaseException:
            journals.pop()
            with self._lock:
                for task_id, previous in journal.items():
                    self._tasks[task_id] = previous
            raise
        else:
            journals.pop()
            if journals:
                for task_id, previous in journal.items():
                    journals[-1].setdefault(task_id, previous)


# ---------------------------------------------------------------------------
# Projection (dry runs)
# ---------------------------------------------------------------------------


class ProjectedTaskStore:
    """
    Read-through overlay of staged task copies on top of another store.

    Contract:
        Reads see the staged copy of a task when there is one, otherwise the
        base store's.  ``save()`` and ``stage()`` only touch the overlay;
        nothing ever reaches the base store.  Used to let a dry run observe
        the status changes earlier steps of the same run would have made.
    """

    thread_safe = False

    def __init__(self, base: TaskStore):
        self._base = base
        self._staged: dict[UUID, Task] = {}

    @property
    def staged(self) -> tuple[Task, ...]:
        return tuple(copy.deepcopy(t) for t in self._staged.values())

    def stage(self, task: Task) -> None:
        self._staged[task.task_id] = copy.deepcopy(task)

    def _overlay(self, task: Task) -> Task:
        staged = self._staged.get(task.task_id)
        return copy.deepcopy(staged) if staged is not None else task

    def load(self, task_id: UUID) -> Task:
        staged = self._staged.get(task_id)
        if staged is not None:
            return copy.deepcopy(staged)
        return self._base.load(task_id)

    def save(self, task: Task) -> None:
        self.stage(task)

    def children(self, parent_id: UUID) -> tuple[Task, ...]:
        return tuple(self._overlay(t) for t in self._base.children(parent_id))

    def parent(self, task: Task) -> Task | None:
        if task.parent_task_id is None:
            return None
        return self.load(task.parent_task_id)

    def find(self, query: TaskQuery) -> tuple[Task, ...]:
        if not self._staged:
            return self._base.find(query)
        # Staging changes status and updated_at; re-filter those locally
        relaxed = replace(query, statuses=None, updated_before=None, limit=None)
        child_count = 1 if query.has_children else 0
        matched = [
            task
            for task in (self._overlay(t) for t in self._base.find(relaxed))
            if query.matches(task, child_count)
        ]
        if query.limit is not None:
            matched = matched[: query.limit]
        return tuple(matched)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        before = dict(self._staged)
        try:
            yield
        except BaseException:
            self._staged = before
            raise
