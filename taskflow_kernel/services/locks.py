"""
TaskLockManager -- per-task mutual exclusion for transitions.

Responsibility:
    Serializes concurrent transition attempts on the same task id inside
    one process, so after-transition side effects (parent auto-completion
    in particular) run at most once per qualifying event.  Transitions on
    different tasks never contend.

Architecture position:
    Kernel > Services -- imperative shell infrastructure, used by
    WorkflowEngine.transition().  Cross-process safety comes from the
    optimistic version check in the task store, not from here.

Failure modes:
    - TaskLockTimeoutError when the lock is not acquired in time.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from taskflow_kernel.exceptions import TaskLockTimeoutError
from taskflow_kernel.logging_config import get_logger

logger = get_logger("services.locks")


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class TaskLockManager:
    """
    Keyed re-entrant locks with reference counting.

    Entries are dropped once no thread holds or waits for them, so the
    table does not grow with the number of tasks ever touched.
    """

    def __init__(self, timeout_seconds: float = 10.0):
        self._timeout = timeout_seconds
        self._guard = threading.Lock()
        self._entries: dict[UUID, _Entry] = {}

    @contextmanager
    def hold(self, task_id: UUID, timeout_seconds: float | None = None) -> Iterator[None]:
        timeout = self._timeout if timeout_seconds is None else timeout_seconds
        with self._guard:
            entry = self._entries.get(task_id)
            if entry is None:
                entry = self._entries[task_id] = _Entry()
            entry.users += 1

        acquired = entry.lock.acquire(timeout=timeout)
        try:
            if not acquired:
                logger.warning(
                    "task_lock_timeout",
                    extra={"task_id": str(task_id), "timeout_seconds": timeout},
                )
                raise TaskLockTimeoutError(str(task_id), timeout)
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    self._entries.pop(task_id, None)

    def is_locked(self, task_id: UUID) -> bool:
        with self._guard:
            return task_id in self._entries
