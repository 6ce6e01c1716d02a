"""Task store: the in-memory ground truth for task records.

The store is a read-only Mapping of task id -> Task for everyone except
the TransitionEngine, which is the only caller of add() and commit().
Records are immutable, so reads hand out the stored objects directly.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping

from ghpm.lib.types import Task, TaskStatus

logger = logging.getLogger(__name__)


class TaskStore(Mapping):
    """Thread-safe mapping of task id -> Task.

    Every access takes a short internal lock; no lock is held while a
    backend write is in flight, so reads never wait on the network.
    """

    def __init__(self, tasks: Iterable[Task] = ()):
        self._lock = threading.RLock()
        self._tasks: dict[str, Task] = {}
        for task in tasks:
            self._tasks[task.id] = task

    # ---- Mapping protocol ----

    def __getitem__(self, task_id: str) -> Task:
        with self._lock:
            return self._tasks[task_id]

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._tasks))

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def __contains__(self, task_id) -> bool:
        with self._lock:
            return task_id in self._tasks

    # ---- reads ----

    def snapshot(self) -> dict[str, Task]:
        """Consistent point-in-time copy of the whole store."""
        with self._lock:
            return dict(self._tasks)

    def select(
        self,
        status: TaskStatus | None = None,
        predicate: Callable[[Task], bool] | None = None,
    ) -> list[Task]:
        """Tasks sorted by id, optionally filtered by status and predicate."""
        tasks = sorted(self.snapshot().values(), key=lambda t: t.id)
        if status is not None:
            tasks = [t for t in tasks if t.status == status]
        if predicate is not None:
            tasks = [t for t in tasks if predicate(t)]
        return tasks

    def in_progress_ids(self) -> list[str]:
        """Ids of every task currently in_progress (normally zero or one)."""
        return [t.id for t in self.select(status=TaskStatus.IN_PROGRESS)]

    @property
    def active_task_id(self) -> str | None:
        """Id of the in-progress task, or None."""
        active = self.in_progress_ids()
        return active[0] if active else None

    # ---- writes (TransitionEngine only) ----

    def add(self, task: Task) -> None:
        with self._lock:
            if task.id in self._tasks:
                raise KeyError(f"Task '{task.id}' already registered")
            self._tasks[task.id] = task
        logger.debug(f"[STORE] added {task.id} ({task.status.value})")

    def commit(self, task: Task) -> None:
        """Replace an existing record."""
        with self._lock:
            if task.id not in self._tasks:
                raise KeyError(f"Task '{task.id}' not registered")
            self._tasks[task.id] = task
        logger.debug(f"[STORE] committed {task.id} -> {task.status.value} (rev {task.revision})")
