"""Single-active-task guard.

There is no lock object: the in-progress slot is derived from the status
field of the store every time it is checked. A task leaving in_progress
frees the slot implicitly, and an out-of-band edit to the backend status
is picked up on the next check.
"""

import logging
from collections.abc import Mapping

from ghpm.lib.types import Task, TaskStatus

logger = logging.getLogger(__name__)


def active_tasks(store: Mapping[str, Task]) -> list[str]:
    """Sorted ids of every in-progress task."""
    return sorted(t.id for t in store.values() if t.status == TaskStatus.IN_PROGRESS)


def holder(store: Mapping[str, Task]) -> str | None:
    """Id of the task holding the slot, or None if the slot is free."""
    active = active_tasks(store)
    return active[0] if active else None


def try_acquire(task_id: str, store: Mapping[str, Task]) -> bool:
    """Can task_id become (or remain) the in-progress task?

    True if nothing is in progress, or the only in-progress task is
    task_id itself (re-entry for review -> in_progress rework).
    """
    active = active_tasks(store)
    if not active:
        return True
    if len(active) > 1:
        logger.warning(f"[GUARD] multiple tasks in progress: {', '.join(active)}")
        return False
    return active[0] == task_id


def conflicting_task(task_id: str, store: Mapping[str, Task]) -> str | None:
    """Id of a task other than task_id that holds the slot, if any."""
    for active_id in active_tasks(store):
        if active_id != task_id:
            return active_id
    return None
