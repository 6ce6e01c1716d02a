"""Dependency resolution over a task store.

Pure functions: they read a Mapping of task id -> Task (a TaskStore or a
snapshot of one) and never mutate it.

A dependency id that is not in the store counts as unsatisfied, so a task
pointing at an unknown or removed task stays blocked. Callers surface
those ids with missing_dependencies() as warnings.
"""

from collections.abc import Iterable, Mapping

from ghpm.lib.types import Task, TaskStatus


def _is_done(task_id: str, store: Mapping[str, Task]) -> bool:
    dep = store.get(task_id)
    return dep is not None and dep.status == TaskStatus.DONE


def is_unblocked(task: Task, store: Mapping[str, Task]) -> bool:
    """True if every dependency of task is done (vacuously true for none)."""
    return all(_is_done(dep_id, store) for dep_id in task.dependencies)


def unmet_dependencies(task: Task, store: Mapping[str, Task]) -> list[str]:
    """Sorted dependency ids that are not done, unknown ids included."""
    return sorted(d for d in task.dependencies if not _is_done(d, store))


def missing_dependencies(task: Task, store: Mapping[str, Task]) -> list[str]:
    """Sorted dependency ids that are not registered in the store."""
    return sorted(d for d in task.dependencies if d not in store)


def dependents_of(task_id: str, store: Mapping[str, Task]) -> list[str]:
    """Ids of tasks that list task_id as a dependency."""
    return sorted(t.id for t in store.values() if task_id in t.dependencies)


def recompute_blocked(store: Mapping[str, Task], completed_id: str | None = None) -> set[str]:
    """Ids of blocked tasks whose dependencies are now all done.

    Called once per committed done transition. With completed_id, only
    direct dependents of that task are considered; a blocked task that
    never depended on it was not unblocked by it.
    """
    unblocked = set()
    for task in store.values():
        if task.status != TaskStatus.BLOCKED:
            continue
        if completed_id is not None and completed_id not in task.dependencies:
            continue
        if is_unblocked(task, store):
            unblocked.add(task.id)
    return unblocked


def find_cycle(
    task_id: str,
    dependencies: Iterable[str],
    store: Mapping[str, Task],
) -> list[str] | None:
    """Return the cycle that giving task_id these dependencies would create.

    The path starts and ends with task_id, e.g. ["a", "b", "a"]. A self
    dependency is reported as ["a", "a"]. Returns None for a DAG. The
    existing record for task_id (if any) is ignored in favour of the
    proposed dependency set.
    """
    graph = {tid: set(t.dependencies) for tid, t in store.items()}
    graph[task_id] = set(dependencies)

    path: list[str] = []
    visited: set[str] = set()

    def visit(node: str) -> list[str] | None:
        if node in path:
            return path[path.index(node):] + [node]
        if node in visited:
            return None
        path.append(node)
        for dep in sorted(graph.get(node, ())):
            found = visit(dep)
            if found:
                return found
        path.pop()
        visited.add(node)
        return None

    return visit(task_id)
