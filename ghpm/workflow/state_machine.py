"""Task transitions with explicit guards.

TransitionEngine.request_transition is the single mutation entry point
for task status. It:
1. looks up the edge in the FSM table (fsm.py) -> InvalidEdge
2. checks the guard for the target status:
   ready       -> dependency resolver          -> DependencyUnmet
   in_progress -> activity guard               -> ActivityConflict
   blocked     -> dependencies must be unmet   -> InvalidEdge
3. hands the mutation to the effect executor (live or simulate)
4. commits the new record to the store only after the executor acks
5. on done, cascades blocked -> ready for dependents through steps 1-4

Usage:
    from ghpm.workflow.state_machine import TransitionEngine
    from ghpm.workflow.effects import Mode

    engine = TransitionEngine()
    engine.register_task("a", "Set up CI")
    engine.request_transition("a", TaskStatus.READY, Mode.SIMULATE)
"""

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import NamedTuple

from ghpm.lib.backend import WriteResult
from ghpm.lib.types import ExternalRef, STARTED_STATUSES, Task, TaskStatus
from ghpm.workflow import activity, resolver
from ghpm.workflow.effects import EffectExecutor, Mode, Mutation
from ghpm.workflow.errors import (
    ActivityConflict,
    CyclicDependency,
    DependencyUnmet,
    EffectError,
    EFFECT_TRANSIENT,
    InvalidEdge,
    RegistrationError,
    TaskNotFound,
    TransitionError,
)
from ghpm.workflow.fsm import TaskFSM, trigger_for
from ghpm.workflow.store import TaskStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionRecord:
    """A committed transition."""
    task_id: str
    from_status: TaskStatus
    to_status: TaskStatus
    mode: Mode
    cause: str
    mutation_id: str
    receipt: str


class RefreshResult(NamedTuple):
    task: Task
    remote_status: TaskStatus | None  # Status the backend reports, if any

    @property
    def drifted(self) -> bool:
        return self.remote_status is not None and self.remote_status != self.task.status


class TransitionEngine:
    """Validates and applies task transitions against a TaskStore.

    Mutations are serialized by one lock that spans guard check, backend
    write and store commit. Reads (get_task, list_tasks) only touch the
    store and never wait for the backend.
    """

    def __init__(self, store: TaskStore | None = None, executor: EffectExecutor | None = None):
        self.store = store if store is not None else TaskStore()
        self.executor = executor if executor is not None else EffectExecutor()
        self.history: list[TransitionRecord] = []
        self._mutation_lock = threading.RLock()

    # ---- reads ----

    def get_task(self, task_id: str) -> Task:
        task = self.store.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def list_tasks(
        self,
        status: TaskStatus | None = None,
        predicate: Callable[[Task], bool] | None = None,
    ) -> list[Task]:
        return self.store.select(status=status, predicate=predicate)

    @property
    def active_task_id(self) -> str | None:
        return self.store.active_task_id

    # ---- registration ----

    def register_task(
        self,
        task_id: str,
        title: str,
        dependencies: Iterable[str] = (),
        external_ref: ExternalRef | None = None,
        body: str = "",
    ) -> Task:
        """Add a new task to the store.

        The task starts blocked if it declares dependencies, todo otherwise.

        Raises:
            CyclicDependency: dependencies include task_id or close a cycle
            RegistrationError: task_id empty or already registered
        """
        if not task_id:
            raise RegistrationError(task_id, "Task id is required")
        deps = frozenset(dependencies)

        with self._mutation_lock:
            if task_id in self.store:
                raise RegistrationError(task_id, f"Task '{task_id}' already registered")
            self._check_acyclic(task_id, deps)

            task = Task(
                id=task_id,
                title=title,
                status=TaskStatus.BLOCKED if deps else TaskStatus.TODO,
                dependencies=deps,
                external_ref=external_ref,
                body=body,
            )
            self.store.add(task)

        logger.info(f"[STATE] {task_id}: registered as {task.status.value}")
        self._warn_missing(task)
        return task

    def set_dependencies(self, task_id: str, dependencies: Iterable[str], mode: Mode = Mode.LIVE) -> Task:
        """Replace a task's dependency set (administrative correction).

        If the new set is unsatisfied, the task is re-asserted blocked
        through the guarded transition path; the new dependency set and the
        blocked status are committed together.
        """
        deps = frozenset(dependencies)
        with self._mutation_lock:
            task = self.get_task(task_id)
            if task.status == TaskStatus.DONE:
                raise InvalidEdge(task_id, task.status, TaskStatus.BLOCKED, "dependencies of a done task are fixed")
            self._check_acyclic(task_id, deps)

            candidate = replace(task, dependencies=deps)
            snapshot = self.store.snapshot()
            needs_block = (
                candidate.status != TaskStatus.BLOCKED
                and not resolver.is_unblocked(candidate, snapshot)
            )
            if needs_block:
                updated = self._apply(candidate, TaskStatus.BLOCKED, mode, cause="dependencies changed")
            else:
                self.store.commit(candidate)
                updated = candidate
                logger.info(f"[DEPS] {task_id}: dependencies set to {sorted(deps) or 'none'}")

        self._warn_missing(updated)
        return updated

    # ---- transitions ----

    def request_transition(self, task_id: str, target: TaskStatus, mode: Mode = Mode.LIVE) -> Task:
        """Move task_id to target, the single public status mutation.

        Raises:
            TaskNotFound, InvalidEdge, DependencyUnmet, ActivityConflict, EffectError
        """
        with self._mutation_lock:
            task = self._apply(self.get_task(task_id), target, mode, cause="request")
            if task.status == TaskStatus.DONE:
                self._cascade(task, mode)
            return task

    def mark_ready(self, task_id: str, mode: Mode = Mode.LIVE) -> Task:
        return self.request_transition(task_id, TaskStatus.READY, mode)

    def start_task(self, task_id: str, mode: Mode = Mode.LIVE) -> Task:
        return self.request_transition(task_id, TaskStatus.IN_PROGRESS, mode)

    def submit_for_review(self, task_id: str, mode: Mode = Mode.LIVE) -> Task:
        return self.request_transition(task_id, TaskStatus.REVIEW, mode)

    def approve_task(self, task_id: str, mode: Mode = Mode.LIVE) -> Task:
        return self.request_transition(task_id, TaskStatus.DONE, mode)

    def request_rework(self, task_id: str, mode: Mode = Mode.LIVE) -> Task:
        return self.request_transition(task_id, TaskStatus.IN_PROGRESS, mode)

    def block_task(self, task_id: str, mode: Mode = Mode.LIVE) -> Task:
        return self.request_transition(task_id, TaskStatus.BLOCKED, mode)

    def _apply(self, task: Task, target: TaskStatus, mode: Mode, cause: str) -> Task:
        """Validate, externalize and commit one transition. Caller holds the lock."""
        trigger = trigger_for(task.status, target)
        if trigger is None:
            raise InvalidEdge(task.id, task.status, target)

        self._check_guard(task, target)

        fsm = TaskFSM(task.id, task.status)
        getattr(fsm, trigger)()

        mutation = Mutation.for_task(task, fsm.status)
        ack = self.executor.apply(mutation, mode)

        updated = replace(
            task,
            status=fsm.status,
            external_ref=ack.ref if task.external_ref is not None else None,
            revision=task.revision + 1,
        )
        self.store.commit(updated)
        self.history.append(TransitionRecord(
            task_id=task.id,
            from_status=task.status,
            to_status=updated.status,
            mode=mode,
            cause=cause,
            mutation_id=mutation.mutation_id,
            receipt=ack.receipt,
        ))
        suffix = " (dry-run)" if mode == Mode.SIMULATE else ""
        logger.info(f"[STATE] {task.id}: {task.status.value} -> {updated.status.value} ({cause}){suffix}")
        return updated

    def _check_guard(self, task: Task, target: TaskStatus) -> None:
        snapshot = self.store.snapshot()

        if target == TaskStatus.READY:
            if not resolver.is_unblocked(task, snapshot):
                self._warn_missing(task, snapshot)
                raise DependencyUnmet(task.id, resolver.unmet_dependencies(task, snapshot))

        elif target == TaskStatus.IN_PROGRESS:
            if not activity.try_acquire(task.id, snapshot):
                conflict = activity.conflicting_task(task.id, snapshot)
                raise ActivityConflict(task.id, conflict or "")

        elif target == TaskStatus.BLOCKED:
            if resolver.is_unblocked(task, snapshot):
                raise InvalidEdge(task.id, task.status, target, "all dependencies are done")

    def _cascade(self, done_task: Task, mode: Mode) -> list[str]:
        """Move dependents unblocked by done_task to ready. Caller holds the lock."""
        unblocked = sorted(resolver.recompute_blocked(self.store.snapshot(), completed_id=done_task.id))
        moved = []
        for dep_id in unblocked:
            try:
                self._apply(self.store[dep_id], TaskStatus.READY, mode, cause=f"unblocked by {done_task.id}")
                moved.append(dep_id)
            except TransitionError as e:
                # done_task stays done; the dependent stays blocked and can be retried by hand
                logger.warning(f"[DEPS] {dep_id}: cascade to ready failed: {e}")
        if moved:
            logger.info(f"[DEPS] {done_task.id} done, unblocked: {', '.join(moved)}")
        return moved

    # ---- issue comments ----

    def post_comment(self, task_id: str, body: str, mode: Mode = Mode.LIVE) -> WriteResult | None:
        """Post body on the task's linked issue.

        Called after a transition has been committed, so a failed comment
        is returned to the caller instead of raised. Returns None for
        local-only tasks.
        """
        task = self.get_task(task_id)
        if task.external_ref is None:
            logger.debug(f"[STATE] {task_id}: local-only task, comment not posted")
            return None
        return self.executor.comment(task_id, task.external_ref, body, mode)

    # ---- backend sync ----

    def refresh_task(self, task_id: str) -> RefreshResult:
        """Pull title and body from the backend.

        The backend is the source of truth for those fields only. A status
        difference is reported, never applied.
        """
        with self._mutation_lock:
            task = self.get_task(task_id)
            backend = self.executor.backend
            if task.external_ref is None or backend is None:
                return RefreshResult(task, None)

            snapshot = backend.fetch_task(task.external_ref)
            if snapshot.error:
                raise EffectError(task_id, snapshot.error_kind or EFFECT_TRANSIENT, snapshot.error)

            updated = replace(
                task,
                title=snapshot.title or task.title,
                body=snapshot.body,
                external_ref=snapshot.ref,
            )
            self.store.commit(updated)

        result = RefreshResult(updated, snapshot.status)
        if result.drifted:
            logger.warning(
                f"[STATE] {task_id}: backend reports '{snapshot.status.value}', "
                f"local status is '{updated.status.value}'"
            )
        return result

    # ---- helpers ----

    def _check_acyclic(self, task_id: str, deps: frozenset[str]) -> None:
        cycle = resolver.find_cycle(task_id, deps, self.store.snapshot())
        if cycle:
            logger.error(f"[DEPS] {task_id}: rejected, dependency cycle {' -> '.join(cycle)}")
            raise CyclicDependency(task_id, cycle)

    def _warn_missing(self, task: Task, snapshot=None) -> None:
        missing = resolver.missing_dependencies(task, snapshot if snapshot is not None else self.store)
        if missing:
            logger.warning(
                f"[DEPS] {task.id}: unknown dependencies {', '.join(missing)} will never resolve"
            )


def check_invariants(store: TaskStore) -> list[str]:
    """Return descriptions of violated store invariants (empty if none).

    Used by tests and by `ghpm list --check` after out-of-band edits.
    """
    problems = []
    snapshot = store.snapshot()

    active = activity.active_tasks(snapshot)
    if len(active) > 1:
        problems.append(f"multiple tasks in progress: {', '.join(active)}")

    for task in sorted(snapshot.values(), key=lambda t: t.id):
        if task.status in STARTED_STATUSES and not resolver.is_unblocked(task, snapshot):
            unmet = resolver.unmet_dependencies(task, snapshot)
            problems.append(f"{task.id} is {task.status.value} with unmet dependencies: {', '.join(unmet)}")
        cycle = resolver.find_cycle(task.id, task.dependencies, snapshot)
        if cycle:
            problems.append(f"{task.id} is part of a dependency cycle: {' -> '.join(cycle)}")

    return problems
