"""Error taxonomy for task transitions and registration.

Every transition failure derives from TransitionError and is recoverable
by the caller. CyclicDependency is the only fatal condition: it is raised
at registration time before the task enters the store.
"""

from ghpm.lib.types import TaskStatus


class TransitionError(Exception):
    """Base class for a rejected transition request."""

    kind = "transition"

    def __init__(self, task_id: str, message: str):
        self.task_id = task_id
        super().__init__(message)


class TaskNotFound(TransitionError):
    """No task with this id is registered."""

    kind = "not_found"

    def __init__(self, task_id: str):
        super().__init__(task_id, f"Task '{task_id}' not found")


class InvalidEdge(TransitionError):
    """Requested transition is not in the lifecycle table. Never retried."""

    kind = "invalid_edge"

    def __init__(self, task_id: str, from_status: TaskStatus, to_status: TaskStatus, detail: str = ""):
        self.from_status = from_status
        self.to_status = to_status
        message = f"Invalid transition: {from_status.value} -> {to_status.value} (task: {task_id})"
        if detail:
            message += f": {detail}"
        super().__init__(task_id, message)


class DependencyUnmet(TransitionError):
    """Task still has dependencies that are not done."""

    kind = "dependency_unmet"

    def __init__(self, task_id: str, unmet: list[str]):
        self.unmet = list(unmet)
        super().__init__(
            task_id,
            f"Task '{task_id}' is blocked by unfinished dependencies: {', '.join(self.unmet)}",
        )


class ActivityConflict(TransitionError):
    """Another task already holds the single in-progress slot."""

    kind = "activity_conflict"

    def __init__(self, task_id: str, active_id: str):
        self.active_id = active_id
        super().__init__(
            task_id,
            f"Cannot start '{task_id}': task '{active_id}' is already in progress",
        )


# EffectError kinds
EFFECT_TIMEOUT = "timeout"
EFFECT_TRANSIENT = "transient"
EFFECT_REJECTED = "rejected"
EFFECT_STALE = "stale"
RETRYABLE_EFFECT_KINDS = {EFFECT_TIMEOUT, EFFECT_TRANSIENT}


class EffectError(TransitionError):
    """Backend write failed. The store was not modified."""

    kind = "effect"

    def __init__(self, task_id: str, effect_kind: str, message: str, attempts: int = 1):
        self.effect_kind = effect_kind
        self.attempts = attempts
        super().__init__(
            task_id,
            f"Backend write for '{task_id}' failed ({effect_kind}, {attempts} attempt(s)): {message}",
        )

    @property
    def retryable(self) -> bool:
        return self.effect_kind in RETRYABLE_EFFECT_KINDS


class RegistrationError(Exception):
    """Task could not be registered (duplicate id, bad dependency set)."""

    def __init__(self, task_id: str, message: str):
        self.task_id = task_id
        super().__init__(message)


class CyclicDependency(RegistrationError):
    """Dependency set would create a cycle (or a self dependency)."""

    def __init__(self, task_id: str, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(
            task_id,
            f"Dependency cycle for '{task_id}': {' -> '.join(self.cycle)}",
        )
