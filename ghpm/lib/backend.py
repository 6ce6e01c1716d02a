"""
Backend port: the operations ghpm needs from an issue tracker.

The core depends on this Protocol, not on GitHub. Tests substitute a
fake; production uses GitHubProjectBackend from github.py.
"""

from typing import NamedTuple, Protocol

from ghpm.lib.types import ExternalRef, TaskSnapshot, TaskStatus

# WriteResult.error_kind values (match EffectError kinds)
WRITE_TIMEOUT = "timeout"
WRITE_TRANSIENT = "transient"
WRITE_REJECTED = "rejected"
WRITE_STALE = "stale"


class WriteResult(NamedTuple):
    """Outcome of a status write or an issue comment."""
    ok: bool
    ref: ExternalRef | None = None  # Reference as resolved by the backend
    receipt: str | None = None  # Backend-allocated id for the write (comment URL for comments)
    error: str | None = None
    error_kind: str | None = None  # One of WRITE_* when ok is False


class Backend(Protocol):
    """External task tracker.

    idempotent_writes: True if repeating write_status with the same
    mutation_id cannot apply the change twice. Only then may a failed
    write be retried.
    """

    idempotent_writes: bool

    def fetch_task(self, ref: ExternalRef) -> TaskSnapshot: ...

    def write_status(self, ref: ExternalRef, status: TaskStatus, mutation_id: str) -> WriteResult: ...

    def post_comment(self, ref: ExternalRef, body: str) -> WriteResult: ...