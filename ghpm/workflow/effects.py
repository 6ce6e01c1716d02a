"""Effect executor: the one place a validated status change leaves the process.

Runs in two modes:
- live: write through the backend, wait for the acknowledgement, and only
  then let the caller commit to the store.
- simulate: same preconditions, no backend call. Identifiers the backend
  would allocate get deterministic placeholders so a chain of simulated
  operations stays internally consistent.

Both modes return an Ack and append an EffectRecord, so the caller commits
the store the same way in either mode.

Issue comments that annotate a committed transition go through comment(),
which follows the same live/simulate split but never raises or retries.
"""

import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum

from ghpm.lib.backend import Backend, WRITE_REJECTED, WriteResult
from ghpm.lib.constants import MAX_ISSUE_NUMBER
from ghpm.lib.types import ExternalRef, Task, TaskStatus
from ghpm.workflow.errors import EffectError, RETRYABLE_EFFECT_KINDS

logger = logging.getLogger(__name__)

# 3 attempts, 2s then 4s between them
DEFAULT_WRITE_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 2.0

SIMULATED_ITEM_PREFIX = "SIM_ITEM_"


class Mode(Enum):
    LIVE = "live"
    SIMULATE = "simulate"

    @classmethod
    def from_flag(cls, dry_run: bool) -> "Mode":
        return cls.SIMULATE if dry_run else cls.LIVE


@dataclass(frozen=True)
class Mutation:
    """An already-validated status change for one task."""
    mutation_id: str
    task_id: str
    ref: ExternalRef | None
    from_status: TaskStatus
    to_status: TaskStatus

    @classmethod
    def for_task(cls, task: Task, to_status: TaskStatus) -> "Mutation":
        """Build the mutation moving task to to_status.

        The id is deterministic per (task, edge, revision), so a retried
        write carries the same idempotency key.
        """
        return cls(
            mutation_id=f"{task.id}:{task.status.value}->{to_status.value}@{task.revision}",
            task_id=task.id,
            ref=task.external_ref,
            from_status=task.status,
            to_status=to_status,
        )


@dataclass(frozen=True)
class Ack:
    """Acknowledged mutation. ref is the reference to store on the task."""
    mutation_id: str
    ref: ExternalRef | None
    receipt: str
    simulated: bool


@dataclass
class EffectRecord:
    """Structured record of an applied (or would-be) mutation."""
    mode: str
    mutation_id: str
    task_id: str
    from_status: str
    to_status: str
    issue_number: int | None
    item_id: str | None
    receipt: str
    attempts: int

    def as_dict(self) -> dict:
        return asdict(self)


class EffectExecutor:
    """Applies mutations to the backend (live) or records them (simulate)."""

    def __init__(
        self,
        backend: Backend | None = None,
        *,
        attempts: int = DEFAULT_WRITE_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
    ):
        self.backend = backend
        self.attempts = max(1, attempts)
        self.retry_delay = retry_delay
        self.records: list[EffectRecord] = []
        self._sim_seq = 0

    def apply(self, mutation: Mutation, mode: Mode) -> Ack:
        """Apply a mutation.

        Raises:
            EffectError: precondition failed or the backend write failed.
                The caller must not commit the store.
        """
        self._check_preconditions(mutation)

        if mutation.ref is None:
            ack, attempts = self._apply_local(mutation, mode), 0
        elif mode == Mode.SIMULATE:
            ack, attempts = self._simulate(mutation), 0
        else:
            ack, attempts = self._write_live(mutation)

        self._record(mutation, mode, ack, attempts)
        return ack

    # ---- preconditions (identical in both modes) ----

    def _check_preconditions(self, mutation: Mutation) -> None:
        if mutation.from_status == mutation.to_status:
            raise EffectError(
                mutation.task_id, WRITE_REJECTED,
                f"no-op mutation ({mutation.to_status.value})",
                attempts=0,
            )
        ref = mutation.ref
        if ref is None:
            return
        if not 1 <= ref.issue_number <= MAX_ISSUE_NUMBER:
            raise EffectError(
                mutation.task_id, WRITE_REJECTED,
                f"issue number out of range: {ref.issue_number}",
                attempts=0,
            )
        if self.backend is None:
            raise EffectError(
                mutation.task_id, WRITE_REJECTED,
                f"task is linked to issue #{ref.issue_number} but no backend is configured",
                attempts=0,
            )

    # ---- modes ----

    def _apply_local(self, mutation: Mutation, mode: Mode) -> Ack:
        logger.debug(f"[EFFECT] {mutation.task_id}: local-only task, no backend write")
        return Ack(
            mutation_id=mutation.mutation_id,
            ref=None,
            receipt=f"local:{mutation.mutation_id}",
            simulated=mode == Mode.SIMULATE,
        )

    def _simulate(self, mutation: Mutation) -> Ack:
        ref = mutation.ref
        if ref.item_id is None:
            ref = ref.with_item(f"{SIMULATED_ITEM_PREFIX}{ref.issue_number}")
        self._sim_seq += 1
        receipt = f"sim-{self._sim_seq:06d}"
        logger.info(
            f"[DRY-RUN] Would set issue #{ref.issue_number} ({ref.item_id}) "
            f"to '{mutation.to_status.label}' [{mutation.mutation_id}]"
        )
        return Ack(mutation_id=mutation.mutation_id, ref=ref, receipt=receipt, simulated=True)

    def _write_live(self, mutation: Mutation) -> tuple[Ack, int]:
        """Write through the backend with bounded retries.

        Transient failures are retried with exponential backoff only when
        the backend's writes are idempotent per mutation id; otherwise the
        first failure is final.
        """
        max_attempts = self.attempts if self.backend.idempotent_writes else 1
        delay = self.retry_delay
        attempt = 0

        while True:
            attempt += 1
            result = self.backend.write_status(mutation.ref, mutation.to_status, mutation.mutation_id)
            if result.ok:
                break

            kind = result.error_kind or WRITE_REJECTED
            message = result.error or "unknown backend error"
            if kind in RETRYABLE_EFFECT_KINDS and attempt < max_attempts:
                logger.warning(
                    f"[EFFECT] {mutation.task_id}: attempt {attempt}/{max_attempts} failed "
                    f"({kind}: {message}), retrying in {delay:g}s"
                )
                time.sleep(delay)
                delay *= 2
                continue

            if kind in RETRYABLE_EFFECT_KINDS and not self.backend.idempotent_writes:
                logger.error(
                    f"[EFFECT] {mutation.task_id}: {kind} failure on non-idempotent backend, not retrying"
                )
            raise EffectError(mutation.task_id, kind, message, attempts=attempt)

        ack = Ack(
            mutation_id=mutation.mutation_id,
            ref=result.ref or mutation.ref,
            receipt=result.receipt or mutation.mutation_id,
            simulated=False,
        )
        logger.info(
            f"[EFFECT] {mutation.task_id}: issue #{ack.ref.issue_number} -> "
            f"'{mutation.to_status.label}' ({attempt} attempt(s))"
        )
        return ack, attempt

    def comment(self, task_id: str, ref: ExternalRef, body: str, mode: Mode) -> WriteResult:
        """Post body as a comment on ref's issue.

        Comments are not idempotent, so a live comment gets one attempt and
        a failure is returned rather than raised.
        """
        if mode == Mode.SIMULATE:
            self._sim_seq += 1
            first_line = body.strip().splitlines()[0] if body.strip() else ""
            logger.info(f"[DRY-RUN] Would comment on issue #{ref.issue_number}: {first_line}")
            return WriteResult(ok=True, ref=ref, receipt=f"sim-{self._sim_seq:06d}")

        if self.backend is None:
            return WriteResult(ok=False, error="no backend is configured", error_kind=WRITE_REJECTED)

        result = self.backend.post_comment(ref, body)
        if result.ok:
            logger.info(f"[EFFECT] {task_id}: commented on issue #{ref.issue_number}")
        else:
            logger.warning(f"[EFFECT] {task_id}: comment on issue #{ref.issue_number} failed: {result.error}")
        return result

    def _record(self, mutation: Mutation, mode: Mode, ack: Ack, attempts: int) -> None:
        self.records.append(EffectRecord(
            mode=mode.value,
            mutation_id=mutation.mutation_id,
            task_id=mutation.task_id,
            from_status=mutation.from_status.value,
            to_status=mutation.to_status.value,
            issue_number=ack.ref.issue_number if ack.ref else None,
            item_id=ack.ref.item_id if ack.ref else None,
            receipt=ack.receipt,
            attempts=attempts,
        ))
