"""Task lifecycle state machine using the transitions library.

Defines the only legal status edges. Guards (dependencies, the activity
slot) are evaluated by state_machine.request_transition before a trigger
fires; this module only knows which edges exist.

Usage:
    from ghpm.workflow.fsm import TaskFSM

    fsm = TaskFSM("api-auth", TaskStatus.READY)
    fsm.start()    # ready -> in_progress
    fsm.submit()   # in_progress -> review
    fsm.approve()  # review -> done
"""

import logging

from transitions import Machine

from ghpm.lib.types import TaskStatus

logger = logging.getLogger(__name__)


# State values match TaskStatus values
STATES = [status.value for status in TaskStatus]

# Transitions defined as (trigger, source, dest)
# Each trigger becomes a method on the FSM
TRANSITIONS = [
    # Dependencies satisfied
    {"trigger": "mark_ready", "source": "todo", "dest": "ready"},
    {"trigger": "mark_ready", "source": "blocked", "dest": "ready"},

    # Claim the single active slot
    {"trigger": "start", "source": "ready", "dest": "in_progress"},

    # Submit for human review
    {"trigger": "submit", "source": "in_progress", "dest": "review"},

    # Review outcomes
    {"trigger": "approve", "source": "review", "dest": "done"},
    {"trigger": "request_rework", "source": "review", "dest": "in_progress"},

    # Administrative correction: dependency set no longer satisfied
    {"trigger": "block", "source": "todo", "dest": "blocked"},
    {"trigger": "block", "source": "ready", "dest": "blocked"},
    {"trigger": "block", "source": "in_progress", "dest": "blocked"},
    {"trigger": "block", "source": "review", "dest": "blocked"},
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        key = (t["source"], t["dest"])
        if key not in lookup:  # First trigger wins for a given source->dest
            lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


def trigger_for(from_status: TaskStatus, to_status: TaskStatus) -> str | None:
    """Trigger name for an edge, or None if the edge does not exist."""
    return TRIGGER_FOR.get((from_status.value, to_status.value))


def allowed_targets(status: TaskStatus) -> list[TaskStatus]:
    """Statuses reachable from status in one step."""
    return [TaskStatus(dest) for (source, dest) in TRIGGER_FOR if source == status.value]


class TaskFSM:
    """State machine for one task's status.

    Wraps the transitions library. The FSM holds no persistence of its
    own: the caller reads fsm.status after a trigger and commits it.
    """

    def __init__(self, task_id: str, status: TaskStatus):
        self.task_id = task_id

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=status.value,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )

    @property
    def status(self) -> TaskStatus:
        return TaskStatus(self.state)

    def on_state_change(self, event) -> None:
        """Callback after any state transition."""
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.debug(f"[FSM] {self.task_id}: {from_state} -> {to_state} ({trigger})")
