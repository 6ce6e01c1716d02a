"""
Shared data types for ghpm.

This module contains the task records used by the store, the workflow
engine and the backend adapters, kept here to avoid circular imports.
"""

from dataclasses import dataclass, field, replace
from enum import Enum


class TaskStatus(Enum):
    """Task lifecycle status.

    Values are the strings written to tasks.json.
    """

    TODO = "todo"
    BLOCKED = "blocked"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"

    @property
    def label(self) -> str:
        """Human-facing name, matching the project board option names."""
        return STATUS_LABELS[self]


STATUS_LABELS = {
    TaskStatus.TODO: "Todo",
    TaskStatus.BLOCKED: "Blocked",
    TaskStatus.READY: "Ready",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.REVIEW: "Review",
    TaskStatus.DONE: "Done",
}

# Statuses that require every dependency to be done
STARTED_STATUSES = frozenset({
    TaskStatus.READY,
    TaskStatus.IN_PROGRESS,
    TaskStatus.REVIEW,
    TaskStatus.DONE,
})


def parse_status(value: str | None) -> TaskStatus | None:
    """Parse a status string or board label into TaskStatus.

    Accepts "in_progress", "In Progress", "in-progress". Board labels may
    carry a leading emoji ("🟡 In Progress"). Returns None if unknown.
    """
    if not value:
        return None
    text = value.strip()
    # Drop a leading emoji/marker before the first letter
    while text and not text[0].isalnum():
        text = text[1:]
    normalized = text.lower().replace("-", "_").replace(" ", "_")
    for status in TaskStatus:
        if status.value == normalized:
            return status
    return None


@dataclass(frozen=True)
class ExternalRef:
    """Handle to a task's record in the external backend.

    issue_number identifies the issue; item_id is the project item that
    carries the status field. item_id may be unknown until the backend
    resolves it.
    """
    issue_number: int
    item_id: str | None = None

    def with_item(self, item_id: str | None) -> "ExternalRef":
        return replace(self, item_id=item_id)


@dataclass(frozen=True)
class Task:
    """A tracked unit of work.

    Records are immutable; the store replaces them on every commit.
    """
    id: str
    title: str
    status: TaskStatus = TaskStatus.TODO
    dependencies: frozenset[str] = field(default_factory=frozenset)
    external_ref: ExternalRef | None = None
    body: str = ""
    revision: int = 0

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "dependencies": sorted(self.dependencies),
            "body": self.body,
            "revision": self.revision,
        }
        if self.external_ref is not None:
            data["external_ref"] = {
                "issue_number": self.external_ref.issue_number,
                "item_id": self.external_ref.item_id,
            }
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        ref_data = data.get("external_ref")
        ref = None
        if ref_data:
            ref = ExternalRef(
                issue_number=int(ref_data["issue_number"]),
                item_id=ref_data.get("item_id"),
            )
        return cls(
            id=data["id"],
            title=data["title"],
            status=TaskStatus(data["status"]),
            dependencies=frozenset(data.get("dependencies", [])),
            external_ref=ref,
            body=data.get("body", ""),
            revision=int(data.get("revision", 0)),
        )


@dataclass
class TaskSnapshot:
    """What the backend knows about a task.

    Returned by Backend.fetch_task. error and error_kind are set when the
    fetch failed.
    """
    ref: ExternalRef
    title: str = ""
    body: str = ""
    status: TaskStatus | None = None
    error: str | None = None
    error_kind: str | None = None  # WRITE_* kind from lib.backend
