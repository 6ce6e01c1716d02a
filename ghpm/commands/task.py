"""
ghpm ready/start/review/approve/rework/block - Task status transitions.

Each command is one request_transition call. Errors propagate to the CLI,
which maps them to exit codes. review, approve and rework can leave a
comment on the linked issue once the transition is committed.
"""

from ghpm.commands.add import sanitize_text
from ghpm.lib.constants import EXIT_API, EXIT_INVALID_INPUT
from ghpm.lib.github import check_gh_available
from ghpm.lib.types import TaskStatus
from ghpm.workflow.session import ProjectSession

NEXT_STEPS = {
    TaskStatus.READY: ["ghpm start {id}"],
    TaskStatus.IN_PROGRESS: ["ghpm review {id}"],
    TaskStatus.REVIEW: ["ghpm approve {id}", "ghpm rework {id} \"<feedback>\""],
    TaskStatus.BLOCKED: ["ghpm show {id}"],
    TaskStatus.DONE: ["ghpm list --status ready"],
}

REVIEW_COMMENT = """## Ready for Review

{message}

Moved to **Review**. Approve with `ghpm approve {id}` or send back with `ghpm rework {id}`."""

APPROVE_COMMENT = """## Task Approved

{message}

Moved to **Done**."""

REWORK_COMMENT = """## Rework Requested

### Feedback from Review
{message}

Moved back to **In Progress**. Resubmit with `ghpm review {id}` when the feedback is addressed."""


def _transition(args, session: ProjectSession, target: TaskStatus, verb: str, comment: str | None = None) -> int:
    engine = session.engine
    before = engine.get_task(args.id)
    history_start = len(engine.history)

    if before.external_ref and session.config and not session.dry_run:
        ok, error = check_gh_available()
        if not ok:
            print(f"ERROR: {error}")
            return EXIT_API

    task = engine.request_transition(args.id, target, session.mode)

    label = f"DRY-RUN: Would have {verb.lower()}" if session.dry_run else verb
    print(f"{label} task '{task.id}': {before.status.label} -> {task.status.label}")
    if task.external_ref:
        print(f"  Issue #{task.external_ref.issue_number} ({task.external_ref.item_id or 'item unresolved'})")

    if comment:
        _post_comment(session, task.id, comment)

    cascaded = [r for r in engine.history[history_start:] if r.task_id != task.id]
    if cascaded:
        print("  Unblocked:")
        for record in cascaded:
            print(f"    {record.task_id}: {record.from_status.value} -> {record.to_status.value}")

    steps = NEXT_STEPS.get(task.status, [])
    if steps:
        print("\nNext steps:")
        for step in steps:
            print(f"  {step.format(id=task.id)}")
    if session.dry_run:
        print("\nTo execute for real, run without --dry-run")
    return 0


def _post_comment(session: ProjectSession, task_id: str, body: str) -> None:
    # The transition is already committed; a failed comment is reported, not fatal
    ref = session.engine.get_task(task_id).external_ref
    result = session.engine.post_comment(task_id, body, session.mode)
    if result is None:
        print("  Comment not posted (local-only task)")
    elif not result.ok:
        print(f"  WARNING: comment not posted: {result.error}")
        print(f"  Add it by hand: gh issue comment {ref.issue_number}")
    elif session.dry_run:
        print(f"  DRY-RUN: Would have commented on issue #{ref.issue_number}")
    else:
        print(f"  Commented on issue #{ref.issue_number}" + (f": {result.receipt}" if result.receipt else ""))


def _comment(template: str, args, message: str | None) -> str | None:
    message = sanitize_text(message or "").strip()
    if not message:
        return None
    return template.format(message=message, id=args.id)


def cmd_ready(args, session: ProjectSession) -> int:
    """Move a todo/blocked task to ready once its dependencies are done."""
    return _transition(args, session, TaskStatus.READY, "Readied")


def cmd_start(args, session: ProjectSession) -> int:
    return _transition(args, session, TaskStatus.IN_PROGRESS, "Started")


def cmd_review(args, session: ProjectSession) -> int:
    comment = _comment(REVIEW_COMMENT, args, args.message)
    return _transition(args, session, TaskStatus.REVIEW, "Submitted", comment)


def cmd_approve(args, session: ProjectSession) -> int:
    """Approve a reviewed task; dependents it unblocks move to ready."""
    comment = _comment(APPROVE_COMMENT, args, args.message)
    return _transition(args, session, TaskStatus.DONE, "Approved", comment)


def cmd_rework(args, session: ProjectSession) -> int:
    """Send a reviewed task back to in progress with reviewer feedback."""
    comment = _comment(REWORK_COMMENT, args, args.feedback)
    if comment is None:
        print("ERROR: Rework needs feedback explaining what to change")
        return EXIT_INVALID_INPUT
    return _transition(args, session, TaskStatus.IN_PROGRESS, "Returned for rework", comment)


def cmd_block(args, session: ProjectSession) -> int:
    return _transition(args, session, TaskStatus.BLOCKED, "Blocked")
