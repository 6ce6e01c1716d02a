"""
ghpm add - Register a task.
"""

import re

from ghpm.lib.constants import (
    EXIT_CONFIG,
    EXIT_INVALID_INPUT,
    MAX_ISSUE_NUMBER,
    MAX_TEXT_LENGTH,
    MIN_ISSUE_NUMBER,
    TASK_ID_PATTERN,
)
from ghpm.lib.types import ExternalRef
from ghpm.workflow.session import ProjectSession

CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')


def sanitize_text(text: str, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Strip control characters and truncate to max_length."""
    return CONTROL_CHARS.sub("", text)[:max_length]


def parse_task_ids(raw: str | None) -> list[str]:
    """Parse a comma/space separated id list ("a, b c") into ids."""
    if not raw:
        return []
    return [part for part in re.split(r'[,\s]+', raw.strip()) if part]


def cmd_add(args, session: ProjectSession) -> int:
    """Register a new task, optionally linked to a GitHub issue."""
    task_id = args.id
    if not TASK_ID_PATTERN.match(task_id):
        print(f"ERROR: Invalid task id '{task_id}'")
        print("  Use letters, digits, '.', '_' or '-' (max 64 chars)")
        return EXIT_INVALID_INPUT

    deps = parse_task_ids(args.deps)
    for dep in deps:
        if not TASK_ID_PATTERN.match(dep):
            print(f"ERROR: Invalid dependency id '{dep}'")
            return EXIT_INVALID_INPUT

    ref = None
    if args.issue is not None:
        if not MIN_ISSUE_NUMBER <= args.issue <= MAX_ISSUE_NUMBER:
            print(f"ERROR: Issue number out of valid range ({MIN_ISSUE_NUMBER}-{MAX_ISSUE_NUMBER})")
            return EXIT_INVALID_INPUT
        if session.config is None:
            print("ERROR: --issue requires a project.env with GitHub settings")
            return EXIT_CONFIG
        ref = ExternalRef(issue_number=args.issue)

    task = session.engine.register_task(task_id, sanitize_text(args.title), deps, external_ref=ref)

    print(f"Registered task '{task.id}' ({task.status.label})")
    if deps:
        print(f"  Depends on: {', '.join(sorted(deps))}")
    if ref:
        print(f"  Linked to issue #{ref.issue_number}")
    if session.dry_run:
        print("\nDRY-RUN: task not saved")
    return 0
