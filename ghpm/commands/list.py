"""
ghpm list - List tasks.
"""

from ghpm.lib.constants import EXIT_GENERAL, EXIT_INVALID_INPUT
from ghpm.lib.types import TaskStatus, parse_status
from ghpm.workflow import resolver
from ghpm.workflow.session import ProjectSession
from ghpm.workflow.state_machine import check_invariants


def cmd_list(args, session: ProjectSession) -> int:
    """List tasks, optionally filtered by status. --check verifies store invariants."""
    engine = session.engine

    status = None
    if args.status:
        status = parse_status(args.status)
        if status is None:
            print(f"ERROR: Unknown status '{args.status}'")
            return EXIT_INVALID_INPUT

    tasks = engine.list_tasks(status=status)
    snapshot = engine.store.snapshot()

    if tasks:
        print("Tasks")
        print("-" * 60)
        for task in tasks:
            marker = "*" if task.id == engine.active_task_id else " "
            title = task.title[:30] + "..." if len(task.title) > 30 else task.title
            unmet = resolver.unmet_dependencies(task, snapshot)
            waiting = f" (waiting on {', '.join(unmet)})" if unmet and task.status in (TaskStatus.TODO, TaskStatus.BLOCKED) else ""
            issue = f" #{task.external_ref.issue_number}" if task.external_ref else ""
            print(f" {marker}{task.id:<18} {task.status.value:<12} {title}{issue}{waiting}")
        print()
    else:
        print("Tasks: none")
        print()

    print(f"{len(tasks)} task(s)")
    if engine.active_task_id:
        print(f"Active: {engine.active_task_id}")

    if not engine.list_tasks():
        print()
        print("Get started:")
        print("  ghpm add <id> \"<title>\"")

    if args.check:
        problems = check_invariants(engine.store)
        print()
        if problems:
            print("Invariant check FAILED:")
            for problem in problems:
                print(f"  - {problem}")
            return EXIT_GENERAL
        print("Invariant check passed")
    return 0
