"""
ghpm show - Show one task.
"""

from ghpm.lib.types import TaskStatus
from ghpm.workflow import resolver
from ghpm.workflow.fsm import allowed_targets
from ghpm.workflow.session import ProjectSession


def cmd_show(args, session: ProjectSession) -> int:
    """Show task details, dependency state and reachable statuses."""
    engine = session.engine
    task = engine.get_task(args.id)
    snapshot = engine.store.snapshot()

    print(f"Task: {task.id}")
    print(f"Title: {task.title}")
    print(f"Status: {task.status.label}")
    if task.external_ref:
        item = task.external_ref.item_id or "not resolved yet"
        print(f"Issue: #{task.external_ref.issue_number} (item {item})")
    else:
        print("Issue: none (local-only)")

    print()
    if task.dependencies:
        print("Dependencies:")
        for dep_id in sorted(task.dependencies):
            dep = snapshot.get(dep_id)
            state = dep.status.value if dep else "unknown"
            mark = "x" if dep and dep.status == TaskStatus.DONE else " "
            print(f"  [{mark}] {dep_id:<20} {state}")
    else:
        print("Dependencies: none")

    dependents = resolver.dependents_of(task.id, snapshot)
    if dependents:
        print(f"Required by: {', '.join(dependents)}")

    targets = allowed_targets(task.status)
    if targets:
        print(f"\nCan move to: {', '.join(t.value for t in targets)}")

    if task.body:
        print()
        print(task.body)
    return 0
