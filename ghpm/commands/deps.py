"""
ghpm deps - Replace a task's dependencies.
"""

from ghpm.commands.add import parse_task_ids
from ghpm.lib.constants import EXIT_INVALID_INPUT, TASK_ID_PATTERN
from ghpm.workflow.session import ProjectSession


def cmd_deps(args, session: ProjectSession) -> int:
    """Set the dependency list of a task (use --clear to remove all)."""
    if args.clear and args.deps:
        print("ERROR: Use either a dependency list or --clear, not both")
        return EXIT_INVALID_INPUT
    if not args.clear and args.deps is None:
        print("ERROR: Give a dependency list (e.g. 'a,b') or --clear")
        return EXIT_INVALID_INPUT

    deps = [] if args.clear else parse_task_ids(args.deps)
    for dep in deps:
        if not TASK_ID_PATTERN.match(dep):
            print(f"ERROR: Invalid dependency id '{dep}'")
            return EXIT_INVALID_INPUT

    engine = session.engine
    before = engine.get_task(args.id)
    task = engine.set_dependencies(args.id, deps, session.mode)

    prefix = "DRY-RUN: Would set" if session.dry_run else "Set"
    print(f"{prefix} dependencies of '{task.id}': {', '.join(sorted(task.dependencies)) or 'none'}")
    if task.status != before.status:
        print(f"  Status: {before.status.label} -> {task.status.label}")
    return 0
