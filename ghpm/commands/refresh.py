"""
ghpm refresh - Pull issue title/body from GitHub.
"""

from ghpm.lib.constants import EXIT_API, EXIT_CONFIG
from ghpm.lib.github import check_gh_available
from ghpm.workflow.errors import EffectError
from ghpm.workflow.session import ProjectSession


def cmd_refresh(args, session: ProjectSession) -> int:
    """Refresh one task, or every linked task if no id is given."""
    engine = session.engine

    if args.id:
        task_ids = [args.id]
    else:
        task_ids = [t.id for t in engine.list_tasks(predicate=lambda t: t.external_ref is not None)]
        if not task_ids:
            print("No tasks linked to GitHub issues")
            return 0

    if session.config is None and any(engine.get_task(t).external_ref for t in task_ids):
        print("ERROR: refresh requires a project.env with GitHub settings")
        return EXIT_CONFIG

    if session.config is not None:
        ok, error = check_gh_available()
        if not ok:
            print(f"ERROR: {error}")
            return EXIT_API

    failed = 0
    for task_id in task_ids:
        try:
            result = engine.refresh_task(task_id)
        except EffectError as e:
            print(f"  {task_id:<18} ERROR: {e}")
            failed += 1
            continue

        task = result.task
        if task.external_ref is None:
            print(f"  {task_id:<18} local-only, nothing to refresh")
        elif result.drifted:
            print(f"  {task_id:<18} board says '{result.remote_status.label}', local is '{task.status.label}'")
        else:
            print(f"  {task_id:<18} up to date")

    if failed:
        print(f"\n{failed} task(s) failed to refresh")
        return EXIT_API
    return 0
