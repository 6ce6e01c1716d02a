#!/usr/bin/env python3
"""ghpm CLI entrypoint."""

import sys
import argparse

from ghpm.lib.config import ConfigError, dry_run_from_env, get_state_dir
from ghpm.lib.constants import (
    EXIT_API,
    EXIT_CONFIG,
    EXIT_CONFLICT,
    EXIT_DEPENDENCY,
    EXIT_GENERAL,
    EXIT_INVALID_INPUT,
    EXIT_NOT_FOUND,
)
from ghpm.lib.locking import LockTimeout
from ghpm.lib.validate import ValidationError
from ghpm.logging_setup import setup_logging
from ghpm.workflow.effects import Mode
from ghpm.workflow.errors import (
    ActivityConflict,
    CyclicDependency,
    DependencyUnmet,
    EffectError,
    InvalidEdge,
    RegistrationError,
    TaskNotFound,
)
from ghpm.workflow.session import open_project
from ghpm.commands import add as cmd_add_module
from ghpm.commands import deps as cmd_deps_module
from ghpm.commands import list as cmd_list_module
from ghpm.commands import refresh as cmd_refresh_module
from ghpm.commands import show as cmd_show_module
from ghpm.commands import task as cmd_task_module

# Most specific first
EXIT_CODES = [
    (TaskNotFound, EXIT_NOT_FOUND),
    (DependencyUnmet, EXIT_DEPENDENCY),
    (CyclicDependency, EXIT_DEPENDENCY),
    (ActivityConflict, EXIT_CONFLICT),
    (EffectError, EXIT_API),
    (InvalidEdge, EXIT_INVALID_INPUT),
    (RegistrationError, EXIT_INVALID_INPUT),
    (ConfigError, EXIT_CONFIG),
    (ValidationError, EXIT_GENERAL),
    (LockTimeout, EXIT_GENERAL),
]


def exit_code_for(error: Exception) -> int:
    for error_type, code in EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return EXIT_GENERAL


def _print_guidance(error: Exception) -> None:
    if isinstance(error, DependencyUnmet):
        print("\nFinish these first:")
        for dep_id in error.unmet:
            print(f"  ghpm show {dep_id}")
    elif isinstance(error, ActivityConflict):
        print(f"\nSubmit or block '{error.active_id}' first:")
        print(f"  ghpm review {error.active_id}")
    elif isinstance(error, EffectError) and error.retryable:
        print("\nThe local state was not changed. Retry the command when GitHub is reachable.")


def run_command(args, handler) -> int:
    """Open the project for args and run handler(args, session)."""
    dry_run = getattr(args, "dry_run", False) or dry_run_from_env()
    mode = Mode.from_flag(dry_run)
    try:
        with open_project(get_state_dir(args.dir), mode) as session:
            return handler(args, session)
    except (
        TaskNotFound, DependencyUnmet, ActivityConflict, EffectError, InvalidEdge,
        RegistrationError, ConfigError, ValidationError, LockTimeout,
    ) as e:
        print(f"ERROR: {e}")
        _print_guidance(e)
        return exit_code_for(e)


def cmd_add(args):
    return run_command(args, cmd_add_module.cmd_add)


def cmd_ready(args):
    return run_command(args, cmd_task_module.cmd_ready)


def cmd_start(args):
    return run_command(args, cmd_task_module.cmd_start)


def cmd_review(args):
    return run_command(args, cmd_task_module.cmd_review)


def cmd_approve(args):
    return run_command(args, cmd_task_module.cmd_approve)


def cmd_rework(args):
    return run_command(args, cmd_task_module.cmd_rework)


def cmd_block(args):
    return run_command(args, cmd_task_module.cmd_block)


def cmd_deps(args):
    return run_command(args, cmd_deps_module.cmd_deps)


def cmd_show(args):
    return run_command(args, cmd_show_module.cmd_show)


def cmd_list(args):
    return run_command(args, cmd_list_module.cmd_list)


def cmd_refresh(args):
    return run_command(args, cmd_refresh_module.cmd_refresh)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='ghpm', description='GitHub Projects task workflow')
    parser.add_argument('--dir', '-d', help='State directory (default: $GHPM_DIR or ./.ghpm)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # ghpm add
    p_add = subparsers.add_parser('add', help='Register a task')
    p_add.add_argument('id', help='Task ID')
    p_add.add_argument('title', help='Task title')
    p_add.add_argument('--deps', help='Comma-separated dependency IDs')
    p_add.add_argument('--issue', type=int, help='GitHub issue number to link')
    p_add.add_argument('--dry-run', action='store_true', help='Validate without saving')
    p_add.set_defaults(func=cmd_add)

    # ghpm ready/start/review/approve/rework/block
    transitions = [
        ('ready', 'Mark task ready (dependencies must be done)', cmd_ready),
        ('start', 'Start work on a ready task', cmd_start),
        ('review', 'Submit task for review', cmd_review),
        ('approve', 'Approve reviewed task (marks done)', cmd_approve),
        ('rework', 'Send reviewed task back to in progress', cmd_rework),
        ('block', 'Block task on unfinished dependencies', cmd_block),
    ]
    for name, help_text, func in transitions:
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument('id', help='Task ID')
        if name == 'rework':
            p.add_argument('feedback', help='What needs to change (posted on the linked issue)')
        elif name in ('review', 'approve'):
            p.add_argument('--message', '-m', help='Comment to post on the linked issue')
        p.add_argument('--dry-run', action='store_true', help='Show what would change without writing')
        p.set_defaults(func=func)

    # ghpm deps
    p_deps = subparsers.add_parser('deps', help='Replace task dependencies')
    p_deps.add_argument('id', help='Task ID')
    p_deps.add_argument('deps', nargs='?', help='Comma-separated dependency IDs')
    p_deps.add_argument('--clear', action='store_true', help='Remove all dependencies')
    p_deps.add_argument('--dry-run', action='store_true', help='Show what would change without writing')
    p_deps.set_defaults(func=cmd_deps)

    # ghpm show
    p_show = subparsers.add_parser('show', help='Show task details')
    p_show.add_argument('id', help='Task ID')
    p_show.set_defaults(func=cmd_show)

    # ghpm list
    p_list = subparsers.add_parser('list', help='List tasks')
    p_list.add_argument('--status', '-s', help='Only tasks with this status')
    p_list.add_argument('--check', action='store_true', help='Verify store invariants')
    p_list.set_defaults(func=cmd_list)

    # ghpm refresh
    p_refresh = subparsers.add_parser('refresh', help='Pull issue title/body from GitHub')
    p_refresh.add_argument('id', nargs='?', help='Task ID (refreshes all linked tasks if omitted)')
    p_refresh.set_defaults(func=cmd_refresh)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
