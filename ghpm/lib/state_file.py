"""
tasks.json persistence.

The file is validated on load and before every write, and written
atomically (temp file + rename) so a crash never leaves a half-written
store behind.
"""

import json
import logging
import os
from pathlib import Path

from ghpm.lib.types import Task
from ghpm.lib.validate import load_validated, validate_for_write

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def load_tasks(path: Path) -> list[Task]:
    """Load tasks from path. A missing file is an empty store.

    Raises:
        ValidationError: file is not valid JSON or doesn't match the schema
    """
    if not path.exists():
        return []
    data = load_validated(path, "tasks")
    tasks = [Task.from_dict(item) for item in data["tasks"]]
    logger.debug(f"Loaded {len(tasks)} task(s) from {path}")
    return tasks


def save_tasks(path: Path, tasks: list[Task]) -> None:
    """Validate and atomically write tasks to path."""
    data = {
        "version": STATE_VERSION,
        "tasks": [t.to_dict() for t in sorted(tasks, key=lambda t: t.id)],
    }
    validate_for_write(data, "tasks", path)

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(data, indent=2) + "\n")
    os.replace(tmp_path, path)
    logger.debug(f"Saved {len(tasks)} task(s) to {path}")
