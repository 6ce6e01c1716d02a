"""
Configuration loaders for ghpm.

Loads project configuration from <state_dir>/project.env. Without a
project.env, ghpm runs local-only (no backend).
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from ghpm.lib.types import STATUS_LABELS, TaskStatus
from . import envparse
from . import validate

logger = logging.getLogger(__name__)

PROJECT_ENV = "project.env"
TASKS_FILE = "tasks.json"
DEFAULT_STATE_DIR = ".ghpm"
STATE_DIR_ENV = "GHPM_DIR"

# DRY_RUN_MODE=true forces simulate mode for every mutating command
DRY_RUN_ENV = "DRY_RUN_MODE"

DEFAULT_STATUS_FIELD_NAME = "Workflow Status"
DEFAULT_GH_TIMEOUT = 30
DEFAULT_WRITE_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 2.0


class ConfigError(Exception):
    """project.env missing required values or malformed."""


@dataclass
class ProjectConfig:
    """GitHub Projects settings from project.env"""
    state_dir: Path
    github_owner: str
    github_repo: str
    project_id: str  # GraphQL node id, e.g. "PVT_kwHOA..."
    status_field_name: str = DEFAULT_STATUS_FIELD_NAME
    gh_timeout: int = DEFAULT_GH_TIMEOUT
    write_attempts: int = DEFAULT_WRITE_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    # Board option name for each status
    status_options: dict[TaskStatus, str] = field(default_factory=lambda: dict(STATUS_LABELS))

    @property
    def repo_slug(self) -> str:
        return f"{self.github_owner}/{self.github_repo}"


def get_state_dir(explicit: str | Path | None = None) -> Path:
    """State directory: explicit argument, $GHPM_DIR, or ./.ghpm"""
    if explicit:
        return Path(explicit)
    return Path(os.environ.get(STATE_DIR_ENV, DEFAULT_STATE_DIR))


def load_project_config(state_dir: Path) -> ProjectConfig | None:
    """Load project.env and return ProjectConfig, or None if absent.

    Raises:
        ConfigError: if the file exists but is invalid
    """
    env_path = state_dir / PROJECT_ENV
    if not env_path.exists():
        logger.debug(f"No {env_path}, running local-only")
        return None

    try:
        env = envparse.parse_env(env_path.read_text())
        validate.validate(env, "project")
    except (ValueError, validate.ValidationError) as e:
        raise ConfigError(f"{env_path}: {e}") from e

    status_options = dict(STATUS_LABELS)
    for status in TaskStatus:
        key = f"STATUS_OPTION_{status.name}"
        if key in env:
            status_options[status] = env[key]

    return ProjectConfig(
        state_dir=state_dir,
        github_owner=env["GITHUB_OWNER"],
        github_repo=env["GITHUB_REPO"],
        project_id=env["PROJECT_ID"],
        status_field_name=env.get("STATUS_FIELD_NAME", DEFAULT_STATUS_FIELD_NAME),
        gh_timeout=int(env.get("GH_TIMEOUT", DEFAULT_GH_TIMEOUT)),
        write_attempts=int(env.get("WRITE_ATTEMPTS", DEFAULT_WRITE_ATTEMPTS)),
        retry_delay=float(env.get("RETRY_DELAY", DEFAULT_RETRY_DELAY)),
        status_options=status_options,
    )


def dry_run_from_env() -> bool:
    """True if DRY_RUN_MODE=true is set in the environment."""
    return os.environ.get(DRY_RUN_ENV, "").strip().lower() == "true"
