"""Project session: load state, run transitions, save state.

Ties the pieces the CLI needs together:
- project lock (one ghpm process per state directory at a time)
- project.env -> GitHubProjectBackend (or local-only without one)
- tasks.json -> TaskStore -> TransitionEngine
- save on exit in live mode; simulated sessions are discarded
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from ghpm.lib.config import TASKS_FILE, ProjectConfig, load_project_config
from ghpm.lib.github import GitHubProjectBackend
from ghpm.lib.locking import DEFAULT_LOCK_TIMEOUT, project_lock
from ghpm.lib.state_file import load_tasks, save_tasks
from ghpm.workflow.effects import EffectExecutor, Mode
from ghpm.workflow.state_machine import TransitionEngine
from ghpm.workflow.store import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class ProjectSession:
    state_dir: Path
    config: ProjectConfig | None
    engine: TransitionEngine
    mode: Mode

    @property
    def dry_run(self) -> bool:
        return self.mode == Mode.SIMULATE

    @property
    def tasks_path(self) -> Path:
        return self.state_dir / TASKS_FILE


def build_engine(state_dir: Path, config: ProjectConfig | None) -> TransitionEngine:
    """TransitionEngine over the tasks saved in state_dir."""
    store = TaskStore(load_tasks(state_dir / TASKS_FILE))
    if config is None:
        executor = EffectExecutor()
    else:
        executor = EffectExecutor(
            GitHubProjectBackend(config),
            attempts=config.write_attempts,
            retry_delay=config.retry_delay,
        )
    return TransitionEngine(store, executor)


@contextmanager
def open_project(state_dir: Path, mode: Mode = Mode.LIVE, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
    """Yield a ProjectSession holding the project lock.

    In live mode the store is saved on exit even if the body raised: the
    store only ever holds acknowledged changes, so whatever was committed
    before the error has already reached the backend.
    """
    with project_lock(state_dir, timeout=lock_timeout):
        config = load_project_config(state_dir)
        session = ProjectSession(
            state_dir=state_dir,
            config=config,
            engine=build_engine(state_dir, config),
            mode=mode,
        )
        try:
            yield session
        finally:
            if mode == Mode.LIVE:
                save_tasks(session.tasks_path, session.engine.list_tasks())
            else:
                records = session.engine.executor.records
                logger.info(f"[DRY-RUN] {len(records)} mutation(s) simulated, nothing saved")
