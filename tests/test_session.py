"""Tests for ghpm.workflow.session and ghpm.lib.locking modules."""

import json
import os
from unittest.mock import patch

import pytest

from ghpm.lib.github import GitHubProjectBackend
from ghpm.lib.locking import LockTimeout, project_lock, project_lock_path
from ghpm.lib.types import TaskStatus
from ghpm.workflow.effects import Mode
from ghpm.workflow.session import open_project


class TestProjectLock:
    """Tests for the flock-based project lock."""

    def test_lock_held_inside_context(self, tmp_path):
        lock_file = project_lock_path(tmp_path)
        with project_lock(tmp_path):
            assert lock_file.exists()
            assert lock_file.read_text().strip() == str(os.getpid())
        # Released: a fresh acquire succeeds without waiting
        with project_lock(tmp_path, timeout=0):
            pass
        # Lock files are kept to avoid inode races
        assert lock_file.exists()

    def test_second_acquire_times_out(self, tmp_path):
        with project_lock(tmp_path):
            with patch("ghpm.lib.locking.LOCK_POLL_INTERVAL", 0.01):
                with pytest.raises(LockTimeout):
                    with project_lock(tmp_path, timeout=0.05):
                        pass


class TestOpenProject:
    """Tests for open_project()."""

    def test_live_session_saves(self, tmp_path):
        with open_project(tmp_path) as session:
            assert session.config is None
            assert session.engine.executor.backend is None
            session.engine.register_task("a", "A")
            session.engine.mark_ready("a", session.mode)

        data = json.loads((tmp_path / "tasks.json").read_text())
        assert data["tasks"][0]["id"] == "a"
        assert data["tasks"][0]["status"] == "ready"

        with open_project(tmp_path) as session:
            assert session.engine.get_task("a").status == TaskStatus.READY
            assert session.engine.get_task("a").revision == 1

    def test_simulated_session_not_saved(self, tmp_path):
        with open_project(tmp_path, Mode.SIMULATE) as session:
            assert session.dry_run
            session.engine.register_task("a", "A")
        assert not (tmp_path / "tasks.json").exists()

    def test_committed_changes_saved_after_error(self, tmp_path):
        with pytest.raises(RuntimeError):
            with open_project(tmp_path) as session:
                session.engine.register_task("a", "A")
                raise RuntimeError("boom")
        assert (tmp_path / "tasks.json").exists()

    def test_config_selects_github_backend(self, tmp_path):
        (tmp_path / "project.env").write_text(
            "GITHUB_OWNER=octo\nGITHUB_REPO=widgets\nPROJECT_ID=PVT_abc\nWRITE_ATTEMPTS=5\nRETRY_DELAY=1\n"
        )
        with open_project(tmp_path, Mode.SIMULATE) as session:
            executor = session.engine.executor
            assert isinstance(executor.backend, GitHubProjectBackend)
            assert executor.attempts == 5
            assert executor.retry_delay == 1.0
