"""Tests for ghpm.lib.state_file module."""

import json

import pytest

from ghpm.lib.state_file import load_tasks, save_tasks
from ghpm.lib.types import ExternalRef, Task, TaskStatus
from ghpm.lib.validate import ValidationError


class TestStateFile:
    """Tests for load_tasks() / save_tasks()."""

    def test_missing_file_is_empty(self, tmp_path):
        assert load_tasks(tmp_path / "tasks.json") == []

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "state" / "tasks.json"
        tasks = [
            Task("b", "B", TaskStatus.BLOCKED, frozenset({"a"})),
            Task("a", "A", TaskStatus.DONE, external_ref=ExternalRef(3, "PVTI_x"), body="notes", revision=4),
        ]
        save_tasks(path, tasks)

        assert load_tasks(path) == sorted(tasks, key=lambda t: t.id)
        data = json.loads(path.read_text())
        assert data["version"] == 1
        assert [t["id"] for t in data["tasks"]] == ["a", "b"]
        assert not (path.parent / "tasks.json.tmp").exists()

    def test_refuses_invalid_write(self, tmp_path):
        path = tmp_path / "tasks.json"
        path.write_text('{"version": 1, "tasks": []}\n')
        bad = Task("a", "A", external_ref=ExternalRef(0))

        with pytest.raises(ValidationError, match="tasks.json not saved"):
            save_tasks(path, [bad])
        assert json.loads(path.read_text()) == {"version": 1, "tasks": []}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "tasks.json"
        path.write_text("{not json")
        with pytest.raises(ValidationError, match="is not valid JSON"):
            load_tasks(path)

    def test_unknown_status(self, tmp_path):
        path = tmp_path / "tasks.json"
        path.write_text(json.dumps({
            "version": 1,
            "tasks": [{"id": "a", "title": "A", "status": "paused", "dependencies": []}],
        }))
        with pytest.raises(ValidationError) as exc_info:
            load_tasks(path)
        assert exc_info.value.path == "tasks[0].status"

    def test_optional_fields_default(self, tmp_path):
        path = tmp_path / "tasks.json"
        path.write_text(json.dumps({
            "version": 1,
            "tasks": [{"id": "a", "title": "A", "status": "todo", "dependencies": ["b"]}],
        }))
        [task] = load_tasks(path)
        assert task.dependencies == frozenset({"b"})
        assert task.external_ref is None
        assert task.body == ""
        assert task.revision == 0
