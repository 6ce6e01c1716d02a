"""Tests for ghpm.lib.github module."""

import json
import subprocess
from pathlib import Path
from unittest.mock import patch, MagicMock

import pytest

from ghpm.lib.config import ProjectConfig
from ghpm.lib.github import (
    GitHubProjectBackend,
    GraphQLResult,
    check_gh_available,
    classify_error,
    run_graphql,
)
from ghpm.lib.types import ExternalRef, TaskStatus


def completed(payload=None, returncode=0, stderr=""):
    result = MagicMock()
    result.returncode = returncode
    result.stdout = json.dumps(payload) if payload is not None else ""
    result.stderr = stderr
    return result


def issue_payload(status="Todo", project_id="PVT_test", title="Add login", body="Details"):
    return {"data": {"repository": {"issue": {
        "title": title,
        "body": body,
        "projectItems": {"nodes": [
            {"id": "PVTI_other", "project": {"id": "PVT_other"}, "fieldValueByName": None},
            {"id": "PVTI_42", "project": {"id": project_id}, "fieldValueByName": {"name": status}},
        ]},
    }}}}


FIELDS_PAYLOAD = {"data": {"node": {"fields": {"nodes": [
    {},
    {
        "id": "PVTSSF_status",
        "name": "Workflow Status",
        "options": [
            {"id": "opt_todo", "name": "Todo"},
            {"id": "opt_ready", "name": "Ready"},
            {"id": "opt_progress", "name": "In Progress"},
        ],
    },
]}}}}


def mutation_payload(mutation_id):
    return {"data": {"updateProjectV2ItemFieldValue": {
        "clientMutationId": mutation_id,
        "projectV2Item": {"id": "PVTI_42"},
    }}}


@pytest.fixture
def config():
    return ProjectConfig(
        state_dir=Path("/fake"),
        github_owner="octo",
        github_repo="widgets",
        project_id="PVT_test",
    )


class TestClassifyError:
    def test_transient(self):
        assert classify_error("HTTP 502: Bad Gateway") == "transient"
        assert classify_error("API rate limit exceeded") == "transient"

    def test_stale(self):
        assert classify_error("Could not resolve to a node with the global id") == "stale"

    def test_rejected(self):
        assert classify_error("Field value is invalid") == "rejected"


class TestRunGraphQL:
    """Tests for run_graphql()."""

    @patch("ghpm.lib.github.subprocess.run")
    def test_passes_typed_variables(self, mock_run):
        mock_run.return_value = completed({"data": {"ok": True}})
        result = run_graphql("query { x }", {"owner": "octo", "number": 7}, timeout=12)

        assert result == GraphQLResult({"ok": True})
        args = mock_run.call_args[0][0]
        assert args[:3] == ["gh", "api", "graphql"]
        assert ["-f", "owner=octo"] == args[5:7]
        assert ["-F", "number=7"] == args[7:9]
        assert mock_run.call_args[1]["timeout"] == 12

    @patch("ghpm.lib.github.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired("gh", 30)
        result = run_graphql("q", {})
        assert result.error_kind == "timeout"
        assert result.data is None

    @patch("ghpm.lib.github.subprocess.run")
    def test_gh_missing(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        assert run_graphql("q", {}).error_kind == "rejected"

    @patch("ghpm.lib.github.subprocess.run")
    def test_nonzero_exit_classified(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr="HTTP 503 Service Unavailable")
        result = run_graphql("q", {})
        assert result.error == "HTTP 503 Service Unavailable"
        assert result.error_kind == "transient"

    @patch("ghpm.lib.github.subprocess.run")
    def test_invalid_json(self, mock_run):
        result = MagicMock(returncode=0, stdout="<html>", stderr="")
        mock_run.return_value = result
        assert run_graphql("q", {}).error_kind == "transient"

    @patch("ghpm.lib.github.subprocess.run")
    def test_graphql_errors(self, mock_run):
        mock_run.return_value = completed({"errors": [{"type": "NOT_FOUND", "message": "Could not resolve"}]})
        assert run_graphql("q", {}).error_kind == "stale"

        mock_run.return_value = completed({"errors": [{"type": "RATE_LIMITED", "message": "slow down"}]})
        assert run_graphql("q", {}).error_kind == "transient"


class TestGitHubProjectBackend:
    """Tests for GitHubProjectBackend."""

    def test_idempotent(self, config):
        assert GitHubProjectBackend(config).idempotent_writes is True

    @patch("ghpm.lib.github.subprocess.run")
    def test_fetch_task(self, mock_run, config):
        mock_run.return_value = completed(issue_payload(status="🟡 In Progress"))
        snapshot = GitHubProjectBackend(config).fetch_task(ExternalRef(42))

        assert snapshot.error is None
        assert snapshot.error_kind is None
        assert snapshot.title == "Add login"
        assert snapshot.body == "Details"
        assert snapshot.ref == ExternalRef(42, "PVTI_42")
        assert snapshot.status == TaskStatus.IN_PROGRESS

    @patch("ghpm.lib.github.subprocess.run")
    def test_fetch_issue_not_in_project(self, mock_run, config):
        mock_run.return_value = completed(issue_payload(project_id="PVT_elsewhere"))
        snapshot = GitHubProjectBackend(config).fetch_task(ExternalRef(42))
        assert "not found in project" in snapshot.error
        assert snapshot.error_kind == "stale"

    @patch("ghpm.lib.github.subprocess.run")
    def test_fetch_missing_issue(self, mock_run, config):
        mock_run.return_value = completed({"data": {"repository": {"issue": None}}})
        snapshot = GitHubProjectBackend(config).fetch_task(ExternalRef(42))
        assert snapshot.error == "Issue #42 not found"
        assert snapshot.error_kind == "stale"

    @patch("ghpm.lib.github.subprocess.run")
    def test_fetch_timeout_keeps_kind(self, mock_run, config):
        mock_run.side_effect = subprocess.TimeoutExpired("gh", 30)
        snapshot = GitHubProjectBackend(config).fetch_task(ExternalRef(42))
        assert snapshot.error_kind == "timeout"

    @patch("ghpm.lib.github.subprocess.run")
    def test_write_status_resolves_item_and_option(self, mock_run, config):
        mock_run.side_effect = [
            completed(issue_payload()),
            completed(FIELDS_PAYLOAD),
            completed(mutation_payload("a:ready->in_progress@1")),
        ]
        backend = GitHubProjectBackend(config)
        result = backend.write_status(ExternalRef(42), TaskStatus.IN_PROGRESS, "a:ready->in_progress@1")

        assert result.ok
        assert result.ref == ExternalRef(42, "PVTI_42")
        assert result.receipt == "a:ready->in_progress@1"

        mutation_args = mock_run.call_args_list[2][0][0]
        assert "item=PVTI_42" in mutation_args
        assert "field=PVTSSF_status" in mutation_args
        assert "option=opt_progress" in mutation_args
        assert "mutationId=a:ready->in_progress@1" in mutation_args

    @patch("ghpm.lib.github.subprocess.run")
    def test_field_options_cached(self, mock_run, config):
        mock_run.side_effect = [
            completed(FIELDS_PAYLOAD),
            completed(mutation_payload("m1")),
            completed(mutation_payload("m2")),
        ]
        backend = GitHubProjectBackend(config)
        ref = ExternalRef(42, "PVTI_42")
        assert backend.write_status(ref, TaskStatus.READY, "m1").ok
        assert backend.write_status(ref, TaskStatus.IN_PROGRESS, "m2").ok
        assert mock_run.call_count == 3

    @patch("ghpm.lib.github.subprocess.run")
    def test_unknown_option_rejected(self, mock_run, config):
        mock_run.return_value = completed(FIELDS_PAYLOAD)
        result = GitHubProjectBackend(config).write_status(ExternalRef(42, "PVTI_42"), TaskStatus.DONE, "m")
        assert not result.ok
        assert result.error_kind == "rejected"
        assert "Option 'Done' not found" in result.error

    @patch("ghpm.lib.github.subprocess.run")
    def test_missing_field_rejected(self, mock_run, config):
        config.status_field_name = "Stage"
        mock_run.return_value = completed(FIELDS_PAYLOAD)
        result = GitHubProjectBackend(config).write_status(ExternalRef(42, "PVTI_42"), TaskStatus.READY, "m")
        assert result.error_kind == "rejected"
        assert "Field 'Stage' not found" in result.error

    @patch("ghpm.lib.github.subprocess.run")
    def test_mutation_failure_passed_through(self, mock_run, config):
        mock_run.side_effect = [
            completed(FIELDS_PAYLOAD),
            subprocess.TimeoutExpired("gh", 30),
        ]
        result = GitHubProjectBackend(config).write_status(ExternalRef(42, "PVTI_42"), TaskStatus.READY, "m")
        assert not result.ok
        assert result.error_kind == "timeout"


class TestPostComment:
    """Tests for GitHubProjectBackend.post_comment()."""

    @patch("ghpm.lib.github.subprocess.run")
    def test_posts_body_on_stdin(self, mock_run, config):
        mock_run.return_value = MagicMock(
            returncode=0, stdout="https://github.com/octo/widgets/issues/42#issuecomment-1\n", stderr="",
        )
        result = GitHubProjectBackend(config).post_comment(ExternalRef(42), "## Task Approved")

        assert result.ok
        assert result.receipt.endswith("#issuecomment-1")
        args = mock_run.call_args[0][0]
        assert args[:4] == ["gh", "issue", "comment", "42"]
        assert args[args.index("--repo") + 1] == "octo/widgets"
        assert mock_run.call_args[1]["input"] == "## Task Approved"

    @patch("ghpm.lib.github.subprocess.run")
    def test_failure_classified(self, mock_run, config):
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="HTTP 502: Bad Gateway")
        result = GitHubProjectBackend(config).post_comment(ExternalRef(42), "x")
        assert not result.ok
        assert result.error_kind == "transient"

    @patch("ghpm.lib.github.subprocess.run")
    def test_timeout(self, mock_run, config):
        mock_run.side_effect = subprocess.TimeoutExpired("gh", 30)
        result = GitHubProjectBackend(config).post_comment(ExternalRef(42), "x")
        assert result.error_kind == "timeout"


class TestCheckGhAvailable:
    """Tests for check_gh_available()."""

    @patch("ghpm.lib.github.subprocess.run")
    def test_available(self, mock_run):
        mock_run.side_effect = [
            MagicMock(returncode=0),
            MagicMock(returncode=0, stdout="Token scopes: 'project', 'repo'", stderr=""),
        ]
        assert check_gh_available() == (True, "")

    @patch("ghpm.lib.github.subprocess.run")
    def test_not_authenticated(self, mock_run):
        mock_run.side_effect = [
            MagicMock(returncode=0),
            MagicMock(returncode=1, stdout="", stderr="not logged in"),
        ]
        ok, error = check_gh_available()
        assert not ok
        assert "gh auth login" in error

    @patch("ghpm.lib.github.subprocess.run")
    def test_not_installed(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        ok, error = check_gh_available()
        assert not ok
        assert "not found" in error

    @patch("ghpm.lib.github.subprocess.run")
    def test_missing_project_scope_warns(self, mock_run, caplog):
        mock_run.side_effect = [
            MagicMock(returncode=0),
            MagicMock(returncode=0, stdout="Token scopes: 'repo'", stderr=""),
        ]
        assert check_gh_available()[0]
        assert "project' scope" in caplog.text
