"""
GitHub Projects backend.

Implements the Backend port with the gh CLI: task status lives in a
single-select field ("Workflow Status" by default) of a GitHub Projects
v2 board, and each task is an issue on that board. Review notes and
rework feedback are posted as issue comments.
"""

import json
import logging
import subprocess
from typing import NamedTuple

from ghpm.lib.backend import (
    WRITE_REJECTED,
    WRITE_STALE,
    WRITE_TIMEOUT,
    WRITE_TRANSIENT,
    WriteResult,
)
from ghpm.lib.config import ProjectConfig
from ghpm.lib.types import ExternalRef, TaskSnapshot, TaskStatus, parse_status

logger = logging.getLogger(__name__)


# Timeout for GitHub CLI operations (seconds)
GH_TIMEOUT_SECONDS = 30

TRANSIENT_MARKERS = (
    "rate limit", "timeout", "timed out", "502", "503", "504",
    "connection", "network", "eof", "temporarily",
)
STALE_MARKERS = ("could not resolve to", "not found", "404", "not_found")

ISSUE_QUERY = """
query($owner: String!, $repo: String!, $number: Int!, $field: String!) {
  repository(owner: $owner, name: $repo) {
    issue(number: $number) {
      title
      body
      projectItems(first: 20) {
        nodes {
          id
          project { id }
          fieldValueByName(name: $field) {
            ... on ProjectV2ItemFieldSingleSelectValue { name }
          }
        }
      }
    }
  }
}
"""

FIELDS_QUERY = """
query($project: ID!) {
  node(id: $project) {
    ... on ProjectV2 {
      fields(first: 50) {
        nodes {
          ... on ProjectV2SingleSelectField {
            id
            name
            options { id name }
          }
        }
      }
    }
  }
}
"""

UPDATE_STATUS_MUTATION = """
mutation($project: ID!, $item: ID!, $field: ID!, $option: String!, $mutationId: String!) {
  updateProjectV2ItemFieldValue(input: {
    projectId: $project
    itemId: $item
    fieldId: $field
    value: { singleSelectOptionId: $option }
    clientMutationId: $mutationId
  }) {
    clientMutationId
    projectV2Item { id }
  }
}
"""


class GraphQLResult(NamedTuple):
    """Result of a gh api graphql call."""
    data: dict | None
    error: str | None = None
    error_kind: str | None = None


def classify_error(message: str) -> str:
    """Map a gh/GraphQL error message to a WriteResult error kind."""
    text = message.lower()
    if any(marker in text for marker in TRANSIENT_MARKERS):
        return WRITE_TRANSIENT
    if any(marker in text for marker in STALE_MARKERS):
        return WRITE_STALE
    return WRITE_REJECTED


def run_graphql(query: str, variables: dict, timeout: int = GH_TIMEOUT_SECONDS) -> GraphQLResult:
    """Run a GraphQL query through `gh api graphql`.

    String variables are passed with -f, integers with -F (typed).
    Returns GraphQLResult with error/error_kind set on failure.
    """
    args = ["gh", "api", "graphql", "-f", f"query={query}"]
    for key, value in variables.items():
        if isinstance(value, int):
            args += ["-F", f"{key}={value}"]
        else:
            args += ["-f", f"{key}={value}"]

    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return GraphQLResult(None, "GitHub API timeout", WRITE_TIMEOUT)
    except FileNotFoundError:
        return GraphQLResult(None, "GitHub CLI (gh) not found", WRITE_REJECTED)
    except subprocess.SubprocessError as e:
        return GraphQLResult(None, f"GitHub operation failed: {e}", WRITE_TRANSIENT)

    if result.returncode != 0:
        message = result.stderr.strip() or f"gh exited with {result.returncode}"
        return GraphQLResult(None, message, classify_error(message))

    try:
        payload = json.loads(result.stdout)
    except json.JSONDecodeError:
        return GraphQLResult(None, "Invalid JSON from gh", WRITE_TRANSIENT)

    errors = payload.get("errors")
    if errors:
        message = "; ".join(e.get("message", str(e)) for e in errors)
        kinds = {e.get("type", "") for e in errors}
        if "NOT_FOUND" in kinds:
            kind = WRITE_STALE
        elif "RATE_LIMITED" in kinds:
            kind = WRITE_TRANSIENT
        else:
            kind = classify_error(message)
        return GraphQLResult(None, message, kind)

    return GraphQLResult(payload.get("data") or {})


class GitHubProjectBackend:
    """Backend over a GitHub Projects v2 board.

    Setting a single-select field to a given option is idempotent, so
    failed writes may be retried with the same mutation id.
    """

    idempotent_writes = True

    def __init__(self, config: ProjectConfig):
        self.config = config
        self._status_field: tuple[str, dict[str, str]] | None = None  # (field id, option name -> id)

    # ---- Backend port ----

    def fetch_task(self, ref: ExternalRef) -> TaskSnapshot:
        result = run_graphql(
            ISSUE_QUERY,
            {
                "owner": self.config.github_owner,
                "repo": self.config.github_repo,
                "number": ref.issue_number,
                "field": self.config.status_field_name,
            },
            timeout=self.config.gh_timeout,
        )
        if result.error:
            return TaskSnapshot(ref=ref, error=result.error, error_kind=result.error_kind)

        issue = (result.data.get("repository") or {}).get("issue")
        if not issue:
            return TaskSnapshot(ref=ref, error=f"Issue #{ref.issue_number} not found", error_kind=WRITE_STALE)

        item = None
        for node in (issue.get("projectItems") or {}).get("nodes") or []:
            if (node.get("project") or {}).get("id") == self.config.project_id:
                item = node
                break
        if item is None:
            return TaskSnapshot(
                ref=ref,
                error=f"Issue #{ref.issue_number} not found in project",
                error_kind=WRITE_STALE,
            )

        status_name = (item.get("fieldValueByName") or {}).get("name")
        return TaskSnapshot(
            ref=ref.with_item(item["id"]),
            title=issue.get("title", ""),
            body=issue.get("body") or "",
            status=self._parse_board_status(status_name),
        )

    def write_status(self, ref: ExternalRef, status: TaskStatus, mutation_id: str) -> WriteResult:
        item_id = ref.item_id
        if item_id is None:
            snapshot = self.fetch_task(ref)
            if snapshot.error:
                return WriteResult(ok=False, error=snapshot.error, error_kind=snapshot.error_kind)
            item_id = snapshot.ref.item_id

        option = self._status_option(status)
        if option.error:
            return WriteResult(ok=False, error=option.error, error_kind=option.error_kind)
        field_id, option_id = option.data["field"], option.data["option"]

        result = run_graphql(
            UPDATE_STATUS_MUTATION,
            {
                "project": self.config.project_id,
                "item": item_id,
                "field": field_id,
                "option": option_id,
                "mutationId": mutation_id,
            },
            timeout=self.config.gh_timeout,
        )
        if result.error:
            logger.debug(f"Status write for issue #{ref.issue_number} failed: {result.error}")
            return WriteResult(ok=False, error=result.error, error_kind=result.error_kind)

        payload = result.data.get("updateProjectV2ItemFieldValue") or {}
        return WriteResult(
            ok=True,
            ref=ref.with_item(item_id),
            receipt=payload.get("clientMutationId") or mutation_id,
        )

    def post_comment(self, ref: ExternalRef, body: str) -> WriteResult:
        """Add body as a comment on the issue. Receipt is the comment URL gh prints."""
        try:
            result = subprocess.run(
                [
                    "gh", "issue", "comment", str(ref.issue_number),
                    "--repo", f"{self.config.github_owner}/{self.config.github_repo}",
                    "--body-file", "-",
                ],
                input=body,
                capture_output=True,
                text=True,
                timeout=self.config.gh_timeout,
            )
        except subprocess.TimeoutExpired:
            return WriteResult(ok=False, error="GitHub API timeout", error_kind=WRITE_TIMEOUT)
        except FileNotFoundError:
            return WriteResult(ok=False, error="GitHub CLI (gh) not found", error_kind=WRITE_REJECTED)

        if result.returncode != 0:
            message = result.stderr.strip() or f"gh exited with {result.returncode}"
            return WriteResult(ok=False, error=message, error_kind=classify_error(message))

        return WriteResult(ok=True, ref=ref, receipt=result.stdout.strip() or None)

    # ---- helpers ----

    def _parse_board_status(self, name: str | None) -> TaskStatus | None:
        if not name:
            return None
        for status, option_name in self.config.status_options.items():
            if option_name == name:
                return status
        return parse_status(name)

    def _status_option(self, status: TaskStatus) -> GraphQLResult:
        """Field id and option id for status, discovered once per backend."""
        if self._status_field is None:
            result = run_graphql(
                FIELDS_QUERY,
                {"project": self.config.project_id},
                timeout=self.config.gh_timeout,
            )
            if result.error:
                return result

            nodes = ((result.data.get("node") or {}).get("fields") or {}).get("nodes") or []
            for node in nodes:
                if node.get("name") == self.config.status_field_name:
                    options = {o["name"]: o["id"] for o in node.get("options") or []}
                    self._status_field = (node["id"], options)
                    break
            else:
                return GraphQLResult(
                    None,
                    f"Field '{self.config.status_field_name}' not found in project",
                    WRITE_REJECTED,
                )

        field_id, options = self._status_field
        option_name = self.config.status_options[status]
        if option_name not in options:
            return GraphQLResult(
                None,
                f"Option '{option_name}' not found on field '{self.config.status_field_name}'",
                WRITE_REJECTED,
            )
        return GraphQLResult({"field": field_id, "option": options[option_name]})


def check_gh_available() -> tuple[bool, str]:
    """Check gh CLI is installed and authenticated.

    Returns: (ok, error_message)
    """
    try:
        result = subprocess.run(
            ["gh", "--version"],
            capture_output=True,
            timeout=5,
        )
        if result.returncode != 0:
            return False, "GitHub CLI (gh) not installed\n  Install: https://cli.github.com/"

        result = subprocess.run(
            ["gh", "auth", "status"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        if result.returncode != 0:
            return False, "GitHub CLI not authenticated\n  Run: gh auth login"

        if "project" not in (result.stdout + result.stderr):
            logger.warning("gh token may lack the 'project' scope; run: gh auth refresh -s project")

        return True, ""

    except FileNotFoundError:
        return False, "GitHub CLI (gh) not found\n  Install: https://cli.github.com/"
    except subprocess.TimeoutExpired:
        return False, "GitHub CLI timed out"
