"""Shared fixtures: an in-memory stand-in for the GitHub API and payload builders."""
from typing import Any

import pytest

from app.automation.backends import InMemoryRuleBackend
from app.automation.store import RuleStore
from app.github.base import GitHubAPI, GitHubAPIError


def issue_payload(number: int = 1, **overrides: Any) -> dict[str, Any]:
    """Minimal GitHub REST issue payload."""
    data = {
        "number": number,
        "node_id": f"I_node{number}",
        "title": "App crashes on startup",
        "body": "Stack trace attached, cc @octocat",
        "state": "open",
        "user": {"login": "reporter"},
        "labels": [{"name": "bug"}],
        "assignees": [],
        "created_at": "2026-10-01T12:00:00Z",
        "updated_at": "2026-10-10T12:00:00Z",
        "closed_at": None,
    }
    data.update(overrides)
    return data


def pull_request_payload(number: int = 7, **overrides: Any) -> dict[str, Any]:
    """Minimal GitHub REST pull request payload."""
    data = issue_payload(
        number,
        node_id=f"PR_node{number}",
        title="Add retry to uploader",
        body="Fixes #1",
        labels=[],
    )
    data.update({
        "draft": False,
        "merged": False,
        "head": {"ref": "feature/retry"},
        "base": {"ref": "main", "repo": {"full_name": "acme/widgets"}},
        "requested_reviewers": [{"login": "reviewer1"}],
    })
    data.update(overrides)
    return data


class FakeGitHub(GitHubAPI):
    """Records every call; reads are served from dicts, failures are injectable."""

    def __init__(self):
        self.issues: dict[int, dict[str, Any]] = {}
        self.pulls: dict[int, dict[str, Any]] = {}
        self.files: dict[int, list[dict[str, Any]]] = {}
        self.reviews: dict[int, list[dict[str, Any]]] = {}
        self.comments: dict[int, list[dict[str, Any]]] = {}
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}

    def fail(self, method: str, error: Exception | None = None):
        """Make every call to ``method`` raise."""
        self.failures[method] = error or GitHubAPIError("boom", status_code=500)

    def _record(self, method: str, *args: Any, **kwargs: Any):
        self.calls.append((method, args, kwargs))
        if method in self.failures:
            raise self.failures[method]

    def called(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    async def get_issue(self, owner, repo, number):
        self._record("get_issue", owner, repo, number)
        if number not in self.issues:
            raise GitHubAPIError("Not Found", status_code=404)
        return self.issues[number]

    async def get_pull_request(self, owner, repo, number):
        self._record("get_pull_request", owner, repo, number)
        if number not in self.pulls:
            raise GitHubAPIError("Not Found", status_code=404)
        return self.pulls[number]

    async def list_pull_request_files(self, owner, repo, number):
        self._record("list_pull_request_files", owner, repo, number)
        return self.files.get(number, [])

    async def list_pull_request_reviews(self, owner, repo, number):
        self._record("list_pull_request_reviews", owner, repo, number)
        return self.reviews.get(number, [])

    async def list_issue_comments(self, owner, repo, number):
        self._record("list_issue_comments", owner, repo, number)
        return self.comments.get(number, [])

    async def add_labels(self, owner, repo, number, labels):
        self._record("add_labels", owner, repo, number, labels)

    async def remove_label(self, owner, repo, number, label):
        self._record("remove_label", owner, repo, number, label)

    async def add_assignees(self, owner, repo, number, assignees):
        self._record("add_assignees", owner, repo, number, assignees)

    async def remove_assignees(self, owner, repo, number, assignees):
        self._record("remove_assignees", owner, repo, number, assignees)

    async def create_comment(self, owner, repo, number, body):
        self._record("create_comment", owner, repo, number, body)

    async def update_issue(self, owner, repo, number, **fields):
        self._record("update_issue", owner, repo, number, **fields)

    async def lock_issue(self, owner, repo, number, lock_reason=None):
        self._record("lock_issue", owner, repo, number, lock_reason=lock_reason)

    async def unlock_issue(self, owner, repo, number):
        self._record("unlock_issue", owner, repo, number)

    async def request_reviewers(self, owner, repo, number, reviewers):
        self._record("request_reviewers", owner, repo, number, reviewers)

    async def merge_pull_request(self, owner, repo, number, merge_method="merge", commit_title=None, commit_message=None):
        self._record(
            "merge_pull_request", owner, repo, number,
            merge_method=merge_method, commit_title=commit_title, commit_message=commit_message,
        )

    async def set_pull_request_draft(self, node_id, draft):
        self._record("set_pull_request_draft", node_id, draft)


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def store():
    return RuleStore(InMemoryRuleBackend())
