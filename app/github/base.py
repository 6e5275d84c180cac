"""Abstract interface for the GitHub API calls the automation engine needs."""
from abc import ABC, abstractmethod
from typing import Any


class GitHubAPIError(Exception):
    """Raised when a GitHub API call returns an error response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        message = super().__str__()
        if self.status_code is not None:
            return f"GitHub API error {self.status_code}: {message}"
        return message


class GitHubAPI(ABC):
    """Outbound GitHub operations used for snapshots and actions.

    Every method is a single network call (list methods follow pagination)
    and raises GitHubAPIError on failure.
    """

    @abstractmethod
    async def get_issue(self, owner: str, repo: str, number: int) -> dict[str, Any]:
        pass

    @abstractmethod
    async def get_pull_request(self, owner: str, repo: str, number: int) -> dict[str, Any]:
        pass

    @abstractmethod
    async def list_pull_request_files(self, owner: str, repo: str, number: int) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def list_pull_request_reviews(self, owner: str, repo: str, number: int) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def list_issue_comments(self, owner: str, repo: str, number: int) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def add_labels(self, owner: str, repo: str, number: int, labels: list[str]) -> None:
        pass

    @abstractmethod
    async def remove_label(self, owner: str, repo: str, number: int, label: str) -> None:
        pass

    @abstractmethod
    async def add_assignees(self, owner: str, repo: str, number: int, assignees: list[str]) -> None:
        pass

    @abstractmethod
    async def remove_assignees(self, owner: str, repo: str, number: int, assignees: list[str]) -> None:
        pass

    @abstractmethod
    async def create_comment(self, owner: str, repo: str, number: int, body: str) -> None:
        pass

    @abstractmethod
    async def update_issue(self, owner: str, repo: str, number: int, **fields: Any) -> None:
        """Patch issue fields (state, state_reason, milestone, ...)."""
        pass

    @abstractmethod
    async def lock_issue(self, owner: str, repo: str, number: int, lock_reason: str | None = None) -> None:
        pass

    @abstractmethod
    async def unlock_issue(self, owner: str, repo: str, number: int) -> None:
        pass

    @abstractmethod
    async def request_reviewers(self, owner: str, repo: str, number: int, reviewers: list[str]) -> None:
        pass

    @abstractmethod
    async def merge_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        merge_method: str = "merge",
        commit_title: str | None = None,
        commit_message: str | None = None
    ) -> None:
        pass

    @abstractmethod
    async def set_pull_request_draft(self, node_id: str, draft: bool) -> None:
        """Convert a pull request to draft, or mark it ready for review."""
        pass
