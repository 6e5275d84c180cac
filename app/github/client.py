"""GitHub REST/GraphQL client built on httpx."""
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from .base import GitHubAPI, GitHubAPIError

log = structlog.get_logger()

DEFAULT_API_URL = "https://api.github.com"

_CONVERT_TO_DRAFT = """
mutation($id: ID!) {
  convertPullRequestToDraft(input: {pullRequestId: $id}) { pullRequest { id } }
}
"""

_MARK_READY = """
mutation($id: ID!) {
  markPullRequestReadyForReview(input: {pullRequestId: $id}) { pullRequest { id } }
}
"""


class GitHubClient(GitHubAPI):
    """Async GitHub API client.

    A single httpx.AsyncClient is created lazily and reused for every call.
    No retries are performed here.
    """

    def __init__(
        self,
        token: str | None = None,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None
    ):
        """
        Initialize GitHub client.

        Args:
            token: Personal access or installation token
            base_url: REST API root (GitHub Enterprise uses https://host/api/v3)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def is_configured(self) -> bool:
        """Check if a token is available."""
        return bool(self._token)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "github-automation-engine",
            }
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._get_client().request(method, path, **kwargs)
        except httpx.HTTPError as e:
            log.warning("github.request_failed", method=method, path=path, error=str(e))
            raise GitHubAPIError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            message = _error_message(response)
            log.warning(
                "github.error_response",
                method=method,
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise GitHubAPIError(message, status_code=response.status_code)
        return response

    async def _get_json(self, path: str) -> dict[str, Any]:
        response = await self._request("GET", path)
        return response.json()

    async def _get_paginated(self, path: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        url: str | None = path
        params: dict[str, Any] | None = {"per_page": 100}
        while url:
            response = await self._request("GET", url, params=params)
            items.extend(response.json())
            url = response.links.get("next", {}).get("url")
            # The next link already carries its query string
            params = None
        return items

    async def get_issue(self, owner: str, repo: str, number: int) -> dict[str, Any]:
        return await self._get_json(f"/repos/{owner}/{repo}/issues/{number}")

    async def get_pull_request(self, owner: str, repo: str, number: int) -> dict[str, Any]:
        return await self._get_json(f"/repos/{owner}/{repo}/pulls/{number}")

    async def list_pull_request_files(self, owner: str, repo: str, number: int) -> list[dict[str, Any]]:
        return await self._get_paginated(f"/repos/{owner}/{repo}/pulls/{number}/files")

    async def list_pull_request_reviews(self, owner: str, repo: str, number: int) -> list[dict[str, Any]]:
        return await self._get_paginated(f"/repos/{owner}/{repo}/pulls/{number}/reviews")

    async def list_issue_comments(self, owner: str, repo: str, number: int) -> list[dict[str, Any]]:
        return await self._get_paginated(f"/repos/{owner}/{repo}/issues/{number}/comments")

    async def add_labels(self, owner: str, repo: str, number: int, labels: list[str]) -> None:
        await self._request("POST", f"/repos/{owner}/{repo}/issues/{number}/labels", json={"labels": labels})

    async def remove_label(self, owner: str, repo: str, number: int, label: str) -> None:
        await self._request("DELETE", f"/repos/{owner}/{repo}/issues/{number}/labels/{quote(label, safe='')}")

    async def add_assignees(self, owner: str, repo: str, number: int, assignees: list[str]) -> None:
        await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{number}/assignees",
            json={"assignees": assignees},
        )

    async def remove_assignees(self, owner: str, repo: str, number: int, assignees: list[str]) -> None:
        await self._request(
            "DELETE",
            f"/repos/{owner}/{repo}/issues/{number}/assignees",
            json={"assignees": assignees},
        )

    async def create_comment(self, owner: str, repo: str, number: int, body: str) -> None:
        await self._request("POST", f"/repos/{owner}/{repo}/issues/{number}/comments", json={"body": body})

    async def update_issue(self, owner: str, repo: str, number: int, **fields: Any) -> None:
        await self._request("PATCH", f"/repos/{owner}/{repo}/issues/{number}", json=fields)

    async def lock_issue(self, owner: str, repo: str, number: int, lock_reason: str | None = None) -> None:
        payload = {"lock_reason": lock_reason} if lock_reason else None
        await self._request("PUT", f"/repos/{owner}/{repo}/issues/{number}/lock", json=payload)

    async def unlock_issue(self, owner: str, repo: str, number: int) -> None:
        await self._request("DELETE", f"/repos/{owner}/{repo}/issues/{number}/lock")

    async def request_reviewers(self, owner: str, repo: str, number: int, reviewers: list[str]) -> None:
        await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls/{number}/requested_reviewers",
            json={"reviewers": reviewers},
        )

    async def merge_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        merge_method: str = "merge",
        commit_title: str | None = None,
        commit_message: str | None = None
    ) -> None:
        payload: dict[str, Any] = {"merge_method": merge_method}
        if commit_title:
            payload["commit_title"] = commit_title
        if commit_message:
            payload["commit_message"] = commit_message
        await self._request("PUT", f"/repos/{owner}/{repo}/pulls/{number}/merge", json=payload)

    async def set_pull_request_draft(self, node_id: str, draft: bool) -> None:
        query = _CONVERT_TO_DRAFT if draft else _MARK_READY
        response = await self._request("POST", "/graphql", json={"query": query, "variables": {"id": node_id}})
        errors = response.json().get("errors")
        if errors:
            raise GitHubAPIError("; ".join(e.get("message", "unknown error") for e in errors))


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase
