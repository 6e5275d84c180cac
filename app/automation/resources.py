"""Normalized point-in-time views of GitHub issues and pull requests."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .models import ResourceType


class Review(BaseModel):
    """Submitted pull request review."""
    user: str
    state: str
    submitted_at: datetime | None = None


class Comment(BaseModel):
    """Issue or pull request conversation comment."""
    user: str | None = None
    body: str = ""


class ResourceSnapshot(BaseModel):
    """Normalized issue or pull request, fetched once per triggering call."""
    kind: ResourceType
    owner: str
    repo: str
    number: int
    node_id: str | None = None
    title: str = ""
    body: str | None = None
    state: str = "open"
    author: str | None = None
    labels: list[str] = Field(default_factory=list)
    assignees: list[str] = Field(default_factory=list)
    requested_reviewers: list[str] = Field(default_factory=list)
    draft: bool = False
    merged: bool = False
    head_ref: str | None = None
    base_ref: str | None = None
    repository: str | None = Field(default=None, description="owner/name of the base repository")
    created_at: datetime | None = None
    updated_at: datetime | None = None
    closed_at: datetime | None = None
    files: list[str] = Field(default_factory=list)
    reviews: list[Review] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)

    @classmethod
    def from_issue(
        cls,
        owner: str,
        repo: str,
        data: dict[str, Any],
        comments: list[dict[str, Any]] | None = None
    ) -> "ResourceSnapshot":
        """
        Build a snapshot from a GitHub REST issue payload.

        Args:
            owner: Repository owner
            repo: Repository name
            data: Issue JSON as returned by GET /repos/{owner}/{repo}/issues/{number}
            comments: Optional issue comment payloads

        Returns:
            Normalized snapshot
        """
        return cls(
            kind=ResourceType.ISSUE,
            owner=owner,
            repo=repo,
            repository=f"{owner}/{repo}",
            comments=_comments(comments),
            **_common_fields(data),
        )

    @classmethod
    def from_pull_request(
        cls,
        owner: str,
        repo: str,
        data: dict[str, Any],
        files: list[dict[str, Any]] | None = None,
        reviews: list[dict[str, Any]] | None = None,
        comments: list[dict[str, Any]] | None = None
    ) -> "ResourceSnapshot":
        """
        Build a snapshot from a GitHub REST pull request payload.

        Args:
            owner: Repository owner
            repo: Repository name
            data: Pull request JSON as returned by GET /repos/{owner}/{repo}/pulls/{number}
            files: Optional changed-file payloads
            reviews: Optional review payloads
            comments: Optional conversation comment payloads

        Returns:
            Normalized snapshot
        """
        head = data.get("head") or {}
        base = data.get("base") or {}
        base_repo = base.get("repo") or {}

        repository = base_repo.get("full_name")
        if not repository:
            repository = f"{owner}/{repo}"

        return cls(
            kind=ResourceType.PULL_REQUEST,
            owner=owner,
            repo=repo,
            draft=bool(data.get("draft")),
            merged=bool(data.get("merged")),
            head_ref=head.get("ref"),
            base_ref=base.get("ref"),
            repository=repository,
            requested_reviewers=_logins(data.get("requested_reviewers")),
            files=[f["filename"] for f in files or [] if f.get("filename")],
            reviews=[
                Review(
                    user=(r.get("user") or {}).get("login") or "",
                    state=r.get("state") or "",
                    submitted_at=r.get("submitted_at"),
                )
                for r in reviews or []
            ],
            comments=_comments(comments),
            **_common_fields(data),
        )


def _logins(users: list[dict[str, Any]] | None) -> list[str]:
    return [u["login"] for u in users or [] if u and u.get("login")]


def _comments(comments: list[dict[str, Any]] | None) -> list[Comment]:
    return [
        Comment(user=(c.get("user") or {}).get("login"), body=c.get("body") or "")
        for c in comments or []
    ]


def _common_fields(data: dict[str, Any]) -> dict[str, Any]:
    labels = []
    for label in data.get("labels") or []:
        # The REST API returns objects; webhook fixtures sometimes carry plain names
        name = label.get("name") if isinstance(label, dict) else label
        if name:
            labels.append(name)

    return {
        "number": data["number"],
        "node_id": data.get("node_id"),
        "title": data.get("title") or "",
        "body": data.get("body"),
        "state": data.get("state") or "open",
        "author": (data.get("user") or {}).get("login"),
        "labels": labels,
        "assignees": _logins(data.get("assignees")),
        "created_at": data.get("created_at"),
        "updated_at": data.get("updated_at"),
        "closed_at": data.get("closed_at"),
    }
