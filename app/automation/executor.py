"""Action execution for matched automation rules."""
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

import structlog

from ..github.base import GitHubAPI, GitHubAPIError
from .errors import ActionExecutionError
from .models import Action, ActionResult, ActionType, ResourceType

log = structlog.get_logger()


@dataclass(frozen=True)
class ActionTarget:
    """Addressing context for the resource an action applies to."""
    owner: str
    repo: str
    number: int
    kind: ResourceType
    node_id: str | None = None


Handler = Callable[[Action, ActionTarget], Awaitable[None]]

PULL_REQUEST_ONLY = {
    ActionType.REQUEST_REVIEW.value,
    ActionType.CONVERT_TO_DRAFT.value,
    ActionType.READY_FOR_REVIEW.value,
    ActionType.MERGE.value,
}


def _require(action: Action, field: str):
    value = getattr(action, field, None)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ActionExecutionError(f"Action '{action.type}' requires '{field}'")
    return value


class ActionExecutor:
    """
    Executes a rule's action list against the GitHub API.

    Actions run strictly in order. A failing action is recorded and never
    stops the actions after it. No retries are attempted.
    """

    def __init__(self, github: GitHubAPI):
        """
        Initialize executor.

        Args:
            github: Client used for every outbound call
        """
        self._github = github
        self._handlers: dict[str, Handler] = {
            ActionType.ADD_LABEL.value: self._add_label,
            ActionType.REMOVE_LABEL.value: self._remove_label,
            ActionType.ASSIGN.value: self._assign,
            ActionType.UNASSIGN.value: self._unassign,
            ActionType.COMMENT.value: self._comment,
            ActionType.CLOSE.value: self._close,
            ActionType.REOPEN.value: self._reopen,
            ActionType.REQUEST_REVIEW.value: self._request_review,
            ActionType.SET_MILESTONE.value: self._set_milestone,
            ActionType.REMOVE_MILESTONE.value: self._remove_milestone,
            ActionType.LOCK_CONVERSATION.value: self._lock,
            ActionType.UNLOCK_CONVERSATION.value: self._unlock,
            ActionType.MARK_AS_DUPLICATE.value: self._mark_as_duplicate,
            ActionType.CONVERT_TO_DRAFT.value: self._convert_to_draft,
            ActionType.READY_FOR_REVIEW.value: self._ready_for_review,
            ActionType.MERGE.value: self._merge,
        }

    def register(self, action_type: str | Enum, handler: Handler):
        """Register (or replace) the handler for an action type."""
        key = action_type.value if isinstance(action_type, Enum) else action_type
        self._handlers[key] = handler

    async def execute(self, actions: list[Action], target: ActionTarget) -> list[ActionResult]:
        """
        Execute actions in order, collecting one result per action.

        Args:
            actions: Ordered action list of a matched rule
            target: Resource the actions apply to

        Returns:
            List of action results, same length and order as actions
        """
        results = []
        for action in actions:
            results.append(await self.execute_one(action, target))
        return results

    async def execute_one(self, action: Action, target: ActionTarget) -> ActionResult:
        """Execute a single action; failures are captured in the result."""
        handler = self._handlers.get(action.type)
        if handler is None:
            log.warning("action.unsupported_type", action_type=action.type)
            return ActionResult(type=action.type, success=False, error=f"Unsupported action type: {action.type}")

        if action.type in PULL_REQUEST_ONLY and target.kind != ResourceType.PULL_REQUEST:
            error = f"Action '{action.type}' only applies to pull requests"
            log.warning("action.failed", action_type=action.type, number=target.number, error=error)
            return ActionResult(type=action.type, success=False, error=error)

        try:
            await handler(action, target)
        except Exception as e:
            log.warning(
                "action.failed",
                action_type=action.type,
                owner=target.owner,
                repo=target.repo,
                number=target.number,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ActionResult(type=action.type, success=False, error=str(e))

        log.info("action.executed", action_type=action.type, owner=target.owner, repo=target.repo, number=target.number)
        return ActionResult(type=action.type, success=True)

    async def _add_label(self, action: Action, t: ActionTarget):
        await self._github.add_labels(t.owner, t.repo, t.number, [_require(action, "label")])

    async def _remove_label(self, action: Action, t: ActionTarget):
        try:
            await self._github.remove_label(t.owner, t.repo, t.number, _require(action, "label"))
        except GitHubAPIError as e:
            # Label already absent
            if e.status_code != 404:
                raise

    async def _assign(self, action: Action, t: ActionTarget):
        await self._github.add_assignees(t.owner, t.repo, t.number, [_require(action, "assignee")])

    async def _unassign(self, action: Action, t: ActionTarget):
        await self._github.remove_assignees(t.owner, t.repo, t.number, [_require(action, "assignee")])

    async def _comment(self, action: Action, t: ActionTarget):
        await self._github.create_comment(t.owner, t.repo, t.number, _require(action, "body"))

    async def _close(self, action: Action, t: ActionTarget):
        await self._github.update_issue(
            t.owner, t.repo, t.number, state="closed", state_reason=action.reason or "completed"
        )

    async def _reopen(self, action: Action, t: ActionTarget):
        await self._github.update_issue(t.owner, t.repo, t.number, state="open")

    async def _request_review(self, action: Action, t: ActionTarget):
        await self._github.request_reviewers(t.owner, t.repo, t.number, [_require(action, "reviewer")])

    async def _set_milestone(self, action: Action, t: ActionTarget):
        await self._github.update_issue(t.owner, t.repo, t.number, milestone=_require(action, "milestone"))

    async def _remove_milestone(self, action: Action, t: ActionTarget):
        await self._github.update_issue(t.owner, t.repo, t.number, milestone=None)

    async def _lock(self, action: Action, t: ActionTarget):
        await self._github.lock_issue(t.owner, t.repo, t.number, lock_reason=action.lock_reason)

    async def _unlock(self, action: Action, t: ActionTarget):
        await self._github.unlock_issue(t.owner, t.repo, t.number)

    async def _mark_as_duplicate(self, action: Action, t: ActionTarget):
        original = _require(action, "original_issue_number")
        await self._github.create_comment(t.owner, t.repo, t.number, f"Duplicate of #{original}")
        await self._github.update_issue(t.owner, t.repo, t.number, state="closed", state_reason="not_planned")

    async def _convert_to_draft(self, action: Action, t: ActionTarget):
        await self._github.set_pull_request_draft(self._node_id(t), True)

    async def _ready_for_review(self, action: Action, t: ActionTarget):
        await self._github.set_pull_request_draft(self._node_id(t), False)

    async def _merge(self, action: Action, t: ActionTarget):
        await self._github.merge_pull_request(
            t.owner,
            t.repo,
            t.number,
            merge_method=action.merge_method or "merge",
            commit_title=action.commit_title,
            commit_message=action.commit_message,
        )

    @staticmethod
    def _node_id(t: ActionTarget) -> str:
        if not t.node_id:
            raise ActionExecutionError("Pull request node id is unavailable")
        return t.node_id
