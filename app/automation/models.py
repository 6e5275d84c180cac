"""Automation rule definition models."""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union
import uuid

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator


class ResourceType(str, Enum):
    """Kinds of webhook-sourced resources a rule can apply to."""
    ISSUE = "issue"
    PULL_REQUEST = "pull_request"


class ConditionOperator(str, Enum):
    """Boolean operators for condition groups."""
    AND = "and"
    OR = "or"


class ConditionType(str, Enum):
    """Supported leaf condition types."""
    TITLE_CONTAINS = "title_contains"
    BODY_CONTAINS = "body_contains"
    COMMENT_CONTAINS = "comment_contains"
    TITLE_MATCHES_REGEX = "title_matches_regex"
    BODY_MATCHES_REGEX = "body_matches_regex"
    HAS_LABEL = "has_label"
    CREATED_BY = "created_by"
    ASSIGNED_TO = "assigned_to"
    MENTIONS_USER = "mentions_user"
    COMMENT_BY = "comment_by"
    REVIEW_REQUESTED_FROM = "review_requested_from"
    STATE_EQUALS = "state_equals"
    IS_DRAFT = "is_draft"  # PR only
    BRANCH_MATCHES = "branch_matches"  # PR only
    MODIFIED_FILES_MATCH = "modified_files_match"  # PR only
    REPOSITORY_MATCHES = "repository_matches"
    REVIEW_STATE = "review_state"  # PR only
    DAYS_SINCE_CREATED = "days_since_created"
    DAYS_SINCE_UPDATED = "days_since_updated"
    DAYS_SINCE_CLOSED = "days_since_closed"


class ActionType(str, Enum):
    """Supported rule actions."""
    ADD_LABEL = "add_label"
    REMOVE_LABEL = "remove_label"
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    COMMENT = "comment"
    CLOSE = "close"
    REOPEN = "reopen"
    REQUEST_REVIEW = "request_review"  # PR only
    SET_MILESTONE = "set_milestone"
    REMOVE_MILESTONE = "remove_milestone"
    LOCK_CONVERSATION = "lock_conversation"
    UNLOCK_CONVERSATION = "unlock_conversation"
    MARK_AS_DUPLICATE = "mark_as_duplicate"
    CONVERT_TO_DRAFT = "convert_to_draft"  # PR only
    READY_FOR_REVIEW = "ready_for_review"  # PR only
    MERGE = "merge"  # PR only


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeafCondition(BaseModel):
    """Single predicate over a resource snapshot."""
    # Group keys are rejected so a node is never both a leaf and a group
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="forbid", frozen=True)

    # Kept as a plain string so unknown or legacy types still load
    type: str = Field(..., min_length=1, description="Condition type (see ConditionType)")
    value: str = Field(default="", description="Operand compared against the resource")
    negate: bool = Field(default=False, description="Invert the predicate result")
    case_sensitive: bool = Field(default=False, description="Text containment only")
    is_regex: bool = Field(default=False, description="Branch and file matching only")
    flags: str | None = Field(default=None, description="Regex flags: i, m, s, x")
    comparison: Literal[">", ">=", "=", "<=", "<"] = Field(
        default=">=",
        description="Comparison for day-count conditions"
    )

    @field_validator("type", mode="before")
    @classmethod
    def _unwrap_enum(cls, v: Any) -> Any:
        if isinstance(v, Enum):
            return v.value
        return v

    @field_validator("value", mode="before")
    @classmethod
    def _bool_to_str(cls, v: Any) -> Any:
        # JSON booleans for is_draft; numbers are handled by coerce_numbers_to_str
        if isinstance(v, bool):
            return "true" if v else "false"
        return v


class ConditionGroup(BaseModel):
    """Boolean composition of condition nodes."""
    model_config = ConfigDict(use_enum_values=True, extra="forbid", frozen=True)

    operator: ConditionOperator = ConditionOperator.AND
    conditions: list["ConditionNode"] = Field(default_factory=list)


def _condition_kind(v: Any) -> str:
    if isinstance(v, dict):
        return "group" if "operator" in v else "leaf"
    return "group" if isinstance(v, ConditionGroup) else "leaf"


ConditionNode = Annotated[
    Union[
        Annotated[ConditionGroup, Tag("group")],
        Annotated[LeafCondition, Tag("leaf")],
    ],
    Discriminator(_condition_kind),
]

ConditionGroup.model_rebuild()


class Action(BaseModel):
    """Side-effecting operation executed when a rule matches."""
    model_config = ConfigDict(frozen=True)

    type: str = Field(..., min_length=1, description="Action type (see ActionType)")
    label: str | None = None
    assignee: str | None = None
    body: str | None = None
    reviewer: str | None = None
    reason: str | None = None
    milestone: int | None = None
    lock_reason: Literal["off-topic", "too heated", "resolved", "spam"] | None = None
    original_issue_number: int | None = None
    merge_method: Literal["merge", "squash", "rebase"] | None = None
    commit_title: str | None = None
    commit_message: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _unwrap_enum(cls, v: Any) -> Any:
        if isinstance(v, Enum):
            return v.value
        return v


class AutomationRule(BaseModel):
    """Persisted automation rule.

    Instances are immutable; changes go through the rule store.
    """
    model_config = ConfigDict(use_enum_values=True, frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique rule identifier")
    name: str = Field(..., min_length=1, description="Human-readable rule name")
    description: str | None = None
    resource_type: ResourceType
    enabled: bool = Field(default=True, description="Whether rule is active")
    conditions: ConditionNode = Field(default_factory=ConditionGroup)
    actions: list[Action] = Field(default_factory=list)
    created_by: str = Field(..., min_length=1, description="Authoring user")
    repositories: list[str] | None = Field(
        default=None,
        description="owner/repo allow-list (None = all repositories)"
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("name", "created_by")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    def applies_to(self, resource_type: ResourceType, owner: str, repo: str) -> bool:
        """Check whether the rule should run for a resource of this kind and repository."""
        if not self.enabled or self.resource_type != ResourceType(resource_type).value:
            return False
        if self.repositories is None:
            return True
        full_name = f"{owner}/{repo}".lower()
        return any(r.lower() == full_name for r in self.repositories)


class RuleCreate(BaseModel):
    """Input for creating a rule."""
    model_config = ConfigDict(use_enum_values=True, extra="ignore")

    name: str = Field(..., min_length=1)
    description: str | None = None
    resource_type: ResourceType
    enabled: bool = True
    conditions: ConditionNode = Field(default_factory=ConditionGroup)
    actions: list[Action] = Field(default_factory=list)
    created_by: str = Field(..., min_length=1)
    repositories: list[str] | None = None

    @field_validator("name", "created_by")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class RuleUpdate(BaseModel):
    """Partial rule update; id and created_at are never updatable."""
    model_config = ConfigDict(use_enum_values=True, extra="ignore")

    name: str | None = None
    description: str | None = None
    resource_type: ResourceType | None = None
    enabled: bool | None = None
    conditions: ConditionNode | None = None
    actions: list[Action] | None = None
    created_by: str | None = None
    repositories: list[str] | None = None


class ActionResult(BaseModel):
    """Outcome of a single action."""
    type: str
    success: bool
    error: str | None = None


class RuleExecutionResult(BaseModel):
    """Per-rule outcome of one triggering call."""
    rule_id: str
    rule_name: str
    matched: bool
    actions_executed: list[ActionResult] = Field(default_factory=list)
    executed_at: datetime = Field(default_factory=utcnow)


def condition_depth(node: ConditionGroup | LeafCondition) -> int:
    """Depth of a condition tree (a lone leaf or an empty group is 1)."""
    if isinstance(node, ConditionGroup):
        return 1 + max((condition_depth(c) for c in node.conditions), default=0)
    return 1


def condition_types(node: ConditionGroup | LeafCondition) -> set[str]:
    """Collect every leaf condition type used in a tree."""
    if isinstance(node, ConditionGroup):
        types: set[str] = set()
        for child in node.conditions:
            types |= condition_types(child)
        return types
    return {node.type}
