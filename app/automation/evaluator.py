"""Condition evaluation for automation rules."""
from datetime import datetime, timezone
from enum import Enum
from fnmatch import fnmatchcase
from typing import Callable
import math
import re

import structlog

from .models import ConditionGroup, ConditionOperator, ConditionType, LeafCondition
from .resources import ResourceSnapshot
from .store import DEFAULT_MAX_CONDITION_DEPTH

log = structlog.get_logger()

Predicate = Callable[[LeafCondition, ResourceSnapshot], bool]

_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}

_TRUE_VALUES = {"true", "yes", "1", "on"}

_COMPARATORS: dict[str, Callable[[int, int], bool]] = {
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "=": lambda a, b: a == b,
    "<=": lambda a, b: a <= b,
    "<": lambda a, b: a < b,
}


def _compile(pattern: str, flags: str | None = None) -> re.Pattern | None:
    compiled_flags = 0
    for flag in flags or "":
        compiled_flags |= _REGEX_FLAGS.get(flag.lower(), 0)
    try:
        return re.compile(pattern, compiled_flags)
    except re.error as e:
        log.warning("condition.invalid_regex", error=str(e), pattern=pattern)
        return None


def _contains(condition: LeafCondition, text: str | None) -> bool:
    if not text:
        return False
    if condition.case_sensitive:
        return condition.value in text
    return condition.value.lower() in text.lower()


def _regex_search(condition: LeafCondition, text: str | None) -> bool:
    if not text:
        return False
    regex = _compile(condition.value, condition.flags)
    return regex is not None and regex.search(text) is not None


def _same_login(a: str | None, b: str) -> bool:
    # GitHub logins and label names are case-insensitive
    return a is not None and a.lower() == b.lower()


def _any_login(logins: list[str], value: str) -> bool:
    return any(_same_login(login, value) for login in logins)


class ConditionEvaluator:
    """
    Evaluates condition trees against resource snapshots.

    Leaf conditions dispatch through a registry keyed by condition type.
    Unknown types never match. Groups short-circuit in child order.
    """

    def __init__(
        self,
        max_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
        clock: Callable[[], datetime] | None = None
    ):
        """
        Initialize evaluator.

        Args:
            max_depth: Nodes deeper than this evaluate to False
            clock: Source of "now" for day-count conditions
        """
        self.max_depth = max_depth
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._predicates: dict[str, Predicate] = {
            ConditionType.TITLE_CONTAINS.value: lambda c, r: _contains(c, r.title),
            ConditionType.BODY_CONTAINS.value: lambda c, r: _contains(c, r.body),
            ConditionType.COMMENT_CONTAINS.value: lambda c, r: any(_contains(c, m.body) for m in r.comments),
            ConditionType.TITLE_MATCHES_REGEX.value: lambda c, r: _regex_search(c, r.title),
            ConditionType.BODY_MATCHES_REGEX.value: lambda c, r: _regex_search(c, r.body),
            ConditionType.HAS_LABEL.value: lambda c, r: _any_login(r.labels, c.value),
            ConditionType.CREATED_BY.value: lambda c, r: _same_login(r.author, c.value),
            ConditionType.ASSIGNED_TO.value: lambda c, r: _any_login(r.assignees, c.value),
            ConditionType.MENTIONS_USER.value: self._mentions_user,
            ConditionType.COMMENT_BY.value: lambda c, r: any(_same_login(m.user, c.value) for m in r.comments),
            ConditionType.REVIEW_REQUESTED_FROM.value: lambda c, r: _any_login(r.requested_reviewers, c.value),
            ConditionType.STATE_EQUALS.value: lambda c, r: r.state == c.value,
            ConditionType.IS_DRAFT.value: lambda c, r: r.draft == (c.value.strip().lower() in _TRUE_VALUES),
            ConditionType.BRANCH_MATCHES.value: self._branch_matches,
            ConditionType.MODIFIED_FILES_MATCH.value: self._files_match,
            ConditionType.REPOSITORY_MATCHES.value: lambda c, r: _same_login(r.repository, c.value),
            ConditionType.REVIEW_STATE.value: self._review_state,
            ConditionType.DAYS_SINCE_CREATED.value: lambda c, r: self._days_since(c, r.created_at),
            ConditionType.DAYS_SINCE_UPDATED.value: lambda c, r: self._days_since(c, r.updated_at),
            ConditionType.DAYS_SINCE_CLOSED.value: lambda c, r: self._days_since(c, r.closed_at),
        }

    def register(self, condition_type: str | Enum, predicate: Predicate):
        """Register (or replace) the predicate for a condition type."""
        key = condition_type.value if isinstance(condition_type, Enum) else condition_type
        self._predicates[key] = predicate

    def supports(self, condition_type: str) -> bool:
        return condition_type in self._predicates

    def evaluate(self, node: ConditionGroup | LeafCondition, resource: ResourceSnapshot) -> bool:
        """
        Evaluate a condition tree.

        Args:
            node: Root of the condition tree
            resource: Snapshot to evaluate against

        Returns:
            True if the tree matches the resource
        """
        return self._evaluate(node, resource, 1)

    def _evaluate(self, node: ConditionGroup | LeafCondition, resource: ResourceSnapshot, depth: int) -> bool:
        if depth > self.max_depth:
            log.warning("condition.max_depth_exceeded", max_depth=self.max_depth)
            return False

        if isinstance(node, ConditionGroup):
            if node.operator == ConditionOperator.OR:
                for child in node.conditions:
                    if self._evaluate(child, resource, depth + 1):
                        return True
                return False

            for child in node.conditions:
                if not self._evaluate(child, resource, depth + 1):
                    return False
            return True

        return self._evaluate_leaf(node, resource)

    def _evaluate_leaf(self, condition: LeafCondition, resource: ResourceSnapshot) -> bool:
        predicate = self._predicates.get(condition.type)
        if predicate is None:
            log.warning("condition.unsupported_type", condition_type=condition.type)
            return False

        result = bool(predicate(condition, resource))
        return not result if condition.negate else result

    def _mentions_user(self, condition: LeafCondition, resource: ResourceSnapshot) -> bool:
        if not resource.body or not condition.value:
            return False
        pattern = rf"@{re.escape(condition.value.lstrip('@'))}\b"
        return re.search(pattern, resource.body, re.IGNORECASE) is not None

    def _branch_matches(self, condition: LeafCondition, resource: ResourceSnapshot) -> bool:
        if not resource.head_ref:
            return False
        if condition.is_regex:
            return _regex_search(condition, resource.head_ref)
        return resource.head_ref == condition.value

    def _files_match(self, condition: LeafCondition, resource: ResourceSnapshot) -> bool:
        if condition.is_regex:
            regex = _compile(condition.value, condition.flags)
            if regex is None:
                return False
            return any(regex.search(path) for path in resource.files)
        return any(fnmatchcase(path, condition.value) for path in resource.files)

    def _review_state(self, condition: LeafCondition, resource: ResourceSnapshot) -> bool:
        latest = {}
        for review in resource.reviews:
            current = latest.get(review.user)
            if current is None or _is_newer(review.submitted_at, current.submitted_at):
                latest[review.user] = review
        wanted = condition.value.lower()
        return any(review.state.lower() == wanted for review in latest.values())

    def _days_since(self, condition: LeafCondition, when: datetime | None) -> bool:
        if when is None:
            return False
        try:
            days = int(condition.value)
        except ValueError:
            log.warning("condition.invalid_days", value=condition.value, condition_type=condition.type)
            return False

        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        elapsed = abs((self._clock() - when).total_seconds())
        elapsed_days = math.ceil(elapsed / 86400)
        return _COMPARATORS[condition.comparison](elapsed_days, days)


def _is_newer(candidate: datetime | None, current: datetime | None) -> bool:
    if candidate is None:
        return False
    if current is None:
        return True
    return candidate >= current


_default_evaluator = ConditionEvaluator()


def evaluate(node: ConditionGroup | LeafCondition, resource: ResourceSnapshot) -> bool:
    """Evaluate a condition tree with the default evaluator."""
    return _default_evaluator.evaluate(node, resource)
