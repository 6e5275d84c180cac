"""Automation service: rule lifecycle and per-event rule execution."""
from typing import Any, TYPE_CHECKING

import structlog

from ..github.base import GitHubAPI
from .errors import ResourceFetchError
from .evaluator import ConditionEvaluator
from .executor import ActionExecutor, ActionTarget
from .models import (
    AutomationRule,
    ConditionType,
    ResourceType,
    RuleCreate,
    RuleExecutionResult,
    RuleUpdate,
    condition_types,
)
from .resources import ResourceSnapshot
from .store import RuleStore

if TYPE_CHECKING:
    from ..metrics import Metrics

log = structlog.get_logger()

_FILE_CONDITIONS = {ConditionType.MODIFIED_FILES_MATCH.value}
_REVIEW_CONDITIONS = {ConditionType.REVIEW_STATE.value}
_COMMENT_CONDITIONS = {ConditionType.COMMENT_CONTAINS.value, ConditionType.COMMENT_BY.value}


class AutomationService:
    """
    Top-level orchestration for automation rules.

    CRUD operations delegate to the rule store. Execution fetches the
    resource once, evaluates every applicable rule in store order and runs
    the actions of matching rules.
    """

    def __init__(
        self,
        store: RuleStore,
        github: GitHubAPI,
        evaluator: ConditionEvaluator | None = None,
        executor: ActionExecutor | None = None,
        metrics: "Metrics | None" = None
    ):
        """
        Initialize automation service.

        Args:
            store: Rule store
            github: GitHub client for snapshots and actions
            evaluator: Condition evaluator (defaults to a new one)
            executor: Action executor (defaults to one bound to github)
            metrics: Optional Prometheus metrics
        """
        self.store = store
        self._github = github
        self._evaluator = evaluator or ConditionEvaluator()
        self._executor = executor or ActionExecutor(github)
        self._metrics = metrics
        self._update_active_gauge()

    # Rule management

    def create_rule(self, data: RuleCreate | dict[str, Any]) -> AutomationRule:
        rule = self.store.create_rule(data)
        self._warn_unsupported(rule)
        self._update_active_gauge()
        return rule

    def get_rules(self) -> list[AutomationRule]:
        return self.store.get_rules()

    def get_rule(self, rule_id: str) -> AutomationRule | None:
        return self.store.get_rule(rule_id)

    def update_rule(self, rule_id: str, updates: RuleUpdate | dict[str, Any]) -> AutomationRule | None:
        rule = self.store.update_rule(rule_id, updates)
        if rule:
            self._warn_unsupported(rule)
        self._update_active_gauge()
        return rule

    def unsupported_condition_types(self, rule: AutomationRule) -> set[str]:
        """Condition types in a rule that the evaluator has no predicate for."""
        return {t for t in condition_types(rule.conditions) if not self._evaluator.supports(t)}

    def _warn_unsupported(self, rule: AutomationRule):
        # Unknown types are stored but never match
        unsupported = self.unsupported_condition_types(rule)
        if unsupported:
            log.warning("rule.unsupported_condition_types", rule_id=rule.id, condition_types=sorted(unsupported))

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> AutomationRule | None:
        rule = self.store.set_rule_enabled(rule_id, enabled)
        self._update_active_gauge()
        return rule

    def delete_rule(self, rule_id: str) -> bool:
        deleted = self.store.delete_rule(rule_id)
        self._update_active_gauge()
        return deleted

    # Execution

    async def execute_rules_for_issue(self, owner: str, repo: str, issue_number: int) -> list[RuleExecutionResult]:
        """
        Evaluate and execute all enabled issue rules for one issue.

        Raises:
            ResourceFetchError: If the issue could not be fetched
        """
        return await self._execute_rules(ResourceType.ISSUE, owner, repo, issue_number)

    async def execute_rules_for_pull_request(
        self,
        owner: str,
        repo: str,
        pull_number: int
    ) -> list[RuleExecutionResult]:
        """
        Evaluate and execute all enabled pull request rules for one pull request.

        Raises:
            ResourceFetchError: If the pull request could not be fetched
        """
        return await self._execute_rules(ResourceType.PULL_REQUEST, owner, repo, pull_number)

    async def _execute_rules(
        self,
        kind: ResourceType,
        owner: str,
        repo: str,
        number: int
    ) -> list[RuleExecutionResult]:
        rules = [r for r in self.store.get_rules() if r.applies_to(kind, owner, repo)]
        snapshot = await self._fetch_snapshot(kind, owner, repo, number, rules)

        log.info(
            "automation.execute",
            resource_type=kind.value,
            owner=owner,
            repo=repo,
            number=number,
            rule_count=len(rules),
        )

        target = ActionTarget(owner=owner, repo=repo, number=number, kind=kind, node_id=snapshot.node_id)
        results = []
        for rule in rules:
            results.append(await self._execute_rule(rule, snapshot, target))
        return results

    async def _execute_rule(
        self,
        rule: AutomationRule,
        snapshot: ResourceSnapshot,
        target: ActionTarget
    ) -> RuleExecutionResult:
        matched = self._evaluator.evaluate(rule.conditions, snapshot)
        if self._metrics:
            self._metrics.record_rule_evaluated(target.kind.value, matched)

        if not matched:
            log.debug("rule.not_matched", rule_id=rule.id, number=target.number)
            return RuleExecutionResult(rule_id=rule.id, rule_name=rule.name, matched=False)

        log.info("rule.matched", rule_id=rule.id, rule_name=rule.name, number=target.number)
        action_results = await self._executor.execute(rule.actions, target)
        if self._metrics:
            for result in action_results:
                self._metrics.record_action(result.type, result.success)

        return RuleExecutionResult(
            rule_id=rule.id,
            rule_name=rule.name,
            matched=True,
            actions_executed=action_results,
        )

    async def _fetch_snapshot(
        self,
        kind: ResourceType,
        owner: str,
        repo: str,
        number: int,
        rules: list[AutomationRule]
    ) -> ResourceSnapshot:
        used: set[str] = set()
        for rule in rules:
            used |= condition_types(rule.conditions)

        try:
            if kind == ResourceType.ISSUE:
                data = await self._github.get_issue(owner, repo, number)
            else:
                data = await self._github.get_pull_request(owner, repo, number)

            comments = None
            if used & _COMMENT_CONDITIONS:
                comments = await self._github.list_issue_comments(owner, repo, number)

            if kind == ResourceType.ISSUE:
                return ResourceSnapshot.from_issue(owner, repo, data, comments=comments)

            files = None
            if used & _FILE_CONDITIONS:
                files = await self._github.list_pull_request_files(owner, repo, number)
            reviews = None
            if used & _REVIEW_CONDITIONS:
                reviews = await self._github.list_pull_request_reviews(owner, repo, number)
            return ResourceSnapshot.from_pull_request(
                owner, repo, data, files=files, reviews=reviews, comments=comments
            )
        except Exception as e:
            log.error(
                "automation.fetch_failed",
                resource_type=kind.value,
                owner=owner,
                repo=repo,
                number=number,
                error=str(e),
            )
            raise ResourceFetchError(
                f"Unable to fetch {kind.value} {owner}/{repo}#{number}: {e}",
                owner=owner,
                repo=repo,
                number=number,
            ) from e

    def _update_active_gauge(self):
        if self._metrics:
            self._metrics.set_active_rules(sum(1 for r in self.store.get_rules() if r.enabled))
