"""Process-wide singletons wired from settings, exposed as FastAPI dependencies."""
from functools import lru_cache

import structlog

from .automation.backends import (
    FileRuleBackend,
    InMemoryRuleBackend,
    RedisRuleBackend,
    RuleBackend,
)
from .automation.evaluator import ConditionEvaluator
from .automation.service import AutomationService
from .automation.store import RuleStore
from .config import Settings, get_settings
from .github.client import GitHubClient
from .logging import SERVICE_NAME
from .metrics import Metrics

log = structlog.get_logger()

VERSION = "0.1.0"


def build_backend(settings: Settings) -> RuleBackend:
    """
    Select the rule persistence backend from settings.

    A redis backend without REDIS_URL falls back to memory.
    """
    if settings.RULE_STORE_BACKEND == "file":
        log.info("rule_store.backend_selected", type="file", path=settings.RULE_STORE_PATH)
        return FileRuleBackend(settings.RULE_STORE_PATH, key=settings.RULE_STORE_KEY)

    if settings.RULE_STORE_BACKEND == "redis":
        if not settings.REDIS_URL:
            log.warning(
                "rule_store.backend_fallback",
                requested="redis",
                actual="memory",
                reason="REDIS_URL not configured"
            )
            return InMemoryRuleBackend(key=settings.RULE_STORE_KEY)

        log.info("rule_store.backend_selected", type="redis")
        return RedisRuleBackend(str(settings.REDIS_URL), key=settings.RULE_STORE_KEY)

    log.info("rule_store.backend_selected", type="memory")
    return InMemoryRuleBackend(key=settings.RULE_STORE_KEY)


@lru_cache(maxsize=1)
def get_metrics() -> Metrics:
    return Metrics(service_name=SERVICE_NAME, version=VERSION)


@lru_cache(maxsize=1)
def get_rule_store() -> RuleStore:
    settings = get_settings()
    return RuleStore(build_backend(settings), max_condition_depth=settings.MAX_CONDITION_DEPTH)


@lru_cache(maxsize=1)
def get_github_client() -> GitHubClient:
    settings = get_settings()
    client = GitHubClient(
        token=settings.GITHUB_TOKEN,
        base_url=settings.GITHUB_API_URL,
        timeout=settings.GITHUB_TIMEOUT_SECONDS,
    )
    if not client.is_configured():
        log.warning("github.token_missing")
    return client


@lru_cache(maxsize=1)
def get_automation_service() -> AutomationService:
    settings = get_settings()
    return AutomationService(
        store=get_rule_store(),
        github=get_github_client(),
        evaluator=ConditionEvaluator(max_depth=settings.MAX_CONDITION_DEPTH),
        metrics=get_metrics(),
    )
