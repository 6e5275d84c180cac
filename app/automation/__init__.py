"""
Automation rule engine for GitHub issues and pull requests

Provides:
- Rule models and the persisted rule store
- Condition tree evaluation
- Failure-isolated action execution
- Orchestration of both per triggering event
"""

from .backends import RuleBackend, InMemoryRuleBackend, FileRuleBackend, RedisRuleBackend
from .errors import (
    AutomationError,
    ValidationError,
    ResourceFetchError,
    ActionExecutionError,
    StorageError
)
from .evaluator import ConditionEvaluator
from .executor import ActionExecutor, ActionTarget
from .models import (
    Action,
    ActionResult,
    ActionType,
    AutomationRule,
    ConditionGroup,
    ConditionOperator,
    ConditionType,
    LeafCondition,
    ResourceType,
    RuleCreate,
    RuleExecutionResult,
    RuleUpdate
)
from .resources import ResourceSnapshot
from .service import AutomationService
from .store import RuleStore

__all__ = [
    "RuleBackend",
    "InMemoryRuleBackend",
    "FileRuleBackend",
    "RedisRuleBackend",
    "AutomationError",
    "ValidationError",
    "ResourceFetchError",
    "ActionExecutionError",
    "StorageError",
    "ConditionEvaluator",
    "ActionExecutor",
    "ActionTarget",
    "Action",
    "ActionResult",
    "ActionType",
    "AutomationRule",
    "ConditionGroup",
    "ConditionOperator",
    "ConditionType",
    "LeafCondition",
    "ResourceType",
    "RuleCreate",
    "RuleExecutionResult",
    "RuleUpdate",
    "ResourceSnapshot",
    "AutomationService",
    "RuleStore",
]
