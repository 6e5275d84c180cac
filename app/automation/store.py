"""Rule store: CRUD over the persisted rule collection."""
from datetime import datetime
from typing import Any, Callable
import threading
import uuid

import pydantic
import structlog

from .backends import RuleBackend
from .errors import StorageError, ValidationError
from .models import AutomationRule, RuleCreate, RuleUpdate, condition_depth, utcnow

log = structlog.get_logger()

DEFAULT_MAX_CONDITION_DEPTH = 16


def _format_validation_error(exc: pydantic.ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


class RuleStore:
    """
    Durable mapping from rule id to AutomationRule.

    The whole collection is rewritten through the backend on every mutation.
    A new collection only replaces the in-memory one after it was persisted,
    so a failed write keeps the last known-good state.
    """

    def __init__(
        self,
        backend: RuleBackend,
        max_condition_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Initialize the store and load the persisted collection.

        Args:
            backend: Persistence medium
            max_condition_depth: Deepest condition tree accepted on create/update
            clock: Source of timestamps

        Raises:
            StorageError: If the persisted collection cannot be loaded
        """
        self._backend = backend
        self._max_depth = max_condition_depth
        self._clock = clock
        self._lock = threading.RLock()
        self._rules: list[AutomationRule] = self._load()
        log.info("rules.store.initialized", backend=type(backend).__name__, count=len(self._rules))

    @property
    def backend(self) -> RuleBackend:
        return self._backend

    def _load(self) -> list[AutomationRule]:
        raw = self._backend.load()
        try:
            return [AutomationRule.model_validate(item) for item in raw]
        except pydantic.ValidationError as e:
            raise StorageError(f"Persisted rule collection is invalid: {_format_validation_error(e)}") from e

    def _persist(self, rules: list[AutomationRule]) -> None:
        self._backend.save([r.model_dump(mode="json") for r in rules])
        self._rules = rules

    def _check_depth(self, rule: AutomationRule) -> None:
        depth = condition_depth(rule.conditions)
        if depth > self._max_depth:
            raise ValidationError(
                f"Condition tree depth {depth} exceeds maximum of {self._max_depth}"
            )

    def reload(self) -> list[AutomationRule]:
        """Re-read the collection from the backend."""
        with self._lock:
            self._rules = self._load()
            return list(self._rules)

    def create_rule(self, data: RuleCreate | dict[str, Any]) -> AutomationRule:
        """
        Create and persist a new rule.

        Args:
            data: Rule fields (id and timestamps are generated)

        Returns:
            The stored rule

        Raises:
            ValidationError: If required fields are missing or invalid
            StorageError: If the rule could not be persisted
        """
        try:
            payload = data if isinstance(data, RuleCreate) else RuleCreate.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError(_format_validation_error(e)) from e

        now = self._clock()
        try:
            rule = AutomationRule.model_validate({
                **payload.model_dump(),
                "id": str(uuid.uuid4()),
                "created_at": now,
                "updated_at": now,
            })
        except pydantic.ValidationError as e:
            raise ValidationError(_format_validation_error(e)) from e
        self._check_depth(rule)

        with self._lock:
            self._persist(self._rules + [rule])

        log.info("rule.created", rule_id=rule.id, rule_name=rule.name, resource_type=rule.resource_type)
        return rule

    def get_rules(self) -> list[AutomationRule]:
        """List all rules in insertion order."""
        with self._lock:
            return list(self._rules)

    def get_rule(self, rule_id: str) -> AutomationRule | None:
        """Get a rule by ID."""
        with self._lock:
            for rule in self._rules:
                if rule.id == rule_id:
                    return rule
        return None

    def update_rule(self, rule_id: str, updates: RuleUpdate | dict[str, Any]) -> AutomationRule | None:
        """
        Merge partial fields into an existing rule.

        Args:
            rule_id: Rule identifier
            updates: Fields to change (id and created_at are ignored)

        Returns:
            Updated rule, or None if no rule has this id

        Raises:
            ValidationError: If the merged rule is invalid
            StorageError: If the rule could not be persisted
        """
        try:
            partial = updates if isinstance(updates, RuleUpdate) else RuleUpdate.model_validate(updates)
        except pydantic.ValidationError as e:
            raise ValidationError(_format_validation_error(e)) from e
        changes = partial.model_dump(exclude_unset=True)

        with self._lock:
            index = next((i for i, r in enumerate(self._rules) if r.id == rule_id), None)
            if index is None:
                return None

            existing = self._rules[index]
            merged = {**existing.model_dump(), **changes}
            merged["id"] = existing.id
            merged["created_at"] = existing.created_at
            merged["updated_at"] = max(self._clock(), existing.updated_at)
            try:
                updated = AutomationRule.model_validate(merged)
            except pydantic.ValidationError as e:
                raise ValidationError(_format_validation_error(e)) from e
            self._check_depth(updated)

            rules = list(self._rules)
            rules[index] = updated
            self._persist(rules)

        log.info("rule.updated", rule_id=rule_id, fields=sorted(changes))
        return updated

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> AutomationRule | None:
        """Enable or disable a rule."""
        return self.update_rule(rule_id, RuleUpdate(enabled=enabled))

    def delete_rule(self, rule_id: str) -> bool:
        """
        Delete a rule by ID.

        Returns:
            True if a rule was removed, False if not found
        """
        with self._lock:
            remaining = [r for r in self._rules if r.id != rule_id]
            if len(remaining) == len(self._rules):
                return False
            self._persist(remaining)

        log.info("rule.deleted", rule_id=rule_id)
        return True

    def count(self) -> int:
        """Get total number of rules."""
        with self._lock:
            return len(self._rules)
