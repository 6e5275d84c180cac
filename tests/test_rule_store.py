"""Tests for the rule store."""
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pydantic
import pytest

from app.automation.backends import FileRuleBackend, InMemoryRuleBackend
from app.automation.errors import StorageError, ValidationError
from app.automation.models import ConditionGroup, LeafCondition, RuleCreate
from app.automation.store import RuleStore


def rule_data(**overrides):
    data = {
        "name": "Label bugs",
        "resource_type": "issue",
        "created_by": "maintainer",
        "conditions": {
            "operator": "and",
            "conditions": [{"type": "title_contains", "value": "crash"}],
        },
        "actions": [{"type": "add_label", "label": "bug"}],
    }
    data.update(overrides)
    return data


def nested(depth: int) -> dict:
    """Condition tree of the given depth (root group = 1, innermost leaf included)."""
    node: dict = {"type": "title_contains", "value": "x"}
    for _ in range(depth - 1):
        node = {"operator": "and", "conditions": [node]}
    return node


class Clock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def test_create_rule_generates_id_and_equal_timestamps(store):
    """Test created rules get an id and identical created/updated timestamps."""
    rule = store.create_rule(rule_data())

    assert rule.id
    assert rule.created_at == rule.updated_at
    assert rule.enabled is True
    assert store.get_rule(rule.id) == rule


def test_create_rule_accepts_model_input(store):
    """Test RuleCreate instances are accepted as-is."""
    rule = store.create_rule(RuleCreate(**rule_data(name="From model")))
    assert rule.name == "From model"


def test_create_rule_ignores_client_supplied_id(store):
    """Test that a client cannot choose the rule id."""
    rule = store.create_rule(rule_data(id="chosen-id"))
    assert rule.id != "chosen-id"


def test_create_rule_ids_are_unique(store):
    ids = {store.create_rule(rule_data()).id for _ in range(5)}
    assert len(ids) == 5


def test_get_rules_preserves_insertion_order(store):
    first = store.create_rule(rule_data(name="first"))
    second = store.create_rule(rule_data(name="second"))
    third = store.create_rule(rule_data(name="third"))

    assert [r.id for r in store.get_rules()] == [first.id, second.id, third.id]


def test_get_rules_returns_copy(store):
    store.create_rule(rule_data())
    rules = store.get_rules()
    rules.clear()
    assert store.count() == 1


def test_get_unknown_rule_returns_none(store):
    assert store.get_rule("missing") is None


@pytest.mark.parametrize("field", ["name", "created_by"])
def test_create_rule_rejects_blank_required_fields(store, field):
    with pytest.raises(ValidationError):
        store.create_rule(rule_data(**{field: "   "}))
    assert store.count() == 0


def test_create_rule_rejects_missing_resource_type(store):
    data = rule_data()
    del data["resource_type"]
    with pytest.raises(ValidationError) as exc_info:
        store.create_rule(data)
    assert "resource_type" in str(exc_info.value)


def test_create_rule_rejects_unknown_resource_type(store):
    with pytest.raises(ValidationError):
        store.create_rule(rule_data(resource_type="discussion"))


def test_create_rule_rejects_too_deep_condition_tree():
    store = RuleStore(InMemoryRuleBackend(), max_condition_depth=4)

    store.create_rule(rule_data(conditions=nested(4)))
    with pytest.raises(ValidationError) as exc_info:
        store.create_rule(rule_data(conditions=nested(5)))

    assert "depth" in str(exc_info.value)
    assert store.count() == 1


def test_update_rule_merges_fields_and_preserves_identity(store):
    """Test partial updates keep id, created_at and untouched fields."""
    rule = store.create_rule(rule_data())

    updated = store.update_rule(rule.id, {"name": "Renamed", "id": "hijack", "created_at": "2000-01-01T00:00:00Z"})

    assert updated.id == rule.id
    assert updated.created_at == rule.created_at
    assert updated.name == "Renamed"
    assert updated.actions == rule.actions
    assert updated.conditions == rule.conditions


def test_update_rule_timestamps_are_monotonic():
    """Test updated_at never moves backwards, even if the clock does."""
    start = datetime(2026, 10, 1, tzinfo=timezone.utc)
    clock = Clock(start)
    store = RuleStore(InMemoryRuleBackend(), clock=clock)
    rule = store.create_rule(rule_data())

    clock.now = start + timedelta(minutes=5)
    later = store.update_rule(rule.id, {"description": "later"})
    assert later.updated_at == start + timedelta(minutes=5)
    assert later.updated_at >= later.created_at

    clock.now = start - timedelta(hours=1)
    skewed = store.update_rule(rule.id, {"description": "clock skew"})
    assert skewed.updated_at == later.updated_at


def test_update_rule_replaces_condition_tree(store):
    rule = store.create_rule(rule_data())
    new_conditions = {"type": "has_label", "value": "bug"}

    updated = store.update_rule(rule.id, {"conditions": new_conditions})

    assert isinstance(updated.conditions, LeafCondition)
    assert updated.conditions.type == "has_label"


def test_update_unknown_rule_returns_none(store):
    assert store.update_rule("missing", {"name": "x"}) is None


def test_update_rule_rejects_invalid_merge(store):
    rule = store.create_rule(rule_data())
    with pytest.raises(ValidationError):
        store.update_rule(rule.id, {"name": "  "})
    assert store.get_rule(rule.id).name == "Label bugs"


def test_set_rule_enabled(store):
    rule = store.create_rule(rule_data())

    disabled = store.set_rule_enabled(rule.id, False)
    assert disabled.enabled is False
    assert store.get_rule(rule.id).enabled is False

    assert store.set_rule_enabled(rule.id, True).enabled is True


def test_delete_rule(store):
    """Test delete returns True once, then False."""
    rule = store.create_rule(rule_data())
    other = store.create_rule(rule_data(name="other"))

    assert store.delete_rule(rule.id) is True
    assert store.get_rule(rule.id) is None
    assert store.delete_rule(rule.id) is False
    assert [r.id for r in store.get_rules()] == [other.id]


def test_delete_unknown_rule_leaves_store_unchanged(store):
    store.create_rule(rule_data())
    assert store.delete_rule("missing") is False
    assert store.count() == 1


def test_store_persists_through_backend():
    """Test a second store over the same backend sees the same rules."""
    backend = InMemoryRuleBackend()
    rule = RuleStore(backend).create_rule(rule_data())

    reopened = RuleStore(backend)
    assert reopened.get_rule(rule.id) == rule


def test_three_level_condition_tree_round_trips_through_file(tmp_path):
    """Test a nested AND/OR tree survives a file save and reload intact."""
    path = tmp_path / "rules.json"
    conditions = {
        "operator": "and",
        "conditions": [
            {"type": "title_contains", "value": "crash", "case_sensitive": True},
            {
                "operator": "or",
                "conditions": [
                    {"type": "has_label", "value": "bug"},
                    {"type": "body_matches_regex", "value": "^trace", "flags": "im", "negate": True},
                ],
            },
        ],
    }
    rule = RuleStore(FileRuleBackend(path)).create_rule(rule_data(conditions=conditions))

    reloaded = RuleStore(FileRuleBackend(path)).get_rule(rule.id)

    assert reloaded == rule
    assert isinstance(reloaded.conditions, ConditionGroup)
    inner = reloaded.conditions.conditions[1]
    assert isinstance(inner, ConditionGroup)
    assert inner.operator == "or"
    assert inner.conditions[1].negate is True
    assert inner.conditions[1].flags == "im"


def test_failed_write_keeps_last_known_good_state():
    """Test a StorageError on save leaves the in-memory collection untouched."""
    backend = InMemoryRuleBackend()
    store = RuleStore(backend)
    rule = store.create_rule(rule_data())

    backend.save = Mock(side_effect=StorageError("disk full"))

    with pytest.raises(StorageError):
        store.create_rule(rule_data(name="never stored"))
    with pytest.raises(StorageError):
        store.update_rule(rule.id, {"name": "never renamed"})
    with pytest.raises(StorageError):
        store.delete_rule(rule.id)

    assert [r.name for r in store.get_rules()] == ["Label bugs"]


def test_invalid_persisted_collection_raises_storage_error():
    backend = InMemoryRuleBackend()
    backend.save([{"name": "no resource type"}])

    with pytest.raises(StorageError):
        RuleStore(backend)


def test_reload_picks_up_external_changes():
    backend = InMemoryRuleBackend()
    store = RuleStore(backend)
    other = RuleStore(backend)
    other.create_rule(rule_data())

    assert store.count() == 0
    assert len(store.reload()) == 1
    assert store.count() == 1


@pytest.mark.parametrize("conditions", [
    {"operator": "and", "type": "title_contains", "value": "bug"},
    {"type": "title_contains", "value": "bug", "conditions": []},
])
def test_create_rule_rejects_node_that_is_both_leaf_and_group(store, conditions):
    with pytest.raises(ValidationError):
        store.create_rule(rule_data(conditions=conditions))
    assert store.count() == 0


def test_update_rule_rejects_node_that_is_both_leaf_and_group(store):
    rule = store.create_rule(rule_data())

    with pytest.raises(ValidationError):
        store.update_rule(rule.id, {"conditions": {"operator": "or", "type": "has_label", "value": "bug"}})
    assert store.get_rule(rule.id).conditions == rule.conditions


def test_returned_rules_cannot_be_mutated_in_place():
    """Test changes only happen through the store, which persists them."""
    backend = InMemoryRuleBackend()
    store = RuleStore(backend)
    rule = store.create_rule(rule_data())

    with pytest.raises(pydantic.ValidationError):
        store.get_rule(rule.id).enabled = False
    with pytest.raises(pydantic.ValidationError):
        store.get_rules()[0].actions[0].label = "other"

    assert store.get_rule(rule.id).enabled is True
    assert backend.load()[0]["enabled"] is True


def test_boolean_and_numeric_condition_values_are_stored_as_strings(store):
    rule = store.create_rule(rule_data(
        resource_type="pull_request",
        conditions={"operator": "and", "conditions": [
            {"type": "is_draft", "value": True},
            {"type": "days_since_created", "value": 30},
        ]},
    ))

    assert [c.value for c in rule.conditions.conditions] == ["true", "30"]
