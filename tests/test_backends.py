"""Tests for rule persistence backends."""
import os
from unittest.mock import MagicMock, patch

import orjson
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.automation.backends import (
    DEFAULT_RULES_KEY,
    FileRuleBackend,
    InMemoryRuleBackend,
    RedisRuleBackend,
)
from app.automation.errors import StorageError

RULES = [{"id": "r1", "name": "first"}, {"id": "r2", "name": "second"}]


def test_memory_backend_starts_empty():
    assert InMemoryRuleBackend().load() == []


def test_memory_backend_save_and_load():
    backend = InMemoryRuleBackend()
    backend.save(RULES)
    assert backend.load() == RULES


def test_memory_backend_save_replaces_collection():
    backend = InMemoryRuleBackend()
    backend.save(RULES)
    backend.save(RULES[:1])
    assert backend.load() == RULES[:1]


def test_memory_backend_health():
    assert InMemoryRuleBackend().health_check() is True


def test_file_backend_missing_file_loads_empty(tmp_path):
    assert FileRuleBackend(tmp_path / "absent.json").load() == []


def test_file_backend_writes_collection_under_key(tmp_path):
    """Test the file holds one JSON object with the collection under the key."""
    path = tmp_path / "store.json"
    FileRuleBackend(path).save(RULES)

    document = orjson.loads(path.read_bytes())
    assert document == {DEFAULT_RULES_KEY: RULES}


def test_file_backend_keeps_other_keys(tmp_path):
    path = tmp_path / "store.json"
    path.write_bytes(orjson.dumps({"other": {"kept": True}}))

    FileRuleBackend(path).save(RULES)

    document = orjson.loads(path.read_bytes())
    assert document["other"] == {"kept": True}
    assert FileRuleBackend(path).load() == RULES


def test_file_backend_custom_key(tmp_path):
    path = tmp_path / "store.json"
    FileRuleBackend(path, key="team_rules").save(RULES)

    assert FileRuleBackend(path, key="team_rules").load() == RULES
    assert FileRuleBackend(path).load() == []


def test_file_backend_creates_parent_directory(tmp_path):
    path = tmp_path / "nested" / "dir" / "store.json"
    FileRuleBackend(path).save(RULES)
    assert path.exists()


def test_file_backend_leaves_no_temp_files(tmp_path):
    path = tmp_path / "store.json"
    backend = FileRuleBackend(path)
    backend.save(RULES)
    backend.save(RULES[:1])
    assert os.listdir(tmp_path) == ["store.json"]


def test_file_backend_corrupt_file_raises(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("{not json")

    with pytest.raises(StorageError):
        FileRuleBackend(path).load()


def test_file_backend_non_list_collection_raises(tmp_path):
    path = tmp_path / "store.json"
    path.write_bytes(orjson.dumps({DEFAULT_RULES_KEY: {"id": "r1"}}))

    with pytest.raises(StorageError):
        FileRuleBackend(path).load()


def test_file_backend_unwritable_location_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")

    with pytest.raises(StorageError):
        FileRuleBackend(blocker / "store.json").save(RULES)


def test_file_backend_health(tmp_path):
    assert FileRuleBackend(tmp_path / "store.json").health_check() is True


def test_file_backend_healthy_before_first_save_creates_directory(tmp_path):
    backend = FileRuleBackend(tmp_path / "data" / "automation_rules.json")

    assert backend.health_check() is True
    assert backend.load() == []

    backend.save([])
    assert backend.health_check() is True


def test_file_backend_unhealthy_when_ancestor_is_a_file(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")

    assert FileRuleBackend(blocker / "data" / "store.json").health_check() is False


def test_redis_backend_load_empty():
    """Test Redis backend treats a missing key as an empty collection."""
    with patch("app.automation.backends.Redis") as mock_redis:
        client = MagicMock()
        client.get.return_value = None
        mock_redis.from_url.return_value = client

        backend = RedisRuleBackend("redis://localhost:6379")
        assert backend.load() == []
        client.get.assert_called_once_with(DEFAULT_RULES_KEY)


def test_redis_backend_save_and_load():
    with patch("app.automation.backends.Redis") as mock_redis:
        client = MagicMock()
        mock_redis.from_url.return_value = client

        backend = RedisRuleBackend("redis://localhost:6379", key="rules")
        backend.save(RULES)

        key, blob = client.set.call_args[0]
        assert key == "rules"
        assert orjson.loads(blob) == RULES

        client.get.return_value = blob
        assert backend.load() == RULES


def test_redis_backend_errors_raise_storage_error():
    with patch("app.automation.backends.Redis") as mock_redis:
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("refused")
        client.set.side_effect = RedisConnectionError("refused")
        mock_redis.from_url.return_value = client

        backend = RedisRuleBackend("redis://localhost:6379")
        with pytest.raises(StorageError):
            backend.load()
        with pytest.raises(StorageError):
            backend.save(RULES)


def test_redis_backend_corrupt_value_raises():
    with patch("app.automation.backends.Redis") as mock_redis:
        client = MagicMock()
        client.get.return_value = b"garbage"
        mock_redis.from_url.return_value = client

        with pytest.raises(StorageError):
            RedisRuleBackend("redis://localhost:6379").load()


def test_redis_backend_health_check():
    with patch("app.automation.backends.Redis") as mock_redis:
        client = MagicMock()
        client.ping.return_value = True
        mock_redis.from_url.return_value = client

        backend = RedisRuleBackend("redis://localhost:6379")
        assert backend.health_check() is True

        client.ping.side_effect = RedisConnectionError("down")
        assert backend.health_check() is False


def test_redis_backend_close():
    with patch("app.automation.backends.Redis") as mock_redis:
        client = MagicMock()
        client.get.return_value = None
        mock_redis.from_url.return_value = client

        backend = RedisRuleBackend("redis://localhost:6379")
        backend.load()
        backend.close()

        client.close.assert_called_once()
