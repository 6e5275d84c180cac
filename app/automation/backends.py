"""Persistence backends for the rule collection.

Every backend stores the whole collection as one serialized blob under a
single well-known key, and rewrites it in full on every save.
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any
import os
import tempfile

import orjson
import structlog
from redis import Redis
from redis.exceptions import RedisError

from .errors import StorageError

log = structlog.get_logger()

DEFAULT_RULES_KEY = "automation_rules"


class RuleBackend(ABC):
    """Abstract interface for rule persistence media."""

    @abstractmethod
    def load(self) -> list[dict[str, Any]]:
        """
        Load the serialized rule collection.

        Returns:
            List of raw rule mappings (empty if nothing was ever saved)

        Raises:
            StorageError: If the medium cannot be read or the blob is corrupt
        """
        pass

    @abstractmethod
    def save(self, rules: list[dict[str, Any]]) -> None:
        """
        Replace the persisted collection.

        Args:
            rules: JSON-compatible rule mappings, in store order

        Raises:
            StorageError: If the medium cannot be written
        """
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """
        Check if the backend is reachable.

        Returns:
            True if backend is healthy, False otherwise
        """
        pass


def _decode(blob: bytes | str | None, source: str) -> list[dict[str, Any]]:
    if blob is None:
        return []
    try:
        data = orjson.loads(blob)
    except orjson.JSONDecodeError as e:
        raise StorageError(f"Corrupt rule collection in {source}: {e}") from e
    if not isinstance(data, list):
        raise StorageError(f"Corrupt rule collection in {source}: expected a list")
    return data


class InMemoryRuleBackend(RuleBackend):
    """In-memory key-value backend."""

    def __init__(self, key: str = DEFAULT_RULES_KEY):
        self.key = key
        self._blobs: dict[str, bytes] = {}

    def load(self) -> list[dict[str, Any]]:
        return _decode(self._blobs.get(self.key), "memory")

    def save(self, rules: list[dict[str, Any]]) -> None:
        self._blobs[self.key] = orjson.dumps(rules)
        log.debug("rules.persisted", backend="memory", count=len(rules))

    def health_check(self) -> bool:
        """In-memory backend is always healthy."""
        return True


class FileRuleBackend(RuleBackend):
    """JSON file backend.

    The file holds one JSON object; the collection lives under ``key`` so the
    file can be shared with other settings.
    """

    def __init__(self, path: str | Path, key: str = DEFAULT_RULES_KEY):
        self.path = Path(path)
        self.key = key

    def _read_document(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise StorageError(f"Unable to read {self.path}: {e}") from e
        if not raw.strip():
            return {}
        try:
            document = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise StorageError(f"Corrupt rule file {self.path}: {e}") from e
        if not isinstance(document, dict):
            raise StorageError(f"Corrupt rule file {self.path}: expected an object")
        return document

    def load(self) -> list[dict[str, Any]]:
        rules = self._read_document().get(self.key)
        if rules is None:
            return []
        if not isinstance(rules, list):
            raise StorageError(f"Corrupt rule collection in {self.path}: expected a list")
        return rules

    def save(self, rules: list[dict[str, Any]]) -> None:
        document = self._read_document()
        document[self.key] = rules
        payload = orjson.dumps(document, option=orjson.OPT_INDENT_2)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(payload)
                os.replace(tmp_path, self.path)
            except OSError:
                os.unlink(tmp_path)
                raise
        except OSError as e:
            log.error("rules.persist_failed", backend="file", path=str(self.path), error=str(e))
            raise StorageError(f"Unable to write {self.path}: {e}") from e

        log.debug("rules.persisted", backend="file", path=str(self.path), count=len(rules))

    def health_check(self) -> bool:
        # The first save creates missing directories, so check the nearest existing ancestor
        directory = self.path.absolute().parent
        while not directory.exists():
            if directory.parent == directory:
                return False
            directory = directory.parent
        return directory.is_dir() and os.access(directory, os.W_OK)


class RedisRuleBackend(RuleBackend):
    """Redis backend storing the collection as one string value."""

    def __init__(self, redis_url: str, key: str = DEFAULT_RULES_KEY):
        self.redis_url = redis_url
        self.key = key
        self._client: Redis | None = None

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=False,
                socket_connect_timeout=5,
                socket_timeout=5
            )
        return self._client

    def load(self) -> list[dict[str, Any]]:
        try:
            blob = self._get_client().get(self.key)
        except RedisError as e:
            log.error("redis.load_failed", error=str(e), key=self.key)
            raise StorageError(f"Unable to load rules from Redis: {e}") from e
        return _decode(blob, f"redis key {self.key}")

    def save(self, rules: list[dict[str, Any]]) -> None:
        try:
            self._get_client().set(self.key, orjson.dumps(rules))
        except RedisError as e:
            log.error("redis.save_failed", error=str(e), key=self.key)
            raise StorageError(f"Unable to save rules to Redis: {e}") from e
        log.debug("rules.persisted", backend="redis", key=self.key, count=len(rules))

    def health_check(self) -> bool:
        try:
            return bool(self._get_client().ping())
        except Exception as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    def close(self):
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None
