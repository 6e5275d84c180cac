"""API key authentication for the rule management and execution endpoints."""
import secrets
from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader
from typing import Optional
import structlog
from ..config import get_settings

log = structlog.get_logger()

API_KEY_HEADER = "X-Automation-Key"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


class APIKeyRegistry:
    """
    In-memory API key registry.

    Keys are loaded from the API_KEYS setting at startup.
    """

    def __init__(self, keys: Optional[str] = None):
        """
        Initialize API key registry.

        Args:
            keys: Comma-separated keys (defaults to the API_KEYS setting)
        """
        self._keys: set[str] = set()
        if keys is None:
            keys = get_settings().API_KEYS
        for key in (keys or "").split(","):
            key = key.strip()
            if key:
                self._keys.add(key)
        log.info("api_keys.loaded", count=len(self._keys))

    def validate(self, key: str) -> bool:
        """
        Validate an API key.

        Args:
            key: API key to validate

        Returns:
            True if key is valid
        """
        return any(secrets.compare_digest(key, known) for known in self._keys)

    def add_key(self, key: str):
        self._keys.add(key)
        log.info("api_key.added")

    def remove_key(self, key: str) -> bool:
        """Remove an API key. Returns True if it was registered."""
        if key in self._keys:
            self._keys.discard(key)
            log.info("api_key.removed")
            return True
        return False

    def count(self) -> int:
        return len(self._keys)


# Global registry instance
registry = APIKeyRegistry()


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """
    Dependency to verify API key from request header.

    Authentication is only enforced when REQUIRE_AUTH is set and at least
    one key is registered.

    Args:
        api_key: API key from X-Automation-Key header

    Returns:
        Validated API key, or "anonymous" when authentication is off

    Raises:
        HTTPException: If API key is missing or invalid
    """
    if not get_settings().REQUIRE_AUTH or registry.count() == 0:
        log.debug("auth.skipped")
        return "anonymous"

    if not api_key:
        log.warning("auth.failed", reason="missing_key")
        raise HTTPException(
            status_code=401,
            detail=f"Missing API key. Provide {API_KEY_HEADER} header.",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    if not registry.validate(api_key):
        log.warning("auth.failed", reason="invalid_key")
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    log.debug("auth.success")
    return api_key
