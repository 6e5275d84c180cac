from pydantic import AnyUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    LOG_JSON: bool = True
    # Rule store backend selection: "memory", "file" or "redis"
    RULE_STORE_BACKEND: Literal["memory", "file", "redis"] = "memory"
    RULE_STORE_PATH: str = "data/automation_rules.json"
    RULE_STORE_KEY: str = "automation_rules"
    REDIS_URL: AnyUrl | None = None
    MAX_CONDITION_DEPTH: int = 16
    # GitHub
    GITHUB_TOKEN: str | None = None
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_TIMEOUT_SECONDS: float = 30.0
    GITHUB_WEBHOOK_SECRET: str | None = None
    MAX_WEBHOOK_SIZE: int = 1048576
    # Authentication
    API_KEYS: str = ""  # Comma-separated list of API keys
    REQUIRE_AUTH: bool = False  # Whether to enforce authentication

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
