"""
Application configuration and settings.

Configuration values are loaded from environment variables using
`pydantic-settings`. Credentials for the language-model capability and
the public callback URL have no defaults: handlers that need them call
``require_turn_settings()`` which reports every missing value at once.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

STORAGE_BACKENDS = {"memory", "filesystem", "remote", "database"}


class Settings(BaseSettings):
    """Strongly typed runtime settings for the coaching service.

    All configuration options are read from environment variables at
    application startup. Default values are provided where appropriate.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    env: str = Field("dev", validation_alias="FINCOACH_ENV", description="Runtime environment.")
    log_level: str = Field("INFO", validation_alias="FINCOACH_LOG_LEVEL", description="Logging level.")
    app_url: Optional[str] = Field(
        None,
        validation_alias="FINCOACH_APP_URL",
        description="Public base URL of this API, used for callbacks and remote storage tiers.",
    )

    # Storage
    storage_backend: str = Field(
        "filesystem",
        validation_alias="FINCOACH_STORAGE_BACKEND",
        description="Durable storage variant: memory, filesystem, remote or database.",
    )
    storage_dir: str = Field(
        "data/notebooks",
        validation_alias="FINCOACH_STORAGE_DIR",
        description="Root directory for the filesystem storage backend.",
    )
    remote_storage_url: Optional[str] = Field(
        None,
        validation_alias="FINCOACH_REMOTE_STORAGE_URL",
        description="Base URL for the remote storage backend. Defaults to the app URL.",
    )
    database_url: Optional[str] = Field(
        None,
        validation_alias="DATABASE_URL",
        description="SQLAlchemy database URL, e.g. sqlite+aiosqlite:///./fincoach.db",
    )

    # LLM provider (via LiteLLM)
    litellm_model: Optional[str] = Field(None, validation_alias="LITELLM_MODEL", description="Default model name for LLM calls.")
    litellm_api_key: Optional[str] = Field(None, validation_alias="LITELLM_API_KEY", description="API key for the LLM provider.")
    litellm_base_url: Optional[str] = Field(None, validation_alias="LITELLM_BASE_URL", description="Optional base URL override for LLM provider.")

    # Session flow
    session_resolve_retries: int = Field(
        3,
        ge=1,
        validation_alias="FINCOACH_SESSION_RESOLVE_RETRIES",
        description="Number of registry lookups before a turn gives up on resolving its session.",
    )
    session_resolve_delay: float = Field(
        0.1,
        ge=0,
        validation_alias="FINCOACH_SESSION_RESOLVE_DELAY",
        description="Initial delay in seconds between registry lookups; doubles on each retry.",
    )
    report_timeout_seconds: float = Field(
        60.0,
        gt=0,
        validation_alias="FINCOACH_REPORT_TIMEOUT_SECONDS",
        description="Timeout for the report-generation call.",
    )
    notebook_optimistic_locking: bool = Field(
        False,
        validation_alias="FINCOACH_NOTEBOOK_OPTIMISTIC_LOCKING",
        description="Reject notebook saves when the stored revision is newer than the local one.",
    )
    failure_log_limit: int = Field(
        1000,
        ge=1,
        validation_alias="FINCOACH_FAILURE_LOG_LIMIT",
        description="Maximum number of failure log entries retained.",
    )

    @field_validator("env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        valid = {"dev", "test", "prod"}
        if value not in valid:
            raise ValueError(f"FINCOACH_ENV must be one of {valid}, got {value}")
        return value

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in STORAGE_BACKENDS:
            raise ValueError(f"FINCOACH_STORAGE_BACKEND must be one of {STORAGE_BACKENDS}, got {value}")
        return value

    def missing_turn_settings(self) -> List[str]:
        """Return the environment names of required turn settings that are unset."""
        missing: List[str] = []
        if not self.litellm_model:
            missing.append("LITELLM_MODEL")
        if not self.litellm_api_key:
            missing.append("LITELLM_API_KEY")
        if not self.app_url:
            missing.append("FINCOACH_APP_URL")
        return missing


def require_turn_settings(settings: Settings) -> None:
    """Raise ``ConfigurationError`` when credentials or the callback URL are missing."""
    missing = settings.missing_turn_settings()
    if missing:
        raise ConfigurationError(missing)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance."""
    return Settings()
