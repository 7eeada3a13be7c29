from __future__ import annotations

import os
from typing import Any, Tuple
from urllib.parse import urlparse

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from deptclient.logging import get_logger

logger = get_logger(__name__)

# Message fragments that mark a missing, invalid or expired access token.
# The GraphQL layer says "Unauthenticated"; the auth middleware and the JWT
# library use the other two.
DEFAULT_UNAUTHENTICATED_MARKERS: Tuple[str, ...] = (
    "Unauthenticated",
    "Invalid token",
    "jwt expired",
)


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Client settings, read from the environment and an optional .env file."""

    api_url: str = env_field("http://localhost:4000/graphql", "DEPT_API_URL")
    request_timeout_seconds: float = env_field(
        30.0,
        "DEPT_REQUEST_TIMEOUT_SECONDS",
        description="Total timeout for one GraphQL call, refresh calls included",
    )
    connect_timeout_seconds: float = env_field(10.0, "DEPT_CONNECT_TIMEOUT_SECONDS")
    unauthenticated_markers: Tuple[str, ...] = env_field(
        DEFAULT_UNAUTHENTICATED_MARKERS,
        "DEPT_UNAUTHENTICATED_MARKERS",
        description="Comma-separated substrings of a GraphQL error message that signal session expiry",
    )
    session_file: str | None = env_field(
        None,
        "DEPT_SESSION_FILE",
        description="Persist the session as JSON at this path; unset keeps it in memory",
    )
    user_agent: str = env_field("deptclient/0.1", "DEPT_USER_AGENT")
    test_mode: bool = env_field(False, "TEST_MODE")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("api_url")
    @classmethod
    def _validate_api_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"api_url must be an http(s) URL, got {value!r}")
        return value

    @field_validator("request_timeout_seconds", "connect_timeout_seconds")
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @field_validator("unauthenticated_markers", mode="before")
    @classmethod
    def _split_markers(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(","))
        return value

    @field_validator("unauthenticated_markers")
    @classmethod
    def _validate_markers(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if not value or any(not marker.strip() for marker in value):
            raise ValueError("unauthenticated_markers must not be empty or blank")
        return value

    @field_validator("session_file")
    @classmethod
    def _blank_session_file(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            logger.warning("session_file_blank", message="Ignoring empty DEPT_SESSION_FILE")
            return None
        return value


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
