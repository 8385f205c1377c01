"""Configuration management for whoDare."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated
import os

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .classifier import ClassifierThresholds

DEFAULT_REMOTE_BRANCHES = ("main", "master")


class WhodareSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    storage_dir: str = Field(default=".howdare", validation_alias="WHODARE_STORAGE_DIR")
    stats_file: str = Field(default="stats.json", validation_alias="WHODARE_STATS_FILE")
    password_override: SecretStr | None = Field(default=None, validation_alias="WHODARE_PASSWORD")
    encrypt: bool = Field(default=True, validation_alias="WHODARE_ENCRYPT")
    save_debounce_ms: int = Field(default=2000, validation_alias="WHODARE_SAVE_DEBOUNCE_MS")
    log_level: str = Field(default="INFO", validation_alias="WHODARE_LOG_LEVEL")

    large_insert_chars: int = Field(default=50, validation_alias="WHODARE_LARGE_INSERT_CHARS")
    multiline_newlines: int = Field(default=2, validation_alias="WHODARE_MULTILINE_NEWLINES")
    paste_chars: int = Field(default=30, validation_alias="WHODARE_PASTE_CHARS")
    candidate_match_ms: int = Field(default=1000, validation_alias="WHODARE_CANDIDATE_MATCH_MS")
    candidate_ttl_ms: int = Field(default=5000, validation_alias="WHODARE_CANDIDATE_TTL_MS")

    remote_branches: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_REMOTE_BRANCHES, validation_alias="WHODARE_REMOTE_BRANCHES"
    )
    remote_timeout: float = Field(default=10.0, validation_alias="WHODARE_REMOTE_TIMEOUT")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "WHODARE_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("password_override", mode="before")
    @classmethod
    def _blank_password_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator(
        "save_debounce_ms",
        "large_insert_chars",
        "multiline_newlines",
        "paste_chars",
    )
    @classmethod
    def _validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("debounce and classifier thresholds must be >= 0")
        return value

    @field_validator("candidate_match_ms", "candidate_ttl_ms")
    @classmethod
    def _validate_window(cls, value: int) -> int:
        if value < 1:
            raise ValueError("candidate windows must be >= 1 millisecond")
        return value

    @field_validator("remote_branches", mode="before")
    @classmethod
    def _parse_remote_branches(cls, value):
        if value is None or value == "":
            return DEFAULT_REMOTE_BRANCHES
        if isinstance(value, (list, tuple)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        if isinstance(value, str):
            separators = value.replace(os.pathsep, ",")
            parts = [part.strip() for part in separators.split(",") if part.strip()]
            return tuple(parts) or DEFAULT_REMOTE_BRANCHES
        raise TypeError("WHODARE_REMOTE_BRANCHES must be a list of names or a comma-separated string")

    @property
    def thresholds(self) -> ClassifierThresholds:
        return ClassifierThresholds(
            large_insert_chars=self.large_insert_chars,
            multiline_newlines=self.multiline_newlines,
            paste_chars=self.paste_chars,
            candidate_match_ms=self.candidate_match_ms,
            candidate_ttl_ms=self.candidate_ttl_ms,
        )

    @property
    def password(self) -> str | None:
        """Operator override password, or ``None`` to use the workspace default key."""

        if self.password_override is None:
            return None
        return self.password_override.get_secret_value()


@lru_cache(maxsize=1)
def get_settings() -> WhodareSettings:
    """Return cached settings instance."""

    return WhodareSettings()


__all__ = ["DEFAULT_REMOTE_BRANCHES", "WhodareSettings", "get_settings"]
