# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings of the
workflow core: store backend, notification channels, continuation
policy and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Store ===
    store_backend: Literal["memory", "sqlite"] = "memory"
    store_sqlite_path: Path | None = Path("~/.thegrid/workflow.db")

    # === Notifications ===
    notification_user_id: str = "1"
    chat_webhook_url: str = ""
    chat_timeout_s: float = 10.0

    # === CMS ===
    cms_default_space_id: str = ""

    # === Changelog ===
    changelog_created_by: str = "system"

    # === Orchestration ===
    unhandled_pipeline_policy: Literal["ignore", "fail"] = "ignore"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("chat_timeout_s")
    @classmethod
    def validate_chat_timeout(cls, v: float) -> float:  # noqa: N805
        if v <= 0:
            raise ValueError("chat_timeout_s must be > 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.store_backend == "sqlite" and not self.store_sqlite_path:
            errors.append("STORE_BACKEND=sqlite requires STORE_SQLITE_PATH")

        if self.log_retention < 0:
            errors.append("LOG_RETENTION must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def chat_enabled(self) -> bool:
        """True when an external chat webhook is configured."""
        return bool(self.chat_webhook_url.strip())


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or embedding).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
