from __future__ import annotations

from datetime import tzinfo
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from worklog_digest.models import GenerationConfig


class Settings(BaseSettings):
    """Settings loaded from environment variables and an optional ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # AI generation
    ai_enabled: bool = True
    ai_model_primary: str = "gemini-3-flash-preview"
    ai_model_fallback: str = "gemini-2.5-flash"
    # Second attempt against ai_model_fallback after a failed primary attempt
    ai_retry_with_fallback: bool = False
    ai_max_tokens: int = 1000
    ai_temperature: float = 0.3
    ai_timeout_ms: int = 30000

    # Repository and storage
    git_repository_path: Path = Field(default_factory=Path.cwd)
    database_path: Path = Field(
        default=Path(".worklog/worklog.db"),
        validation_alias=AliasChoices("worklog_db_path", "database_path"),
    )

    # Summaries
    timezone: str = Field(default="UTC", validation_alias=AliasChoices("worklog_timezone", "timezone"))
    date_style: Literal["thai", "iso"] = Field(
        default="thai",
        validation_alias=AliasChoices("worklog_date_style", "date_style"),
    )
    max_lookback_days: int = Field(
        default=31,
        gt=0,
        validation_alias=AliasChoices("worklog_max_lookback_days", "max_lookback_days"),
    )
    # Return stored summaries without reading git when they already exist
    reuse_stored_summaries: bool = Field(
        default=True,
        validation_alias=AliasChoices("worklog_reuse_stored_summaries", "reuse_stored_summaries"),
    )

    log_level: str = "INFO"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone)

    def generation_config(self, model_override: str | None = None) -> GenerationConfig:
        return GenerationConfig(
            model=model_override or self.ai_model_primary,
            max_tokens=self.ai_max_tokens,
            temperature=self.ai_temperature,
            timeout_ms=self.ai_timeout_ms,
        )

    def fallback_generation_config(self) -> GenerationConfig | None:
        if not self.ai_retry_with_fallback or not self.ai_model_fallback:
            return None
        return self.generation_config(self.ai_model_fallback)

    def validate_ai(self) -> tuple[list[str], list[str]]:
        """Return ``(errors, warnings)`` describing the AI configuration."""
        errors: list[str] = []
        warnings: list[str] = []

        if not self.ai_enabled:
            warnings.append("AI functionality is disabled")
        if not self.ai_model_primary:
            errors.append("AI_MODEL_PRIMARY is required")
        if not self.ai_model_fallback:
            warnings.append("AI_MODEL_FALLBACK not configured - no fallback available")
        if not 100 <= self.ai_max_tokens <= 8000:
            warnings.append("AI_MAX_TOKENS should be between 100 and 8000")
        if not 0 <= self.ai_temperature <= 2:
            warnings.append("AI_TEMPERATURE should be between 0 and 2")
        if self.ai_timeout_ms < 5000:
            warnings.append("AI timeout less than 5 seconds may cause frequent failures")

        return errors, warnings


def load_settings(**overrides: object) -> Settings:
    """Build a fresh ``Settings``; keyword overrides win over the environment."""
    return Settings(**overrides)
