"""
Configuration settings for the Triple Helix scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from helix.core.models import DEFAULT_SKIP_PROGRESSION, SkipProgression


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="HELIX_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Scheduling
    # ========================================
    skip_progression: list[int] = Field(
        default=list(DEFAULT_SKIP_PROGRESSION),
        description="Ascending skip numbers a unit moves through on perfect answers",
    )
    legacy_default_skip_number: int = Field(
        default=3,
        description="Skip number assumed for legacy records that carry none",
    )
    preload_count: int = Field(
        default=5,
        ge=1,
        description="Units per track returned by upcoming-unit previews",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path",
    )

    # ========================================
    # CLI
    # ========================================
    state_dir: str = Field(
        default="~/.helix",
        description="Directory for CLI state files given by bare name",
    )

    @field_validator("skip_progression")
    @classmethod
    def _check_progression(cls, value: list[int]) -> list[int]:
        SkipProgression(tuple(value))
        return value

    @model_validator(mode="after")
    def _check_legacy_default(self) -> Settings:
        if self.legacy_default_skip_number not in self.skip_progression:
            raise ValueError(
                f"legacy_default_skip_number {self.legacy_default_skip_number} "
                f"is not in skip_progression {self.skip_progression}"
            )
        return self

    def get_skip_progression(self) -> SkipProgression:
        """Get the configured skip progression."""
        return SkipProgression(tuple(self.skip_progression))

    def get_state_dir(self) -> Path:
        """Get the expanded state directory."""
        return Path(self.state_dir).expanduser()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
