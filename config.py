"""
Configuration settings for the fluency scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Algorithm
    # ========================================
    algorithm_mode: Literal["normal", "speed_run"] = Field(
        default="normal",
        description="Preset algorithm configuration (speed_run uses short delays and few facts)",
    )
    min_question_interval_seconds: float | None = Field(
        default=None,
        description="Override for the general per-fact cooldown in seconds",
    )
    recent_question_history_size: int | None = Field(
        default=None,
        description="Override for the answer window used by the known-fact ratio",
    )
    time_to_next_question: float | None = Field(
        default=None,
        description="Override for the pause between questions in seconds",
    )
    max_multiplication_factor: int | None = Field(
        default=None,
        description="Override for the largest second factor in generated facts",
    )
    always_start_fresh: bool = Field(
        default=False,
        description="Ignore any stored learner record and start a new one",
    )
    disable_randomization: bool = Field(
        default=False,
        description="Disable cooldown jitter (deterministic intervals)",
    )
    answer_history_limit: int = Field(
        default=1000,
        description="Maximum number of answer records kept in the learner record",
    )

    # ========================================
    # Storage
    # ========================================
    storage_backend: Literal["memory", "json", "sql"] = Field(
        default="json",
        description="Key-value store used to persist the learner record",
    )
    state_storage_key: str = Field(
        default="FluencyState",
        description="Key under which the learner record is stored",
    )
    state_dir: Path = Field(
        default=Path.home() / ".fluency" / "state",
        description="Directory for the JSON file store",
    )
    database_url: str = Field(
        default="sqlite:///fluency_state.db",
        description="SQLAlchemy connection string for the SQL store",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
