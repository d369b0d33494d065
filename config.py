"""
Configuration settings for the cadence practice engine.

Uses Pydantic Settings for environment variable management with .env file support.
All variables are prefixed with CADENCE_ (e.g. CADENCE_IDLE_TIMEOUT_SECONDS=45).
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    state_db_path: str = Field(
        default=str(Path.home() / ".cadence" / "state.db"),
        description="SQLite file backing the key-value store",
    )
    app_version: str = Field(
        default="1.0.0",
        description="Version string stamped on journal entries",
    )

    # ========================================
    # Session Timing
    # ========================================
    tick_interval_ms: int = Field(
        default=1000,
        description="Engagement clock period",
    )
    idle_warning_seconds: int = Field(
        default=20,
        description="Idle time before the soft 'still there?' warning",
    )
    idle_timeout_seconds: int = Field(
        default=30,
        description="Idle time after which ticks count as idle instead of engaged",
    )
    min_session_minutes: float = Field(
        default=1.0,
        description="Minimum engaged minutes for a session to be journaled",
    )
    max_session_minutes: float = Field(
        default=180.0,
        description="Sessions longer than this are clamped (data-quality event)",
    )

    # ========================================
    # Crash Recovery
    # ========================================
    autosave_interval_seconds: int = Field(
        default=30,
        description="How often the in-flight session is snapshotted",
    )
    recovery_max_age_minutes: float = Field(
        default=10.0,
        description="Snapshots older than this are discarded on startup",
    )

    # ========================================
    # Retention
    # ========================================
    journal_capacity: int = Field(
        default=1000,
        description="Maximum journal entries kept (oldest evicted)",
    )
    daily_retention_days: int = Field(
        default=90,
        description="Trailing days of daily rollups kept",
    )
    srs_buffer_capacity: int = Field(
        default=200,
        description="Outcome events buffered per session for the scheduler sync",
    )

    # ========================================
    # Difficulty Adaptation
    # ========================================
    difficulty_weight_global: float = Field(
        default=0.4,
        description="Blend weight of the XP-derived global level",
    )
    difficulty_weight_skill: float = Field(
        default=0.4,
        description="Blend weight of the per-skill adaptive level",
    )
    difficulty_weight_due: float = Field(
        default=0.2,
        description="Blend weight of the spaced-repetition backlog level",
    )
    stability_window: int = Field(
        default=5,
        description="Samples required before a skill level may change",
    )
    history_size: int = Field(
        default=10,
        description="Trailing accuracy/speed samples kept per skill",
    )
    promote_accuracy: float = Field(
        default=90.0,
        description="Mean recent accuracy required for promotion",
    )
    promote_streak: int = Field(
        default=5,
        description="Streak required for promotion",
    )
    demote_accuracy: float = Field(
        default=65.0,
        description="Mean recent accuracy at or below which the level drops",
    )
    demote_lapses: int = Field(
        default=2,
        description="Lapse count at which the level drops",
    )
    adapt_on_session_end: bool = Field(
        default=True,
        description="Feed finished sessions into the difficulty adapter",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def get_tracker_config(self) -> dict[str, Any]:
        """Get session tracker configuration as a dictionary."""
        return {
            "tick_interval_ms": self.tick_interval_ms,
            "idle_warning_ms": self.idle_warning_seconds * 1000,
            "idle_timeout_ms": self.idle_timeout_seconds * 1000,
            "min_session_ms": int(self.min_session_minutes * 60_000),
            "max_session_ms": int(self.max_session_minutes * 60_000),
            "autosave_interval_ms": self.autosave_interval_seconds * 1000,
            "recovery_max_age_ms": int(self.recovery_max_age_minutes * 60_000),
            "journal_capacity": self.journal_capacity,
            "daily_retention_days": self.daily_retention_days,
            "srs_buffer_capacity": self.srs_buffer_capacity,
            "adapt_on_session_end": self.adapt_on_session_end,
            "app_version": self.app_version,
        }

    def get_difficulty_weights(self) -> dict[str, float]:
        """Get the level blend weights."""
        return {
            "global": self.difficulty_weight_global,
            "skill": self.difficulty_weight_skill,
            "due": self.difficulty_weight_due,
        }

    def get_difficulty_config(self) -> dict[str, Any]:
        """Get difficulty adaptation configuration as a dictionary."""
        return {
            "weights": self.get_difficulty_weights(),
            "stability_window": self.stability_window,
            "history_size": self.history_size,
            "promote": {
                "accuracy": self.promote_accuracy,
                "streak": self.promote_streak,
            },
            "demote": {
                "accuracy": self.demote_accuracy,
                "lapses": self.demote_lapses,
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
