"""
Configuration settings for uiflow-engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DAY_MS = 24 * 60 * 60 * 1000


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="UIFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Rule Engine
    # ========================================
    rule_interval_ms: int = Field(
        default=30_000,
        gt=0,
        description="Interval between rule evaluation ticks (milliseconds)",
    )

    # ========================================
    # Clock
    # ========================================
    time_acceleration: float = Field(
        default=1.0,
        gt=0,
        description="Multiplier applied to the wall clock (demo/testing only)",
    )

    # ========================================
    # Identity & Experiments
    # ========================================
    subject_key: str = Field(
        default="anonymous",
        description="Subject key used for deterministic A/B variant assignment",
    )
    default_area: str = Field(
        default="default",
        description="Area used when an element is registered without one",
    )

    # ========================================
    # Statistics
    # ========================================
    recent_usage_window_ms: int = Field(
        default=7 * DAY_MS,
        gt=0,
        description="Window used for recent usage in area statistics",
    )

    # ========================================
    # Simulation
    # ========================================
    simulation_interactions: int = Field(
        default=50,
        gt=0,
        description="Synthetic interactions generated per simulated user type",
    )
    simulation_days: int = Field(
        default=7,
        gt=0,
        description="Days of usage a simulation spreads its interactions over",
    )
    simulation_seed: int | None = Field(
        default=None,
        description="Seed for simulation shuffling (None = nondeterministic)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(
        default="WARNING",
        description="Loguru level for CLI output (DEBUG, INFO, WARNING, ERROR)",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
