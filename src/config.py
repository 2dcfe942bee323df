"""Configuration management"""
import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Streak maintenance job
STREAK_SWEEP_INTERVAL_SECONDS: int = int(os.getenv("STREAK_SWEEP_INTERVAL_SECONDS", "3600"))

# Prometheus metrics endpoint (0 disables it)
METRICS_PORT: int = int(os.getenv("METRICS_PORT", "0"))


class GamificationSettings(BaseSettings):
    """
    Every tunable of the gamification engine in one value.

    Instances are injected into the calculators and the coordinator, so tests
    and environments can tune the curve without touching module globals.
    Values are read from GAMIFICATION_* environment variables; dict and list
    fields take JSON.
    """

    model_config = SettingsConfigDict(
        env_prefix="GAMIFICATION_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    # Level curve: xp_for_level(L) = ceil(level_base_xp * L ** level_exponent)
    level_base_xp: int = Field(default=50, gt=0)
    level_exponent: float = Field(default=1.7, gt=1.0)
    max_level: int = Field(default=100, ge=2)

    # XP awards
    base_xp_by_activity: dict[str, int] = Field(default_factory=lambda: {
        "lesson": 20,
        "quiz": 10,
        "pronunciation": 15,
        "daily_challenge": 25,
        "streak_milestone": 30,
    })
    default_base_xp: int = Field(default=5, ge=0)
    duration_bonus_per_minute: int = Field(default=2, ge=0)
    duration_bonus_baseline_minutes: float = Field(default=5.0, ge=0)
    difficulty_multipliers: dict[str, int] = Field(default_factory=lambda: {
        "beginner": 1,
        "easy": 1,
        "intermediate": 2,
        "medium": 2,
        "advanced": 3,
        "hard": 3,
        "expert": 4,
        "extreme": 4,
    })
    # (minimum accuracy, multiplier), checked top-down
    accuracy_bands: list[tuple[float, float]] = Field(default_factory=lambda: [
        (0.95, 1.5),
        (0.85, 1.25),
        (0.75, 1.1),
        (0.65, 1.0),
        (0.5, 0.8),
    ])
    accuracy_floor_multiplier: float = Field(default=0.6, gt=0)
    # (minimum streak days, bonus XP), checked top-down
    streak_bonus_steps: list[tuple[int, int]] = Field(default_factory=lambda: [
        (60, 25),
        (30, 20),
        (14, 15),
        (7, 10),
        (3, 5),
    ])
    max_xp_per_event: int = Field(default=1000, gt=0)

    # Streaks
    grace_period_hours: int = Field(default=4, ge=0, le=23)
    streak_milestones: list[int] = Field(default_factory=lambda: [3, 7, 14, 30, 60, 100, 365])
    freeze_token_min_milestone: int = Field(default=7, ge=1)
    max_freeze_tokens: int = Field(default=5, ge=0)
    initial_freeze_tokens: int = Field(default=3, ge=0)
    streak_milestone_xp: dict[int, int] = Field(default_factory=lambda: {
        3: 20,
        7: 50,
        14: 100,
        30: 200,
        60: 400,
        100: 750,
        365: 1500,
    })

    # Optimistic concurrency
    max_conflict_retries: int = Field(default=5, ge=0)
    conflict_retry_base_delay: float = Field(default=0.05, ge=0)
    conflict_retry_max_delay: float = Field(default=1.0, ge=0)

    @model_validator(mode="after")
    def check_consistency(self) -> "GamificationSettings":
        """Reject combinations that would break profile invariants"""
        if self.initial_freeze_tokens > self.max_freeze_tokens:
            raise ValueError("initial_freeze_tokens cannot exceed max_freeze_tokens")
        if sorted(self.streak_milestones) != self.streak_milestones:
            raise ValueError("streak_milestones must be sorted ascending")
        if any(m <= 0 for m in self.streak_milestones):
            raise ValueError("streak_milestones must be positive")
        return self


@lru_cache
def get_settings() -> GamificationSettings:
    """Default settings instance loaded from the environment"""
    return GamificationSettings()
