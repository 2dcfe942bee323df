"""
XP Award System

Computes the XP a learning activity earns. Pure functions, no I/O.

XP Award Rules:
- Base XP per activity: lesson 20, quiz 10 per question, pronunciation 15,
  daily challenge 25, streak milestone 30, anything else 5
- Base XP scales with accuracy and earns 2 XP per minute spent beyond a
  5-minute session, capped at half the base
- Difficulty multiplier: beginner 1, intermediate 2, advanced 3, expert 4
- Accuracy multiplier: 1.5 at >= 95% down to 0.6 below 50% (never zero)
- Streak bonus: +5/+10/+15/+20/+25 at 3/7/14/30/60 days

Award = round(base * difficulty * accuracy_multiplier) + streak_bonus,
clamped to 1000 XP per event.
"""

import math
from typing import Optional

from src.config import GamificationSettings, get_settings
from src.exceptions import ValidationError
from src.models.gamification import XPAward


def _validate_accuracy(accuracy: float) -> None:
    if not 0.0 <= accuracy <= 1.0:
        raise ValidationError(
            message="Accuracy must be within [0, 1]",
            field="accuracy",
            value=accuracy,
        )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_base_xp(
    activity_type: str,
    duration_minutes: float = 0.0,
    accuracy: float = 1.0,
    question_count: int = 1,
    settings: Optional[GamificationSettings] = None,
) -> int:
    """
    Base XP for an activity before multipliers

    Args:
        activity_type: lesson, quiz, pronunciation, daily_challenge, ...
        duration_minutes: Time spent on the activity
        accuracy: Share of correct answers in [0, 1]
        question_count: Number of questions (quiz XP is per question)

    Raises:
        ValidationError: accuracy outside [0, 1], negative duration,
            non-positive question count
    """
    settings = settings or get_settings()
    _validate_accuracy(accuracy)
    if duration_minutes < 0:
        raise ValidationError(
            message="Duration cannot be negative",
            field="duration_minutes",
            value=duration_minutes,
        )
    if question_count < 1:
        raise ValidationError(
            message="Question count must be at least 1",
            field="question_count",
            value=question_count,
        )

    base = settings.base_xp_by_activity.get(activity_type.lower(), settings.default_base_xp)
    if activity_type.lower() == "quiz":
        base *= question_count

    adjusted = int(base * accuracy)

    extra_minutes = max(0.0, duration_minutes - settings.duration_bonus_baseline_minutes)
    duration_bonus = min(int(extra_minutes * settings.duration_bonus_per_minute), base // 2)

    return adjusted + duration_bonus


def get_difficulty_multiplier(
    difficulty: Optional[str],
    settings: Optional[GamificationSettings] = None,
) -> int:
    """Multiplier for a difficulty label; unknown or missing labels count as beginner"""
    settings = settings or get_settings()
    if not difficulty:
        return 1
    return settings.difficulty_multipliers.get(difficulty.lower(), 1)


def get_accuracy_multiplier(
    accuracy: float,
    settings: Optional[GamificationSettings] = None,
) -> float:
    """Banded multiplier rewarding near-perfect accuracy"""
    settings = settings or get_settings()
    _validate_accuracy(accuracy)

    for threshold, multiplier in settings.accuracy_bands:
        if accuracy >= threshold:
            return multiplier
    return settings.accuracy_floor_multiplier


def calculate_streak_bonus(
    streak_count: int,
    settings: Optional[GamificationSettings] = None,
) -> int:
    """Flat bonus XP for the user's current streak length"""
    settings = settings or get_settings()
    if streak_count < 0:
        raise ValidationError(
            message="Streak count cannot be negative",
            field="streak_count",
            value=streak_count,
        )

    for min_days, bonus in settings.streak_bonus_steps:
        if streak_count >= min_days:
            return bonus
    return 0


def calculate_xp_award(
    activity_type: str,
    difficulty: Optional[str] = None,
    accuracy: float = 1.0,
    duration_minutes: float = 0.0,
    streak_count: int = 0,
    question_count: int = 1,
    settings: Optional[GamificationSettings] = None,
) -> XPAward:
    """
    Full XP award with its breakdown

    Returns:
        XPAward with base_xp, multipliers, streak_bonus and the clamped total
    """
    settings = settings or get_settings()

    base_xp = calculate_base_xp(
        activity_type,
        duration_minutes=duration_minutes,
        accuracy=accuracy,
        question_count=question_count,
        settings=settings,
    )
    difficulty_multiplier = get_difficulty_multiplier(difficulty, settings)
    accuracy_multiplier = get_accuracy_multiplier(accuracy, settings)
    streak_bonus = calculate_streak_bonus(streak_count, settings)

    total = _round_half_up(base_xp * difficulty_multiplier * accuracy_multiplier) + streak_bonus
    total = max(0, min(total, settings.max_xp_per_event))

    return XPAward(
        activity_type=activity_type,
        base_xp=base_xp,
        difficulty_multiplier=difficulty_multiplier,
        accuracy_multiplier=accuracy_multiplier,
        streak_bonus=streak_bonus,
        total=total,
    )


def preview_xp(
    activity_type: str,
    difficulty: Optional[str] = None,
    accuracy: float = 1.0,
    duration_minutes: float = 0.0,
    streak_count: int = 0,
    question_count: int = 1,
    settings: Optional[GamificationSettings] = None,
) -> int:
    """XP an activity would earn, for UI estimates. No side effects."""
    return calculate_xp_award(
        activity_type,
        difficulty=difficulty,
        accuracy=accuracy,
        duration_minutes=duration_minutes,
        streak_count=streak_count,
        question_count=question_count,
        settings=settings,
    ).total


def is_valid_xp_amount(amount: int, settings: Optional[GamificationSettings] = None) -> bool:
    """Whether a single award stays inside the anti-abuse bounds"""
    settings = settings or get_settings()
    return 0 <= amount <= settings.max_xp_per_event
