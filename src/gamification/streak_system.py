"""
Daily Streak State Machine

A streak counts consecutive local calendar days with qualifying learning
activity. All functions are pure; the coordinator persists the results.

Transitions (update_streak):
- First activity ever: streak = 1
- Same calendar day: no change
- Next calendar day: streak + 1
- Gap of more than one day: reset to 1, unless the single missed day is
  covered by the grace period or a freeze token

Grace period:
- A streak last extended on day D must be extended again on D+1.
  The deadline for D+1 is local midnight ending D+1 plus 4 hours.
  Activity in that 4-hour window is credited to D+1.

Freeze tokens:
- Cover exactly one missed day, consumed automatically on return
- The frozen day gets its own grace window: activity before 4 hours past
  the midnight ending it is credited to the frozen day
- use_streak_freeze() spends one manually: keeps the count, does not advance it
- Milestones 7, 14, 30, 60, 100 and 365 grant one token (max 5 held)
"""

from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo
import logging

from src.config import GamificationSettings, get_settings
from src.exceptions import InsufficientTokensError, ValidationError
from src.models.gamification import StreakUpdate
from src.utils.datetime_helpers import (
    end_of_local_day,
    ensure_utc,
    local_date,
    local_wall_time,
)

logger = logging.getLogger(__name__)


def update_streak(
    last_active_date: Optional[date],
    new_activity_date: date,
    current_streak: int,
    gap_covered: bool = False,
) -> int:
    """
    New streak length after activity on new_activity_date

    Args:
        last_active_date: Local date of the last qualifying activity (None if never)
        new_activity_date: Local date of the new activity
        current_streak: Streak length before this activity
        gap_covered: A gap of more than one day is covered by grace or a freeze

    Returns:
        New streak length
    """
    if current_streak < 0:
        raise ValidationError(
            message="Streak count cannot be negative",
            field="current_streak",
            value=current_streak,
        )

    if last_active_date is None:
        return 1

    days = (new_activity_date - last_active_date).days

    # Same day (or a late-arriving event for an earlier day)
    if days <= 0:
        return current_streak

    if days == 1:
        return current_streak + 1

    if gap_covered:
        return current_streak + 1

    return 1


def get_streak_deadline(
    last_active_at: datetime,
    tz: ZoneInfo,
    settings: Optional[GamificationSettings] = None,
) -> datetime:
    """Instant after which a streak last extended at last_active_at is broken (UTC)"""
    settings = settings or get_settings()
    last_day = local_date(last_active_at, tz)
    return local_wall_time(last_day + timedelta(days=2), tz, settings.grace_period_hours)


def is_within_grace_period(
    last_active_at: datetime,
    current_at: datetime,
    tz: ZoneInfo,
    settings: Optional[GamificationSettings] = None,
) -> bool:
    """
    Whether current_at falls in the grace window of the day after last_active_at

    The window opens at local midnight ending that day and closes
    grace_period_hours later (inclusive).
    """
    settings = settings or get_settings()
    current_at = ensure_utc(current_at)
    last_day = local_date(last_active_at, tz)
    window_start = local_wall_time(last_day + timedelta(days=2), tz)
    return window_start <= current_at <= get_streak_deadline(last_active_at, tz, settings)


def is_streak_broken(
    last_active_at: datetime,
    current_at: datetime,
    tz: ZoneInfo,
    settings: Optional[GamificationSettings] = None,
) -> bool:
    """Whether the streak deadline has passed at current_at, ignoring freeze tokens"""
    settings = settings or get_settings()
    return ensure_utc(current_at) > get_streak_deadline(last_active_at, tz, settings)


def get_next_streak_deadline(
    current_at: datetime,
    tz: ZoneInfo,
    settings: Optional[GamificationSettings] = None,
) -> datetime:
    """
    Next cutoff after current_at: the coming local midnight plus grace hours

    Used by reminder scheduling. Returned in UTC.
    """
    settings = settings or get_settings()
    today = local_date(current_at, tz)
    return local_wall_time(today + timedelta(days=1), tz, settings.grace_period_hours)


def crossed_milestones(
    previous_streak: int,
    new_streak: int,
    settings: Optional[GamificationSettings] = None,
) -> list[int]:
    """Milestones m with previous_streak < m <= new_streak"""
    settings = settings or get_settings()
    return [m for m in settings.streak_milestones if previous_streak < m <= new_streak]


def award_freeze_token(tokens: int, settings: Optional[GamificationSettings] = None) -> int:
    """One more freeze token, capped; awarding at or above the cap is a no-op"""
    settings = settings or get_settings()
    if tokens >= settings.max_freeze_tokens:
        return tokens
    return tokens + 1


def calculate_streak_reward_xp(milestone: int, settings: Optional[GamificationSettings] = None) -> int:
    """Bonus XP for reaching a streak milestone (0 for non-milestones)"""
    settings = settings or get_settings()
    return settings.streak_milestone_xp.get(milestone, 0)


def use_streak_freeze(tokens: int, now: datetime) -> tuple[int, datetime]:
    """
    Spend one freeze token

    The last-active instant moves to now, which keeps the streak count alive
    through today without advancing it.

    Returns:
        (remaining tokens, new last_active_at)

    Raises:
        InsufficientTokensError: no tokens left
    """
    if tokens <= 0:
        raise InsufficientTokensError(tokens=tokens)
    return tokens - 1, ensure_utc(now)


def is_freeze_applicable(
    last_active_at: datetime,
    tokens: int,
    current_at: datetime,
    tz: ZoneInfo,
    settings: Optional[GamificationSettings] = None,
) -> bool:
    """A held token could still cover the gap: only one day has been missed so far"""
    settings = settings or get_settings()
    if tokens <= 0:
        return False
    last_day = local_date(last_active_at, tz)
    freeze_deadline = local_wall_time(last_day + timedelta(days=3), tz, settings.grace_period_hours)
    return ensure_utc(current_at) <= freeze_deadline


def needs_streak_reset(
    streak_count: int,
    last_active_at: Optional[datetime],
    tokens: int,
    current_at: datetime,
    tz: ZoneInfo,
    settings: Optional[GamificationSettings] = None,
) -> bool:
    """Whether the maintenance sweep should set the streak to 0"""
    settings = settings or get_settings()
    if streak_count <= 0 or last_active_at is None:
        return False
    if not is_streak_broken(last_active_at, current_at, tz, settings):
        return False
    return not is_freeze_applicable(last_active_at, tokens, current_at, tz, settings)


def record_activity(
    streak_count: int,
    last_active_at: Optional[datetime],
    freeze_tokens: int,
    activity_at: datetime,
    tz: ZoneInfo,
    settings: Optional[GamificationSettings] = None,
) -> StreakUpdate:
    """
    Full streak transition for a qualifying activity

    Args:
        streak_count: Current streak length
        last_active_at: Last qualifying activity (UTC) or None
        freeze_tokens: Tokens held before this activity
        activity_at: When the new activity happened
        tz: User's timezone

    Returns:
        StreakUpdate with the new count, tokens and crossed milestones
    """
    settings = settings or get_settings()
    activity_at = ensure_utc(activity_at)
    last_active_at = ensure_utc(last_active_at) if last_active_at else None
    activity_day = local_date(activity_at, tz)
    last_day = local_date(last_active_at, tz) if last_active_at else None

    tokens = freeze_tokens
    grace_applied = False
    freeze_used = False
    new_last_active = activity_at if last_active_at is None else max(last_active_at, activity_at)

    gap_days = (activity_day - last_day).days if last_day else 0
    if gap_days == 2 and is_within_grace_period(last_active_at, activity_at, tz, settings):
        grace_applied = True
        # Credit the activity to the day it saved
        new_last_active = end_of_local_day(last_day + timedelta(days=1), tz)
    elif gap_days in (2, 3) and is_freeze_applicable(last_active_at, tokens, activity_at, tz, settings):
        # Gap 3 only reaches here inside the grace window after the frozen day
        freeze_used = True
        tokens -= 1
        if gap_days == 3:
            new_last_active = end_of_local_day(last_day + timedelta(days=2), tz)

    new_streak = update_streak(
        last_day,
        activity_day,
        streak_count,
        gap_covered=grace_applied or freeze_used,
    )
    # Any day with activity counts, even after a manual freeze on a zero streak
    new_streak = max(new_streak, 1)

    milestones = crossed_milestones(streak_count, new_streak, settings)
    tokens_awarded = 0
    milestone_xp = 0
    for milestone in milestones:
        milestone_xp += calculate_streak_reward_xp(milestone, settings)
        if milestone >= settings.freeze_token_min_milestone:
            awarded = award_freeze_token(tokens, settings)
            tokens_awarded += awarded - tokens
            tokens = awarded

    if freeze_used:
        logger.info(f"Freeze token covered a missed day; streak {streak_count} -> {new_streak}")
    if grace_applied:
        logger.info(f"Grace period covered a late activity; streak {streak_count} -> {new_streak}")

    return StreakUpdate(
        previous_streak=streak_count,
        new_streak=new_streak,
        last_active_at=new_last_active,
        freeze_tokens=tokens,
        freeze_used=freeze_used,
        grace_applied=grace_applied,
        streak_reset=last_day is not None and gap_days > 1 and not (grace_applied or freeze_used),
        milestones_crossed=milestones,
        freeze_tokens_awarded=tokens_awarded,
        milestone_xp=milestone_xp,
    )
