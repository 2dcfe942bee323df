"""Unit tests for Streak System (src/gamification/streak_system.py)"""
import pytest
from datetime import date, datetime, timezone, timedelta

from src.config import GamificationSettings
from src.exceptions import InsufficientTokensError, ValidationError
from src.gamification.streak_system import (
    award_freeze_token,
    calculate_streak_reward_xp,
    crossed_milestones,
    get_next_streak_deadline,
    get_streak_deadline,
    is_freeze_applicable,
    is_streak_broken,
    is_within_grace_period,
    needs_streak_reset,
    record_activity,
    update_streak,
    use_streak_freeze,
)


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ============================================================================
# Streak Update Tests
# ============================================================================

def test_update_streak_first_activity():
    """First activity ever starts a streak of 1"""
    assert update_streak(None, date(2024, 1, 10), 0) == 1


def test_update_streak_same_day_no_change():
    day = date(2024, 1, 10)
    for streak in (0, 1, 5, 40):
        assert update_streak(day, day, streak) == streak


def test_update_streak_consecutive_day():
    day = date(2024, 1, 10)
    for streak in (0, 1, 5, 40):
        assert update_streak(day, day + timedelta(days=1), streak) == streak + 1


def test_update_streak_gap_resets():
    day = date(2024, 1, 10)
    for gap in (2, 3, 30):
        assert update_streak(day, day + timedelta(days=gap), 12) == 1


def test_update_streak_covered_gap_extends():
    day = date(2024, 1, 10)
    assert update_streak(day, day + timedelta(days=2), 12, gap_covered=True) == 13


def test_update_streak_late_event_no_change():
    """An event for an earlier day never moves the streak"""
    assert update_streak(date(2024, 1, 10), date(2024, 1, 8), 4) == 4


def test_update_streak_negative_rejected():
    with pytest.raises(ValidationError):
        update_streak(None, date(2024, 1, 10), -1)


# ============================================================================
# Deadline & Grace Period Tests
# ============================================================================

def test_streak_deadline_is_midnight_after_next_day_plus_grace(utc):
    last = _utc(2024, 1, 10, 15, 0)
    assert get_streak_deadline(last, utc) == _utc(2024, 1, 12, 4, 0)


def test_streak_deadline_in_user_timezone(stockholm):
    # 23:30 UTC on Jan 10 is already Jan 11 in Stockholm
    last = _utc(2024, 1, 10, 23, 30)
    deadline = get_streak_deadline(last, stockholm)
    assert deadline == datetime(2024, 1, 13, 4, 0, tzinfo=stockholm).astimezone(timezone.utc)


def test_within_grace_period(utc):
    last = _utc(2024, 1, 10, 15, 0)
    assert is_within_grace_period(last, _utc(2024, 1, 12, 0, 0), utc)
    assert is_within_grace_period(last, _utc(2024, 1, 12, 4, 0), utc)
    assert not is_within_grace_period(last, _utc(2024, 1, 11, 23, 59), utc)
    assert not is_within_grace_period(last, _utc(2024, 1, 12, 4, 1), utc)


def test_grace_period_from_settings(utc):
    settings = GamificationSettings(grace_period_hours=0)
    last = _utc(2024, 1, 10, 15, 0)
    assert not is_within_grace_period(last, _utc(2024, 1, 12, 1, 0), utc, settings)


def test_is_streak_broken(utc):
    last = _utc(2024, 1, 10, 15, 0)
    assert not is_streak_broken(last, _utc(2024, 1, 11, 20, 0), utc)
    assert not is_streak_broken(last, _utc(2024, 1, 12, 4, 0), utc)
    assert is_streak_broken(last, _utc(2024, 1, 12, 4, 0, 1), utc)


def test_next_streak_deadline(utc):
    assert get_next_streak_deadline(_utc(2024, 1, 10, 9, 0), utc) == _utc(2024, 1, 11, 4, 0)


# ============================================================================
# Milestone & Freeze Token Tests
# ============================================================================

def test_crossed_milestones():
    assert crossed_milestones(6, 7) == [7]
    assert crossed_milestones(7, 7) == []
    assert crossed_milestones(2, 8) == [3, 7]
    assert crossed_milestones(0, 1) == []


def test_streak_reward_xp():
    assert calculate_streak_reward_xp(7) == 50
    assert calculate_streak_reward_xp(365) == 1500
    assert calculate_streak_reward_xp(8) == 0


def test_award_freeze_token_capped():
    assert award_freeze_token(0) == 1
    assert award_freeze_token(4) == 5
    assert award_freeze_token(5) == 5
    assert award_freeze_token(7) == 7


def test_use_streak_freeze():
    now = _utc(2024, 1, 10, 9, 0)
    tokens, last_active = use_streak_freeze(2, now)
    assert tokens == 1
    assert last_active == now


def test_use_streak_freeze_without_tokens():
    with pytest.raises(InsufficientTokensError) as exc_info:
        use_streak_freeze(0, _utc(2024, 1, 10, 9, 0))

    assert exc_info.value.tokens == 0


# ============================================================================
# Record Activity Tests
# ============================================================================

def test_record_activity_first_ever(utc):
    at = _utc(2024, 1, 10, 9, 0)
    update = record_activity(0, None, 3, at, utc)

    assert update.new_streak == 1
    assert update.last_active_at == at
    assert update.extended
    assert update.milestones_crossed == []


def test_record_activity_next_day_reaches_milestone(utc):
    """6 -> 7 crosses the 7-day milestone: bonus XP and one freeze token"""
    update = record_activity(6, _utc(2024, 1, 9, 18, 0), 3, _utc(2024, 1, 10, 9, 0), utc)

    assert update.new_streak == 7
    assert update.milestones_crossed == [7]
    assert update.milestone_xp == 50
    assert update.freeze_tokens_awarded == 1
    assert update.freeze_tokens == 4


def test_record_activity_milestone_token_capped(utc):
    update = record_activity(6, _utc(2024, 1, 9, 18, 0), 5, _utc(2024, 1, 10, 9, 0), utc)

    assert update.new_streak == 7
    assert update.freeze_tokens == 5
    assert update.freeze_tokens_awarded == 0


def test_record_activity_small_milestone_grants_no_token(utc):
    update = record_activity(2, _utc(2024, 1, 9, 18, 0), 1, _utc(2024, 1, 10, 9, 0), utc)

    assert update.milestones_crossed == [3]
    assert update.milestone_xp == 20
    assert update.freeze_tokens == 1


def test_record_activity_same_day(utc):
    last = _utc(2024, 1, 10, 8, 0)
    update = record_activity(4, last, 2, _utc(2024, 1, 10, 20, 0), utc)

    assert update.new_streak == 4
    assert not update.extended
    assert update.last_active_at == _utc(2024, 1, 10, 20, 0)


def test_record_activity_same_day_after_reset_counts_today(utc):
    """A zero streak with activity today is a one-day streak"""
    update = record_activity(0, _utc(2024, 1, 10, 8, 0), 0, _utc(2024, 1, 10, 20, 0), utc)
    assert update.new_streak == 1


def test_record_activity_in_grace_window(utc):
    """Activity shortly after midnight is credited to the missed day"""
    update = record_activity(5, _utc(2024, 1, 10, 15, 0), 0, _utc(2024, 1, 12, 2, 0), utc)

    assert update.grace_applied
    assert not update.freeze_used
    assert update.new_streak == 6
    assert update.last_active_at.date() == date(2024, 1, 11)


def test_record_activity_freeze_covers_one_missed_day(utc):
    update = record_activity(5, _utc(2024, 1, 10, 15, 0), 2, _utc(2024, 1, 12, 10, 0), utc)

    assert update.freeze_used
    assert update.freeze_tokens == 1
    assert update.new_streak == 6
    assert not update.streak_reset


def test_record_activity_freeze_covers_grace_window_after_missed_day(utc):
    """Shortly after midnight ending the frozen day still counts for it"""
    update = record_activity(5, _utc(2024, 1, 10, 15, 0), 1, _utc(2024, 1, 13, 2, 0), utc)

    assert update.freeze_used
    assert not update.grace_applied
    assert update.freeze_tokens == 0
    assert update.new_streak == 6
    assert not update.streak_reset
    assert update.last_active_at.date() == date(2024, 1, 12)


def test_record_activity_after_frozen_day_grace_resets(utc):
    update = record_activity(5, _utc(2024, 1, 10, 15, 0), 1, _utc(2024, 1, 13, 5, 0), utc)

    assert update.new_streak == 1
    assert update.streak_reset
    assert update.freeze_tokens == 1


@pytest.mark.parametrize("activity_at", [
    _utc(2024, 1, 12, 10, 0),
    _utc(2024, 1, 13, 2, 0),
    _utc(2024, 1, 13, 4, 0),
    _utc(2024, 1, 13, 5, 0),
    _utc(2024, 1, 14, 1, 0),
])
def test_record_activity_agrees_with_sweep(utc, activity_at):
    last = _utc(2024, 1, 10, 15, 0)

    update = record_activity(5, last, 1, activity_at, utc)

    assert update.streak_reset == needs_streak_reset(5, last, 1, activity_at, utc)


def test_record_activity_one_missed_day_without_tokens_resets(utc):
    update = record_activity(5, _utc(2024, 1, 10, 15, 0), 0, _utc(2024, 1, 12, 10, 0), utc)

    assert update.new_streak == 1
    assert update.streak_reset


def test_record_activity_long_gap_resets_and_keeps_tokens(utc):
    update = record_activity(20, _utc(2024, 1, 1, 15, 0), 3, _utc(2024, 1, 10, 10, 0), utc)

    assert update.new_streak == 1
    assert update.freeze_tokens == 3
    assert not update.freeze_used
    assert update.streak_reset


def test_record_activity_late_event_keeps_newest_instant(utc):
    last = _utc(2024, 1, 10, 15, 0)
    update = record_activity(3, last, 0, _utc(2024, 1, 9, 10, 0), utc)

    assert update.new_streak == 3
    assert update.last_active_at == last


def test_record_activity_tokens_never_exceed_cap(utc):
    settings = GamificationSettings(max_freeze_tokens=2, initial_freeze_tokens=2)
    last = _utc(2024, 1, 1, 12, 0)
    streak, tokens = 0, 2
    for day in range(60):
        at = last + timedelta(days=day)
        update = record_activity(streak, at - timedelta(days=1) if day else None, tokens, at, utc, settings)
        streak, tokens = update.new_streak, update.freeze_tokens
        assert tokens <= 2

    assert streak == 60


# ============================================================================
# Sweep Decision Tests
# ============================================================================

def test_freeze_applicable_only_for_one_missed_day(utc):
    last = _utc(2024, 1, 10, 15, 0)
    assert is_freeze_applicable(last, 1, _utc(2024, 1, 12, 10, 0), utc)
    assert is_freeze_applicable(last, 1, _utc(2024, 1, 13, 4, 0), utc)
    assert not is_freeze_applicable(last, 1, _utc(2024, 1, 13, 5, 0), utc)
    assert not is_freeze_applicable(last, 0, _utc(2024, 1, 12, 10, 0), utc)


def test_needs_streak_reset(utc):
    last = _utc(2024, 1, 10, 15, 0)
    broken_at = _utc(2024, 1, 12, 10, 0)

    assert needs_streak_reset(5, last, 0, broken_at, utc)
    assert not needs_streak_reset(5, last, 1, broken_at, utc)
    assert not needs_streak_reset(0, last, 0, broken_at, utc)
    assert not needs_streak_reset(5, None, 0, broken_at, utc)
    assert not needs_streak_reset(5, last, 0, _utc(2024, 1, 11, 22, 0), utc)
    assert needs_streak_reset(5, last, 3, _utc(2024, 1, 14, 10, 0), utc)
