"""
Level Curve

Closed-form conversion between total XP and level.

Curve:
- xp_for_level(1) = 0
- xp_for_level(L) = ceil(50 * L ** 1.7) for L >= 2
  (level 2 at 163 XP, level 5 at 772 XP, level 10 at 2506 XP)

A level is reached exactly at its threshold: level_for_xp(xp_for_level(L)) == L.
"""

import math
from typing import Optional

from src.config import GamificationSettings, get_settings
from src.exceptions import ValidationError
from src.models.gamification import LevelProgress


def _validate_xp(xp: int) -> None:
    if xp < 0:
        raise ValidationError(
            message="XP cannot be negative",
            field="xp",
            value=xp,
        )


def xp_for_level(level: int, settings: Optional[GamificationSettings] = None) -> int:
    """Total XP needed to reach a level"""
    settings = settings or get_settings()
    if level <= 1:
        return 0
    return math.ceil(settings.level_base_xp * level ** settings.level_exponent)


def level_for_xp(xp: int, settings: Optional[GamificationSettings] = None) -> int:
    """
    Largest level whose threshold is <= xp

    Starts from the inverted curve and corrects for float rounding so the
    result is exact at every threshold.

    Raises:
        ValidationError: xp is negative
    """
    settings = settings or get_settings()
    _validate_xp(xp)

    estimate = (xp / settings.level_base_xp) ** (1 / settings.level_exponent)
    level = max(1, int(estimate))

    while level > 1 and xp_for_level(level, settings) > xp:
        level -= 1
    while xp_for_level(level + 1, settings) <= xp:
        level += 1

    return level


def xp_to_next_level(xp: int, settings: Optional[GamificationSettings] = None) -> int:
    """XP still missing for the next level (always >= 1)"""
    settings = settings or get_settings()
    level = level_for_xp(xp, settings)
    return xp_for_level(level + 1, settings) - xp


def xp_into_level(xp: int, settings: Optional[GamificationSettings] = None) -> int:
    """XP earned since reaching the current level"""
    settings = settings or get_settings()
    level = level_for_xp(xp, settings)
    return xp - xp_for_level(level, settings)


def progress_fraction_in_level(xp: int, settings: Optional[GamificationSettings] = None) -> float:
    """Fraction of the current level completed, in [0, 1)"""
    settings = settings or get_settings()
    level = level_for_xp(xp, settings)
    floor_xp = xp_for_level(level, settings)
    span = xp_for_level(level + 1, settings) - floor_xp
    return (xp - floor_xp) / span


def get_level_progress(xp: int, settings: Optional[GamificationSettings] = None) -> LevelProgress:
    """
    Level summary for progress bars

    Returns:
        LevelProgress(level, xp_into_level, xp_to_next, fraction)
    """
    settings = settings or get_settings()
    level = level_for_xp(xp, settings)
    floor_xp = xp_for_level(level, settings)
    next_xp = xp_for_level(level + 1, settings)

    return LevelProgress(
        level=level,
        xp_into_level=xp - floor_xp,
        xp_to_next=next_xp - xp,
        fraction=(xp - floor_xp) / (next_xp - floor_xp),
    )


def is_valid_level(level: int, settings: Optional[GamificationSettings] = None) -> bool:
    """Sanity bound for displayed levels; level_for_xp itself is not clamped"""
    settings = settings or get_settings()
    return 1 <= level <= settings.max_level
