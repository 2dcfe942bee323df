"""
Gamification engine for LinguaLearn

This module implements the pure calculators behind learner motivation:
- Level curve (XP thresholds per level)
- XP awards (difficulty, accuracy and streak bonuses)
- Daily streak state machine (grace period, freeze tokens, milestones)
- Badge rule engine and the default badge catalog

Persistence and concurrency live in src.services.gamification_service.
"""

from src.gamification.level_curve import xp_for_level, level_for_xp, get_level_progress
from src.gamification.xp_system import calculate_xp_award, preview_xp
from src.gamification.streak_system import update_streak, record_activity, use_streak_freeze
from src.gamification.badge_system import BadgeEngine
from src.gamification.badge_catalog import PREDEFINED_BADGES

__all__ = [
    "xp_for_level",
    "level_for_xp",
    "get_level_progress",
    "calculate_xp_award",
    "preview_xp",
    "update_streak",
    "record_activity",
    "use_streak_freeze",
    "BadgeEngine",
    "PREDEFINED_BADGES",
]
