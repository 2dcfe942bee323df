"""
Badge Catalog

Default badge definitions and loading/seeding of the catalog stored at
badges/definitions/{badge_id}. Definitions are immutable once loaded.
"""

import logging

from src.db.document_store import DocumentStore
from src.db.gamification_repository import BADGE_DEFINITIONS_COLLECTION
from src.models.gamification import (
    BadgeCategory,
    BadgeCriteria,
    BadgeDefinition,
    BadgeRarity,
    EventType,
    ProgressType,
)

logger = logging.getLogger(__name__)


def _badge(
    badge_id: str,
    title: str,
    description: str,
    icon: str,
    category: BadgeCategory,
    rarity: BadgeRarity,
    event_type: EventType,
    target_value: int,
    progress_type: ProgressType,
    sort_order: int,
) -> BadgeDefinition:
    return BadgeDefinition(
        id=badge_id,
        title=title,
        description=description,
        icon=icon,
        category=category,
        rarity=rarity,
        criteria=BadgeCriteria(
            event_type=event_type,
            target_value=target_value,
            progress_type=progress_type,
        ),
        sort_order=sort_order,
    )


PREDEFINED_BADGES: list[BadgeDefinition] = [
    # Lessons
    _badge("first_lesson", "First Steps", "Complete your first lesson", "👣",
           BadgeCategory.LESSONS, BadgeRarity.COMMON,
           EventType.LESSON_COMPLETED, 1, ProgressType.CUMULATIVE, 10),
    _badge("lesson_10", "Getting Started", "Complete 10 lessons", "📘",
           BadgeCategory.LESSONS, BadgeRarity.COMMON,
           EventType.LESSON_COMPLETED, 10, ProgressType.CUMULATIVE, 11),
    _badge("lesson_50", "Dedicated Learner", "Complete 50 lessons", "📚",
           BadgeCategory.LESSONS, BadgeRarity.UNCOMMON,
           EventType.LESSON_COMPLETED, 50, ProgressType.CUMULATIVE, 12),
    _badge("lesson_100", "Scholar", "Complete 100 lessons", "🎓",
           BadgeCategory.LESSONS, BadgeRarity.RARE,
           EventType.LESSON_COMPLETED, 100, ProgressType.CUMULATIVE, 13),

    # Streaks
    _badge("streak_3", "On a Roll", "Maintain a 3-day streak", "🔥",
           BadgeCategory.STREAKS, BadgeRarity.COMMON,
           EventType.STREAK_EXTENDED, 3, ProgressType.CONSECUTIVE, 20),
    _badge("streak_7", "Week Warrior", "Maintain a 7-day streak", "🗓️",
           BadgeCategory.STREAKS, BadgeRarity.UNCOMMON,
           EventType.STREAK_EXTENDED, 7, ProgressType.CONSECUTIVE, 21),
    _badge("streak_30", "Month Master", "Maintain a 30-day streak", "🌙",
           BadgeCategory.STREAKS, BadgeRarity.EPIC,
           EventType.STREAK_EXTENDED, 30, ProgressType.CONSECUTIVE, 22),
    _badge("streak_365", "Year Legend", "Maintain a 365-day streak", "👑",
           BadgeCategory.STREAKS, BadgeRarity.LEGENDARY,
           EventType.STREAK_EXTENDED, 365, ProgressType.CONSECUTIVE, 23),

    # Quizzes
    _badge("perfect_quiz", "Perfectionist", "Get 100% on a quiz", "💯",
           BadgeCategory.QUIZZES, BadgeRarity.UNCOMMON,
           EventType.PERFECT_SCORE, 1, ProgressType.ACHIEVEMENT, 30),
    _badge("quiz_master", "Quiz Master", "Complete 50 quizzes", "🧠",
           BadgeCategory.QUIZZES, BadgeRarity.RARE,
           EventType.QUIZ_COMPLETED, 50, ProgressType.CUMULATIVE, 31),

    # Levels
    _badge("level_5", "Rising Star", "Reach level 5", "⭐",
           BadgeCategory.MILESTONES, BadgeRarity.COMMON,
           EventType.LEVEL_UP, 5, ProgressType.MILESTONE, 40),
    _badge("level_10", "Double Digits", "Reach level 10", "🌟",
           BadgeCategory.MILESTONES, BadgeRarity.UNCOMMON,
           EventType.LEVEL_UP, 10, ProgressType.MILESTONE, 41),
    _badge("level_25", "Expert", "Reach level 25", "💫",
           BadgeCategory.MILESTONES, BadgeRarity.RARE,
           EventType.LEVEL_UP, 25, ProgressType.MILESTONE, 42),

    # Special time-based badges
    _badge("early_bird", "Early Bird", "Complete a lesson before 8 AM", "🌅",
           BadgeCategory.SPECIAL, BadgeRarity.UNCOMMON,
           EventType.EARLY_BIRD, 1, ProgressType.ACHIEVEMENT, 50),
    _badge("night_owl", "Night Owl", "Complete a lesson after 10 PM", "🦉",
           BadgeCategory.SPECIAL, BadgeRarity.UNCOMMON,
           EventType.NIGHT_OWL, 1, ProgressType.ACHIEVEMENT, 51),
]


async def load_badge_catalog(store: DocumentStore) -> list[BadgeDefinition]:
    """
    Read every badge definition from the store

    Returns:
        Definitions sorted by sort_order, then id
    """
    documents = await store.list_documents(BADGE_DEFINITIONS_COLLECTION)
    catalog = [BadgeDefinition.model_validate(doc.data) for doc in documents.values()]
    catalog.sort(key=lambda badge: (badge.sort_order, badge.id))

    logger.info(f"Loaded {len(catalog)} badge definitions")
    return catalog


async def seed_badge_catalog(
    store: DocumentStore,
    badges: list[BadgeDefinition] = PREDEFINED_BADGES,
) -> int:
    """
    Write badge definitions that are not yet in the store

    Existing definitions are left untouched.

    Returns:
        Number of definitions written
    """
    existing = await store.list_documents(BADGE_DEFINITIONS_COLLECTION)
    missing = [badge for badge in badges if badge.id not in existing]

    for badge in missing:
        await store.set(
            BADGE_DEFINITIONS_COLLECTION,
            badge.id,
            badge.model_dump(mode="json"),
            expected_version=0,
        )

    logger.info(f"Seeded {len(missing)} badge definitions ({len(existing)} already present)")
    return len(missing)
