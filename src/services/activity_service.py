"""
ActivityService - Activity Feed

Writes the user-visible activity feed. The gamification coordinator notifies
it after an event has been persisted; the feed is informational and plays no
part in the correctness of gamification state.
"""

import logging
from datetime import datetime

from src.db.document_store import DocumentStore, WriteOperation
from src.db.gamification_repository import activities_collection
from src.models.activity import ActivityItem, ActivityType
from src.models.gamification import (
    ApplyEventResult,
    BadgeDefinition,
    DomainEvent,
    EventType,
)
from src.utils.datetime_helpers import ensure_utc

logger = logging.getLogger(__name__)

_ACTIVITY_BY_EVENT = {
    EventType.LESSON_COMPLETED: (ActivityType.LESSON_COMPLETED, "Lesson completed", "📘"),
    EventType.QUIZ_COMPLETED: (ActivityType.QUIZ_COMPLETED, "Quiz completed", "🧠"),
    EventType.PRONUNCIATION_PRACTICED: (ActivityType.PRONUNCIATION_PRACTICED, "Pronunciation practiced", "🗣️"),
}


class ActivityService:
    """
    Service for the activity feed.

    Responsibilities:
    - Recording learning activity and reward entries
    - Reading the most recent entries
    - Pruning old entries
    """

    def __init__(self, store: DocumentStore):
        self.store = store
        logger.debug("ActivityService initialized")

    async def record_activity(self, activity: ActivityItem) -> None:
        await self.store.set(
            activities_collection(activity.user_id),
            activity.id,
            activity.model_dump(mode="json"),
        )
        logger.debug(f"Recorded {activity.type.value} activity for user {activity.user_id}")

    async def record_learning_activity(
        self,
        user_id: str,
        event: DomainEvent,
        xp_earned: int,
    ) -> None:
        activity_type, title, icon = _ACTIVITY_BY_EVENT[event.type]
        description = f"+{xp_earned} XP"
        if event.payload.accuracy is not None:
            description += f" · {round(event.payload.accuracy * 100)}% accuracy"

        await self.record_activity(ActivityItem(
            user_id=user_id,
            type=activity_type,
            title=title,
            description=description,
            icon=icon,
            timestamp=event.occurred_at,
            metadata={
                "xp_earned": xp_earned,
                "idempotency_key": event.idempotency_key,
            },
        ))

    async def record_badge_earned(self, user_id: str, badge: BadgeDefinition) -> None:
        await self.record_activity(ActivityItem(
            user_id=user_id,
            type=ActivityType.BADGE_EARNED,
            title=f"Earned {badge.title}",
            description=badge.description,
            icon=badge.icon or "🏆",
            metadata={"badge_id": badge.id, "rarity": badge.rarity.value},
        ))

    async def record_streak_milestone(self, user_id: str, streak_count: int) -> None:
        await self.record_activity(ActivityItem(
            user_id=user_id,
            type=ActivityType.STREAK_MILESTONE,
            title=f"{streak_count}-day streak!",
            description=f"Learned {streak_count} days in a row",
            icon="🔥",
            metadata={"streak_count": streak_count},
        ))

    async def record_level_up(self, user_id: str, new_level: int) -> None:
        await self.record_activity(ActivityItem(
            user_id=user_id,
            type=ActivityType.LEVEL_UP,
            title=f"Reached level {new_level}",
            description="Keep going!",
            icon="⬆️",
            metadata={"level": new_level},
        ))

    async def record_event_outcome(
        self,
        user_id: str,
        event: DomainEvent,
        result: ApplyEventResult,
    ) -> None:
        """Feed entries for everything an applied event produced"""
        if event.type in _ACTIVITY_BY_EVENT:
            await self.record_learning_activity(user_id, event, result.xp_awarded)
        for milestone in result.streak_milestones:
            await self.record_streak_milestone(user_id, milestone)
        if result.level_up:
            await self.record_level_up(user_id, result.profile.level)
        for badge in result.badges_awarded:
            await self.record_badge_earned(user_id, badge)

    async def get_recent_activities(self, user_id: str, limit: int = 10) -> list[ActivityItem]:
        """Newest entries first"""
        documents = await self.store.list_documents(activities_collection(user_id))
        activities = [ActivityItem.model_validate(doc.data) for doc in documents.values()]
        activities.sort(key=lambda a: a.timestamp, reverse=True)
        return activities[:limit]

    async def clear_old_activities(self, user_id: str, older_than: datetime) -> int:
        """
        Delete entries older than a cutoff

        Returns:
            Number of entries deleted
        """
        cutoff = ensure_utc(older_than)
        collection = activities_collection(user_id)
        documents = await self.store.list_documents(collection)

        stale = [
            activity_id for activity_id, doc in documents.items()
            if ActivityItem.model_validate(doc.data).timestamp < cutoff
        ]
        if stale:
            await self.store.commit_batch([
                WriteOperation.delete(collection, activity_id) for activity_id in stale
            ])

        logger.info(f"Cleared {len(stale)} activities older than {cutoff.isoformat()} for user {user_id}")
        return len(stale)
