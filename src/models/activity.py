"""Activity feed models"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class ActivityType(str, Enum):
    """Kinds of entries shown in a user's activity feed"""
    LESSON_COMPLETED = "lesson_completed"
    QUIZ_COMPLETED = "quiz_completed"
    PRONUNCIATION_PRACTICED = "pronunciation_practiced"
    BADGE_EARNED = "badge_earned"
    STREAK_MILESTONE = "streak_milestone"
    LEVEL_UP = "level_up"


class ActivityItem(BaseModel):
    """One feed entry, stored at users/{user_id}/activities/{id}"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    type: ActivityType
    title: str
    description: str = ""
    icon: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = Field(default_factory=dict)
