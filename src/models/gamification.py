"""Gamification models: profiles, badges, events and engine results"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventType(str, Enum):
    """Fixed vocabulary of domain events"""
    LESSON_COMPLETED = "lesson_completed"
    QUIZ_COMPLETED = "quiz_completed"
    PRONUNCIATION_PRACTICED = "pronunciation_practiced"
    STREAK_EXTENDED = "streak_extended"
    LEVEL_UP = "level_up"
    PERFECT_SCORE = "perfect_score"
    FIRST_LESSON = "first_lesson"
    WEEKLY_GOAL_MET = "weekly_goal_met"
    LONG_STUDY_SESSION = "long_study_session"
    EARLY_BIRD = "early_bird"
    NIGHT_OWL = "night_owl"


# Events that earn XP, mapped to the activity type used by the XP calculator
XP_ACTIVITY_BY_EVENT: dict[EventType, str] = {
    EventType.LESSON_COMPLETED: "lesson",
    EventType.QUIZ_COMPLETED: "quiz",
    EventType.PRONUNCIATION_PRACTICED: "pronunciation",
}

# Events that count as the user's daily learning activity
DAILY_ACTIVITY_EVENTS: frozenset[EventType] = frozenset(XP_ACTIVITY_BY_EVENT)

# Events only the engine itself emits
DERIVED_EVENTS: frozenset[EventType] = frozenset({
    EventType.LEVEL_UP,
    EventType.STREAK_EXTENDED,
})


class BadgeCategory(str, Enum):
    """Badge categories"""
    LESSONS = "lessons"
    STREAKS = "streaks"
    QUIZZES = "quizzes"
    PRONUNCIATION = "pronunciation"
    SOCIAL = "social"
    MILESTONES = "milestones"
    ACHIEVEMENTS = "achievements"
    SPECIAL = "special"


class BadgeRarity(str, Enum):
    """Badge rarity levels"""
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class ProgressType(str, Enum):
    """How a badge's progress counter moves"""
    CUMULATIVE = "cumulative"    # total count (lessons completed)
    CONSECUTIVE = "consecutive"  # external counter (streak days)
    ACHIEVEMENT = "achievement"  # one-shot (perfect score)
    MILESTONE = "milestone"      # milestone value reached (level 10)


class BadgeCriteria(BaseModel):
    """Earning condition of a badge"""
    model_config = ConfigDict(frozen=True)

    event_type: EventType
    target_value: int = Field(default=1, ge=1)
    progress_type: ProgressType = ProgressType.CUMULATIVE


class BadgeDefinition(BaseModel):
    """Badge definition stored at badges/definitions/{badge_id}"""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    icon: str = ""
    category: BadgeCategory
    rarity: BadgeRarity = BadgeRarity.COMMON
    criteria: BadgeCriteria
    is_active: bool = True
    sort_order: int = 0


class BadgeAward(BaseModel):
    """A badge a user holds"""
    badge_id: str
    earned_at: datetime = Field(default_factory=_utcnow)


class BadgeProgress(BaseModel):
    """Per-user progress toward one badge, stored at users/{user_id}/progress/{badge_id}"""
    user_id: str
    badge_id: str
    current_value: int = Field(default=0, ge=0)
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_frozen(self) -> bool:
        return self.completed_at is not None


class EventPayload(BaseModel):
    """
    Fields consumed by XP calculation and badge criteria.

    Unknown keys are rejected so free-form maps never reach the engine.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    difficulty: Optional[str] = None
    accuracy: Optional[float] = None
    duration_minutes: float = Field(default=0.0, ge=0)
    question_count: int = Field(default=1, ge=1)
    count: int = Field(default=1, ge=0)
    streak_length: Optional[int] = Field(default=None, ge=0)
    level: Optional[int] = Field(default=None, ge=1)


class DomainEvent(BaseModel):
    """A learning activity or engine-emitted event"""
    model_config = ConfigDict(frozen=True)

    type: EventType
    payload: EventPayload = Field(default_factory=EventPayload)
    occurred_at: datetime = Field(default_factory=_utcnow)
    idempotency_key: Optional[str] = None

    @field_validator("occurred_at")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        """Naive datetimes are ambiguous across user timezones"""
        if v.tzinfo is None:
            raise ValueError("occurred_at must be timezone-aware")
        return v.astimezone(timezone.utc)


class UserGamificationProfile(BaseModel):
    """Gamification state of one user, stored at users/{user_id}"""
    user_id: str
    xp: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)
    streak_count: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_active_at: Optional[datetime] = None
    streak_freeze_tokens: int = Field(default=0, ge=0)
    badges: list[BadgeAward] = Field(default_factory=list)
    timezone: str = "UTC"
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    version: int = Field(default=0, ge=0)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except Exception as e:
            raise ValueError(f"Unknown timezone '{v}'") from e
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def earned_badge_ids(self) -> set[str]:
        return {award.badge_id for award in self.badges}

    def last_active_date(self) -> Optional[date]:
        """Local calendar date of the last qualifying activity"""
        if self.last_active_at is None:
            return None
        return self.last_active_at.astimezone(self.tzinfo).date()


class LevelProgress(BaseModel):
    """Where a total XP value sits on the level curve"""
    level: int
    xp_into_level: int
    xp_to_next: int
    fraction: float


class XPAward(BaseModel):
    """Breakdown of an XP award"""
    activity_type: str
    base_xp: int
    difficulty_multiplier: int
    accuracy_multiplier: float
    streak_bonus: int
    total: int


class StreakUpdate(BaseModel):
    """Outcome of recording a day's activity against a streak"""
    previous_streak: int
    new_streak: int
    last_active_at: datetime
    freeze_tokens: int
    freeze_used: bool = False
    grace_applied: bool = False
    streak_reset: bool = False
    milestones_crossed: list[int] = Field(default_factory=list)
    freeze_tokens_awarded: int = 0
    milestone_xp: int = 0

    @property
    def extended(self) -> bool:
        return self.new_streak > self.previous_streak


class ApplyEventResult(BaseModel):
    """What applying one domain event did to a profile"""
    profile: UserGamificationProfile
    xp_awarded: int = 0
    level_up: bool = False
    previous_level: int = 1
    badges_awarded: list[BadgeDefinition] = Field(default_factory=list)
    new_streak: int = 0
    streak_milestones: list[int] = Field(default_factory=list)
    attempts: int = 1
