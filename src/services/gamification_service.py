"""
GamificationService - Gamification Coordinator

Applies domain events to a user's gamification profile. Each event is one
read-modify-write: load the profile and badge progress, derive XP, level,
streak and badge changes with the pure calculators, then persist everything
in a single batch guarded by the profile version. Version conflicts re-run
the whole cycle with backoff.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from src.config import GamificationSettings, get_settings
from src.db.document_store import DocumentStore
from src.db.gamification_repository import GamificationRepository
from src.exceptions import ConflictError, GamificationError, VersionConflictError
from src.gamification import level_curve, streak_system, xp_system
from src.gamification.badge_catalog import PREDEFINED_BADGES, load_badge_catalog
from src.gamification.badge_system import BadgeEngine
from src.models.gamification import (
    DAILY_ACTIVITY_EVENTS,
    XP_ACTIVITY_BY_EVENT,
    ApplyEventResult,
    BadgeCategory,
    BadgeDefinition,
    BadgeProgress,
    DomainEvent,
    EventPayload,
    EventType,
    LevelProgress,
    StreakUpdate,
    UserGamificationProfile,
)
from src.observability.metrics import (
    record_badge_awarded,
    record_event,
    record_freeze_token,
    record_level_up,
    record_streak_reset,
    record_xp_awarded,
)
from src.resilience.retry import retry_on_conflict
from src.services.activity_service import ActivityService
from src.utils.datetime_helpers import ensure_utc, now_utc
from src.validators import validate_event_for_apply

logger = logging.getLogger(__name__)


@dataclass
class _EventOutcome:
    """One committed attempt of apply_event"""
    result: ApplyEventResult
    activity_xp: int = 0
    streak_update: Optional[StreakUpdate] = None


@dataclass
class _Derivation:
    """Working state while deriving one event's changes"""
    earned: set[str]
    progress: dict[str, BadgeProgress]
    touched: dict[str, BadgeProgress] = field(default_factory=dict)
    awarded: list[BadgeDefinition] = field(default_factory=list)


class GamificationService:
    """
    Service for gamification features.

    Responsibilities:
    - Applying learning events (XP, level, streak, badges) atomically
    - Profile lifecycle
    - Streak freezes and streak maintenance
    - Badge and level queries for display

    Args:
        store: Document store holding profiles, progress and the badge catalog
        settings: Engine tunables (defaults to get_settings())
        catalog: Badge definitions (defaults to PREDEFINED_BADGES)
        activity_service: Optional activity feed notified after commits
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[GamificationSettings] = None,
        catalog: Optional[list[BadgeDefinition]] = None,
        activity_service: Optional[ActivityService] = None,
    ):
        self.settings = settings or get_settings()
        self.repository = GamificationRepository(store)
        self.badge_engine = BadgeEngine(PREDEFINED_BADGES if catalog is None else catalog)
        self.activity_service = activity_service
        logger.debug("GamificationService initialized")

    @classmethod
    async def from_store(
        cls,
        store: DocumentStore,
        settings: Optional[GamificationSettings] = None,
        activity_service: Optional[ActivityService] = None,
    ) -> "GamificationService":
        """Build a service whose badge catalog is read from the store once"""
        catalog = await load_badge_catalog(store)
        return cls(store, settings=settings, catalog=catalog, activity_service=activity_service)

    # ============================================
    # Event processing
    # ============================================

    async def apply_event(self, user_id: str, event: DomainEvent) -> ApplyEventResult:
        """
        Apply one domain event to a user's profile.

        Args:
            user_id: Owner of the profile
            event: Learning activity or achievement event

        Returns:
            ApplyEventResult with the committed profile and what changed

        Raises:
            ValidationError: derived event type or invalid payload (nothing is read)
            RecordNotFoundError: user has no profile
            ConflictError: concurrent writers kept winning after bounded retries
        """
        validate_event_for_apply(event)

        attempts = 0

        async def apply_event_attempt() -> _EventOutcome:
            nonlocal attempts
            attempts += 1
            return await self._apply_event_once(user_id, event)

        logger.debug(
            f"Applying {event.type.value} for user {user_id} "
            f"(idempotency_key={event.idempotency_key})"
        )
        try:
            outcome = await retry_on_conflict(
                apply_event_attempt,
                max_retries=self.settings.max_conflict_retries,
                base_delay=self.settings.conflict_retry_base_delay,
                max_delay=self.settings.conflict_retry_max_delay,
            )
        except GamificationError:
            record_event(event.type.value, success=False, attempts=attempts)
            raise

        result = outcome.result.model_copy(update={"attempts": attempts})
        self._record_metrics(event, outcome, result)

        logger.info(
            f"Applied {event.type.value} for user {user_id}: +{result.xp_awarded} XP, "
            f"level {result.previous_level}->{result.profile.level}, "
            f"streak {result.new_streak}, {len(result.badges_awarded)} badge(s), "
            f"{attempts} attempt(s)"
        )

        await self._notify_activity_feed(user_id, event, result)
        return result

    async def _apply_event_once(self, user_id: str, event: DomainEvent) -> _EventOutcome:
        """Read, derive and commit once; VersionConflictError means re-run"""
        profile = await self.repository.get_profile(user_id)
        progress = await self.repository.get_badge_progress(user_id)
        now = now_utc()

        outcome, touched = self._derive_event(profile, progress, event, now)

        writes = [self.repository.profile_write(outcome.result.profile, expected_version=profile.version)]
        writes.extend(self.repository.progress_write(p) for p in touched.values())
        version = await self.repository.commit(writes, operation="apply_event", user_id=user_id)

        outcome.result.profile.version = version
        return outcome

    def _derive_event(
        self,
        profile: UserGamificationProfile,
        progress: dict[str, BadgeProgress],
        event: DomainEvent,
        now: datetime,
    ) -> tuple[_EventOutcome, dict[str, BadgeProgress]]:
        """Every change one event makes to a profile, without touching the store"""
        settings = self.settings
        tz = profile.tzinfo
        state = _Derivation(earned=set(profile.earned_badge_ids), progress=dict(progress))
        badges = list(profile.badges)

        def run_badge_checks(event_type: EventType, payload: EventPayload) -> None:
            check = self.badge_engine.check_and_award(
                profile.user_id, event_type, payload, state.earned, state.progress, now
            )
            state.progress.update(check.progress)
            state.touched.update(check.progress)
            badges.extend(check.awards)
            state.earned.update(award.badge_id for award in check.awards)
            state.awarded.extend(check.awarded)

        # XP, using the streak as it stands before this activity
        activity_xp = 0
        activity_type = XP_ACTIVITY_BY_EVENT.get(event.type)
        if activity_type:
            current_streak = self._effective_streak(profile, event.occurred_at)
            award = xp_system.calculate_xp_award(
                activity_type,
                difficulty=event.payload.difficulty,
                accuracy=1.0 if event.payload.accuracy is None else event.payload.accuracy,
                duration_minutes=event.payload.duration_minutes,
                streak_count=current_streak,
                question_count=event.payload.question_count,
                settings=settings,
            )
            activity_xp = award.total

        # Streak
        streak_update = None
        streak_count = profile.streak_count
        last_active_at = profile.last_active_at
        tokens = self._bounded_tokens(profile)
        milestone_xp = 0
        if event.type in DAILY_ACTIVITY_EVENTS:
            streak_update = streak_system.record_activity(
                profile.streak_count,
                profile.last_active_at,
                tokens,
                event.occurred_at,
                tz,
                settings,
            )
            streak_count = streak_update.new_streak
            last_active_at = streak_update.last_active_at
            tokens = streak_update.freeze_tokens
            milestone_xp = streak_update.milestone_xp

            if streak_update.extended:
                run_badge_checks(EventType.STREAK_EXTENDED, EventPayload(streak_length=streak_count))

        # Level
        xp_awarded = min(activity_xp + milestone_xp, settings.max_xp_per_event)
        new_xp = profile.xp + xp_awarded
        new_level = level_curve.level_for_xp(new_xp, settings)
        level_up = new_level > profile.level
        if level_up:
            run_badge_checks(EventType.LEVEL_UP, EventPayload(level=new_level))

        run_badge_checks(event.type, event.payload)

        updated = profile.model_copy(update={
            "xp": new_xp,
            "level": max(new_level, profile.level),
            "streak_count": streak_count,
            "longest_streak": max(profile.longest_streak, streak_count),
            "last_active_at": last_active_at,
            "streak_freeze_tokens": tokens,
            "badges": badges,
            "updated_at": now,
        })

        result = ApplyEventResult(
            profile=updated,
            xp_awarded=xp_awarded,
            level_up=level_up,
            previous_level=profile.level,
            badges_awarded=state.awarded,
            new_streak=streak_count,
            streak_milestones=streak_update.milestones_crossed if streak_update else [],
        )
        outcome = _EventOutcome(result=result, activity_xp=activity_xp, streak_update=streak_update)
        return outcome, state.touched

    def _bounded_tokens(self, profile: UserGamificationProfile) -> int:
        """Held freeze tokens, brought back under the cap if the stored count exceeds it"""
        cap = self.settings.max_freeze_tokens
        if profile.streak_freeze_tokens > cap:
            logger.warning(
                f"User {profile.user_id} holds {profile.streak_freeze_tokens} freeze tokens, "
                f"above the cap of {cap}; capping"
            )
            return cap
        return profile.streak_freeze_tokens

    def _effective_streak(self, profile: UserGamificationProfile, at: datetime) -> int:
        """Stored streak, or 0 if it has lapsed and the sweep has not caught up"""
        if streak_system.needs_streak_reset(
            profile.streak_count,
            profile.last_active_at,
            profile.streak_freeze_tokens,
            at,
            profile.tzinfo,
            self.settings,
        ):
            return 0
        return profile.streak_count

    def _record_metrics(self, event: DomainEvent, outcome: _EventOutcome, result: ApplyEventResult) -> None:
        record_event(event.type.value, success=True, attempts=result.attempts)
        activity_type = XP_ACTIVITY_BY_EVENT.get(event.type)
        if activity_type:
            record_xp_awarded(activity_type, outcome.activity_xp)
        if result.xp_awarded > outcome.activity_xp:
            record_xp_awarded("streak_milestone", result.xp_awarded - outcome.activity_xp)
        if result.level_up:
            record_level_up()
        for badge in result.badges_awarded:
            record_badge_awarded(badge.id)
        if outcome.streak_update:
            record_freeze_token("awarded", outcome.streak_update.freeze_tokens_awarded)
            if outcome.streak_update.freeze_used:
                record_freeze_token("auto_used")

    async def _notify_activity_feed(self, user_id: str, event: DomainEvent, result: ApplyEventResult) -> None:
        """The feed is informational; its failures never fail an applied event"""
        if self.activity_service is None:
            return
        try:
            await self.activity_service.record_event_outcome(user_id, event, result)
        except Exception as e:
            logger.warning(f"Failed to record activity feed for user {user_id}: {e}")

    # ============================================
    # Profile lifecycle
    # ============================================

    async def create_profile(self, user_id: str, timezone: str = "UTC") -> UserGamificationProfile:
        """
        Create a fresh profile with the starting freeze tokens

        Raises:
            ConflictError: a profile already exists for user_id
        """
        profile = UserGamificationProfile(
            user_id=user_id,
            timezone=timezone,
            streak_freeze_tokens=self.settings.initial_freeze_tokens,
        )
        try:
            return await self.repository.create_profile(profile)
        except VersionConflictError as e:
            raise ConflictError(
                message=f"Gamification profile for user {user_id} already exists",
                user_id=user_id,
                operation="create_profile",
                cause=e,
            )

    async def get_profile(self, user_id: str) -> UserGamificationProfile:
        return await self.repository.get_profile(user_id)

    async def delete_profile(self, user_id: str) -> None:
        """Remove a profile with its badge progress and activity feed"""
        async def delete_profile_attempt() -> None:
            profile = await self.repository.get_profile(user_id)
            await self.repository.delete_profile(user_id, expected_version=profile.version)

        await retry_on_conflict(
            delete_profile_attempt,
            max_retries=self.settings.max_conflict_retries,
            base_delay=self.settings.conflict_retry_base_delay,
            max_delay=self.settings.conflict_retry_max_delay,
        )

    # ============================================
    # Streaks
    # ============================================

    async def use_streak_freeze(self, user_id: str, now: Optional[datetime] = None) -> UserGamificationProfile:
        """
        Spend a freeze token to protect today's streak

        Raises:
            InsufficientTokensError: no tokens held (profile left unchanged)
        """
        now = now or now_utc()

        async def use_streak_freeze_attempt() -> UserGamificationProfile:
            profile = await self.repository.get_profile(user_id)
            tokens, last_active_at = streak_system.use_streak_freeze(profile.streak_freeze_tokens, now)
            updated = profile.model_copy(update={
                "streak_freeze_tokens": tokens,
                "last_active_at": last_active_at,
                "updated_at": now_utc(),
            })
            version = await self.repository.commit(
                [self.repository.profile_write(updated, expected_version=profile.version)],
                operation="use_streak_freeze",
                user_id=user_id,
            )
            updated.version = version
            return updated

        profile = await retry_on_conflict(
            use_streak_freeze_attempt,
            max_retries=self.settings.max_conflict_retries,
            base_delay=self.settings.conflict_retry_base_delay,
            max_delay=self.settings.conflict_retry_max_delay,
        )
        record_freeze_token("used")
        logger.info(
            f"User {user_id} used a streak freeze; "
            f"{profile.streak_freeze_tokens} token(s) left, streak {profile.streak_count}"
        )
        return profile

    async def check_streak_maintenance(self, user_id: str, now: Optional[datetime] = None) -> bool:
        """
        Reset a lapsed streak to 0

        A streak is lapsed when its deadline has passed and no held freeze
        token can cover the gap anymore.

        Returns:
            True if the streak was reset
        """
        now = now or now_utc()

        async def check_streak_maintenance_attempt() -> bool:
            profile = await self.repository.get_profile(user_id)
            if not streak_system.needs_streak_reset(
                profile.streak_count,
                profile.last_active_at,
                profile.streak_freeze_tokens,
                now,
                profile.tzinfo,
                self.settings,
            ):
                return False

            updated = profile.model_copy(update={"streak_count": 0, "updated_at": now_utc()})
            await self.repository.commit(
                [self.repository.profile_write(updated, expected_version=profile.version)],
                operation="check_streak_maintenance",
                user_id=user_id,
            )
            logger.info(f"Reset lapsed streak of {profile.streak_count} day(s) for user {user_id}")
            return True

        reset = await retry_on_conflict(
            check_streak_maintenance_attempt,
            max_retries=self.settings.max_conflict_retries,
            base_delay=self.settings.conflict_retry_base_delay,
            max_delay=self.settings.conflict_retry_max_delay,
        )
        if reset:
            record_streak_reset()
        return reset

    async def get_next_streak_deadline(self, user_id: str, now: Optional[datetime] = None) -> datetime:
        """
        When the user must next be active to keep the streak (UTC)

        While today's activity is still pending the deadline of the current
        streak applies; otherwise the next local cutoff.
        """
        now = ensure_utc(now or now_utc())
        profile = await self.repository.get_profile(user_id)
        tz = profile.tzinfo

        if profile.last_active_at is not None:
            deadline = streak_system.get_streak_deadline(profile.last_active_at, tz, self.settings)
            if now <= deadline:
                return deadline
        return streak_system.get_next_streak_deadline(now, tz, self.settings)

    async def list_user_ids(self) -> list[str]:
        return await self.repository.list_user_ids()

    # ============================================
    # Badges
    # ============================================

    async def get_user_badges(self, user_id: str) -> list[dict[str, Any]]:
        """
        Badges the user holds, newest first

        Returns:
            [
                {
                    'badge_id': str,
                    'title': str,
                    'description': str,
                    'icon': str,
                    'category': str,
                    'rarity': str,
                    'earned_at': datetime
                }
            ]
        """
        profile = await self.repository.get_profile(user_id)
        badges = []
        for award in sorted(profile.badges, key=lambda a: a.earned_at, reverse=True):
            badge = self.badge_engine.get_badge_definition(award.badge_id)
            badges.append({
                "badge_id": badge.id,
                "title": badge.title,
                "description": badge.description,
                "icon": badge.icon,
                "category": badge.category.value,
                "rarity": badge.rarity.value,
                "earned_at": award.earned_at,
            })
        return badges

    async def get_badge_progress(self, user_id: str) -> list[dict[str, Any]]:
        """Progress toward every badge the user can still earn, closest first"""
        profile = await self.repository.get_profile(user_id)
        progress = await self.repository.get_badge_progress(user_id)

        described = [
            self.badge_engine.describe_progress(badge.id, progress.get(badge.id))
            for badge in self.badge_engine.get_available_badges(profile.earned_badge_ids)
        ]
        described.sort(key=lambda p: p["percentage"], reverse=True)
        return described

    async def get_available_badges(self, user_id: str) -> list[BadgeDefinition]:
        profile = await self.repository.get_profile(user_id)
        return self.badge_engine.get_available_badges(profile.earned_badge_ids)

    def get_badges_by_category(self, category: BadgeCategory) -> list[BadgeDefinition]:
        return self.badge_engine.get_badges_by_category(category)

    async def award_badge(self, user_id: str, badge_id: str) -> bool:
        """
        Grant a badge outside the rule engine (support tooling)

        Returns:
            True if newly awarded, False if the user already held it

        Raises:
            RecordNotFoundError: unknown badge or user
        """
        self.badge_engine.get_badge_definition(badge_id)

        async def award_badge_attempt() -> bool:
            profile = await self.repository.get_profile(user_id)
            now = now_utc()
            badges, added = self.badge_engine.award_badge(profile.badges, badge_id, now)
            if not added:
                return False

            updated = profile.model_copy(update={"badges": badges, "updated_at": now})
            writes = [self.repository.profile_write(updated, expected_version=profile.version)]
            progress = (await self.repository.get_badge_progress(user_id)).get(badge_id)
            if progress is not None and not progress.is_frozen:
                writes.append(self.repository.progress_write(
                    progress.model_copy(update={"completed_at": now, "updated_at": now})
                ))
            await self.repository.commit(writes, operation="award_badge", user_id=user_id)
            return True

        added = await retry_on_conflict(
            award_badge_attempt,
            max_retries=self.settings.max_conflict_retries,
            base_delay=self.settings.conflict_retry_base_delay,
            max_delay=self.settings.conflict_retry_max_delay,
        )
        if added:
            record_badge_awarded(badge_id)
            logger.info(f"Manually awarded badge {badge_id} to user {user_id}")
        return added

    # ============================================
    # Calculators
    # ============================================

    def get_level_progress(self, xp: int) -> LevelProgress:
        return level_curve.get_level_progress(xp, self.settings)

    def preview_xp(
        self,
        activity_type: str,
        difficulty: Optional[str] = None,
        accuracy: float = 1.0,
        duration_minutes: float = 0.0,
        streak_count: int = 0,
        question_count: int = 1,
    ) -> int:
        """XP an activity would earn; no side effects"""
        return xp_system.preview_xp(
            activity_type,
            difficulty=difficulty,
            accuracy=accuracy,
            duration_minutes=duration_minutes,
            streak_count=streak_count,
            question_count=question_count,
            settings=self.settings,
        )
