"""
Badge Rule Engine

The single place where badge criteria are evaluated. The engine is pure:
it takes the user's current awards and progress counters, and returns the
progress updates and new awards for the coordinator to persist atomically.

Progress types:
- Cumulative: +payload.count (default 1) per matching event
- Consecutive: set to the payload's streak length (external counter)
- Achievement: any matching event qualifies immediately
- Milestone: set to the payload's milestone value (level), qualifies at >= target

Awards are idempotent: a held badge is never re-evaluated or duplicated.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional
import logging

from src.exceptions import ConfigurationError, RecordNotFoundError
from src.models.gamification import (
    BadgeAward,
    BadgeCategory,
    BadgeCriteria,
    BadgeDefinition,
    BadgeProgress,
    EventPayload,
    EventType,
    ProgressType,
)

logger = logging.getLogger(__name__)


@dataclass
class BadgeCheckResult:
    """Outcome of evaluating one event against the catalog"""
    awarded: list[BadgeDefinition] = field(default_factory=list)
    awards: list[BadgeAward] = field(default_factory=list)
    progress: dict[str, BadgeProgress] = field(default_factory=dict)


def _milestone_value(payload: EventPayload) -> Optional[int]:
    if payload.level is not None:
        return payload.level
    return payload.streak_length


def evaluate_criteria(
    criteria: BadgeCriteria,
    current_value: int,
    payload: EventPayload,
) -> tuple[int, bool]:
    """
    Advance a progress counter for one matching event

    Returns:
        (new progress value, whether the badge now qualifies)
    """
    target = criteria.target_value

    if criteria.progress_type == ProgressType.CUMULATIVE:
        new_value = current_value + payload.count
        return new_value, new_value >= target

    if criteria.progress_type == ProgressType.CONSECUTIVE:
        if payload.streak_length is None:
            return current_value, False
        return payload.streak_length, payload.streak_length >= target

    if criteria.progress_type == ProgressType.ACHIEVEMENT:
        return max(current_value + 1, target), True

    # Milestone
    value = _milestone_value(payload)
    if value is None:
        return current_value, False
    return value, value >= target


class BadgeEngine:
    """
    Evaluates domain events against an immutable badge catalog.

    Args:
        catalog: Badge definitions, loaded once
    """

    def __init__(self, catalog: Iterable[BadgeDefinition]):
        self._catalog: dict[str, BadgeDefinition] = {}
        self._by_event: dict[EventType, list[BadgeDefinition]] = defaultdict(list)

        for badge in sorted(catalog, key=lambda b: (b.sort_order, b.id)):
            if badge.id in self._catalog:
                raise ConfigurationError(
                    message=f"Duplicate badge id in catalog: {badge.id}",
                    config_key="badges",
                )
            self._catalog[badge.id] = badge
            self._by_event[badge.criteria.event_type].append(badge)

        logger.debug(f"BadgeEngine initialized with {len(self._catalog)} badges")

    def check_and_award(
        self,
        user_id: str,
        event_type: EventType,
        payload: EventPayload,
        earned_badge_ids: set[str],
        progress: dict[str, BadgeProgress],
        now: datetime,
    ) -> BadgeCheckResult:
        """
        Update progress for every active, unearned badge matching event_type

        Args:
            user_id: User the event belongs to
            event_type: Type of the event being evaluated
            payload: Event fields consumed by criteria
            earned_badge_ids: Badges the user already holds
            progress: Current progress counters by badge id (not mutated)
            now: Timestamp for awards and progress updates

        Returns:
            BadgeCheckResult with touched progress and newly awarded badges
        """
        result = BadgeCheckResult()

        for badge in self._by_event.get(event_type, []):
            if not badge.is_active or badge.id in earned_badge_ids:
                continue

            current = progress.get(badge.id) or BadgeProgress(user_id=user_id, badge_id=badge.id)
            if current.is_frozen:
                continue

            new_value, qualifies = evaluate_criteria(badge.criteria, current.current_value, payload)
            result.progress[badge.id] = current.model_copy(update={
                "current_value": new_value,
                "updated_at": now,
                "completed_at": now if qualifies else None,
            })

            if qualifies:
                result.awarded.append(badge)
                result.awards.append(BadgeAward(badge_id=badge.id, earned_at=now))
                logger.info(
                    f"User {user_id} earned badge: {badge.id} ({badge.title}) "
                    f"on {event_type.value}"
                )

        return result

    def award_badge(
        self,
        awards: list[BadgeAward],
        badge_id: str,
        now: datetime,
    ) -> tuple[list[BadgeAward], bool]:
        """
        Add a badge to an award list, idempotently

        Returns:
            (award list, True if the badge was newly added)

        Raises:
            RecordNotFoundError: badge_id is not in the catalog
        """
        self.get_badge_definition(badge_id)
        if self.has_badge(awards, badge_id):
            return awards, False
        return awards + [BadgeAward(badge_id=badge_id, earned_at=now)], True

    @staticmethod
    def has_badge(awards: Iterable[BadgeAward], badge_id: str) -> bool:
        return any(award.badge_id == badge_id for award in awards)

    # ============================================
    # Catalog queries
    # ============================================

    def get_badge_definition(self, badge_id: str) -> BadgeDefinition:
        badge = self._catalog.get(badge_id)
        if badge is None:
            raise RecordNotFoundError(
                message=f"Badge definition {badge_id} not found",
                record_type="BadgeDefinition",
                record_id=badge_id,
            )
        return badge

    def get_all_badge_definitions(self) -> list[BadgeDefinition]:
        return list(self._catalog.values())

    def get_badges_by_category(self, category: BadgeCategory) -> list[BadgeDefinition]:
        return [b for b in self._catalog.values() if b.category == category and b.is_active]

    def get_available_badges(self, earned_badge_ids: set[str]) -> list[BadgeDefinition]:
        """Active badges the user can still earn"""
        return [
            b for b in self._catalog.values()
            if b.is_active and b.id not in earned_badge_ids
        ]

    def describe_progress(self, badge_id: str, progress: Optional[BadgeProgress]) -> dict:
        """
        Progress toward a badge for display

        Returns:
            {
                'badge_id': str,
                'current': int,
                'required': int,
                'percentage': int,
                'description': str
            }
        """
        badge = self.get_badge_definition(badge_id)
        required = badge.criteria.target_value
        current = progress.current_value if progress else 0
        percentage = min(100, int(current / required * 100))

        return {
            "badge_id": badge_id,
            "current": current,
            "required": required,
            "percentage": percentage,
            "description": f"{min(current, required)}/{required}",
        }
