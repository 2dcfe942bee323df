"""
Prometheus metrics for the gamification engine.

Metrics, organized by category:
- Event processing: applied events and their outcome
- Rewards: XP awarded, level ups, badges, freeze tokens
- Concurrency: optimistic-concurrency conflicts
- Streak maintenance: streaks reset by the sweep job

Recording helpers never raise; a metrics failure must not fail an update.
"""

import logging
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# =============================================================================
# Event Processing Metrics
# =============================================================================

gamification_events_total = Counter(
    "gamification_events_total",
    "Total domain events applied",
    ["event_type", "status"],  # status: success/error
)

gamification_event_attempts = Histogram(
    "gamification_event_attempts",
    "Read-modify-write attempts needed per applied event",
    buckets=[1, 2, 3, 4, 5, 6, 8, 10],
)

# =============================================================================
# Reward Metrics
# =============================================================================

xp_awarded_total = Counter(
    "gamification_xp_awarded_total",
    "Total XP awarded",
    ["source"],  # source: lesson/quiz/pronunciation/streak_milestone
)

level_ups_total = Counter(
    "gamification_level_ups_total",
    "Total level ups",
)

badges_awarded_total = Counter(
    "gamification_badges_awarded_total",
    "Total badges awarded",
    ["badge_id"],
)

freeze_tokens_total = Counter(
    "gamification_freeze_tokens_total",
    "Streak freeze token movements",
    ["action"],  # action: awarded/used/auto_used
)

# =============================================================================
# Concurrency Metrics
# =============================================================================

version_conflicts_total = Counter(
    "gamification_version_conflicts_total",
    "Optimistic-concurrency conflicts by operation",
    ["operation"],
)

# =============================================================================
# Streak Maintenance Metrics
# =============================================================================

streaks_reset_total = Counter(
    "gamification_streaks_reset_total",
    "Streaks set to zero by the maintenance sweep",
)


def record_event(event_type: str, success: bool, attempts: int = 1) -> None:
    """
    Record an applied domain event.

    Args:
        event_type: Event type value (lesson_completed, quiz_completed, ...)
        success: Whether the event was persisted
        attempts: Read-modify-write attempts used
    """
    try:
        status = "success" if success else "error"
        gamification_events_total.labels(event_type=event_type, status=status).inc()
        if success:
            gamification_event_attempts.observe(attempts)
        logger.debug(f"[METRICS] Event {event_type}: {status} after {attempts} attempt(s)")
    except Exception as e:
        logger.error(f"Failed to record event metrics: {e}")


def record_xp_awarded(source: str, amount: int) -> None:
    """Record XP granted from one source"""
    try:
        if amount > 0:
            xp_awarded_total.labels(source=source).inc(amount)
    except Exception as e:
        logger.error(f"Failed to record XP metrics: {e}")


def record_level_up() -> None:
    try:
        level_ups_total.inc()
    except Exception as e:
        logger.error(f"Failed to record level up: {e}")


def record_badge_awarded(badge_id: str) -> None:
    try:
        badges_awarded_total.labels(badge_id=badge_id).inc()
        logger.debug(f"[METRICS] Badge awarded: {badge_id}")
    except Exception as e:
        logger.error(f"Failed to record badge award: {e}")


def record_freeze_token(action: str, count: int = 1) -> None:
    """
    Record freeze token movements.

    Args:
        action: awarded, used (manual) or auto_used (covered a missed day)
        count: Number of tokens
    """
    try:
        if count > 0:
            freeze_tokens_total.labels(action=action).inc(count)
    except Exception as e:
        logger.error(f"Failed to record freeze token metrics: {e}")


def record_conflict(operation: str) -> None:
    """
    Record a version conflict.

    Args:
        operation: Operation that hit the conflict (_apply_event_once, ...)
    """
    try:
        version_conflicts_total.labels(operation=operation).inc()
        logger.debug(f"[METRICS] Version conflict in {operation}")
    except Exception as e:
        logger.error(f"Failed to record conflict: {e}")


def record_streak_reset(count: int = 1) -> None:
    try:
        if count > 0:
            streaks_reset_total.inc(count)
    except Exception as e:
        logger.error(f"Failed to record streak reset: {e}")
