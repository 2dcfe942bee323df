"""Global test fixtures and utilities for gamification engine tests"""
import pytest
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from src.config import GamificationSettings
from src.db.document_store import InMemoryDocumentStore
from src.db.gamification_repository import GamificationRepository
from src.gamification.badge_catalog import PREDEFINED_BADGES
from src.gamification.badge_system import BadgeEngine
from src.models.gamification import UserGamificationProfile
from src.services.activity_service import ActivityService
from src.services.gamification_service import GamificationService


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Default tunables with instant conflict retries"""
    return GamificationSettings(
        conflict_retry_base_delay=0.0,
        conflict_retry_max_delay=0.0,
    )


# ============================================================================
# Store & Service Fixtures
# ============================================================================

@pytest.fixture
def store():
    """Empty in-memory document store"""
    return InMemoryDocumentStore()


@pytest.fixture
def repository(store):
    return GamificationRepository(store)


@pytest.fixture
def activity_service(store):
    return ActivityService(store)


@pytest.fixture
def service(store, settings, activity_service):
    """Coordinator over the default badge catalog"""
    return GamificationService(
        store,
        settings=settings,
        catalog=PREDEFINED_BADGES,
        activity_service=activity_service,
    )


@pytest.fixture
def badge_engine():
    return BadgeEngine(PREDEFINED_BADGES)


# ============================================================================
# User & Profile Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


@pytest.fixture
def make_profile(repository):
    """
    Factory persisting a profile with the given fields

    Usage:
        profile = await make_profile("user-1", streak_count=6)
    """
    async def _make_profile(user_id: str = "user-123", **fields) -> UserGamificationProfile:
        fields.setdefault("streak_freeze_tokens", 3)
        profile = UserGamificationProfile(user_id=user_id, **fields)
        return await repository.create_profile(profile)

    return _make_profile


# ============================================================================
# Time Fixtures
# ============================================================================

@pytest.fixture
def fixed_now():
    """Mid-day instant used as 'now' in time-sensitive tests"""
    return datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def utc():
    return ZoneInfo("UTC")


@pytest.fixture
def stockholm():
    return ZoneInfo("Europe/Stockholm")
