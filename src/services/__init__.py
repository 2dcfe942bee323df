"""
Service Layer Package

This package contains the services that sit between callers and the
document store.

Core Services:
- GamificationService: applies learning events, streak freezes, badge queries
- ActivityService: the user-visible activity feed
"""

from src.services.activity_service import ActivityService
from src.services.gamification_service import GamificationService

__all__ = [
    "ActivityService",
    "GamificationService",
]
