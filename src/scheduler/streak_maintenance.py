"""Scheduled sweep that resets lapsed streaks"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from src.config import STREAK_SWEEP_INTERVAL_SECONDS
from src.exceptions import GamificationError
from src.services.gamification_service import GamificationService
from src.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)


class StreakMaintenanceJob:
    """
    Periodically resets streaks whose deadline has passed

    Every reset goes through GamificationService.check_streak_maintenance, so
    it is version-checked against concurrent learning events. A user whose
    profile fails to update is skipped and picked up on the next run.
    """

    def __init__(self, service: GamificationService):
        self.service = service

    async def run_once(self, now: Optional[datetime] = None) -> dict:
        """
        Sweep every profile once

        Returns:
            {
                'checked': int,
                'reset': int,
                'failed': int
            }
        """
        now = now or now_utc()
        summary = {"checked": 0, "reset": 0, "failed": 0}

        for user_id in await self.service.list_user_ids():
            summary["checked"] += 1
            try:
                if await self.service.check_streak_maintenance(user_id, now):
                    summary["reset"] += 1
            except GamificationError as e:
                summary["failed"] += 1
                logger.warning(f"Streak maintenance failed for user {user_id}: {e.message}")

        logger.info(
            f"Streak maintenance: checked {summary['checked']}, "
            f"reset {summary['reset']}, failed {summary['failed']}"
        )
        return summary

    async def run_forever(self, interval: float = STREAK_SWEEP_INTERVAL_SECONDS) -> None:
        """Run the sweep every interval seconds until cancelled"""
        logger.info(f"Streak maintenance scheduled every {interval}s")
        while True:
            await self.run_once()
            await asyncio.sleep(interval)
