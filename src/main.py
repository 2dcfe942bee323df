"""Main entry point for the gamification engine worker"""
import logging
import asyncio
from prometheus_client import start_http_server

from src.config import LOG_LEVEL, METRICS_PORT, STREAK_SWEEP_INTERVAL_SECONDS, get_settings
from src.db.document_store import InMemoryDocumentStore
from src.gamification.badge_catalog import seed_badge_catalog
from src.scheduler.streak_maintenance import StreakMaintenanceJob
from src.services.activity_service import ActivityService
from src.services.gamification_service import GamificationService

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)


async def main() -> None:
    """Main application entry point"""
    sweep = None
    try:
        # Validate configuration
        logger.info("Loading gamification settings...")
        settings = get_settings()

        if METRICS_PORT:
            logger.info(f"Starting Prometheus metrics endpoint on port {METRICS_PORT}...")
            start_http_server(METRICS_PORT)

        # Initialize store and badge catalog
        store = InMemoryDocumentStore()
        seeded = await seed_badge_catalog(store)
        logger.info(f"Seeded {seeded} badge definitions")

        service = await GamificationService.from_store(
            store,
            settings=settings,
            activity_service=ActivityService(store),
        )

        # Run the streak maintenance sweep
        logger.info("Gamification worker is running. Press Ctrl+C to stop.")
        sweep = asyncio.create_task(
            StreakMaintenanceJob(service).run_forever(STREAK_SWEEP_INTERVAL_SECONDS)
        )
        await sweep

    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except asyncio.CancelledError:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
    finally:
        if sweep and not sweep.done():
            logger.info("Stopping streak maintenance...")
            sweep.cancel()

        logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
