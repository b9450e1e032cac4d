"""Entry point for embedding the engine and for running its maintenance pass"""
import logging
import asyncio
from progress_engine.config import configure_logging, validate_config
from progress_engine.db.connection import db
from progress_engine.gamification import daily_markers
from progress_engine.observability.metrics import init_metrics
from progress_engine.services import ProgressService

logger = logging.getLogger(__name__)


async def start_engine(apply_schema: bool = False) -> ProgressService:
    """
    Validate configuration, open the database pool and build the service

    Args:
        apply_schema: Create missing tables before returning
    """
    logger.info("Validating configuration...")
    validate_config()
    init_metrics()

    logger.info("Initializing database connection pool...")
    await db.init_pool()
    if apply_schema:
        await db.apply_schema()

    return ProgressService()


async def stop_engine() -> None:
    logger.info("Closing database connection...")
    await db.close_pool()


async def main() -> None:
    """Apply the schema and purge expired daily markers"""
    configure_logging()
    try:
        await start_engine(apply_schema=True)
        purged = await daily_markers.purge_expired()
        logger.info(f"Maintenance complete: {purged} expired markers purged")
    finally:
        await stop_engine()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
