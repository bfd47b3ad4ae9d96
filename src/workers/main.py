"""
Claim Monitoring Worker Entry Point.

Runs the periodic claim follow-up checks (stale claims, timely filing
deadlines, automatic 276 inquiries) against the configured claim store
until SIGINT/SIGTERM.
"""

import asyncio
import signal
import sys

from src.core.config import get_claims_settings
from src.db.connection import (
    check_db_connection,
    close_db_connection,
    get_session_maker,
    init_db,
)
from src.services.adapters import SqlClaimRepository
from src.services.claim_lifecycle_service import create_claim_lifecycle_service
from src.utils.logging import get_logger, setup_logging_from_settings

logger = get_logger(__name__)

# Graceful shutdown flag
shutdown_event = asyncio.Event()


def signal_handler(sig, frame):
    """Handle shutdown signals."""
    logger.info(f"Received signal {sig}, initiating graceful shutdown...")
    shutdown_event.set()


async def main(poll_seconds: float = 60) -> None:
    """Main worker entry point."""
    setup_logging_from_settings()
    settings = get_claims_settings()

    logger.info("Claim Lifecycle - Monitoring Worker")
    logger.info(
        f"Schedule: stale every {settings.STALE_CHECK_INTERVAL_HOURS}h, "
        f"timely filing every {settings.TIMELY_FILING_CHECK_INTERVAL_HOURS}h, "
        f"inquiries every {settings.INQUIRY_INTERVAL_HOURS}h"
    )

    # Register signal handlers
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await init_db()
        if not await check_db_connection():
            logger.error("Claim store unavailable, worker not started")
            return

        repository = SqlClaimRepository(get_session_maker())
        service = create_claim_lifecycle_service(repository, settings=settings)
        await service.scheduler.run(shutdown_event, poll_seconds=poll_seconds)
    finally:
        await close_db_connection()
        logger.info("Worker shutdown complete")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
        sys.exit(0)
