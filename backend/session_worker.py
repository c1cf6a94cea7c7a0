"""
Standalone session sweeper for SchoolMarks.

Runs the periodic status refresh and deadline reminders outside the API
process (set ENABLE_SESSION_SWEEP=false on the API when using this).
"""

import asyncio
import logging

from motor.motor_asyncio import AsyncIOMotorClient

from schoolmarks.config.settings import settings
from schoolmarks.services import SessionSweeper

# Setup logging
logging.basicConfig(level=settings.LOG_LEVEL, format=settings.LOG_FORMAT)
logger = logging.getLogger('session_worker')


async def main():
    """Entry point"""
    logger.info("=" * 50)
    logger.info("SchoolMarks Session Sweeper")
    logger.info(f"MongoDB: {settings.DATABASE_NAME}")
    logger.info("=" * 50)

    client = AsyncIOMotorClient(settings.MONGODB_URL)
    db = client[settings.DATABASE_NAME]
    sweeper = SessionSweeper(db, interval_seconds=settings.SWEEP_INTERVAL_SECONDS)

    try:
        await sweeper.run_forever()
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
    except Exception as e:
        logger.error(f"Worker crashed: {str(e)}", exc_info=True)
    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(main())
