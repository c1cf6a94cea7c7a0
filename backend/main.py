"""
SchoolMarks Backend - Main FastAPI Application

Exam sessions, dual-entry marks and report cards.
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient

from schoolmarks.api import create_app
from schoolmarks.config.settings import settings

# Setup logging
logging.basicConfig(level=settings.LOG_LEVEL, format=settings.LOG_FORMAT)
logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(
    settings.MONGODB_URL,
    maxPoolSize=50,
    serverSelectionTimeoutMS=5000
)
db = client[settings.DATABASE_NAME]

app = create_app(db)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
