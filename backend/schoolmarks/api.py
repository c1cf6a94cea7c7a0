"""
FastAPI application factory.

``backend/main.py`` builds the production app from the configured MongoDB;
tests build one around an in-memory database.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

from . import __version__
from .cache import SettingsCache
from .config.settings import settings
from .errors import SchoolMarksError
from .routes.mark_routes import create_mark_routes
from .routes.session_routes import create_session_routes
from .services import SessionSweeper, SettingsProvider

logger = logging.getLogger(__name__)


async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes for performance and uniqueness."""
    try:
        # Exam sessions
        await db.exam_sessions.create_index("session_id", unique=True)
        await db.exam_sessions.create_index("status")
        await db.exam_sessions.create_index([("academic_year", 1), ("term", 1)])

        # Student marks
        await db.student_marks.create_index("mark_id", unique=True)
        await db.student_marks.create_index(
            [("session_id", 1), ("student_id", 1), ("subject_id", 1)], unique=True
        )
        await db.student_marks.create_index("student_id")

        # Notification outbox
        await db.notification_events.create_index([("delivered", 1), ("created_at", 1)])

    except Exception as e:
        logger.warning(f"Index creation warning: {e}")
        # Don't fail startup if indexes already exist


def register_error_handlers(app: FastAPI):
    @app.exception_handler(SchoolMarksError)
    async def handle_domain_error(request: Request, exc: SchoolMarksError):
        if exc.status_code >= 500:
            logger.error(f"{exc.error_type} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(
    db: AsyncIOMotorDatabase,
    cache: Optional[SettingsCache] = None,
    manage_lifecycle: bool = True,
) -> FastAPI:
    """
    Build the API around ``db``.

    With ``manage_lifecycle`` the app pings MongoDB, creates indexes and runs
    the session sweeper while it is up.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper_task = None
        if manage_lifecycle:
            logger.info("🚀 SchoolMarks Backend Starting Up...")
            try:
                settings.validate()
                await db.client.server_info()
                logger.info(f"✅ Connected to MongoDB: {db.name}")

                await create_indexes(db)
                logger.info("✅ Database indexes created")

                if settings.ENABLE_SESSION_SWEEP:
                    sweeper = SessionSweeper(db, interval_seconds=settings.SWEEP_INTERVAL_SECONDS)
                    sweeper_task = asyncio.create_task(sweeper.run_forever())
                    logger.info("✅ Session sweeper started")
            except Exception as e:
                logger.error(f"❌ Startup failed: {e}")
                raise

        yield

        if sweeper_task is not None:
            sweeper_task.cancel()
            try:
                await sweeper_task
            except asyncio.CancelledError:
                pass
        if manage_lifecycle:
            logger.info("🛑 Shutting down...")
            db.client.close()
            logger.info("✅ Database connection closed")

    app = FastAPI(
        title="SchoolMarks API",
        description="Exam sessions, dual-entry marks and report cards",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.db = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    settings_provider = SettingsProvider(db, cache or SettingsCache(settings.SETTINGS_CACHE_TTL_SECONDS))
    app.include_router(create_session_routes(db, settings_provider))
    app.include_router(create_mark_routes(db))

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "app": "SchoolMarks",
            "version": __version__,
            "docs": "/docs",
            "health": "/api/health",
        }

    return app
