"""
Background sweep over exam sessions.

Reads already evaluate status lazily; the sweep keeps the persisted status
in step for audit purposes and drives deadline reminders at each session's
``reminder_frequency``.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..models import STATUS_ACTIVE, STATUS_PUBLISHED, ExamSession
from .notifications import EVENT_DEADLINE_APPROACHING, NotificationService
from .session_state import ExamSessionStateMachine, session_from_doc

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Periodic status refresh and reminder emission."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        state_machine: Optional[ExamSessionStateMachine] = None,
        notifier: Optional[NotificationService] = None,
        interval_seconds: int = 300,
    ):
        self.db = db
        self.state_machine = state_machine or ExamSessionStateMachine(db, notifier=notifier)
        self.notifier = notifier or self.state_machine.notifier
        self.interval_seconds = interval_seconds

    async def sweep_once(self) -> Dict[str, int]:
        """Refresh every non-published session once. Returns counters."""
        stats = {"checked": 0, "transitioned": 0, "reminders": 0, "errors": 0}

        cursor = self.db.exam_sessions.find({"status": {"$ne": STATUS_PUBLISHED}}, {"_id": 0})
        async for doc in cursor:
            stats["checked"] += 1
            try:
                session = session_from_doc(doc)
                refreshed = await self.state_machine.refresh(session)
                if refreshed.status != session.status:
                    stats["transitioned"] += 1
                if await self._maybe_remind(refreshed):
                    stats["reminders"] += 1
            except Exception as e:
                stats["errors"] += 1
                logger.error(f"Sweep failed for session {doc.get('session_id')}: {e}", exc_info=True)

        if stats["transitioned"] or stats["reminders"] or stats["errors"]:
            logger.info(f"Session sweep: {stats}")
        return stats

    async def _maybe_remind(self, session: ExamSession) -> bool:
        """Emit one reminder per ``reminder_frequency`` days while a deadline is near."""
        if session.status != STATUS_ACTIVE:
            return False

        now = self.state_machine.clock()
        window = timedelta(days=session.reminder_frequency)
        upcoming = [
            (slot, deadline)
            for slot, deadline in (
                ("first", session.first_marks_deadline),
                ("second", session.second_marks_deadline),
            )
            if now <= deadline <= now + window
        ]
        if not upcoming:
            return False
        if session.last_reminder_at and now - session.last_reminder_at < window:
            return False

        await self.db.exam_sessions.update_one(
            {"session_id": session.session_id},
            {"$set": {"last_reminder_at": now}},
        )

        slot, deadline = min(upcoming, key=lambda item: item[1])
        payload: Dict[str, Any] = {
            "slot": slot,
            "deadline": deadline,
            "academic_year": session.academic_year,
            "term": session.term,
            "class_ids": session.class_ids,
        }
        await self.notifier.emit(EVENT_DEADLINE_APPROACHING, session.session_id, payload)
        return True

    async def run_forever(self):
        """Main sweep loop."""
        logger.info(f"Session sweeper started (every {self.interval_seconds}s)")
        while True:
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Session sweep loop error: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)
