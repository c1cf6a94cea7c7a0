"""
Notification outbox.

The core never delivers notifications itself. It records events in the
``notification_events`` collection and the Notification collaborator picks
them up from there.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..utils import new_id, utcnow

logger = logging.getLogger(__name__)

EVENT_DEADLINE_APPROACHING = "deadline_approaching"
EVENT_SESSION_REOPENED = "session_reopened"


class NotificationService:
    """Writes fire-and-forget events for the Notification collaborator."""

    def __init__(self, db: AsyncIOMotorDatabase, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def emit(
        self,
        event_type: str,
        session_id: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """Record an event. Failures are logged, never raised."""
        event_id = new_id("event")
        event = {
            "event_id": event_id,
            "type": event_type,
            "session_id": session_id,
            "payload": payload or {},
            "delivered": False,
            "created_at": self.clock(),
        }
        try:
            await self.db.notification_events.insert_one(event)
        except Exception as e:
            logger.warning(f"Could not record {event_type} event for {session_id}: {e}")
            return None
        logger.info(f"Queued {event_type} event {event_id} for session {session_id}")
        return event_id
