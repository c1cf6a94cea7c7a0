"""
Exam session state machine.

Single authority for session status. Status is evaluated lazily on every
read against the current time; write paths persist the evaluated status so
the audit fields stay consistent.

    draft --(now >= start_date)--> active
    active --(now > latest deadline, or closed by admin)--> closed
    closed --(now >= publication_date_time)--> published
    closed/published --(reopen by admin)--> active
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..errors import NotFoundError, ValidationError
from ..models import (
    PRIVILEGED_ROLES,
    STATUS_ACTIVE,
    STATUS_CLOSED,
    STATUS_DRAFT,
    STATUS_PUBLISHED,
    ExamSession,
    ExamSessionCreate,
    ExamSessionUpdate,
    Principal,
    ReopenRequest,
)
from ..utils import combine_publication_datetime, ensure_utc, new_id, utcnow
from .notifications import EVENT_SESSION_REOPENED, NotificationService
from .permissions import require_role

logger = logging.getLogger(__name__)

DATETIME_FIELDS = (
    "start_date",
    "end_date",
    "first_marks_deadline",
    "second_marks_deadline",
    "publication_date_time",
    "reopened_at",
    "last_modified_at",
    "last_reminder_at",
    "created_at",
)

REOPENABLE_STATUSES = (STATUS_CLOSED, STATUS_PUBLISHED)


def derive_status(session: ExamSession, now: datetime) -> str:
    """Status of ``session`` at ``now``. Pure; never touches the database."""
    if now < session.start_date:
        return STATUS_DRAFT

    publication_due = now >= session.publication_date_time

    if session.reopened:
        # Reopened sessions stay active until an admin closes them again.
        if session.is_open:
            return STATUS_ACTIVE
        return STATUS_PUBLISHED if publication_due else STATUS_CLOSED

    if not session.is_open or now > session.latest_deadline:
        return STATUS_PUBLISHED if publication_due else STATUS_CLOSED

    return STATUS_ACTIVE


def validate_session_dates(
    start_date: datetime,
    end_date: datetime,
    first_marks_deadline: datetime,
    second_marks_deadline: datetime,
    publication_date_time: datetime,
) -> None:
    """Raise ValidationError listing every violated date-ordering rule."""
    details = []
    if end_date < start_date:
        details.append({"field": "end_date", "message": "end_date must not be before start_date"})

    for field, deadline in (
        ("first_marks_deadline", first_marks_deadline),
        ("second_marks_deadline", second_marks_deadline),
    ):
        if deadline < start_date:
            details.append({"field": field, "message": f"{field} must not be before start_date"})
        if deadline >= publication_date_time:
            details.append({"field": field, "message": f"{field} must be before publication_date_time"})

    if details:
        raise ValidationError("Invalid exam session dates", details)


def session_from_doc(doc: Dict[str, Any]) -> ExamSession:
    doc = dict(doc)
    for field in DATETIME_FIELDS:
        if doc.get(field) is not None:
            doc[field] = ensure_utc(doc[field])
    return ExamSession(**doc)


class ExamSessionStateMachine:
    """Commands and queries over exam sessions."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        notifier: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.collection = db.exam_sessions
        self.notifier = notifier or NotificationService(db, clock=clock)
        self.clock = clock

    # ============ QUERIES ============

    async def load(self, session_id: str) -> ExamSession:
        """Load a session as stored (persisted status, not evaluated)."""
        doc = await self.collection.find_one({"session_id": session_id}, {"_id": 0})
        if not doc:
            raise NotFoundError(f"Exam session {session_id} not found", resource="exam_session")
        return session_from_doc(doc)

    async def evaluate(self, session_id: str) -> ExamSession:
        """Load a session with its status evaluated against the current time."""
        session = await self.load(session_id)
        return self.with_derived_status(session)

    def with_derived_status(self, session: ExamSession) -> ExamSession:
        return session.model_copy(update={"status": derive_status(session, self.clock())})

    async def get(self, session_id: str) -> Dict[str, Any]:
        return self.to_public(await self.evaluate(session_id))

    async def list_sessions(
        self,
        academic_year: Optional[str] = None,
        term: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if academic_year:
            query["academic_year"] = academic_year
        if term:
            query["term"] = term

        cursor = self.collection.find(query, {"_id": 0}).sort("created_at", -1)
        docs = [doc async for doc in cursor]
        sessions = [self.with_derived_status(session_from_doc(doc)) for doc in docs]
        if status:
            sessions = [s for s in sessions if s.status == status]
        return [self.to_public(s) for s in sessions]

    @staticmethod
    def to_public(session: ExamSession) -> Dict[str, Any]:
        data = session.model_dump()
        data["accepting_marks"] = session.status == STATUS_ACTIVE
        return data

    # ============ COMMANDS ============

    async def create(self, config: ExamSessionCreate, actor: Principal) -> Dict[str, Any]:
        """Create a session in ``draft``."""
        require_role(actor, PRIVILEGED_ROLES, "create exam sessions")

        publication = config.publication_date_time
        if publication is None:
            if config.publication_date is None or not config.publication_time:
                raise ValidationError.for_field(
                    "publication_date_time",
                    "publication_date_time or publication_date + publication_time is required",
                )
            try:
                publication = combine_publication_datetime(config.publication_date, config.publication_time)
            except ValueError as e:
                raise ValidationError.for_field("publication_time", f"Invalid publication time: {e}")

        dates = {
            "start_date": ensure_utc(config.start_date),
            "end_date": ensure_utc(config.end_date),
            "first_marks_deadline": ensure_utc(config.first_marks_deadline),
            "second_marks_deadline": ensure_utc(config.second_marks_deadline),
            "publication_date_time": ensure_utc(publication),
        }
        validate_session_dates(**dates)

        now = self.clock()
        session_doc = {
            "session_id": new_id("session"),
            "academic_year": config.academic_year,
            "term": config.term,
            "session_type": config.session_type,
            "program_level": config.program_level,
            "program_ids": config.program_ids,
            "class_ids": config.class_ids,
            **dates,
            "reminder_frequency": config.reminder_frequency,
            "status": STATUS_DRAFT,
            "is_open": True,
            "reopened": False,
            "reopened_by": None,
            "reopened_at": None,
            "last_reminder_at": None,
            "created_by": actor.user_id,
            "created_at": now,
            "last_modified_by": actor.user_id,
            "last_modified_at": now,
        }
        await self.collection.insert_one(session_doc)
        session_doc.pop("_id", None)

        logger.info(
            f"Exam session {session_doc['session_id']} created by {actor.user_id} "
            f"({config.academic_year} / {config.term} / {config.session_type})"
        )
        return self.to_public(session_from_doc(session_doc))

    async def update(
        self,
        session_id: str,
        changes: ExamSessionUpdate,
        actor: Principal,
    ) -> Dict[str, Any]:
        require_role(actor, PRIVILEGED_ROLES, "update exam sessions")
        session = await self.load(session_id)

        updates = changes.model_dump(exclude_unset=True, exclude_none=True)
        for field in DATETIME_FIELDS:
            if field in updates:
                updates[field] = ensure_utc(updates[field])

        merged = session.model_copy(update=updates)
        validate_session_dates(
            merged.start_date,
            merged.end_date,
            merged.first_marks_deadline,
            merged.second_marks_deadline,
            merged.publication_date_time,
        )

        updates["last_modified_by"] = actor.user_id
        updates["last_modified_at"] = self.clock()
        await self.collection.update_one({"session_id": session_id}, {"$set": updates})
        logger.info(f"Exam session {session_id} updated by {actor.user_id}: {sorted(updates)}")

        refreshed = await self.refresh(session.model_copy(update=updates))
        return self.to_public(refreshed)

    async def toggle_status(self, session_id: str, actor: Principal) -> Dict[str, Any]:
        """Flip ``is_open``. Deadline-based closure still applies on the next evaluation."""
        require_role(actor, PRIVILEGED_ROLES, "open or close exam sessions")
        session = await self.load(session_id)

        now = self.clock()
        updates = {
            "is_open": not session.is_open,
            "last_modified_by": actor.user_id,
            "last_modified_at": now,
        }
        await self.collection.update_one({"session_id": session_id}, {"$set": updates})
        logger.info(
            f"Exam session {session_id} {'opened' if updates['is_open'] else 'closed'} by {actor.user_id}"
        )

        refreshed = await self.refresh(session.model_copy(update=updates))
        return self.to_public(refreshed)

    async def reopen(
        self,
        session_id: str,
        actor: Principal,
        request: Optional[ReopenRequest] = None,
    ) -> Dict[str, Any]:
        """
        Move a closed or published session back to ``active``.

        Optional deadline extensions must keep the date invariant; without
        them, slots whose deadline has passed still reject writes.
        """
        require_role(actor, PRIVILEGED_ROLES, "reopen exam sessions")
        session = await self.evaluate(session_id)

        if session.status not in REOPENABLE_STATUSES:
            raise ValidationError.for_field(
                "status", f"Only closed or published sessions can be reopened (status: {session.status})"
            )

        now = self.clock()
        updates: Dict[str, Any] = {
            "status": STATUS_ACTIVE,
            "is_open": True,
            "reopened": True,
            "reopened_by": actor.user_id,
            "reopened_at": now,
            "last_modified_by": actor.user_id,
            "last_modified_at": now,
        }
        if request is not None:
            if request.first_marks_deadline is not None:
                updates["first_marks_deadline"] = ensure_utc(request.first_marks_deadline)
            if request.second_marks_deadline is not None:
                updates["second_marks_deadline"] = ensure_utc(request.second_marks_deadline)

        merged = session.model_copy(update=updates)
        validate_session_dates(
            merged.start_date,
            merged.end_date,
            merged.first_marks_deadline,
            merged.second_marks_deadline,
            merged.publication_date_time,
        )

        await self.collection.update_one({"session_id": session_id}, {"$set": updates})
        logger.info(f"Exam session {session_id} reopened by {actor.user_id} (was {session.status})")

        await self.notifier.emit(
            EVENT_SESSION_REOPENED,
            session_id,
            {
                "reopened_by": actor.user_id,
                "previous_status": session.status,
                "first_marks_deadline": merged.first_marks_deadline,
                "second_marks_deadline": merged.second_marks_deadline,
            },
        )
        return self.to_public(self.with_derived_status(merged))

    async def delete(self, session_id: str, actor: Principal, force: bool = False) -> Dict[str, Any]:
        """Delete a draft session (or any session with ``force``) and its marks."""
        require_role(actor, PRIVILEGED_ROLES, "delete exam sessions")
        session = await self.evaluate(session_id)

        if session.status != STATUS_DRAFT and not force:
            raise ValidationError.for_field(
                "force", f"Session is {session.status}; pass force=true to delete it with its marks"
            )

        marks_result = await self.db.student_marks.delete_many({"session_id": session_id})
        await self.collection.delete_one({"session_id": session_id})

        logger.warning(
            f"Exam session {session_id} ({session.status}) deleted by {actor.user_id}; "
            f"{marks_result.deleted_count} student marks removed"
        )
        return {"session_id": session_id, "marks_deleted": marks_result.deleted_count}

    # ============ AUTOMATIC TRANSITIONS ============

    async def activate(self, session: ExamSession) -> ExamSession:
        """draft -> active once the start date is reached. Idempotent."""
        if session.status == STATUS_DRAFT and self.clock() >= session.start_date:
            return await self._transition(session, STATUS_ACTIVE)
        return session

    async def auto_close(self, session: ExamSession) -> ExamSession:
        """Close once both entry deadlines have passed. Idempotent."""
        if (
            session.status in (STATUS_DRAFT, STATUS_ACTIVE)
            and not session.reopened
            and self.clock() > session.latest_deadline
        ):
            return await self._transition(session, STATUS_CLOSED, {"is_open": False})
        return session

    async def auto_publish(self, session: ExamSession) -> ExamSession:
        """closed -> published at the publication time. Idempotent."""
        if session.status == STATUS_CLOSED and self.clock() >= session.publication_date_time:
            return await self._transition(session, STATUS_PUBLISHED)
        return session

    async def refresh(self, session: ExamSession) -> ExamSession:
        """
        Persist the evaluated status of ``session``.

        Returns the session carrying the evaluated status even if another
        writer got there first.
        """
        target = derive_status(session, self.clock())
        if target == session.status:
            return session

        if target == STATUS_ACTIVE and session.status == STATUS_DRAFT:
            session = await self.activate(session)
        elif target in (STATUS_CLOSED, STATUS_PUBLISHED):
            session = await self.auto_close(session)
            session = await self.auto_publish(session)

        if session.status != target:
            # Manual open/close paths not covered by the automatic transitions.
            session = await self._transition(session, target)
        return session

    async def _transition(
        self,
        session: ExamSession,
        target: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> ExamSession:
        updates = {"status": target, **(extra or {})}
        result = await self.collection.update_one(
            {"session_id": session.session_id, "status": session.status},
            {"$set": updates},
        )
        if result.modified_count:
            logger.info(f"Exam session {session.session_id}: {session.status} -> {target}")
        return session.model_copy(update=updates)
