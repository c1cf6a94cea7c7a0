"""
Mark submission service - first/second entry writes for student marks.

FLOW (per entry):
1. Reject writes after the slot's own deadline, whatever the session status
2. Evaluate the session status (and persist it); only ``active`` accepts writes
3. Resolve student -> program -> level and validate the entry shape
4. Atomic upsert keyed on (session_id, student_id, subject_id)
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from ..errors import (
    DeadlinePassedError,
    NotFoundError,
    SchoolMarksError,
    SessionClosedError,
    ValidationError,
)
from ..models import (
    MARK_WRITER_ROLES,
    ROLE_PARENT,
    ROLE_SUPERADMIN,
    SLOT_FIELDS,
    STATUS_ACTIVE,
    STATUS_DRAFT,
    STATUS_PUBLISHED,
    BulkMarkItem,
    ExamSession,
    MarkEntry,
    MarkEntryPayload,
    Principal,
)
from ..utils import new_id, utcnow
from .mark_validation import MarkEntryValidator, program_level_for
from .permissions import require_role, require_student_access
from .session_state import ExamSessionStateMachine

logger = logging.getLogger(__name__)

Payload = Union[MarkEntryPayload, Dict[str, Any]]


class StudentContext:
    """Student, program and program level resolved for a submission."""

    def __init__(self, student: Dict[str, Any], program: Dict[str, Any], program_level: str):
        self.student = student
        self.program = program
        self.program_level = program_level

    @property
    def student_id(self) -> str:
        return self.student["student_id"]


class MarkSubmissionService:
    """Accepts first/second mark entries and keeps one record per student/subject/session."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        state_machine: Optional[ExamSessionStateMachine] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.marks = db.student_marks
        self.clock = clock
        self.state_machine = state_machine or ExamSessionStateMachine(db, clock=clock)
        self.validator = MarkEntryValidator()

    # ============ CHECKS ============

    async def _open_session(self, session_id: str) -> ExamSession:
        """Load the session and persist its evaluated status."""
        session = await self.state_machine.load(session_id)
        return await self.state_machine.refresh(session)

    def check_window(self, session: ExamSession, slot: str) -> None:
        # A passed slot deadline wins over the session status.
        deadline = session.deadline_for(slot)
        if self.clock() > deadline:
            raise DeadlinePassedError(
                f"The {slot} marks deadline passed at {deadline.isoformat()}",
                slot=slot,
                deadline=deadline,
            )

        if session.status != STATUS_ACTIVE:
            if session.status == STATUS_DRAFT:
                message = f"Exam session {session.session_id} has not started yet"
            else:
                message = f"Exam session {session.session_id} is {session.status}"
            raise SessionClosedError(
                message,
                status=session.status,
                first_marks_deadline=session.first_marks_deadline,
                second_marks_deadline=session.second_marks_deadline,
            )

    async def student_context(self, student_id: str) -> StudentContext:
        student = await self.db.students.find_one({"student_id": student_id}, {"_id": 0})
        if not student:
            raise NotFoundError(f"Student {student_id} not found", resource="student")

        program = await self.db.programs.find_one({"program_id": student.get("program_id")}, {"_id": 0})
        if not program:
            raise NotFoundError(
                f"Program {student.get('program_id')} of student {student_id} not found",
                resource="program",
            )
        return StudentContext(student, program, program_level_for(program))

    @staticmethod
    def check_enrolment(session: ExamSession, context: StudentContext) -> None:
        """The student must belong to one of the session's programs and classes."""
        student = context.student
        if student.get("program_id") not in session.program_ids:
            raise ValidationError.for_field(
                "student_id",
                f"Student {context.student_id} is not in a program of exam session {session.session_id}",
            )
        if session.class_ids and student.get("class_id") not in session.class_ids:
            raise ValidationError.for_field(
                "student_id",
                f"Student {context.student_id} is not in a class of exam session {session.session_id}",
            )

    async def _require_subject(self, subject_id: str) -> Dict[str, Any]:
        subject = await self.db.subjects.find_one({"subject_id": subject_id}, {"_id": 0})
        if not subject:
            raise NotFoundError(f"Subject {subject_id} not found", resource="subject")
        return subject

    async def _prepare(
        self,
        session: ExamSession,
        student_id: str,
        slot: str,
        payload: Payload,
    ) -> Tuple[StudentContext, MarkEntry]:
        """Run every check for one entry. Nothing is written here."""
        self.check_window(session, slot)
        context = await self.student_context(student_id)
        self.check_enrolment(session, context)
        entry = self.validator.validate(context.program_level, session.session_type, payload)
        return context, entry

    # ============ WRITES ============

    async def _write(
        self,
        session: ExamSession,
        context: StudentContext,
        subject_id: str,
        slot: str,
        entry: MarkEntry,
        actor: Principal,
    ) -> Dict[str, Any]:
        now = self.clock()
        slot_field = SLOT_FIELDS[slot]
        other_slot_field = next(f for f in SLOT_FIELDS.values() if f != slot_field)

        slot_doc = entry.model_dump()
        slot_doc["submitted_by"] = actor.user_id
        slot_doc["submitted_at"] = now

        set_fields: Dict[str, Any] = {
            slot_field: slot_doc,
            "updated_at": now,
            "last_submitted_by": actor.user_id,
        }
        if entry.teacher_comment:
            set_fields["teacher_comment"] = entry.teacher_comment

        set_on_insert: Dict[str, Any] = {
            "mark_id": new_id("mark"),
            "program_id": context.program.get("program_id"),
            "program_level": context.program_level,
            "is_remark_required": context.program_level == "kindergarten",
            "session_type": session.session_type,
            "academic_year": session.academic_year,
            "term": session.term,
            other_slot_field: None,
            "created_at": now,
        }
        if "teacher_comment" not in set_fields:
            set_on_insert["teacher_comment"] = None

        key = {
            "session_id": session.session_id,
            "student_id": context.student_id,
            "subject_id": subject_id,
        }
        update = {"$set": set_fields, "$setOnInsert": set_on_insert}
        try:
            await self.marks.update_one(key, update, upsert=True)
        except DuplicateKeyError:
            # A concurrent first submission inserted the record; apply ours on top.
            await self.marks.update_one(key, update, upsert=True)

        mark = await self.marks.find_one(key, {"_id": 0})
        logger.info(
            f"{slot} entry for student {context.student_id} / subject {subject_id} "
            f"in session {session.session_id} submitted by {actor.user_id}"
        )
        return mark

    async def submit_entry(
        self,
        session_id: str,
        student_id: str,
        subject_id: str,
        slot: str,
        payload: Payload,
        actor: Principal,
    ) -> Dict[str, Any]:
        """Create or overwrite one entry slot. Idempotent per (student, subject, session, slot)."""
        require_role(actor, MARK_WRITER_ROLES, "submit marks")
        session = await self._open_session(session_id)
        await self._require_subject(subject_id)
        context, entry = await self._prepare(session, student_id, slot, payload)
        return await self._write(session, context, subject_id, slot, entry, actor)

    async def bulk_submit(
        self,
        session_id: str,
        subject_id: str,
        entries: List[Union[BulkMarkItem, Dict[str, Any]]],
        slot: str,
        actor: Principal,
        all_or_nothing: bool = False,
    ) -> Dict[str, Any]:
        """
        Apply ``submit_entry`` semantics to each entry independently.

        Failures are reported per entry. With ``all_or_nothing`` every entry
        is checked first and nothing is written unless all pass.
        """
        require_role(actor, MARK_WRITER_ROLES, "submit marks")
        session = await self._open_session(session_id)
        await self._require_subject(subject_id)

        results: List[Dict[str, Any]] = []
        prepared = []

        for index, item in enumerate(entries):
            if isinstance(item, BulkMarkItem):
                student_id = item.student_id
                payload: Payload = item
            else:
                student_id = item.get("student_id", "")
                payload = item
            result: Dict[str, Any] = {"index": index, "student_id": student_id}

            try:
                context, entry = await self._prepare(session, student_id, slot, payload)
                if all_or_nothing:
                    prepared.append((result, context, entry))
                    result["status"] = "skipped"
                else:
                    result["mark"] = await self._write(session, context, subject_id, slot, entry, actor)
                    result["status"] = "applied"
            except SchoolMarksError as e:
                result.update(status="failed", **_error_fields(e))
            results.append(result)

        failed = sum(1 for r in results if r["status"] == "failed")
        if all_or_nothing and not failed:
            for result, context, entry in prepared:
                result["mark"] = await self._write(session, context, subject_id, slot, entry, actor)
                result["status"] = "applied"

        applied = sum(1 for r in results if r["status"] == "applied")
        if failed:
            logger.warning(
                f"Bulk {slot} submission for session {session_id} / subject {subject_id}: "
                f"{applied} applied, {failed} failed"
            )
        return {
            "session_id": session_id,
            "subject_id": subject_id,
            "slot": slot,
            "applied": applied,
            "failed": failed,
            "results": results,
        }

    async def update_mark(
        self,
        mark_id: str,
        slot: str,
        payload: Payload,
        actor: Principal,
    ) -> Dict[str, Any]:
        """Correct an existing mark by id; same checks as a new submission."""
        mark = await self.get_mark(mark_id)
        return await self.submit_entry(
            mark["session_id"], mark["student_id"], mark["subject_id"], slot, payload, actor
        )

    async def delete_all(
        self,
        actor: Principal,
        session_id: Optional[str] = None,
        student_id: Optional[str] = None,
        subject_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Administrative bulk clear. Irreversible."""
        require_role(actor, (ROLE_SUPERADMIN,), "delete student marks")
        query = {
            key: value
            for key, value in (
                ("session_id", session_id),
                ("student_id", student_id),
                ("subject_id", subject_id),
            )
            if value
        }
        result = await self.marks.delete_many(query)
        logger.warning(
            f"Bulk clear of student marks by {actor.user_id} (filter={query or 'ALL'}): "
            f"{result.deleted_count} removed"
        )
        return {"deleted": result.deleted_count, "filter": query}

    # ============ READS ============

    async def get_mark(self, mark_id: str) -> Dict[str, Any]:
        mark = await self.marks.find_one({"mark_id": mark_id}, {"_id": 0})
        if not mark:
            raise NotFoundError(f"Mark record {mark_id} not found", resource="student_mark")
        return mark

    async def list_student_marks(
        self,
        student_id: str,
        actor: Principal,
        session_id: Optional[str] = None,
        academic_year: Optional[str] = None,
        term: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Marks of one student. Parents only see sessions that are published."""
        student = await self.db.students.find_one({"student_id": student_id}, {"_id": 0})
        if not student:
            raise NotFoundError(f"Student {student_id} not found", resource="student")
        require_student_access(actor, student)

        query: Dict[str, Any] = {"student_id": student_id}
        if session_id:
            query["session_id"] = session_id
        if academic_year:
            query["academic_year"] = academic_year
        if term:
            query["term"] = term

        marks = [mark async for mark in self.marks.find(query, {"_id": 0}).sort("created_at", 1)]
        if actor.role != ROLE_PARENT:
            return marks

        published = set()
        for sid in {m["session_id"] for m in marks}:
            try:
                session = await self.state_machine.evaluate(sid)
            except NotFoundError:
                continue
            if session.status == STATUS_PUBLISHED:
                published.add(sid)
        return [m for m in marks if m["session_id"] in published]


def _error_fields(error: SchoolMarksError) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"error": error.error_type, "message": error.message}
    details = getattr(error, "details", None)
    if details:
        fields["details"] = details
    return fields
