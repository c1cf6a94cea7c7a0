"""
Exam session routes.

Endpoints:
- POST /api/exam-sessions
- GET /api/exam-sessions
- GET /api/exam-sessions/{session_id}
- PUT /api/exam-sessions/{session_id}
- PUT /api/exam-sessions/{session_id}/toggle-status
- POST /api/exam-sessions/{session_id}/reopen
- POST /api/exam-sessions/{session_id}/marks/{subject_id}
- GET /api/exam-sessions/{session_id}/student/{student_id}
- GET /api/exam-sessions/{session_id}/report-card/{student_id}
- DELETE /api/exam-sessions/{session_id}
"""

from typing import Optional

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..models import (
    MARK_WRITER_ROLES,
    PRIVILEGED_ROLES,
    ROLE_PARENT,
    STATUS_PUBLISHED,
    BulkMarkSubmission,
    ExamSessionCreate,
    ExamSessionUpdate,
    Principal,
    ReopenRequest,
)
from ..services import (
    ExamSessionStateMachine,
    MarkSubmissionService,
    NotificationService,
    ReportCardAggregator,
    SettingsProvider,
)
from ..services.permissions import can_view_student
from ..services.report_card import legacy_marks_view
from .auth import get_current_principal, require_roles


def create_session_routes(db: AsyncIOMotorDatabase, settings_provider: SettingsProvider) -> APIRouter:
    """Create exam session routes with database connection."""

    router = APIRouter(prefix="/api/exam-sessions", tags=["exam-sessions"])

    state_machine = ExamSessionStateMachine(db, notifier=NotificationService(db))
    submissions = MarkSubmissionService(db, state_machine=state_machine)
    report_cards = ReportCardAggregator(db, settings_provider, state_machine=state_machine)

    @router.post("", status_code=201)
    async def create_session(
        body: ExamSessionCreate,
        principal: Principal = Depends(require_roles(*PRIVILEGED_ROLES)),
    ):
        """Create an exam session in draft."""
        return await state_machine.create(body, principal)

    @router.get("")
    async def list_sessions(
        academic_year: Optional[str] = None,
        term: Optional[str] = None,
        status: Optional[str] = None,
        principal: Principal = Depends(get_current_principal),
    ):
        """List sessions, newest first, with evaluated status."""
        return await state_machine.list_sessions(academic_year=academic_year, term=term, status=status)

    @router.get("/{session_id}")
    async def get_session(session_id: str, principal: Principal = Depends(get_current_principal)):
        """Get a session with programs, classes, subjects and students resolved for display."""
        session = await state_machine.get(session_id)

        programs = await db.programs.find(
            {"program_id": {"$in": session["program_ids"]}}, {"_id": 0}
        ).to_list(100)
        classes = await db.classes.find(
            {"class_id": {"$in": session["class_ids"]}}, {"_id": 0}
        ).to_list(500)

        subject_ids = sorted({sid for c in classes for sid in c.get("subject_ids", [])})
        student_ids = sorted({sid for c in classes for sid in c.get("student_ids", [])})
        subjects = await db.subjects.find({"subject_id": {"$in": subject_ids}}, {"_id": 0}).to_list(1000)
        students = [
            student
            async for student in db.students.find(
                {"student_id": {"$in": student_ids}},
                {"_id": 0, "student_id": 1, "first_name": 1, "last_name": 1,
                 "class_id": 1, "program_id": 1, "guardian_ids": 1},
            )
            if can_view_student(principal, student)
        ]

        marks_query = {"session_id": session_id}
        if principal.role == ROLE_PARENT:
            # Parents only see their own children's marks, once results are published.
            visible = [s["student_id"] for s in students] if session["status"] == STATUS_PUBLISHED else []
            marks_query["student_id"] = {"$in": visible}
        marks = [mark async for mark in db.student_marks.find(marks_query, {"_id": 0})]

        for student in students:
            student.pop("guardian_ids", None)

        session["programs"] = programs
        session["classes"] = classes
        session["subjects"] = subjects
        session["students"] = students
        session["marks"] = legacy_marks_view(marks)
        return session

    @router.put("/{session_id}")
    async def update_session(
        session_id: str,
        body: ExamSessionUpdate,
        principal: Principal = Depends(require_roles(*PRIVILEGED_ROLES)),
    ):
        """Update editable session fields."""
        return await state_machine.update(session_id, body, principal)

    @router.put("/{session_id}/toggle-status")
    async def toggle_status(
        session_id: str,
        principal: Principal = Depends(require_roles(*PRIVILEGED_ROLES)),
    ):
        """Open or close a session manually."""
        session = await state_machine.toggle_status(session_id, principal)
        return {
            "message": f"Exam session {'opened' if session['is_open'] else 'closed'} successfully",
            "session": session,
        }

    @router.post("/{session_id}/reopen")
    async def reopen_session(
        session_id: str,
        body: Optional[ReopenRequest] = None,
        principal: Principal = Depends(get_current_principal),
    ):
        """Reopen a closed or published session (admin/superadmin, checked by the state machine)."""
        return await state_machine.reopen(session_id, principal, body)

    @router.post("/{session_id}/marks/{subject_id}")
    async def submit_marks(
        session_id: str,
        subject_id: str,
        body: BulkMarkSubmission,
        principal: Principal = Depends(require_roles(*MARK_WRITER_ROLES)),
    ):
        """Submit one entry slot for many students; failures are reported per entry."""
        return await submissions.bulk_submit(
            session_id,
            subject_id,
            body.entries,
            body.slot,
            principal,
            all_or_nothing=body.all_or_nothing,
        )

    @router.get("/{session_id}/student/{student_id}")
    async def get_student_marks(
        session_id: str,
        student_id: str,
        principal: Principal = Depends(get_current_principal),
    ):
        """Get a student's marks for a session."""
        await state_machine.load(session_id)
        return await submissions.list_student_marks(student_id, principal, session_id=session_id)

    @router.get("/{session_id}/report-card/{student_id}")
    async def get_report_card(
        session_id: str,
        student_id: str,
        principal: Principal = Depends(get_current_principal),
    ):
        """Generate a report card for a student in a session."""
        return await report_cards.generate_report_card(session_id, student_id, principal)

    @router.delete("/{session_id}")
    async def delete_session(
        session_id: str,
        force: bool = False,
        principal: Principal = Depends(require_roles(*PRIVILEGED_ROLES)),
    ):
        """Delete a draft session, or any session with force=true, along with its marks."""
        result = await state_machine.delete(session_id, principal, force=force)
        return {"message": "Exam session deleted successfully", **result}

    return router
