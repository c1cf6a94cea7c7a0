"""
Student mark routes.

Endpoints:
- POST /api/exam-marks/record
- GET /api/exam-marks/student
- PUT /api/exam-marks/{mark_id}
- DELETE /api/exam-marks
"""

from typing import Optional

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..models import (
    MARK_WRITER_ROLES,
    ROLE_SUPERADMIN,
    Principal,
    RecordMarkRequest,
    UpdateMarkRequest,
)
from ..services import ExamSessionStateMachine, MarkSubmissionService, NotificationService
from .auth import get_current_principal, require_roles


def create_mark_routes(db: AsyncIOMotorDatabase) -> APIRouter:
    """Create student mark routes with database connection."""

    router = APIRouter(prefix="/api/exam-marks", tags=["exam-marks"])

    submissions = MarkSubmissionService(
        db, state_machine=ExamSessionStateMachine(db, notifier=NotificationService(db))
    )

    @router.post("/record", status_code=201)
    async def record_mark(
        body: RecordMarkRequest,
        principal: Principal = Depends(require_roles(*MARK_WRITER_ROLES)),
    ):
        """Record one entry slot for a student and subject."""
        return await submissions.submit_entry(
            body.session_id,
            body.student_id,
            body.subject_id,
            body.slot,
            body,
            principal,
        )

    @router.get("/student")
    async def get_student_marks(
        student_id: str,
        academic_year: Optional[str] = None,
        term: Optional[str] = None,
        principal: Principal = Depends(get_current_principal),
    ):
        """Get a student's marks, optionally filtered by academic year and term."""
        return await submissions.list_student_marks(
            student_id, principal, academic_year=academic_year, term=term
        )

    @router.put("/{mark_id}")
    async def update_mark(
        mark_id: str,
        body: UpdateMarkRequest,
        principal: Principal = Depends(require_roles(*MARK_WRITER_ROLES)),
    ):
        """Correct an entry slot of an existing mark within its deadline."""
        return await submissions.update_mark(mark_id, body.slot, body, principal)

    @router.delete("")
    async def delete_marks(
        session_id: Optional[str] = None,
        student_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        principal: Principal = Depends(require_roles(ROLE_SUPERADMIN)),
    ):
        """Bulk clear of student marks. Irreversible."""
        result = await submissions.delete_all(
            principal, session_id=session_id, student_id=student_id, subject_id=subject_id
        )
        return {"message": "Student marks deleted successfully", **result}

    return router
