"""
Report card aggregator - joins a student's marks for a session at read time.

Each StudentMark holds up to two entry slots; the populated slot with the
latest ``submitted_at`` is the one shown. Numeric entries are finalized per
session type and mapped through the program's grading scale. Kindergarten
remarks are shown as-is and stay out of the numeric statistics.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..errors import AuthorizationError, NotFoundError
from ..models import ROLE_PARENT, SLOT_FIELDS, STATUS_PUBLISHED, Principal, ReportCardStatistics
from ..utils import ensure_utc, format_score
from .grading_scale import GradingScaleResolver
from .permissions import require_student_access
from .session_state import ExamSessionStateMachine
from .settings_provider import SettingsProvider

logger = logging.getLogger(__name__)


def effective_entry(mark: Dict[str, Any]) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
    """Return ``(slot, entry)`` for the most recently submitted populated slot."""
    best_slot, best_entry = None, None
    for slot, field in SLOT_FIELDS.items():
        entry = mark.get(field)
        if not entry:
            continue
        if best_entry is None or ensure_utc(entry.get("submitted_at")) > ensure_utc(best_entry.get("submitted_at")):
            best_slot, best_entry = slot, entry
    return best_slot, best_entry


def finalized_score(entry: Dict[str, Any]) -> Optional[float]:
    """Combine the raw entry fields into one comparable number."""
    kind = entry.get("kind")
    if kind == "midterm":
        return entry["academic_engagement"] + entry["midterm_exam"]
    if kind == "endterm":
        return entry["endterm_exam"]
    return None


def compute_statistics(scores: List[float], total_subjects: int) -> Dict[str, Any]:
    if not scores:
        return ReportCardStatistics(total_subjects=total_subjects).model_dump()
    return ReportCardStatistics(
        total_subjects=total_subjects,
        average_score=format_score(sum(scores) / len(scores)),
        highest_score=format_score(max(scores)),
        lowest_score=format_score(min(scores)),
    ).model_dump()


def legacy_marks_view(marks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Denormalise StudentMarks into the old embedded ``ExamSession.marks`` shape.

    Read-only; the StudentMark collection stays the only source of truth.
    """
    view = []
    for mark in marks:
        _, entry = effective_entry(mark)
        if entry is None:
            continue
        view.append({
            "student_id": mark["student_id"],
            "subject_id": mark["subject_id"],
            "score": finalized_score(entry),
            "remark": entry.get("remark"),
            "submitted_by": entry.get("submitted_by"),
            "submitted_at": entry.get("submitted_at"),
        })
    return view


class ReportCardAggregator:
    """Builds report cards from StudentMark records and the Settings collaborator."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        settings_provider: SettingsProvider,
        state_machine: Optional[ExamSessionStateMachine] = None,
    ):
        self.db = db
        self.settings_provider = settings_provider
        self.state_machine = state_machine or ExamSessionStateMachine(db)

    async def generate_report_card(
        self,
        session_id: str,
        student_id: str,
        actor: Principal,
    ) -> Dict[str, Any]:
        session = await self.state_machine.evaluate(session_id)

        student = await self.db.students.find_one({"student_id": student_id}, {"_id": 0})
        if not student:
            raise NotFoundError(f"Student {student_id} not found", resource="student")
        require_student_access(actor, student)

        if actor.role == ROLE_PARENT and session.status != STATUS_PUBLISHED:
            raise AuthorizationError("Report cards are available to parents once results are published")

        marks = await self.db.student_marks.find(
            {"session_id": session_id, "student_id": student_id},
            {"_id": 0},
        ).to_list(1000)
        if not marks:
            raise NotFoundError(
                f"No marks found for student {student_id} in session {session_id}",
                resource="student_mark",
            )

        program_id = student.get("program_id")
        program = await self.db.programs.find_one({"program_id": program_id}, {"_id": 0}) or {}

        subject_ids = [m["subject_id"] for m in marks]
        subjects = {
            s["subject_id"]: s
            for s in await self.db.subjects.find(
                {"subject_id": {"$in": subject_ids}}, {"_id": 0}
            ).to_list(1000)
        }

        # One snapshot per report card keeps bands and theme from the same version.
        settings_snapshot = await self.settings_provider.snapshot()
        bands = None

        rows = []
        scores: List[float] = []
        for mark in marks:
            slot, entry = effective_entry(mark)
            if entry is None:
                continue

            subject = subjects.get(mark["subject_id"], {"subject_id": mark["subject_id"]})
            row = {
                "subject": {
                    "subject_id": mark["subject_id"],
                    "name": subject.get("name"),
                    "category": subject.get("category"),
                },
                "mark_id": mark.get("mark_id"),
                "slot": slot,
                "teacher_comment": entry.get("teacher_comment") or mark.get("teacher_comment"),
            }

            score = finalized_score(entry)
            if score is None:
                row.update(score=None, remark=entry.get("remark"), grade=entry.get("grade") or entry.get("remark"))
            else:
                if bands is None:
                    bands = settings_snapshot.get_grading_scale(program_id)
                scores.append(score)
                row.update(score=score, remark=None, grade=GradingScaleResolver.resolve(bands, score))
            rows.append(row)

        rows.sort(key=lambda r: (r["subject"].get("name") or "", r["subject"]["subject_id"]))

        logger.info(f"Report card generated for student {student_id} in session {session_id}")
        return {
            "student": {
                "student_id": student_id,
                "name": " ".join(p for p in (student.get("first_name"), student.get("last_name")) if p)
                or student.get("name"),
                "class_id": student.get("class_id"),
                "program_id": program_id,
                "program": program.get("name"),
            },
            "exam_session": {
                "session_id": session.session_id,
                "academic_year": session.academic_year,
                "term": session.term,
                "session_type": session.session_type,
                "start_date": session.start_date,
                "end_date": session.end_date,
                "publication_date_time": session.publication_date_time,
                "status": session.status,
            },
            "marks": rows,
            "statistics": compute_statistics(scores, len(rows)),
            "theme": settings_snapshot.get_report_card_theme(),
        }
