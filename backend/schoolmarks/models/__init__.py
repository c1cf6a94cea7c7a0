"""Pydantic models for exam sessions, mark entries and report cards."""

from datetime import date, datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ============ ENUM-LIKE CONSTANTS ============
ROLE_SUPERADMIN = "superadmin"
ROLE_ADMIN = "admin"
ROLE_TEACHER = "teacher"
ROLE_PARENT = "parent"

PRIVILEGED_ROLES = (ROLE_SUPERADMIN, ROLE_ADMIN)
MARK_WRITER_ROLES = (ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_TEACHER)

STATUS_DRAFT = "draft"
STATUS_ACTIVE = "active"
STATUS_CLOSED = "closed"
STATUS_PUBLISHED = "published"

SessionStatus = Literal["draft", "active", "closed", "published"]
SessionType = Literal["midterm", "endterm", "kindergarten"]
ProgramLevel = Literal["kindergarten", "primary", "secondary", "highschool"]
EntrySlot = Literal["first", "second"]
KindergartenGrade = Literal["A", "B", "C", "D", "E"]

SLOT_FIELDS = {"first": "first_entry", "second": "second_entry"}
SLOT_DEADLINES = {"first": "first_marks_deadline", "second": "second_marks_deadline"}


# ============ PRINCIPAL ============
class Principal(BaseModel):
    """Authenticated caller as supplied by the auth collaborator."""
    model_config = ConfigDict(extra="ignore")
    user_id: str
    role: str
    name: Optional[str] = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


# ============ EXAM SESSION ============
class ExamSession(BaseModel):
    model_config = ConfigDict(extra="ignore")
    session_id: str
    academic_year: str
    term: str
    session_type: SessionType
    program_level: Optional[ProgramLevel] = None
    program_ids: List[str] = []
    class_ids: List[str] = []
    start_date: datetime
    end_date: datetime
    first_marks_deadline: datetime
    second_marks_deadline: datetime
    publication_date_time: datetime
    reminder_frequency: int = 1  # days
    status: SessionStatus = "draft"
    is_open: bool = True
    reopened: bool = False
    reopened_by: Optional[str] = None
    reopened_at: Optional[datetime] = None
    last_modified_by: Optional[str] = None
    last_modified_at: Optional[datetime] = None
    last_reminder_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def latest_deadline(self) -> datetime:
        return max(self.first_marks_deadline, self.second_marks_deadline)

    def deadline_for(self, slot: str) -> datetime:
        return getattr(self, SLOT_DEADLINES[slot])


class ExamSessionCreate(BaseModel):
    """Body for creating a session; accepts the legacy split publication fields."""
    academic_year: str
    term: str
    session_type: SessionType
    program_level: Optional[ProgramLevel] = None
    program_ids: List[str] = []
    class_ids: List[str] = []
    start_date: datetime
    end_date: datetime
    first_marks_deadline: datetime
    second_marks_deadline: datetime
    publication_date_time: Optional[datetime] = None
    publication_date: Optional[date] = None
    publication_time: Optional[str] = None  # "HH:MM"
    reminder_frequency: int = Field(default=1, ge=1)


class ExamSessionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    academic_year: Optional[str] = None
    term: Optional[str] = None
    program_level: Optional[ProgramLevel] = None
    program_ids: Optional[List[str]] = None
    class_ids: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    first_marks_deadline: Optional[datetime] = None
    second_marks_deadline: Optional[datetime] = None
    publication_date_time: Optional[datetime] = None
    reminder_frequency: Optional[int] = Field(default=None, ge=1)


class ReopenRequest(BaseModel):
    """Optional deadline extensions applied when reopening."""
    first_marks_deadline: Optional[datetime] = None
    second_marks_deadline: Optional[datetime] = None


# ============ MARK ENTRIES ============
class MidtermEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["midterm"] = "midterm"
    academic_engagement: float = Field(ge=0, le=20)
    midterm_exam: float = Field(ge=0, le=80)
    teacher_comment: str = Field(min_length=1)

    @property
    def finalized_score(self) -> float:
        return self.academic_engagement + self.midterm_exam


class EndtermEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["endterm"] = "endterm"
    endterm_exam: float = Field(ge=0, le=100)
    teacher_comment: str = Field(min_length=1)

    @property
    def finalized_score(self) -> float:
        return self.endterm_exam


class RemarkEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["remark"] = "remark"
    remark: str = Field(min_length=1)
    grade: Optional[KindergartenGrade] = None
    teacher_comment: Optional[str] = None

    @property
    def finalized_score(self) -> None:
        return None


MarkEntry = Union[MidtermEntry, EndtermEntry, RemarkEntry]


class MarkEntryPayload(BaseModel):
    """Raw entry fields as sent by clients, before the level-specific check."""
    model_config = ConfigDict(extra="ignore")
    academic_engagement: Optional[float] = None
    midterm_exam: Optional[float] = None
    endterm_exam: Optional[float] = None
    remark: Optional[str] = None
    grade: Optional[str] = None
    teacher_comment: Optional[str] = None


class BulkMarkItem(MarkEntryPayload):
    student_id: str


class BulkMarkSubmission(BaseModel):
    slot: EntrySlot = "first"
    entries: List[BulkMarkItem]
    all_or_nothing: bool = False


class RecordMarkRequest(MarkEntryPayload):
    session_id: str
    student_id: str
    subject_id: str
    slot: EntrySlot = "first"


class UpdateMarkRequest(MarkEntryPayload):
    slot: EntrySlot = "first"


# ============ GRADING ============
class GradeBand(BaseModel):
    grade: str
    min_score: float
    max_score: float


class ReportCardStatistics(BaseModel):
    total_subjects: int
    average_score: Optional[float] = None
    highest_score: Optional[float] = None
    lowest_score: Optional[float] = None


__all__ = [
    "ROLE_SUPERADMIN",
    "ROLE_ADMIN",
    "ROLE_TEACHER",
    "ROLE_PARENT",
    "PRIVILEGED_ROLES",
    "MARK_WRITER_ROLES",
    "STATUS_DRAFT",
    "STATUS_ACTIVE",
    "STATUS_CLOSED",
    "STATUS_PUBLISHED",
    "SLOT_FIELDS",
    "SLOT_DEADLINES",
    "Principal",
    "ExamSession",
    "ExamSessionCreate",
    "ExamSessionUpdate",
    "ReopenRequest",
    "MidtermEntry",
    "EndtermEntry",
    "RemarkEntry",
    "MarkEntry",
    "MarkEntryPayload",
    "BulkMarkItem",
    "BulkMarkSubmission",
    "RecordMarkRequest",
    "UpdateMarkRequest",
    "GradeBand",
    "ReportCardStatistics",
]
