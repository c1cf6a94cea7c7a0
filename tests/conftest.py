"""Shared fixtures: in-memory Motor database, frozen clock and seed data."""

from datetime import datetime, timedelta, timezone

import pytest
from mongomock_motor import AsyncMongoMockClient

from schoolmarks.models import ExamSessionCreate, Principal
from schoolmarks.services import (
    ExamSessionStateMachine,
    MarkSubmissionService,
    NotificationService,
    ReportCardAggregator,
    SettingsProvider,
)

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

SUPERADMIN = Principal(user_id="user_super", role="superadmin", name="Super")
ADMIN = Principal(user_id="user_admin", role="admin", name="Admin")
TEACHER = Principal(user_id="user_teacher", role="teacher", name="Teacher")
PARENT = Principal(user_id="user_parent", role="parent", name="Parent")
OTHER_PARENT = Principal(user_id="user_other_parent", role="parent", name="Other")

PRIMARY_SCALE = [
    {"grade": "A", "min_score": 80, "max_score": 100},
    {"grade": "B", "min_score": 70, "max_score": 79.99},
    {"grade": "C", "min_score": 50, "max_score": 69.99},
    {"grade": "F", "min_score": 0, "max_score": 49.99},
]


class FrozenClock:
    """Callable clock the services read 'now' from."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)

    def set(self, value: datetime):
        self.now = value


def session_config(**overrides) -> ExamSessionCreate:
    data = {
        "academic_year": "2025-2026",
        "term": "Term 2",
        "session_type": "midterm",
        "program_level": "primary",
        "program_ids": ["prog_primary"],
        "class_ids": ["class_p4"],
        "start_date": T0 - timedelta(days=1),
        "end_date": T0 + timedelta(days=10),
        "first_marks_deadline": T0 + timedelta(days=5),
        "second_marks_deadline": T0 + timedelta(days=8),
        "publication_date_time": T0 + timedelta(days=12),
        "reminder_frequency": 2,
    }
    data.update(overrides)
    return ExamSessionCreate(**data)


@pytest.fixture
def db():
    return AsyncMongoMockClient()["schoolmarks_test"]


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
async def seeded(db):
    await db.programs.insert_many([
        {"program_id": "prog_primary", "name": "Primary"},
        {"program_id": "prog_kg", "name": "Kindergarten"},
        {"program_id": "prog_creche", "name": "Creche"},
    ])
    students = [
        {
            "student_id": f"stu_{i}",
            "first_name": f"Student{i}",
            "last_name": "Primary",
            "class_id": "class_p4",
            "program_id": "prog_primary",
            "guardian_ids": ["user_parent"] if i == 1 else [],
        }
        for i in range(1, 11)
    ]
    students.append({
        "student_id": "stu_kg",
        "first_name": "Kid",
        "last_name": "Garten",
        "class_id": "class_kg1",
        "program_id": "prog_kg",
        "guardian_ids": ["user_parent"],
    })
    await db.students.insert_many(students)
    await db.subjects.insert_many([
        {"subject_id": "subj_math", "name": "Mathematics", "category": "Sciences"},
        {"subject_id": "subj_eng", "name": "English", "category": "Languages"},
        {"subject_id": "subj_read", "name": "Reading", "category": "Early years"},
    ])
    await db.classes.insert_many([
        {
            "class_id": "class_p4",
            "name": "Primary 4",
            "program_id": "prog_primary",
            "subject_ids": ["subj_math", "subj_eng"],
            "student_ids": [f"stu_{i}" for i in range(1, 11)],
        },
        {
            "class_id": "class_kg1",
            "name": "KG 1",
            "program_id": "prog_kg",
            "subject_ids": ["subj_read"],
            "student_ids": ["stu_kg"],
        },
    ])
    await db.settings.insert_one({
        "version": 1,
        "grading_scales": {"prog_primary": PRIMARY_SCALE},
        "report_card_theme": {"background_color": "#ffffff", "accent_color": "#1a73e8"},
    })
    return db


@pytest.fixture
def state_machine(db, clock):
    return ExamSessionStateMachine(db, notifier=NotificationService(db, clock=clock), clock=clock)


@pytest.fixture
def submissions(db, clock, state_machine):
    return MarkSubmissionService(db, state_machine=state_machine, clock=clock)


@pytest.fixture
def report_cards(db, state_machine):
    return ReportCardAggregator(db, SettingsProvider(db), state_machine=state_machine)
