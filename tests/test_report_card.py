from datetime import timedelta

import pytest

from schoolmarks.errors import AuthorizationError, ConfigurationError, NotFoundError
from schoolmarks.services.report_card import effective_entry, legacy_marks_view

from conftest import ADMIN, OTHER_PARENT, PARENT, T0, TEACHER, session_config


async def submit(submissions, sid, student, subject, engagement, exam, slot="first"):
    return await submissions.submit_entry(
        sid, student, subject, slot,
        {"academic_engagement": engagement, "midterm_exam": exam, "teacher_comment": f"{subject} comment"},
        TEACHER,
    )


@pytest.fixture
async def midterm_session(seeded, state_machine):
    created = await state_machine.create(session_config(), ADMIN)
    return created["session_id"]


async def test_midterm_report_card_scores_grades_and_statistics(
    submissions, report_cards, midterm_session
):
    await submit(submissions, midterm_session, "stu_1", "subj_math", 15, 70)
    await submit(submissions, midterm_session, "stu_1", "subj_eng", 18, 60)

    card = await report_cards.generate_report_card(midterm_session, "stu_1", ADMIN)

    by_subject = {row["subject"]["name"]: row for row in card["marks"]}
    assert by_subject["Mathematics"]["score"] == 85
    assert by_subject["Mathematics"]["grade"] == "A"
    assert by_subject["English"]["score"] == 78
    assert by_subject["English"]["grade"] == "B"
    assert by_subject["English"]["teacher_comment"] == "subj_eng comment"

    assert card["statistics"] == {
        "total_subjects": 2,
        "average_score": 81.5,
        "highest_score": 85,
        "lowest_score": 78,
    }
    assert card["student"]["name"] == "Student1 Primary"
    assert card["student"]["program"] == "Primary"
    assert card["exam_session"]["term"] == "Term 2"
    assert card["theme"] == {"background_color": "#ffffff", "accent_color": "#1a73e8"}


async def test_latest_submitted_slot_wins(submissions, report_cards, midterm_session, clock):
    await submit(submissions, midterm_session, "stu_1", "subj_math", 15, 70, slot="second")
    clock.advance(hours=3)
    await submit(submissions, midterm_session, "stu_1", "subj_math", 10, 50, slot="first")

    card = await report_cards.generate_report_card(midterm_session, "stu_1", ADMIN)

    row = card["marks"][0]
    assert row["slot"] == "first"
    assert row["score"] == 60
    assert row["grade"] == "C"


async def test_kindergarten_remarks_are_shown_and_excluded_from_statistics(
    seeded, state_machine, submissions, report_cards
):
    created = await state_machine.create(
        session_config(
            session_type="kindergarten",
            program_level="kindergarten",
            program_ids=["prog_kg"],
            class_ids=["class_kg1"],
        ), ADMIN
    )
    sid = created["session_id"]
    await submissions.submit_entry(
        sid, "stu_kg", "subj_read", "first", {"remark": "Excellent progress"}, TEACHER
    )

    card = await report_cards.generate_report_card(sid, "stu_kg", ADMIN)

    assert card["marks"][0]["remark"] == "Excellent progress"
    assert card["marks"][0]["grade"] == "Excellent progress"
    assert card["marks"][0]["score"] is None
    assert card["statistics"] == {
        "total_subjects": 1,
        "average_score": None,
        "highest_score": None,
        "lowest_score": None,
    }


async def test_no_marks_is_not_found(report_cards, midterm_session):
    with pytest.raises(NotFoundError):
        await report_cards.generate_report_card(midterm_session, "stu_2", ADMIN)


async def test_missing_grading_scale_is_configuration_error(
    db, submissions, report_cards, midterm_session
):
    await submit(submissions, midterm_session, "stu_1", "subj_math", 15, 70)
    await db.settings.update_one({}, {"$set": {"grading_scales": {}}})

    with pytest.raises(ConfigurationError):
        await report_cards.generate_report_card(midterm_session, "stu_1", ADMIN)


async def test_out_of_band_score_renders_na(db, submissions, report_cards, midterm_session):
    await db.settings.update_one(
        {}, {"$set": {"grading_scales.prog_primary": [{"grade": "A", "min_score": 90, "max_score": 100}]}}
    )
    await submit(submissions, midterm_session, "stu_1", "subj_math", 15, 70)

    card = await report_cards.generate_report_card(midterm_session, "stu_1", ADMIN)
    assert card["marks"][0]["grade"] == "N/A"


async def test_parent_access_is_scoped_and_waits_for_publication(
    submissions, report_cards, midterm_session, clock
):
    await submit(submissions, midterm_session, "stu_1", "subj_math", 15, 70)

    with pytest.raises(AuthorizationError):
        await report_cards.generate_report_card(midterm_session, "stu_1", PARENT)

    clock.set(T0 + timedelta(days=12))
    card = await report_cards.generate_report_card(midterm_session, "stu_1", PARENT)
    assert card["exam_session"]["status"] == "published"

    with pytest.raises(AuthorizationError):
        await report_cards.generate_report_card(midterm_session, "stu_1", OTHER_PARENT)


def test_effective_entry_prefers_latest_submission():
    mark = {
        "first_entry": {"kind": "endterm", "endterm_exam": 40, "submitted_at": T0 + timedelta(days=1)},
        "second_entry": {"kind": "endterm", "endterm_exam": 55, "submitted_at": T0},
    }
    slot, entry = effective_entry(mark)
    assert slot == "first"
    assert entry["endterm_exam"] == 40

    assert effective_entry({"first_entry": None, "second_entry": None}) == (None, None)


def test_legacy_marks_view_denormalises_effective_entries():
    marks = [
        {
            "student_id": "stu_1",
            "subject_id": "subj_math",
            "first_entry": {
                "kind": "midterm",
                "academic_engagement": 15,
                "midterm_exam": 70,
                "submitted_by": "user_teacher",
                "submitted_at": T0,
            },
            "second_entry": None,
        },
        {"student_id": "stu_2", "subject_id": "subj_math", "first_entry": None, "second_entry": None},
    ]
    assert legacy_marks_view(marks) == [{
        "student_id": "stu_1",
        "subject_id": "subj_math",
        "score": 85,
        "remark": None,
        "submitted_by": "user_teacher",
        "submitted_at": T0,
    }]
