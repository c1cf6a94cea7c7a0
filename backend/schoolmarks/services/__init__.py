"""Services for the exam-session / marks lifecycle."""

from .grading_scale import GradingScaleResolver
from .mark_validation import MarkEntryValidator
from .notifications import NotificationService
from .session_state import ExamSessionStateMachine, derive_status
from .mark_submission import MarkSubmissionService
from .settings_provider import SettingsProvider
from .report_card import ReportCardAggregator
from .session_sweeper import SessionSweeper

__all__ = [
    "GradingScaleResolver",
    "MarkEntryValidator",
    "NotificationService",
    "ExamSessionStateMachine",
    "derive_status",
    "MarkSubmissionService",
    "SettingsProvider",
    "ReportCardAggregator",
    "SessionSweeper",
]
