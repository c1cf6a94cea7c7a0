"""
Domain errors for the exam-session / marks core.

Every rejected operation maps to exactly one of these classes. Routes do not
catch them; the handler registered in ``schoolmarks.api`` renders them as
JSON with the class's HTTP status.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class SchoolMarksError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    error_type: str = "SchoolMarksError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def extra(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"detail": self.message, "error": self.error_type}
        payload.update(self.extra())
        return payload


class ValidationError(SchoolMarksError):
    """Malformed input, wrong entry kind, out-of-range score or bad dates."""

    status_code = 422
    error_type = "ValidationError"

    def __init__(self, message: str, details: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.details = details or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, [{"field": field, "message": message}])

    def extra(self) -> Dict[str, Any]:
        return {"details": self.details}


class AuthorizationError(SchoolMarksError):
    status_code = 403
    error_type = "AuthorizationError"


class SessionClosedError(SchoolMarksError):
    """Write attempted while the session does not accept marks."""

    status_code = 409
    error_type = "SessionClosedError"

    def __init__(
        self,
        message: str,
        status: str,
        first_marks_deadline: Optional[datetime] = None,
        second_marks_deadline: Optional[datetime] = None,
    ):
        super().__init__(message)
        self.status = status
        self.first_marks_deadline = first_marks_deadline
        self.second_marks_deadline = second_marks_deadline

    def extra(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "first_marks_deadline": _iso(self.first_marks_deadline),
            "second_marks_deadline": _iso(self.second_marks_deadline),
        }


class DeadlinePassedError(SchoolMarksError):
    """Write attempted after the entry slot's deadline."""

    status_code = 409
    error_type = "DeadlinePassedError"

    def __init__(self, message: str, slot: str, deadline: datetime):
        super().__init__(message)
        self.slot = slot
        self.deadline = deadline

    def extra(self) -> Dict[str, Any]:
        return {"slot": self.slot, "deadline": _iso(self.deadline)}


class NotFoundError(SchoolMarksError):
    status_code = 404
    error_type = "NotFoundError"

    def __init__(self, message: str, resource: str = ""):
        super().__init__(message)
        self.resource = resource

    def extra(self) -> Dict[str, Any]:
        return {"resource": self.resource}


class ConfigurationError(SchoolMarksError):
    """Server-side misconfiguration, e.g. no grading scale for a program."""

    status_code = 500
    error_type = "ConfigurationError"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
