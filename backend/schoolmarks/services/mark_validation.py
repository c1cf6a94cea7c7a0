"""
Mark entry validator.

The entry shape is picked from (program_level, session_type):

    kindergarten level          -> RemarkEntry
    other level + midterm       -> MidtermEntry
    other level + endterm       -> EndtermEntry
"""

from typing import Any, Dict, List, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..models import EndtermEntry, MarkEntry, MarkEntryPayload, MidtermEntry, RemarkEntry

NUMERIC_FIELDS = ("academic_engagement", "midterm_exam", "endterm_exam")
REMARK_FIELDS = ("remark", "grade")

PROGRAM_LEVEL_ALIASES = {
    "creche": "kindergarten",
    "kindergarten": "kindergarten",
    "primary": "primary",
    "secondary": "secondary",
    "high school": "highschool",
    "highschool": "highschool",
    "high_school": "highschool",
}


def program_level_for(program: Dict[str, Any]) -> str:
    """Level of a program document: explicit ``level`` first, else its name."""
    raw = program.get("level") or program.get("name") or ""
    level = PROGRAM_LEVEL_ALIASES.get(raw.strip().lower())
    if level is None:
        raise ValidationError.for_field(
            "program", f"Cannot determine program level for '{raw}'"
        )
    return level


class MarkEntryValidator:
    """Turns a raw payload into the entry variant required for a student."""

    @staticmethod
    def entry_type_for(program_level: str, session_type: str) -> Type[BaseModel]:
        if program_level == "kindergarten":
            return RemarkEntry
        if session_type == "midterm":
            return MidtermEntry
        if session_type == "endterm":
            return EndtermEntry
        raise ValidationError.for_field(
            "session_type",
            f"Session type '{session_type}' does not accept marks for {program_level} students",
        )

    @classmethod
    def validate(
        cls,
        program_level: str,
        session_type: str,
        payload: Union[MarkEntryPayload, Dict[str, Any]],
    ) -> MarkEntry:
        if isinstance(payload, MarkEntryPayload):
            data = payload.model_dump(exclude_none=True)
        else:
            data = {k: v for k, v in payload.items() if v is not None}

        entry_type = cls.entry_type_for(program_level, session_type)
        allowed = set(entry_type.model_fields) - {"kind"}

        details: List[Dict[str, str]] = []
        if entry_type is RemarkEntry:
            forbidden = [f for f in NUMERIC_FIELDS if f in data]
            reason = "numeric scores are not allowed for kindergarten students"
        else:
            forbidden = [f for f in REMARK_FIELDS + NUMERIC_FIELDS if f in data and f not in allowed]
            reason = f"field not allowed for {program_level} {session_type} entries"
        for field in forbidden:
            details.append({"field": field, "message": reason})

        fields = {k: v for k, v in data.items() if k in allowed}
        if isinstance(fields.get("teacher_comment"), str):
            fields["teacher_comment"] = fields["teacher_comment"].strip()
        if isinstance(fields.get("remark"), str):
            fields["remark"] = fields["remark"].strip()

        entry = None
        try:
            entry = entry_type(**fields)
        except PydanticValidationError as e:
            for err in e.errors():
                loc = ".".join(str(part) for part in err["loc"]) or "entry"
                details.append({"field": loc, "message": err["msg"]})

        if details:
            raise ValidationError("Invalid mark entry", details)
        return entry
