"""Role checks the core performs itself, on top of route-level gating."""

from typing import Any, Dict, Iterable

from ..errors import AuthorizationError
from ..models import ROLE_PARENT, Principal


def require_role(actor: Principal, roles: Iterable[str], action: str) -> None:
    roles = tuple(roles)
    if actor.role not in roles:
        raise AuthorizationError(
            f"Role '{actor.role}' is not allowed to {action}. Allowed: {', '.join(roles)}"
        )


def can_view_student(actor: Principal, student: Dict[str, Any]) -> bool:
    """Parents only see their own children; every other role sees everyone."""
    if actor.role != ROLE_PARENT:
        return True
    return actor.user_id in (student.get("guardian_ids") or [])


def require_student_access(actor: Principal, student: Dict[str, Any]) -> None:
    if not can_view_student(actor, student):
        raise AuthorizationError("You can only view records of your own children")
