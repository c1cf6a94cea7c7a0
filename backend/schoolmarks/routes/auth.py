"""
Authentication dependencies.

Token issuance lives elsewhere; here we only resolve the bearer session token
to a principal and gate routes by role.
"""

from datetime import datetime, timezone

from fastapi import Depends, HTTPException, Request

from ..models import Principal
from ..utils import ensure_utc


async def get_current_principal(request: Request) -> Principal:
    """Get current principal from session token"""
    session_token = request.cookies.get("session_token")

    if not session_token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            session_token = auth_header.split(" ")[1]

    if not session_token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    db = request.app.state.db
    session = await db.user_sessions.find_one(
        {"session_token": session_token},
        {"_id": 0}
    )

    if not session:
        raise HTTPException(status_code=401, detail="Invalid session")

    expires_at = ensure_utc(session.get("expires_at"))
    if expires_at is None or expires_at < datetime.now(timezone.utc):
        raise HTTPException(status_code=401, detail="Session expired")

    user = await db.users.find_one(
        {"user_id": session["user_id"]},
        {"_id": 0}
    )
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return Principal(**user)


def require_roles(*roles: str):
    """Dependency factory rejecting principals outside ``roles`` with 403."""

    async def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=403,
                detail="You do not have permission to perform this action"
            )
        return principal

    return dependency
