"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the current user from the request, and to gate
team-owned writes on membership.

The access token must be of kind session-access. A refresh, invitation
or reset token presented as a Bearer credential is rejected by the
codec before its signature is even considered.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.engine import get_db
from taskhub.errors import TokenError
from taskhub.services.membership import MembershipGuard
from taskhub.services.session_manager import SessionManager


class CurrentIdentity:
    """The authenticated user making the request."""

    def __init__(self, user_id: str):
        self.user_id = user_id


def get_session_manager(
    request: Request, db: AsyncSession = Depends(get_db)
) -> SessionManager:
    state = request.app.state
    return SessionManager(db, state.settings, state.tokens)


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
    sessions: SessionManager = Depends(get_session_manager),
) -> Optional[CurrentIdentity]:
    """Extract current identity (optional — returns None if no auth)."""
    if authorization and authorization.startswith("Bearer "):
        return _authenticate_jwt(authorization[7:], sessions)
    return None


async def get_current_user(
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if no auth)."""
    if not identity:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def _authenticate_jwt(token: str, sessions: SessionManager) -> CurrentIdentity:
    try:
        return CurrentIdentity(user_id=sessions.authenticate(token))
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=e.detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_team_member(
    team_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CurrentIdentity:
    """Reject with 403 unless the caller belongs to the team in the path.

    Learn: Add this to any route with a {team_id} path parameter that
    writes team-owned data (tasks, projects). The check runs before the
    handler body, so nothing is written for a non-member.
    """
    await MembershipGuard(db).require_member(identity.user_id, team_id)
    return identity
