"""Team API routes.

Learn: Team membership is never edited directly over HTTP; users join
through /auth/confirm-team. These routes only read, and the member list
is itself behind the membership guard.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.dependencies import (
    CurrentIdentity,
    get_current_user,
    require_team_member,
)
from taskhub.db.engine import get_db
from taskhub.schemas.team import MemberRead, TeamRead
from taskhub.services.team_directory import TeamDirectory

router = APIRouter(prefix="/teams")


def _svc(db: AsyncSession = Depends(get_db)) -> TeamDirectory:
    return TeamDirectory(db)


@router.get("/mine", response_model=TeamRead)
async def get_my_team(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TeamDirectory = Depends(_svc),
):
    team = await svc.find_by_member(identity.user_id)
    if not team:
        raise HTTPException(status_code=404, detail="Not a member of any team")
    return team


@router.get(
    "/{team_id}/members",
    response_model=list[MemberRead],
    dependencies=[Depends(require_team_member)],
)
async def list_members(team_id: uuid.UUID, svc: TeamDirectory = Depends(_svc)):
    return await svc.list_members(team_id)
