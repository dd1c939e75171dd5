"""Membership guard — may this user write to this team's resources?

Learn: Task and project writes call require_member() before touching
any row. The check is a single read of team_members, so it needs no
tokens and no locking.
"""

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.errors import Forbidden
from taskhub.services.team_directory import TeamDirectory

logger = structlog.get_logger()


class MembershipGuard:
    def __init__(self, db: AsyncSession):
        self.teams = TeamDirectory(db)

    async def is_member(self, user_id: uuid.UUID | str, team_id: uuid.UUID | str) -> bool:
        return await self.teams.is_member(team_id, user_id)

    async def require_member(
        self, user_id: uuid.UUID | str, team_id: uuid.UUID | str
    ) -> None:
        if not await self.is_member(user_id, team_id):
            logger.info(
                "membership.denied", user_id=str(user_id), team_id=str(team_id)
            )
            raise Forbidden("Not a member of this team")
