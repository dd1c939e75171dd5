"""Team directory — team records and membership sets.

Learn: Both writes here are "insert first, recover on conflict":
- find_or_create inserts the team; if the unique name constraint fires,
  another request won the race, so we roll back and read its row.
- add_member inserts a (team, user) row; if the pair constraint fires,
  the user is already a member and nothing needs to change.

There is no read-then-write check anywhere, so concurrent confirmations
can neither create two teams with the same name nor duplicate a member.

A rollback expires every object loaded in the session. Callers should
keep the ids they need and refresh their own objects afterwards.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.models import Team, TeamMember, User, as_uuid
from taskhub.errors import Conflict

logger = structlog.get_logger()


class TeamDirectory:
    """Business logic for teams and their members."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Teams ──────────────────────────────────────────

    async def find_or_create(self, name: str, creator_id: uuid.UUID) -> Team:
        """Return the team called `name`, creating it (owned by creator) if absent."""
        team, _ = await self.find_or_create_flagged(name, creator_id)
        return team

    async def find_or_create_flagged(
        self, name: str, creator_id: uuid.UUID
    ) -> tuple[Team, bool]:
        """Like find_or_create, but also report whether this call inserted the team."""
        name = name.strip()
        team = Team(name=name, owner_id=creator_id)
        self.db.add(team)
        try:
            await self.db.flush()
            # Owner is a member from the start
            self.db.add(TeamMember(team_id=team.id, user_id=creator_id))
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            existing = await self.find_by_name(name)
            if existing is None:
                raise Conflict(f"Could not create or find team '{name}'")
            return existing, False
        await self.db.refresh(team)

        logger.info("team.created", team_id=str(team.id), owner_id=str(creator_id))
        return team, True

    async def delete_if_empty(self, team_id: uuid.UUID) -> bool:
        """Delete a team that has no members left. Returns whether it was deleted."""
        result = await self.db.execute(
            delete(Team)
            .where(
                Team.id == team_id,
                ~exists().where(TeamMember.team_id == team_id),
            )
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()
        if result.rowcount:
            logger.info("team.deleted", team_id=str(team_id))
        return result.rowcount > 0

    async def get(self, team_id: uuid.UUID | str) -> Optional[Team]:
        tid = as_uuid(team_id)
        if tid is None:
            return None
        return await self.db.get(Team, tid)

    async def find_by_name(self, name: str) -> Optional[Team]:
        result = await self.db.execute(select(Team).where(Team.name == name.strip()))
        return result.scalars().first()

    async def find_by_member(self, user_id: uuid.UUID | str) -> Optional[Team]:
        uid = as_uuid(user_id)
        if uid is None:
            return None
        result = await self.db.execute(
            select(Team)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .where(TeamMember.user_id == uid)
            .order_by(TeamMember.created_at)
        )
        return result.scalars().first()

    # ─── Members ────────────────────────────────────────

    async def add_member(self, team: Team | uuid.UUID, user_id: uuid.UUID) -> bool:
        """Add a user to a team. Returns False if they were already a member."""
        team_id = team.id if isinstance(team, Team) else team
        self.db.add(TeamMember(team_id=team_id, user_id=user_id))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return False

        logger.info("team.member_added", team_id=str(team_id), user_id=str(user_id))
        return True

    async def remove_member(self, team_id: uuid.UUID, user_id: uuid.UUID) -> None:
        await self.db.execute(
            delete(TeamMember).where(
                TeamMember.team_id == team_id, TeamMember.user_id == user_id
            )
        )
        await self.db.commit()

    async def is_member(
        self, team_id: uuid.UUID | str, user_id: uuid.UUID | str
    ) -> bool:
        tid, uid = as_uuid(team_id), as_uuid(user_id)
        if tid is None or uid is None:
            return False
        result = await self.db.execute(
            select(TeamMember.id).where(
                TeamMember.team_id == tid, TeamMember.user_id == uid
            )
        )
        return result.first() is not None

    async def list_members(self, team_id: uuid.UUID | str) -> list[User]:
        tid = as_uuid(team_id)
        if tid is None:
            return []
        result = await self.db.execute(
            select(User)
            .join(TeamMember, TeamMember.user_id == User.id)
            .where(TeamMember.team_id == tid)
            .order_by(User.name)
        )
        return list(result.scalars().all())
