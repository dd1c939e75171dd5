"""Invitation flow — registration and the team join protocol.

Learn: Every new user gets an invitation token. Confirming it against a
team name joins that team (creating it on first use):

  NoInvitation → Pending (token issued at registration)
               → Confirmed (token consumed, team_id set)

Confirmation is safe to repeat. A retried request with the token that
already joined the user to the same team is a no-op success. Any token
that no longer matches the stored one (superseded by a resend, or a
replay against a different team) is rejected.

Order matters: team and membership are durable before the user row is
flipped to Confirmed, and the flip itself is a conditional UPDATE on the
stored token, so two racing confirmations cannot both "win". The loser
undoes what it wrote: its membership row, and the team itself if it
created one that nobody else joined.
"""

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.tokens import TokenCodec, TokenKind
from taskhub.config import Settings
from taskhub.db.models import User
from taskhub.errors import Conflict, NotFound, TokenError, Unauthorized
from taskhub.services.credential_store import CredentialStore
from taskhub.services.notifier import Notifier, deliver_safely
from taskhub.services.team_directory import TeamDirectory

logger = structlog.get_logger()

INVITATION_SUBJECT = "Confirm your team"


class InvitationFlow:
    """Issues invitation tokens and confirms them into team membership."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        tokens: TokenCodec,
        notifier: Notifier,
    ):
        self.db = db
        self.tokens = tokens
        self.notifier = notifier
        self.link_base = settings.invitation_link_base.rstrip("/")
        self.users = CredentialStore(db, settings)
        self.teams = TeamDirectory(db)

    # ─── Issue ──────────────────────────────────────────

    async def register(
        self,
        email: str,
        password: str,
        name: str,
        avatar: str | None = None,
    ) -> tuple[User, str]:
        """Create a user and send them an invitation. Returns (user, token)."""
        user = await self.users.register(email, password, name, avatar)
        token = await self.issue(user)
        return user, token

    async def issue(self, user: User) -> str:
        """Issue a fresh invitation token, replacing any earlier one."""
        token = self.tokens.issue(str(user.id), TokenKind.INVITATION)
        user.invitation_token = token
        await self.db.commit()

        logger.info("invitation.issued", user_id=str(user.id))
        await deliver_safely(
            self.notifier,
            user.email,
            INVITATION_SUBJECT,
            f"To confirm your team, open this link: {self.link_base}/{token}",
        )
        return token

    async def resend(self, email: str) -> str:
        """Re-issue the invitation for a user who has not joined a team yet."""
        user = await self.users.find_by_email(email)
        if not user:
            raise NotFound("User not found")
        if user.team_id is not None:
            raise Conflict("User has already joined a team")
        return await self.issue(user)

    # ─── Confirm ────────────────────────────────────────

    async def confirm(self, token: str, team_name: str) -> User:
        """Join the team called `team_name` using an invitation token."""
        try:
            subject = self.tokens.verify(token, TokenKind.INVITATION)
        except TokenError as e:
            raise Unauthorized("Invalid invitation token") from e

        user = await self.users.find_by_id(subject)
        if not user:
            raise NotFound("User not found")

        if user.invitation_token != token:
            if await self._already_joined(user, team_name):
                logger.info("invitation.reconfirmed", user_id=str(user.id))
                return user
            raise Unauthorized("Invitation token does not match")

        user_id = user.id
        team, created = await self.teams.find_or_create_flagged(team_name, user_id)
        team_id = team.id
        # A created team already lists its creator as a member
        added = created or await self.teams.add_member(team_id, user_id)

        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.invitation_token == token)
            .values(team_id=team_id, invitation_token=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(user)

        if result.rowcount == 0 and user.team_id != team_id:
            # A concurrent confirmation put the user on another team first
            if added:
                await self.teams.remove_member(team_id, user_id)
            if created:
                await self.teams.delete_if_empty(team_id)
            logger.info(
                "invitation.confirm_lost_race", user_id=str(user_id), team_id=str(team_id)
            )
            raise Unauthorized("Invitation token does not match")

        logger.info(
            "invitation.confirmed",
            user_id=str(user_id),
            team_id=str(team_id),
            new_member=added,
        )
        return user

    async def _already_joined(self, user: User, team_name: str) -> bool:
        """True if the invitation was already consumed to join this same team."""
        if user.invitation_token is not None or user.team_id is None:
            return False
        team = await self.teams.find_by_name(team_name)
        if team is None or team.id != user.team_id:
            return False
        return await self.teams.is_member(team.id, user.id)
