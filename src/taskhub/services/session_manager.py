"""Session manager — login, logout, refresh.

Learn: A session is a pair of JWTs:
- session-access: short-lived, sent as the Bearer credential on every call
- session-refresh: long-lived, only exchanged at /auth/refresh

The current refresh token is also stored on the user row. That makes
logout real: clearing the column revokes the token even though its
signature stays valid. Each user has at most one live session; a new
login or a refresh overwrites the stored value.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.tokens import TokenCodec, TokenKind
from taskhub.config import Settings
from taskhub.db.models import Team, User
from taskhub.errors import TokenError, Unauthorized
from taskhub.services.credential_store import CredentialStore
from taskhub.services.team_directory import TeamDirectory

logger = structlog.get_logger()


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass
class LoginResult:
    user: User
    tokens: TokenPair
    team: Optional[Team]


class SessionManager:
    """Issues, rotates and revokes session tokens."""

    def __init__(self, db: AsyncSession, settings: Settings, tokens: TokenCodec):
        self.db = db
        self.tokens = tokens
        self.users = CredentialStore(db, settings)
        self.teams = TeamDirectory(db)

    def _issue_pair(self, user_id: uuid.UUID) -> TokenPair:
        return TokenPair(
            access_token=self.tokens.issue(str(user_id), TokenKind.SESSION_ACCESS),
            refresh_token=self.tokens.issue(str(user_id), TokenKind.SESSION_REFRESH),
        )

    async def login(self, email: str, password: str) -> LoginResult:
        """Check credentials and open a session.

        Unknown email and wrong password raise the same error, so the
        response does not reveal whether an account exists.
        """
        user = await self.users.find_by_email(email)
        if not user or not await self.users.verify_password(user, password):
            logger.info("auth.login_failed")
            raise Unauthorized("Invalid credentials")

        await self.users.upgrade_hash_if_stale(user, password)

        pair = self._issue_pair(user.id)
        user.refresh_token = pair.refresh_token
        await self.db.commit()

        team = await self.teams.find_by_member(user.id)
        logger.info("auth.login_succeeded", user_id=str(user.id))
        return LoginResult(user=user, tokens=pair, team=team)

    async def logout(self, refresh_token: str) -> None:
        """Revoke a refresh token. Unknown tokens are ignored."""
        result = await self.db.execute(
            update(User)
            .where(User.refresh_token == refresh_token)
            .values(refresh_token=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info("auth.logout", revoked=result.rowcount > 0)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange the current refresh token for a new pair (rotation)."""
        try:
            subject = self.tokens.verify(refresh_token, TokenKind.SESSION_REFRESH)
        except TokenError as e:
            raise Unauthorized("Invalid refresh token") from e

        user = await self.users.find_by_id(subject)
        if not user or user.refresh_token != refresh_token:
            raise Unauthorized("Refresh token has been revoked")

        pair = self._issue_pair(user.id)
        # Conditional on the old value: two concurrent refreshes can't both rotate
        result = await self.db.execute(
            update(User)
            .where(User.id == user.id, User.refresh_token == refresh_token)
            .values(refresh_token=pair.refresh_token)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount == 0:
            raise Unauthorized("Refresh token has been revoked")

        await self.db.refresh(user)
        logger.info("auth.refreshed", user_id=str(user.id))
        return pair

    def authenticate(self, access_token: str) -> str:
        """Resolve a bearer access token to its user id. Raises TokenError."""
        return self.tokens.verify(access_token, TokenKind.SESSION_ACCESS)
