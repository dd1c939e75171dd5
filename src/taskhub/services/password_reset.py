"""Password reset — single-use reset links.

Learn: A reset token stays cryptographically valid for its whole TTL, even
after it has been used. Single use therefore comes from the stored copy:
reset() only accepts a token equal to users.reset_token, and clears that
column in the same commit that writes the new hash. A replay finds NULL.

A successful reset also drops the stored refresh token, so whoever held
the old password loses their session at the next refresh.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.tokens import TokenCodec, TokenKind
from taskhub.config import Settings
from taskhub.db.models import User
from taskhub.errors import NotFound, TokenError, Unauthorized
from taskhub.services.credential_store import CredentialStore
from taskhub.services.notifier import Notifier, deliver_safely

logger = structlog.get_logger()

RESET_SUBJECT = "Reset your password"


class PasswordResetFlow:
    """Issues and consumes reset tokens."""

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
        self.link_base = settings.reset_link_base.rstrip("/")
        self.users = CredentialStore(db, settings)

    async def request(self, email: str) -> str:
        """Store a new reset token for `email` and mail the link. Returns the token."""
        user = await self.users.find_by_email(email)
        if not user:
            raise NotFound("No user with that email")

        token = self.tokens.issue(str(user.id), TokenKind.RESET)
        user.reset_token = token
        await self.db.commit()

        logger.info("password_reset.requested", user_id=str(user.id))
        await deliver_safely(
            self.notifier,
            user.email,
            RESET_SUBJECT,
            f"To reset your password, open this link: {self.link_base}/{token}",
        )
        return token

    async def reset(self, token: str, new_password: str) -> User:
        """Set a new password with a reset token. The token works once."""
        try:
            subject = self.tokens.verify(token, TokenKind.RESET)
        except TokenError as e:
            raise Unauthorized("Invalid reset token") from e

        user = await self.users.find_by_id(subject)
        if not user:
            raise Unauthorized("Invalid reset token")
        if user.reset_token is None or user.reset_token != token:
            raise Unauthorized("Reset token has already been used or replaced")

        await self.users.rotate_password(user, new_password)
        user.reset_token = None
        user.refresh_token = None
        await self.db.commit()

        logger.info("password_reset.completed", user_id=str(user.id))
        return user
