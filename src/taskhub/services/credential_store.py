"""Credential store — user records, registration, and password checks.

Learn: Email uniqueness is enforced by the database, not by a lookup
before insert. Two concurrent registrations for the same address both
try the INSERT; the loser gets an IntegrityError, which becomes Conflict.

Emails are normalized (trimmed, lower-cased) before every write and
lookup, so "A@X.com" and "a@x.com" are the same account.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.password import (
    hash_password_async,
    needs_rehash,
    verify_password_async,
)
from taskhub.config import Settings
from taskhub.db.models import User, as_uuid
from taskhub.errors import Conflict, NotFound, Unauthorized

logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore:
    """Owns User records and everything that touches password hashes."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.rounds = settings.bcrypt_rounds

    # ─── Registration ────────────────────────────────────

    async def register(
        self,
        email: str,
        password: str,
        name: str,
        avatar: Optional[str] = None,
    ) -> User:
        """Create a user. Raises Conflict if the email is taken."""
        user = User(
            email=normalize_email(email),
            name=name,
            password_hash=await hash_password_async(password, self.rounds),
            avatar=avatar,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict("Email already registered")
        await self.db.refresh(user)

        logger.info("user.registered", user_id=str(user.id))
        return user

    # ─── Lookups ─────────────────────────────────────────

    async def find_by_id(self, user_id: uuid.UUID | str) -> Optional[User]:
        uid = as_uuid(user_id)
        if uid is None:
            return None
        return await self.db.get(User, uid)

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalars().first()

    # ─── Passwords ───────────────────────────────────────

    async def verify_password(self, user: User, password: str) -> bool:
        return await verify_password_async(password, user.password_hash)

    async def rotate_password(self, user: User, new_password: str) -> None:
        """Replace the user's hash. Does not commit and touches nothing else."""
        user.password_hash = await hash_password_async(new_password, self.rounds)

    async def upgrade_hash_if_stale(self, user: User, password: str) -> bool:
        """Re-hash with the current work factor after a successful check.

        Learn: Raising TASKHUB_BCRYPT_ROUNDS only affects new hashes, so
        existing ones are upgraded the next time the plaintext is available.
        Does not commit.
        """
        if not needs_rehash(user.password_hash, self.rounds):
            return False
        await self.rotate_password(user, password)
        logger.info("user.password_rehashed", user_id=str(user.id))
        return True

    async def change_password(
        self,
        user_id: uuid.UUID | str,
        current_password: str,
        new_password: str,
    ) -> User:
        """Change a password given the current one."""
        user = await self.find_by_id(user_id)
        if not user:
            raise NotFound("User not found")
        if not await self.verify_password(user, current_password):
            raise Unauthorized("Current password does not match")

        await self.rotate_password(user, new_password)
        await self.db.commit()

        logger.info("user.password_changed", user_id=str(user.id))
        return user
