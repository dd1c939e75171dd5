"""Signed, expiring tokens keyed by kind.

Learn: Every token TaskHub hands out is a JWT with three protected claims:
- sub: the user id
- kind: what the token may be used for (see TokenKind)
- exp: expiry

Each kind is signed with its own secret, and the kind is checked before
the signature. A password-reset token therefore can never be accepted
as a session token, even if both secrets leaked from the same place.
"""

import enum
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from taskhub.config import Settings
from taskhub.errors import TokenExpired, TokenKindMismatch, TokenMalformed


class TokenKind(str, enum.Enum):
    SESSION_ACCESS = "session-access"
    SESSION_REFRESH = "session-refresh"
    INVITATION = "invitation"
    RESET = "reset"


_REQUIRED_CLAIMS = ["sub", "kind", "exp"]


class TokenCodec:
    """Issues and verifies tokens for all four kinds.

    Stateless: verification never touches the database. Callers that need
    single-use or revocation semantics compare the token against the value
    they stored themselves.
    """

    def __init__(self, settings: Settings):
        self.algorithm = settings.jwt_algorithm
        self._secrets = {
            TokenKind.SESSION_ACCESS: settings.access_token_secret,
            TokenKind.SESSION_REFRESH: settings.refresh_token_secret,
            TokenKind.INVITATION: settings.invitation_token_secret,
            TokenKind.RESET: settings.reset_token_secret,
        }
        self._ttls = {
            TokenKind.SESSION_ACCESS: timedelta(
                minutes=settings.access_token_expire_minutes
            ),
            TokenKind.SESSION_REFRESH: timedelta(
                days=settings.refresh_token_expire_days
            ),
            TokenKind.INVITATION: timedelta(
                days=settings.invitation_token_expire_days
            ),
            TokenKind.RESET: timedelta(minutes=settings.reset_token_expire_minutes),
        }

    def default_ttl(self, kind: TokenKind) -> timedelta:
        return self._ttls[TokenKind(kind)]

    def issue(
        self,
        subject_id: str,
        kind: TokenKind,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """Create a signed token for `subject_id` usable only as `kind`."""
        kind = TokenKind(kind)
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(subject_id),
            "kind": kind.value,
            "exp": now + (ttl if ttl is not None else self._ttls[kind]),
            "iat": now,
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=self.algorithm)

    def verify(self, token: str, expected_kind: TokenKind) -> str:
        """Verify a token and return its subject id.

        Raises TokenMalformed, TokenKindMismatch or TokenExpired.
        """
        expected_kind = TokenKind(expected_kind)

        # Read the kind claim first so a valid token of another kind gets a
        # precise error. The signature is still checked below with the
        # expected kind's secret, never with the claimed one.
        try:
            unverified = jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
            )
        except jwt.InvalidTokenError:
            raise TokenMalformed()
        if unverified.get("kind") != expected_kind.value:
            raise TokenKindMismatch()

        try:
            payload = jwt.decode(
                token,
                self._secrets[expected_kind],
                algorithms=[self.algorithm],
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired()
        except jwt.InvalidTokenError as e:
            raise TokenMalformed(f"Token is malformed: {e}")

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise TokenMalformed("Token has no subject")
        return subject
