"""Pydantic schemas for registration, sessions, invitations and resets.

Learn: Pydantic v2 models validate request/response data. Separate
"Request" schemas (input) from "Read" schemas (output). No output schema
has a password_hash or stored-token field, so those can never leak
through a response_model.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from taskhub.schemas.team import TeamRead


# ─── Registration ───────────────────────────────────────

class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=8)
    avatar: Optional[str] = Field(None, max_length=500)


class UserRead(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    avatar: Optional[str] = None
    team_id: Optional[uuid.UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MeRead(BaseModel):
    """Current user with the team name resolved."""
    id: uuid.UUID
    email: str
    name: str
    avatar: Optional[str] = None
    team: Optional[str] = None


# ─── Invitations ────────────────────────────────────────

class ConfirmTeamRequest(BaseModel):
    token: str = Field(..., min_length=1)
    team: str = Field(..., min_length=1, max_length=100)


class ResendInvitationRequest(BaseModel):
    email: str


# ─── Sessions ───────────────────────────────────────────

class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(TokenResponse):
    user: UserRead
    team: Optional[TeamRead] = None


class RefreshRequest(BaseModel):
    refresh_token: str


# ─── Passwords ──────────────────────────────────────────

class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirm(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)
