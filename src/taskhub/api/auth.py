"""Auth API — registration, team confirmation, sessions, password resets.

Learn: Routes for the identity lifecycle:
- POST /auth/register → create a user, mail an invitation link
- POST /auth/invitations/resend → mail a fresh invitation link
- POST /auth/confirm-team → invitation token + team name → join team
- POST /auth/login → email/password → access + refresh tokens
- POST /auth/refresh → refresh token → rotated token pair
- POST /auth/logout → revoke the refresh token
- POST /auth/password-reset/request → mail a reset link
- POST /auth/password-reset/confirm → reset token + new password
- PUT /auth/password → change password (needs the current one)
- GET /auth/me → current user info with team name

Routes only translate HTTP to service calls. Typed errors raised by the
services are mapped to status codes by the handler in main.py.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.dependencies import (
    CurrentIdentity,
    get_current_user,
    get_session_manager,
)
from taskhub.db.engine import get_db
from taskhub.schemas.auth import (
    ConfirmTeamRequest,
    LoginRequest,
    LoginResponse,
    MeRead,
    PasswordChange,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshRequest,
    RegisterRequest,
    ResendInvitationRequest,
    TokenResponse,
    UserRead,
)
from taskhub.schemas.team import TeamRead
from taskhub.services.credential_store import CredentialStore
from taskhub.services.invitation_flow import InvitationFlow
from taskhub.services.password_reset import PasswordResetFlow
from taskhub.services.session_manager import SessionManager
from taskhub.services.team_directory import TeamDirectory

router = APIRouter(prefix="/auth")


def _invitations(request: Request, db: AsyncSession = Depends(get_db)) -> InvitationFlow:
    state = request.app.state
    return InvitationFlow(db, state.settings, state.tokens, state.notifier)


def _resets(request: Request, db: AsyncSession = Depends(get_db)) -> PasswordResetFlow:
    state = request.app.state
    return PasswordResetFlow(db, state.settings, state.tokens, state.notifier)


def _credentials(request: Request, db: AsyncSession = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db, request.app.state.settings)


# ─── Register + invitations ─────────────────────────────


@router.post("/register", response_model=UserRead, status_code=201)
async def register(body: RegisterRequest, flow: InvitationFlow = Depends(_invitations)):
    """Create a new user account and mail the team invitation."""
    user, _ = await flow.register(
        email=body.email,
        password=body.password,
        name=body.name,
        avatar=body.avatar,
    )
    return user


@router.post("/invitations/resend", status_code=202)
async def resend_invitation(
    body: ResendInvitationRequest,
    flow: InvitationFlow = Depends(_invitations),
):
    await flow.resend(body.email)
    return {"sent": True}


@router.post("/confirm-team", response_model=UserRead)
async def confirm_team(
    body: ConfirmTeamRequest,
    flow: InvitationFlow = Depends(_invitations),
):
    """Join (or create) the named team with an invitation token."""
    return await flow.confirm(body.token, body.team)


# ─── Sessions ───────────────────────────────────────────


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, sessions: SessionManager = Depends(get_session_manager)):
    """Login with email and password → JWT tokens."""
    result = await sessions.login(body.email, body.password)
    return LoginResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        user=UserRead.model_validate(result.user),
        team=TeamRead.model_validate(result.team) if result.team else None,
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, sessions: SessionManager = Depends(get_session_manager)):
    """Exchange a refresh token for a new token pair."""
    pair = await sessions.refresh(body.refresh_token)
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )


@router.post("/logout", status_code=204)
async def logout(body: RefreshRequest, sessions: SessionManager = Depends(get_session_manager)):
    await sessions.logout(body.refresh_token)
    return Response(status_code=204)


# ─── Passwords ──────────────────────────────────────────


@router.post("/password-reset/request", status_code=202)
async def request_password_reset(
    body: PasswordResetRequest,
    flow: PasswordResetFlow = Depends(_resets),
):
    await flow.request(body.email)
    return {"sent": True}


@router.post("/password-reset/confirm")
async def confirm_password_reset(
    body: PasswordResetConfirm,
    flow: PasswordResetFlow = Depends(_resets),
):
    await flow.reset(body.token, body.new_password)
    return {"reset": True}


@router.put("/password")
async def change_password(
    body: PasswordChange,
    identity: CurrentIdentity = Depends(get_current_user),
    credentials: CredentialStore = Depends(_credentials),
):
    await credentials.change_password(
        identity.user_id, body.current_password, body.new_password
    )
    return {"changed": True}


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=MeRead)
async def get_me(
    identity: CurrentIdentity = Depends(get_current_user),
    credentials: CredentialStore = Depends(_credentials),
    db: AsyncSession = Depends(get_db),
):
    """Get the current authenticated user's info."""
    user = await credentials.find_by_id(identity.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    team = await TeamDirectory(db).get(user.team_id) if user.team_id else None
    return MeRead(
        id=user.id,
        email=user.email,
        name=user.name,
        avatar=user.avatar,
        team=team.name if team else None,
    )
