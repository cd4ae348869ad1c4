"""
Authentication endpoints.

- Email/password login for every principal kind
- Per-role registration (super admin, admin, team, member)
- Current principal lookup and bearer token logout
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import jwt
import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    Principal,
    bearer_token,
    api_key_header,
    decode_jwt,
    require_principal,
    revoke_jwt,
)
from app.core.database import get_session
from app.core.errors import Unauthenticated
from app.models.account import Account
from app.models.team import Team
from app.services import accounts as account_service
from ticketdesk_shared.schemas.auth import (
    LoginRequest,
    MeResponse,
    RegisterAdmin,
    RegisterSuperAdmin,
    RegisterTeam,
    RegisterUser,
    TokenResponse,
)
from ticketdesk_shared.schemas.common import MessageResponse
from ticketdesk_shared.schemas.teams import TeamRead
from ticketdesk_shared.schemas.users import AccountRead

log = structlog.get_logger()
router = APIRouter()


async def _team_of(session: AsyncSession, account: Account) -> Optional[Team]:
    if account.team_id is None:
        return None
    return await session.get(Team, account.team_id)


def _token_response(
    message: str, account: Account, team: Optional[Team] = None
) -> TokenResponse:
    return TokenResponse(
        message=message,
        token=account_service.issue_token(account),
        user=AccountRead.model_validate(account),
        team=TeamRead.model_validate(team) if team else None,
    )


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, session: AsyncSession = Depends(get_session)):
    """Login with email and password. Returns a bearer token."""
    account = await account_service.authenticate(session, body.email, body.password)
    team = await _team_of(session, account)
    return _token_response("Login successful", account, team)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post("/register/super-admin", response_model=TokenResponse, status_code=201)
async def register_super_admin(
    body: RegisterSuperAdmin, session: AsyncSession = Depends(get_session)
):
    account = await account_service.register_super_admin(session, body)
    return _token_response("Super admin registered successfully", account)


@router.post("/register/admin", response_model=TokenResponse, status_code=201)
async def register_admin(body: RegisterAdmin, session: AsyncSession = Depends(get_session)):
    account = await account_service.register_admin(session, body)
    return _token_response("Admin registered successfully", account)


@router.post("/register/team", response_model=TokenResponse, status_code=201)
async def register_team(body: RegisterTeam, session: AsyncSession = Depends(get_session)):
    """Create a team together with its manager login."""
    account, team = await account_service.register_team(session, body)
    return _token_response("Team registered successfully", account, team)


@router.post("/register/user", response_model=TokenResponse, status_code=201)
async def register_user(body: RegisterUser, session: AsyncSession = Depends(get_session)):
    account = await account_service.register_user(session, body)
    team = await _team_of(session, account)
    return _token_response("User registered successfully", account, team)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@router.get("/me", response_model=MeResponse)
async def me(
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    """Return the authenticated principal and, where it has one, its team."""
    team = await _team_of(session, principal.account)
    return MeResponse(
        user=AccountRead.model_validate(principal.account),
        team=TeamRead.model_validate(team) if team else None,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    principal: Principal = Depends(require_principal),
    authorization: Optional[str] = Depends(api_key_header),
):
    """Revoke the presented token for the rest of its lifetime."""
    try:
        payload = decode_jwt(bearer_token(authorization))
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid token")

    jti = payload.get("jti")
    if jti:
        exp = datetime.fromtimestamp(payload.get("exp", 0), tz=timezone.utc)
        ttl = int((exp - datetime.now(timezone.utc)).total_seconds())
        await revoke_jwt(jti, ttl)
    log.info("auth.logout", account_id=principal.id)
    return MessageResponse(message="Logged out successfully")
