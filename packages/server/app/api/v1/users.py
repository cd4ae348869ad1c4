"""
User endpoints: account listing, profile edits, activation and deletion.

A member reads and edits only their own profile; team managers reach their
own members; admins reach everyone. Role, password and id are never editable
here.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import (
    Principal,
    require_admin_or_above,
    require_manager_or_above,
    require_principal,
)
from app.core.database import get_session
from app.core.pagination import PageParams, page_params, paginate
from app.models.account import Account
from app.models.team import Team
from app.services import accounts as account_service
from ticketdesk_shared.schemas.common import MessageResponse, Role
from ticketdesk_shared.schemas.teams import TeamDropdownResponse, TeamOption
from ticketdesk_shared.schemas.users import (
    AccountDropdownResponse,
    AccountListResponse,
    AccountOption,
    AccountRead,
    AccountResponse,
    AccountStats,
    AccountUpdate,
    StatusUpdate,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Public lookups for registration forms
# ---------------------------------------------------------------------------


@router.get("/teams", response_model=TeamDropdownResponse)
async def registration_teams(session: AsyncSession = Depends(get_session)):
    result = await session.execute(
        select(Team).where(Team.is_active.is_(True)).order_by(Team.team_name)
    )
    return TeamDropdownResponse(teams=[TeamOption.model_validate(t) for t in result.scalars().all()])


@router.get("/super-admins", response_model=AccountDropdownResponse)
async def registration_super_admins(session: AsyncSession = Depends(get_session)):
    result = await session.execute(
        select(Account)
        .where(Account.role == Role.SUPER_ADMIN.value, Account.is_active.is_(True))
        .order_by(Account.name)
    )
    return AccountDropdownResponse(
        users=[AccountOption.model_validate(a) for a in result.scalars().all()]
    )


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


@router.get("/", response_model=AccountListResponse)
async def list_users(
    role: Optional[Role] = None,
    team: Optional[int] = None,
    isActive: Optional[bool] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    stmt = account_service.build_list_query(
        principal, role=role, team=team, is_active=isActive, search=search
    )
    accounts, pagination = await paginate(session, stmt, params)
    return AccountListResponse(
        users=[AccountRead.model_validate(a) for a in accounts], pagination=pagination
    )


@router.get("/dropdown", response_model=AccountDropdownResponse)
async def user_dropdown(
    team: Optional[int] = None,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    """Active members for assignee pickers."""
    stmt = select(Account).where(Account.role == Role.USER.value, Account.is_active.is_(True))
    if principal.role in (Role.TEAM, Role.USER):
        stmt = stmt.where(Account.team_id == principal.team_id)
    elif team is not None:
        stmt = stmt.where(Account.team_id == team)
    result = await session.execute(stmt.order_by(Account.name))
    return AccountDropdownResponse(
        users=[AccountOption.model_validate(a) for a in result.scalars().all()]
    )


# ---------------------------------------------------------------------------
# Single account
# ---------------------------------------------------------------------------


@router.get("/{user_id}", response_model=AccountResponse)
async def get_user(
    user_id: int,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    account = await account_service.get_account_or_404(session, user_id)
    account_service.ensure_account_access(principal, account)
    return AccountResponse(user=AccountRead.model_validate(account))


@router.get("/{user_id}/stats", response_model=AccountStats)
async def get_user_stats(
    user_id: int,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    account = await account_service.get_account_or_404(session, user_id)
    account_service.ensure_account_access(principal, account)
    return await account_service.account_stats(session, account)


@router.put("/{user_id}", response_model=AccountResponse)
async def update_user(
    user_id: int,
    body: AccountUpdate,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    account = await account_service.get_account_or_404(session, user_id)
    account_service.ensure_account_access(principal, account)
    await account_service.update_account(session, principal, account, body)
    return AccountResponse(
        user=AccountRead.model_validate(account), message="User updated successfully"
    )


@router.put("/{user_id}/status", response_model=AccountResponse)
async def set_user_status(
    user_id: int,
    body: StatusUpdate,
    principal: Principal = Depends(require_admin_or_above),
    session: AsyncSession = Depends(get_session),
):
    account = await account_service.get_account_or_404(session, user_id)
    await account_service.set_account_status(session, principal, account, body.is_active)
    state = "activated" if body.is_active else "deactivated"
    return AccountResponse(
        user=AccountRead.model_validate(account), message=f"User {state} successfully"
    )


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    principal: Principal = Depends(require_admin_or_above),
    session: AsyncSession = Depends(get_session),
):
    account = await account_service.get_account_or_404(session, user_id)
    await account_service.delete_account(session, principal, account)
    return MessageResponse(message="User deleted successfully")
