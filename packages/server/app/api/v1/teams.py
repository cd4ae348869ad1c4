"""
Team endpoints: listing, member rosters, manager-scoped edits and deletion.
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
    require_super_admin,
)
from app.core.database import get_session
from app.core.pagination import PageParams, page_params, paginate
from app.models.team import Team
from app.services import teams as team_service
from ticketdesk_shared.schemas.common import MessageResponse, Role
from ticketdesk_shared.schemas.teams import (
    TeamDetail,
    TeamDropdownResponse,
    TeamListResponse,
    TeamOption,
    TeamResponse,
    TeamStats,
    TeamSummary,
    TeamUpdate,
)
from ticketdesk_shared.schemas.users import (
    AccountDropdownResponse,
    AccountOption,
    AccountRead,
    StatusUpdate,
)

router = APIRouter()


async def _response(
    session: AsyncSession, team: Team, message: Optional[str] = None
) -> TeamResponse:
    detail = TeamDetail.model_validate(team)
    members = await team_service.list_members(session, team.id)
    detail.members = [AccountRead.model_validate(m) for m in members]
    return TeamResponse(team=detail, message=message)


@router.get("/", response_model=TeamListResponse)
async def list_teams(
    isActive: Optional[bool] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    """List teams with their member counts."""
    stmt = team_service.build_list_query(is_active=isActive, search=search)
    rows, pagination = await paginate(session, stmt, params, scalars=False)
    teams = [
        TeamSummary.model_validate(team).model_copy(update={"member_count": count})
        for team, count in rows
    ]
    return TeamListResponse(teams=teams, pagination=pagination)


@router.get("/dropdown", response_model=TeamDropdownResponse)
async def team_dropdown(session: AsyncSession = Depends(get_session)):
    """Active teams for select inputs."""
    result = await session.execute(
        select(Team).where(Team.is_active.is_(True)).order_by(Team.team_name)
    )
    return TeamDropdownResponse(teams=[TeamOption.model_validate(t) for t in result.scalars().all()])


@router.get("/members", response_model=AccountDropdownResponse)
async def list_team_members(
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    """A team manager gets their own members; admins get every member."""
    team_id = principal.team_id if principal.role == Role.TEAM else None
    members = await team_service.list_members(session, team_id, active_only=True)
    return AccountDropdownResponse(users=[AccountOption.model_validate(m) for m in members])


@router.get("/{team_id}", response_model=TeamResponse)
async def get_team(
    team_id: int,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    team = await team_service.get_team_or_404(session, team_id)
    return await _response(session, team)


@router.get("/{team_id}/stats", response_model=TeamStats)
async def get_team_stats(
    team_id: int,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    team = await team_service.get_team_or_404(session, team_id)
    team_service.ensure_team_manager(principal, team)
    return await team_service.team_stats(session, team)


@router.put("/{team_id}", response_model=TeamResponse)
async def update_team(
    team_id: int,
    body: TeamUpdate,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    team = await team_service.get_team_or_404(session, team_id)
    await team_service.update_team(session, principal, team, body)
    return await _response(session, team, "Team updated successfully")


@router.put("/{team_id}/status", response_model=TeamResponse)
async def set_team_status(
    team_id: int,
    body: StatusUpdate,
    principal: Principal = Depends(require_admin_or_above),
    session: AsyncSession = Depends(get_session),
):
    team = await team_service.get_team_or_404(session, team_id)
    await team_service.set_team_status(session, team, body.is_active)
    state = "activated" if body.is_active else "deactivated"
    return await _response(session, team, f"Team {state} successfully")


@router.delete("/{team_id}", response_model=MessageResponse)
async def delete_team(
    team_id: int,
    principal: Principal = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    team = await team_service.get_team_or_404(session, team_id)
    await team_service.delete_team(session, team)
    return MessageResponse(message="Team deleted successfully")
