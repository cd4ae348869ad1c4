"""
Project endpoints: scoped listing, CRUD and ticket statistics.

- Members see the projects they manage; team managers their team's
- Codes are unique (case-insensitive) and stored uppercase
- Deletion is refused while the project has open tickets
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
from app.models.project import Project
from app.services import projects as project_service
from ticketdesk_shared.schemas.common import Level, MessageResponse, ProjectStatus
from ticketdesk_shared.schemas.projects import (
    ProjectCreate,
    ProjectDropdownResponse,
    ProjectListResponse,
    ProjectOption,
    ProjectRead,
    ProjectResponse,
    ProjectStats,
    ProjectUpdate,
)

router = APIRouter()


@router.get("/", response_model=ProjectListResponse)
async def list_projects(
    status: Optional[ProjectStatus] = None,
    priority: Optional[Level] = None,
    team: Optional[int] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    stmt = project_service.build_list_query(
        principal, status=status, priority=priority, team=team, search=search
    )
    projects, pagination = await paginate(session, stmt, params)
    return ProjectListResponse(
        projects=[ProjectRead.model_validate(p) for p in projects], pagination=pagination
    )


@router.get("/dropdown", response_model=ProjectDropdownResponse)
async def project_dropdown(
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    """Active projects in the caller's scope, for select inputs."""
    stmt = select(Project).where(Project.status == ProjectStatus.ACTIVE.value)
    clause = project_service.scope_clause(principal)
    if clause is not None:
        stmt = stmt.where(clause)
    result = await session.execute(stmt.order_by(Project.name))
    return ProjectDropdownResponse(
        projects=[ProjectOption.model_validate(p) for p in result.scalars().all()]
    )


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.get_project_or_404(session, project_id)
    project_service.ensure_project_access(principal, project)
    return ProjectResponse(project=ProjectRead.model_validate(project))


@router.get("/{project_id}/stats", response_model=ProjectStats)
async def get_project_stats(
    project_id: int,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.get_project_or_404(session, project_id)
    project_service.ensure_project_access(principal, project)
    return await project_service.project_stats(session, project)


@router.post("/", response_model=ProjectResponse, status_code=201)
async def create_project(
    project_in: ProjectCreate,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.create_project(session, principal, project_in)
    return ProjectResponse(
        project=ProjectRead.model_validate(project), message="Project created successfully"
    )


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    project_in: ProjectUpdate,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.get_project_or_404(session, project_id)
    project_service.ensure_project_access(principal, project)
    await project_service.update_project(session, principal, project, project_in)
    return ProjectResponse(
        project=ProjectRead.model_validate(project), message="Project updated successfully"
    )


@router.delete("/{project_id}", response_model=MessageResponse)
async def delete_project(
    project_id: int,
    principal: Principal = Depends(require_admin_or_above),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.get_project_or_404(session, project_id)
    await project_service.delete_project(session, project)
    return MessageResponse(message="Project deleted successfully")
