"""
Project service: scoped listing, unique codes and guarded deletion.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import structlog
from sqlalchemy import func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Principal
from app.core.errors import Conflict, DuplicateEntry, Forbidden, NotFound, ValidationFailed
from app.models.account import Account
from app.models.base import as_utc
from app.models.project import Project
from app.models.resource import ResourceAllocation, ResourceRequest
from app.models.team import Team
from app.models.ticket import Ticket
from ticketdesk_shared.schemas.common import Role, TicketStatus
from ticketdesk_shared.schemas.projects import ProjectCreate, ProjectUpdate
from ticketdesk_shared.schemas.tickets import OPEN_STATUSES

log = structlog.get_logger()


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


async def get_project_or_404(session: AsyncSession, project_id: int) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise NotFound("Project not found")
    return project


def ensure_project_access(principal: Principal, project: Project) -> None:
    """Members only reach the projects they manage; team managers their team's."""
    if principal.role == Role.USER and project.manager_id != principal.id:
        raise Forbidden("You do not have access to this project")
    if principal.role == Role.TEAM and project.team_id not in (None, principal.team_id):
        raise Forbidden("You do not have access to this project")


def scope_clause(principal: Principal):
    if principal.role == Role.USER:
        return Project.manager_id == principal.id
    if principal.role == Role.TEAM:
        return Project.team_id == principal.team_id
    return None


def build_list_query(
    principal: Principal,
    *,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    team: Optional[int] = None,
    search: Optional[str] = None,
):
    stmt = select(Project)
    clause = scope_clause(principal)
    if clause is not None:
        stmt = stmt.where(clause)
    if status:
        stmt = stmt.where(Project.status == _plain(status))
    if priority:
        stmt = stmt.where(Project.priority == _plain(priority))
    if team is not None:
        stmt = stmt.where(Project.team_id == team)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                Project.name.ilike(pattern),
                Project.code.ilike(pattern),
                Project.description.ilike(pattern),
            )
        )
    return stmt.order_by(Project.created_at.desc(), Project.id.desc())


async def _ensure_unique_code(
    session: AsyncSession, code: str, exclude_id: Optional[int] = None
) -> None:
    stmt = select(Project.id).where(func.upper(Project.code) == code.upper())
    if exclude_id is not None:
        stmt = stmt.where(Project.id != exclude_id)
    if (await session.execute(stmt)).first():
        raise DuplicateEntry(f"Project code '{code}' already exists")


async def _check_refs(session: AsyncSession, manager_id: Optional[int], team_id: Optional[int]) -> None:
    if manager_id is not None and not await session.get(Account, manager_id):
        raise ValidationFailed(
            "Manager not found", details=[{"field": "managerId", "message": "Account not found"}]
        )
    if team_id is not None and not await session.get(Team, team_id):
        raise ValidationFailed(
            "Team not found", details=[{"field": "teamId", "message": "Team not found"}]
        )


async def create_project(
    session: AsyncSession, principal: Principal, project_in: ProjectCreate
) -> Project:
    data = {k: _plain(v) for k, v in project_in.model_dump().items()}
    data["code"] = data["code"].upper()
    await _ensure_unique_code(session, data["code"])

    if principal.role == Role.TEAM:
        data["team_id"] = principal.team_id
    data["manager_id"] = data.get("manager_id") or principal.id
    await _check_refs(session, data["manager_id"], data.get("team_id"))

    project = Project(**data)
    session.add(project)
    await session.flush()
    log.info("project.created", project_id=project.id, code=project.code)
    return project


async def update_project(
    session: AsyncSession, principal: Principal, project: Project, project_in: ProjectUpdate
) -> Project:
    data = {k: _plain(v) for k, v in project_in.model_dump(exclude_unset=True).items()}
    if data.get("code"):
        data["code"] = data["code"].upper()
        if data["code"] != project.code:
            await _ensure_unique_code(session, data["code"], exclude_id=project.id)
    if principal.role == Role.TEAM:
        data.pop("team_id", None)
    await _check_refs(session, data.get("manager_id"), data.get("team_id"))

    start = data.get("start_date", project.start_date)
    end = data.get("end_date", project.end_date)
    if start is not None and end is not None and as_utc(end) < as_utc(start):
        raise ValidationFailed(
            "End date must not be before start date",
            details=[{"field": "endDate", "message": "must not be before startDate"}],
        )

    for key, value in data.items():
        setattr(project, key, value)
    session.add(project)
    await session.flush()
    log.info("project.updated", project_id=project.id)
    return project


async def delete_project(session: AsyncSession, project: Project) -> None:
    open_tickets = (
        await session.execute(
            select(func.count()).select_from(Ticket).where(
                Ticket.project_id == project.id,
                Ticket.status.in_([s.value for s in OPEN_STATUSES]),
            )
        )
    ).scalar_one()
    if open_tickets:
        raise Conflict(
            f"Project has {open_tickets} active ticket(s)",
            error="Cannot delete project with active tickets",
        )
    allocations = (
        await session.execute(
            select(func.count()).select_from(ResourceAllocation).where(
                ResourceAllocation.project_id == project.id
            )
        )
    ).scalar_one()
    if allocations:
        raise Conflict(
            "Release the project's resource allocations first",
            error="Cannot delete project with allocated resources",
        )
    await session.execute(
        update(Ticket).where(Ticket.project_id == project.id).values(project_id=None)
    )
    await session.execute(
        update(ResourceRequest)
        .where(ResourceRequest.project_id == project.id)
        .values(project_id=None)
    )
    await session.delete(project)
    await session.flush()
    log.info("project.deleted", project_id=project.id)


async def project_stats(session: AsyncSession, project: Project) -> dict:
    result = await session.execute(
        select(Ticket.status, func.count())
        .where(Ticket.project_id == project.id)
        .group_by(Ticket.status)
    )
    counts = dict(result.all())
    return {
        "project_id": project.id,
        "total_tickets": sum(counts.values()),
        "by_status": {s.value: counts.get(s.value, 0) for s in TicketStatus},
        "progress": project.progress,
    }
