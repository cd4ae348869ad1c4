"""
Team service: listing with member counts, manager-scoped edits and guarded
deletion.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import delete, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Principal
from app.core.errors import Conflict, DuplicateEntry, Forbidden, NotFound, ValidationFailed
from app.core.permissions import ADMIN_ROLES
from app.models.account import Account
from app.models.notification import Notification
from app.models.project import Project
from app.models.team import Team
from app.models.ticket import Ticket
from ticketdesk_shared.schemas.common import Role, TicketStatus
from ticketdesk_shared.schemas.teams import TeamUpdate
from ticketdesk_shared.schemas.tickets import OPEN_STATUSES

log = structlog.get_logger()


async def get_team_or_404(session: AsyncSession, team_id: int) -> Team:
    team = await session.get(Team, team_id)
    if not team:
        raise NotFound("Team not found")
    return team


def member_count_subquery():
    return (
        select(Account.team_id, func.count().label("member_count"))
        .where(Account.role == Role.USER.value)
        .group_by(Account.team_id)
        .subquery()
    )


def build_list_query(*, is_active: Optional[bool] = None, search: Optional[str] = None):
    counts = member_count_subquery()
    stmt = select(Team, func.coalesce(counts.c.member_count, 0).label("member_count")).outerjoin(
        counts, counts.c.team_id == Team.id
    )
    if is_active is not None:
        stmt = stmt.where(Team.is_active == is_active)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Team.team_name.ilike(pattern), Team.manager_name.ilike(pattern)))
    return stmt.order_by(Team.team_name)


async def list_members(
    session: AsyncSession, team_id: Optional[int] = None, *, active_only: bool = False
) -> list[Account]:
    stmt = select(Account).where(Account.role == Role.USER.value)
    if team_id is not None:
        stmt = stmt.where(Account.team_id == team_id)
    if active_only:
        stmt = stmt.where(Account.is_active.is_(True))
    result = await session.execute(stmt.order_by(Account.name, Account.id))
    return list(result.scalars().all())


def ensure_team_manager(principal: Principal, team: Team) -> None:
    """Admins manage every team; a team login manages only its own."""
    if principal.role in ADMIN_ROLES:
        return
    if principal.role == Role.TEAM and principal.team_id == team.id:
        return
    raise Forbidden("You can only manage your own team")


async def update_team(
    session: AsyncSession, principal: Principal, team: Team, body: TeamUpdate
) -> Team:
    ensure_team_manager(principal, team)
    data = body.model_dump(exclude_unset=True)
    if data.get("team_name") and data["team_name"].lower() != team.team_name.lower():
        existing = await session.execute(
            select(Team.id).where(
                func.lower(Team.team_name) == data["team_name"].lower(), Team.id != team.id
            )
        )
        if existing.first():
            raise DuplicateEntry("A team with this name already exists")
    if "admin_id" in data:
        if principal.role not in ADMIN_ROLES:
            raise Forbidden("Only admins can reassign a team's admin")
        admin_id = data["admin_id"]
        if admin_id is not None:
            admin = await session.get(Account, admin_id)
            if not admin or admin.role != Role.ADMIN.value:
                raise ValidationFailed(
                    "Invalid admin", details=[{"field": "adminId", "message": "admin not found"}]
                )
    if data.get("email"):
        data["email"] = data["email"].lower()

    for key, value in data.items():
        setattr(team, key, value)
    session.add(team)
    await session.flush()
    log.info("team.updated", team_id=team.id, actor_id=principal.id)
    return team


async def set_team_status(session: AsyncSession, team: Team, is_active: bool) -> Team:
    """Toggle a team along with its login accounts."""
    team.is_active = is_active
    session.add(team)
    await session.execute(
        update(Account)
        .where(Account.team_id == team.id, Account.role == Role.TEAM.value)
        .values(is_active=is_active)
    )
    await session.flush()
    log.info("team.status_changed", team_id=team.id, is_active=is_active)
    return team


async def _count(session: AsyncSession, model, *conditions) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(*conditions))
    return result.scalar_one()


async def team_stats(session: AsyncSession, team: Team) -> dict:
    in_team = or_(Ticket.team_id == team.id, Ticket.assigned_team_id == team.id)
    member = (Account.team_id == team.id, Account.role == Role.USER.value)
    return {
        "team_id": team.id,
        "total_members": await _count(session, Account, *member),
        "active_members": await _count(session, Account, *member, Account.is_active.is_(True)),
        "total_tickets": await _count(session, Ticket, in_team),
        "open_tickets": await _count(
            session, Ticket, in_team, Ticket.status.in_([s.value for s in OPEN_STATUSES])
        ),
        "completed_tickets": await _count(
            session, Ticket, in_team, Ticket.status == TicketStatus.COMPLETED.value
        ),
        "total_projects": await _count(session, Project, Project.team_id == team.id),
    }


async def delete_team(session: AsyncSession, team: Team) -> None:
    """Delete a team that has no members and no tickets.

    The team's login accounts go with it; projects are detached.
    """
    member = (Account.team_id == team.id, Account.role == Role.USER.value)
    active = await _count(session, Account, *member, Account.is_active.is_(True))
    if active:
        raise Conflict(
            f"Team has {active} active member(s)",
            error="Cannot delete team with active members",
            details=[{"activeMembers": active}],
        )
    remaining = await _count(session, Account, *member)
    if remaining:
        raise Conflict(
            f"Team still has {remaining} deactivated member(s); move or delete them first",
            error="Cannot delete team with members",
        )
    tickets = await _count(
        session, Ticket, or_(Ticket.team_id == team.id, Ticket.assigned_team_id == team.id)
    )
    if tickets:
        raise Conflict(
            f"Team is referenced by {tickets} ticket(s)",
            error="Cannot delete team with tickets",
        )

    logins = select(Account.id).where(Account.team_id == team.id, Account.role == Role.TEAM.value)
    await session.execute(delete(Notification).where(Notification.recipient_id.in_(logins)))
    await session.execute(
        update(Project).where(Project.manager_id.in_(logins)).values(manager_id=None)
    )
    await session.execute(update(Project).where(Project.team_id == team.id).values(team_id=None))
    await session.execute(
        delete(Account).where(Account.team_id == team.id, Account.role == Role.TEAM.value)
    )
    await session.delete(team)
    await session.flush()
    log.info("team.deleted", team_id=team.id)
