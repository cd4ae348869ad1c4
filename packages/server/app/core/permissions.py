"""
Role-gate predicates.

Pure functions over a resolved principal and, for record-scoped checks, the
target record. Route handlers turn a False into ``Forbidden``.

Role ladder: user < team < admin < super_admin.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.team import Team
from ticketdesk_shared.schemas.common import Role

if TYPE_CHECKING:
    from app.core.auth import Principal
    from app.models.ticket import Ticket

ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
MANAGER_ROLES = frozenset({Role.TEAM, Role.ADMIN, Role.SUPER_ADMIN})


def is_admin_or_above(principal: "Principal") -> bool:
    return principal.role in ADMIN_ROLES


def is_manager_or_above(principal: "Principal") -> bool:
    return principal.role in MANAGER_ROLES


def owns_or_manages(principal: "Principal", entity: Any, owner_field: str) -> bool:
    """True when the caller's id is stored in ``entity.<owner_field>`` or the caller is an admin."""
    if is_admin_or_above(principal):
        return True
    return getattr(entity, owner_field, None) == principal.id


def ticket_team_ids(ticket: "Ticket") -> set[int]:
    return {tid for tid in (ticket.team_id, ticket.assigned_team_id) if tid is not None}


def can_manage_ticket(principal: "Principal", ticket: "Ticket") -> bool:
    """Assignee, creator, a member or manager of the ticket's team, or an admin."""
    if is_admin_or_above(principal):
        return True
    if principal.id in (ticket.assigned_to, ticket.created_by):
        return True
    return principal.team_id is not None and principal.team_id in ticket_team_ids(ticket)


def can_view_ticket(
    principal: "Principal",
    ticket: "Ticket",
    managed_team_ids: Optional[Iterable[int]] = None,
) -> bool:
    """Read access to a single ticket.

    ``managed_team_ids`` is only consulted for admins, who see the tickets of
    the teams they manage.
    """
    if principal.role == Role.SUPER_ADMIN:
        return True
    if principal.role == Role.ADMIN:
        return bool(ticket_team_ids(ticket) & set(managed_team_ids or ()))
    if principal.role == Role.TEAM:
        return principal.team_id in ticket_team_ids(ticket)
    return principal.id in (ticket.created_by, ticket.assigned_to) or (
        principal.team_id is not None and principal.team_id == ticket.team_id
    )


async def managed_team_ids(session: AsyncSession, principal: "Principal") -> set[int]:
    """Ids of the teams an admin manages. Empty for every other role."""
    if principal.role != Role.ADMIN:
        return set()
    result = await session.execute(select(Team.id).where(Team.admin_id == principal.id))
    return {row[0] for row in result.all()}
