"""
Ticket service layer: visibility scoping, CRUD and the approval lifecycle.

Handles:
- Role-scoped listing (member: created/assigned, team: own or delegated team,
  admin: managed teams, super admin: everything)
- Approval decisions, which only admins take and only once
- Work transitions (APPROVED -> IN_PROGRESS -> COMPLETED) for anyone who can
  manage the ticket
- Comments and resource requests attached to a ticket
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import structlog
from sqlalchemy import delete, false, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Principal
from app.core.errors import (
    AlreadyProcessed,
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)
from app.core.permissions import (
    can_manage_ticket,
    can_view_ticket,
    is_admin_or_above,
    managed_team_ids,
)
from app.models.account import Account
from app.models.base import utcnow
from app.models.project import Project
from app.models.resource import Resource, ResourceRequest
from app.models.team import Team
from app.models.ticket import Ticket, TicketComment
from ticketdesk_shared.schemas.common import NotificationType, Role, TicketPriority, TicketStatus
from ticketdesk_shared.schemas.tickets import (
    APPROVAL_DECISIONS,
    UNDELETABLE_STATUSES,
    CommentCreate,
    TicketCreate,
    TicketResourceRequestCreate,
    TicketUpdate,
    validate_transition,
)

log = structlog.get_logger()

SORTABLE_COLUMNS = {
    "createdAt": Ticket.created_at,
    "updatedAt": Ticket.updated_at,
    "dueDate": Ticket.due_date,
    "priority": Ticket.priority,
    "status": Ticket.status,
    "title": Ticket.title,
}

# Fields that only change through the approval decision.
APPROVAL_FIELDS = ("priority", "expected_closure")


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


# ---------------------------------------------------------------------------
# Lookups and scoping
# ---------------------------------------------------------------------------


async def get_ticket_or_404(session: AsyncSession, ticket_id: int) -> Ticket:
    ticket = await session.get(Ticket, ticket_id)
    if not ticket:
        raise NotFound("Ticket not found")
    return ticket


async def get_visible_ticket(
    session: AsyncSession, ticket_id: int, principal: Principal
) -> Ticket:
    """Load a ticket the caller may see: 404 when absent, 403 when hidden."""
    ticket = await get_ticket_or_404(session, ticket_id)
    managed = await managed_team_ids(session, principal)
    if not can_view_ticket(principal, ticket, managed):
        raise Forbidden("You do not have access to this ticket")
    return ticket


async def scope_clause(session: AsyncSession, principal: Principal):
    """SQL condition restricting tickets to what the caller may list, or None."""
    if principal.role == Role.SUPER_ADMIN:
        return None
    if principal.role == Role.ADMIN:
        teams = await managed_team_ids(session, principal)
        if not teams:
            return false()
        return or_(Ticket.team_id.in_(teams), Ticket.assigned_team_id.in_(teams))
    if principal.role == Role.TEAM:
        return or_(
            Ticket.team_id == principal.team_id,
            Ticket.assigned_team_id == principal.team_id,
        )
    return or_(Ticket.created_by == principal.id, Ticket.assigned_to == principal.id)


async def build_list_query(
    session: AsyncSession,
    principal: Principal,
    *,
    status: Optional[TicketStatus] = None,
    priority: Optional[TicketPriority] = None,
    team: Optional[int] = None,
    assigned_to: Optional[int] = None,
    created_by: Optional[int] = None,
    project: Optional[int] = None,
    search: Optional[str] = None,
    sort: str = "createdAt",
    order: str = "desc",
):
    stmt = select(Ticket)
    clause = await scope_clause(session, principal)
    if clause is not None:
        stmt = stmt.where(clause)

    if status:
        stmt = stmt.where(Ticket.status == status.value)
    if priority:
        stmt = stmt.where(Ticket.priority == priority.value)
    if team is not None:
        stmt = stmt.where(Ticket.team_id == team)
    if assigned_to is not None:
        stmt = stmt.where(Ticket.assigned_to == assigned_to)
    if created_by is not None:
        stmt = stmt.where(Ticket.created_by == created_by)
    if project is not None:
        stmt = stmt.where(Ticket.project_id == project)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Ticket.title.ilike(pattern), Ticket.description.ilike(pattern)))

    column = SORTABLE_COLUMNS.get(sort, Ticket.created_at)
    stmt = stmt.order_by(column.asc() if order.lower() == "asc" else column.desc(), Ticket.id)
    return stmt


def assigned_query(principal: Principal):
    """Tickets assigned to the caller, or to the caller's team for a team login."""
    if principal.role == Role.TEAM:
        condition = Ticket.assigned_team_id == principal.team_id
    else:
        condition = Ticket.assigned_to == principal.id
    return select(Ticket).where(condition).order_by(Ticket.due_date, Ticket.id)


async def approval_query(session: AsyncSession, principal: Principal):
    """Pending tickets the caller is allowed to decide on."""
    stmt = select(Ticket).where(Ticket.status == TicketStatus.PENDING_APPROVAL.value)
    clause = await scope_clause(session, principal)
    if clause is not None:
        stmt = stmt.where(clause)
    return stmt.order_by(Ticket.created_at, Ticket.id)


async def ticket_stats(session: AsyncSession, principal: Principal) -> dict:
    clause = await scope_clause(session, principal)

    async def _grouped(column) -> dict[str, int]:
        stmt = select(column, func.count()).group_by(column)
        if clause is not None:
            stmt = stmt.where(clause)
        result = await session.execute(stmt)
        return {key: count for key, count in result.all()}

    by_status = await _grouped(Ticket.status)
    by_priority = await _grouped(Ticket.priority)
    return {
        "total": sum(by_status.values()),
        "by_status": {s.value: by_status.get(s.value, 0) for s in TicketStatus},
        "by_priority": {p.value: by_priority.get(p.value, 0) for p in TicketPriority},
    }


async def list_comments(session: AsyncSession, ticket: Ticket, principal: Principal) -> list[TicketComment]:
    stmt = select(TicketComment).where(TicketComment.ticket_id == ticket.id)
    if principal.role == Role.USER:
        stmt = stmt.where(
            or_(TicketComment.is_internal == False, TicketComment.author_id == principal.id)  # noqa: E712
        )
    result = await session.execute(stmt.order_by(TicketComment.created_at, TicketComment.id))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Reference checks
# ---------------------------------------------------------------------------


async def _require_team(session: AsyncSession, team_id: int, field: str) -> Team:
    team = await session.get(Team, team_id)
    if not team:
        raise ValidationFailed("Team not found", details=[{"field": field, "message": "Team not found"}])
    return team


async def _require_project(session: AsyncSession, project_id: int) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise ValidationFailed(
            "Project not found", details=[{"field": "projectId", "message": "Project not found"}]
        )
    return project


async def _require_member(session: AsyncSession, account_id: int) -> Account:
    account = await session.get(Account, account_id)
    if not account or account.role != Role.USER.value:
        raise ValidationFailed(
            "Assignee not found", details=[{"field": "assignedTo", "message": "User not found"}]
        )
    if not account.is_active:
        raise ValidationFailed(
            "Assignee is deactivated",
            details=[{"field": "assignedTo", "message": "User is deactivated"}],
        )
    return account


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_ticket(
    session: AsyncSession, principal: Principal, ticket_in: TicketCreate
) -> Ticket:
    await _require_team(session, ticket_in.team_id, "teamId")
    if principal.role in (Role.USER, Role.TEAM) and principal.team_id != ticket_in.team_id:
        raise Forbidden("You can only create tickets for your own team")
    if ticket_in.assigned_team_id is not None:
        await _require_team(session, ticket_in.assigned_team_id, "assignedTeamId")
    if ticket_in.project_id is not None:
        await _require_project(session, ticket_in.project_id)
    if ticket_in.assigned_to is not None:
        await _require_member(session, ticket_in.assigned_to)

    data = {k: _plain(v) for k, v in ticket_in.model_dump().items()}
    data["assigned_team_id"] = data.get("assigned_team_id") or ticket_in.team_id
    ticket = Ticket(
        **data,
        created_by=principal.id,
        status=TicketStatus.PENDING_APPROVAL.value,
    )
    session.add(ticket)
    await session.flush()
    log.info("ticket.created", ticket_id=ticket.id, team_id=ticket.team_id, created_by=principal.id)
    return ticket


async def delete_ticket(session: AsyncSession, ticket: Ticket) -> None:
    if ticket.status in {s.value for s in UNDELETABLE_STATUSES}:
        raise Conflict(
            f"Cannot delete a ticket that is {ticket.status}",
            error="Ticket cannot be deleted",
        )
    await session.execute(delete(TicketComment).where(TicketComment.ticket_id == ticket.id))
    await session.execute(delete(ResourceRequest).where(ResourceRequest.ticket_id == ticket.id))
    await session.delete(ticket)
    await session.flush()
    log.info("ticket.deleted", ticket_id=ticket.id)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def ensure_pending(ticket: Ticket) -> None:
    if ticket.status != TicketStatus.PENDING_APPROVAL.value:
        raise AlreadyProcessed(f"Ticket has already been processed (status {ticket.status})")


def _ensure_approver(principal: Principal) -> None:
    if not is_admin_or_above(principal):
        raise Forbidden("Only admins can approve or reject tickets")


def approve(
    ticket: Ticket,
    principal: Principal,
    *,
    priority: Optional[TicketPriority] = None,
    expected_closure=None,
) -> None:
    ensure_pending(ticket)
    _ensure_approver(principal)
    ticket.status = TicketStatus.APPROVED.value
    ticket.approved_by = principal.id
    ticket.approved_at = utcnow()
    if priority is not None:
        ticket.priority = _plain(priority)
    if expected_closure is not None:
        ticket.expected_closure = expected_closure


def reject(ticket: Ticket, principal: Principal, reason: Optional[str]) -> None:
    ensure_pending(ticket)
    _ensure_approver(principal)
    if not reason or not reason.strip():
        raise ValidationFailed(
            "Rejection reason is required",
            details=[{"field": "rejectionReason", "message": "Rejection reason is required"}],
        )
    ticket.status = TicketStatus.REJECTED.value
    ticket.rejection_reason = reason.strip()


def advance(ticket: Ticket, principal: Principal, target: TicketStatus) -> bool:
    """Apply a non-approval status change. Returns False when nothing changed."""
    current = TicketStatus(ticket.status)
    if target == current:
        return False
    ok, message = validate_transition(current, target)
    if not ok:
        raise InvalidTransition(message)
    if not can_manage_ticket(principal, ticket):
        raise Forbidden("You cannot change the status of this ticket")
    ticket.status = target.value
    if target == TicketStatus.COMPLETED:
        ticket.actual_closure = utcnow()
    return True


def apply_status(
    ticket: Ticket,
    principal: Principal,
    target: TicketStatus,
    *,
    rejection_reason: Optional[str] = None,
    priority: Optional[TicketPriority] = None,
    expected_closure=None,
) -> Optional[NotificationType]:
    """Route a requested status to the approval decision or the work transition.

    Returns the notification event the change produced, if any.
    """
    if target in APPROVAL_DECISIONS:
        if target == TicketStatus.APPROVED:
            approve(ticket, principal, priority=priority, expected_closure=expected_closure)
            return NotificationType.TICKET_APPROVED
        reject(ticket, principal, rejection_reason)
        return NotificationType.TICKET_REJECTED
    if advance(ticket, principal, target) and target == TicketStatus.COMPLETED:
        return NotificationType.TICKET_COMPLETED
    return None


async def update_ticket(
    session: AsyncSession,
    principal: Principal,
    ticket: Ticket,
    ticket_in: TicketUpdate,
) -> list[NotificationType]:
    """Apply a partial update. Returns the notification events to fan out."""
    data = {k: _plain(v) for k, v in ticket_in.model_dump(exclude_unset=True).items()}
    status = data.pop("status", None)
    rejection_reason = data.pop("rejection_reason", None)

    touches_approval = (
        status in {s.value for s in APPROVAL_DECISIONS}
        or any(f in data for f in APPROVAL_FIELDS)
    )
    if touches_approval:
        ensure_pending(ticket)
        # Priority and expected closure belong to the approval decision.
        _ensure_approver(principal)

    events: list[NotificationType] = []
    if status is not None:
        target = TicketStatus(status)
        decision_fields = {}
        if target in APPROVAL_DECISIONS:
            decision_fields = {f: data.pop(f, None) for f in APPROVAL_FIELDS}
        event = apply_status(
            ticket, principal, target, rejection_reason=rejection_reason, **decision_fields
        )
        if event:
            events.append(event)

    if data and not can_manage_ticket(principal, ticket):
        raise Forbidden("You cannot edit this ticket")

    if data.get("assigned_team_id") is not None:
        await _require_team(session, data["assigned_team_id"], "assignedTeamId")
    if data.get("project_id") is not None:
        await _require_project(session, data["project_id"])
    if data.get("assigned_to") is not None and data["assigned_to"] != ticket.assigned_to:
        await _require_member(session, data["assigned_to"])
        events.append(NotificationType.TICKET_ASSIGNED)

    for key, value in data.items():
        setattr(ticket, key, value)

    session.add(ticket)
    await session.flush()
    log.info("ticket.updated", ticket_id=ticket.id, status=ticket.status, actor_id=principal.id)
    return events


async def assign_member(
    session: AsyncSession, principal: Principal, ticket: Ticket, account_id: int
) -> Ticket:
    if principal.role == Role.TEAM and principal.team_id != ticket.assigned_team_id:
        raise Forbidden("Only the assigned team's manager can assign members")
    if ticket.status in (TicketStatus.COMPLETED.value, TicketStatus.REJECTED.value):
        raise Conflict(f"Cannot assign a ticket that is {ticket.status}")
    member = await _require_member(session, account_id)
    if member.team_id != ticket.assigned_team_id:
        raise ValidationFailed(
            "User is not a member of the assigned team",
            details=[{"field": "assignedTo", "message": "User is not a member of the assigned team"}],
        )
    ticket.assigned_to = member.id
    session.add(ticket)
    await session.flush()
    log.info("ticket.assigned", ticket_id=ticket.id, assigned_to=member.id, actor_id=principal.id)
    return ticket


# ---------------------------------------------------------------------------
# Comments and resource requests
# ---------------------------------------------------------------------------


async def add_comment(
    session: AsyncSession, principal: Principal, ticket: Ticket, comment_in: CommentCreate
) -> TicketComment:
    comment = TicketComment(
        ticket_id=ticket.id,
        author_id=principal.id,
        content=comment_in.content,
        is_internal=comment_in.is_internal,
    )
    session.add(comment)
    await session.flush()
    return comment


async def request_resource(
    session: AsyncSession,
    principal: Principal,
    ticket: Ticket,
    request_in: TicketResourceRequestCreate,
) -> ResourceRequest:
    if not can_manage_ticket(principal, ticket):
        raise Forbidden("You cannot request resources for this ticket")
    resource = await session.get(Resource, request_in.resource_id)
    if not resource:
        raise NotFound("Resource not found")
    request = ResourceRequest(
        resource_id=resource.id,
        ticket_id=ticket.id,
        project_id=ticket.project_id,
        quantity=request_in.quantity,
        reason=request_in.reason,
        requested_by=principal.id,
    )
    session.add(request)
    await session.flush()
    log.info("ticket.resource_requested", ticket_id=ticket.id, resource_id=resource.id)
    return request


async def ticket_requests(session: AsyncSession, ticket_id: int) -> list[ResourceRequest]:
    result = await session.execute(
        select(ResourceRequest)
        .where(ResourceRequest.ticket_id == ticket_id)
        .order_by(ResourceRequest.id)
    )
    return list(result.scalars().all())
