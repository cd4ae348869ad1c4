"""
Ticket endpoints: CRUD, approval, status transitions, comments and resource
requests.

Lifecycle: PENDING_APPROVAL -> APPROVED | REJECTED; APPROVED -> IN_PROGRESS -> COMPLETED
- Only admins take the approval decision, and only once
- Work transitions are open to anyone who can manage the ticket
- Notifications are fanned out after the mutation is committed
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    Principal,
    require_admin_or_above,
    require_manager_or_above,
    require_principal,
)
from app.core.database import get_session
from app.core.pagination import PageParams, page_params, paginate
from app.models.ticket import Ticket
from app.services import notifications as notification_service
from app.services import resources as resource_service
from app.services import tickets as ticket_service
from app.services.notifications import TicketRef
from ticketdesk_shared.schemas.common import (
    MessageResponse,
    NotificationType,
    TicketPriority,
    TicketStatus,
)
from ticketdesk_shared.schemas.resources import ResourceRequestRead, ResourceRequestResponse
from ticketdesk_shared.schemas.tickets import (
    CommentCreate,
    CommentRead,
    CommentResponse,
    RequestDecision,
    TicketApproval,
    TicketAssignMember,
    TicketCreate,
    TicketDetail,
    TicketListResponse,
    TicketRead,
    TicketResourceRequestCreate,
    TicketResponse,
    TicketStats,
    TicketStatusUpdate,
    TicketUpdate,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _response(
    session: AsyncSession, ticket: Ticket, principal: Principal, message: Optional[str] = None
) -> TicketResponse:
    detail = TicketDetail.model_validate(ticket)
    comments = await ticket_service.list_comments(session, ticket, principal)
    detail.comments = [CommentRead.model_validate(c) for c in comments]
    return TicketResponse(ticket=detail, message=message)


async def _fan_out(
    session: AsyncSession, ref: TicketRef, events: list[NotificationType]
) -> None:
    for event in events:
        await notification_service.notify_ticket_event(session, ref, event)


async def _list(session: AsyncSession, stmt, params: PageParams) -> TicketListResponse:
    tickets, pagination = await paginate(session, stmt, params)
    return TicketListResponse(
        tickets=[TicketRead.model_validate(t) for t in tickets], pagination=pagination
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get("/", response_model=TicketListResponse)
async def list_tickets(
    status: Optional[TicketStatus] = None,
    priority: Optional[TicketPriority] = None,
    team: Optional[int] = None,
    assignedTo: Optional[int] = None,
    createdBy: Optional[int] = None,
    project: Optional[int] = None,
    search: Optional[str] = None,
    sort: str = "createdAt",
    order: str = Query("desc", pattern="^(asc|desc)$"),
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    """List the tickets visible to the caller."""
    stmt = await ticket_service.build_list_query(
        session,
        principal,
        status=status,
        priority=priority,
        team=team,
        assigned_to=assignedTo,
        created_by=createdBy,
        project=project,
        search=search,
        sort=sort,
        order=order,
    )
    return await _list(session, stmt, params)


@router.get("/assigned", response_model=TicketListResponse)
async def list_assigned(
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    return await _list(session, ticket_service.assigned_query(principal), params)


@router.get("/approval-tasks", response_model=TicketListResponse)
async def list_approval_tasks(
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_admin_or_above),
    session: AsyncSession = Depends(get_session),
):
    """Pending tickets waiting on the caller's decision."""
    stmt = await ticket_service.approval_query(session, principal)
    return await _list(session, stmt, params)


@router.get("/stats", response_model=TicketStats)
async def get_stats(
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    return await ticket_service.ticket_stats(session, principal)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: int,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    ticket = await ticket_service.get_visible_ticket(session, ticket_id, principal)
    return await _response(session, ticket, principal)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


@router.post("/", response_model=TicketResponse, status_code=201)
async def create_ticket(
    ticket_in: TicketCreate,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    """File a ticket. It starts in PENDING_APPROVAL."""
    ticket = await ticket_service.create_ticket(session, principal, ticket_in)
    await session.commit()

    response = await _response(session, ticket, principal, "Ticket created successfully")
    await _fan_out(session, TicketRef.of(ticket), [NotificationType.TICKET_CREATED])
    return response


@router.put("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: int,
    ticket_in: TicketUpdate,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    """Partial update. A status of APPROVED or REJECTED takes the approval decision."""
    ticket = await ticket_service.get_visible_ticket(session, ticket_id, principal)
    events = await ticket_service.update_ticket(session, principal, ticket, ticket_in)
    await session.commit()

    response = await _response(session, ticket, principal, "Ticket updated successfully")
    await _fan_out(session, TicketRef.of(ticket), events)
    return response


@router.put("/{ticket_id}/approve", response_model=TicketResponse)
async def approve_ticket(
    ticket_id: int,
    body: TicketApproval,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    """Approve or reject a pending ticket."""
    ticket = await ticket_service.get_visible_ticket(session, ticket_id, principal)
    target = TicketStatus.APPROVED if body.approved else TicketStatus.REJECTED
    event = ticket_service.apply_status(
        ticket,
        principal,
        target,
        rejection_reason=body.rejection_reason,
        priority=body.priority,
        expected_closure=body.expected_closure,
    )
    session.add(ticket)
    await session.commit()

    message = "Ticket approved successfully" if body.approved else "Ticket rejected"
    response = await _response(session, ticket, principal, message)
    await _fan_out(session, TicketRef.of(ticket), [event] if event else [])
    return response


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
async def update_status(
    ticket_id: int,
    body: TicketStatusUpdate,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    ticket = await ticket_service.get_visible_ticket(session, ticket_id, principal)
    event = ticket_service.apply_status(
        ticket, principal, body.status, rejection_reason=body.rejection_reason
    )
    session.add(ticket)
    await session.commit()

    response = await _response(session, ticket, principal, "Ticket status updated")
    await _fan_out(session, TicketRef.of(ticket), [event] if event else [])
    return response


@router.put("/{ticket_id}/assign-member", response_model=TicketResponse)
async def assign_member(
    ticket_id: int,
    body: TicketAssignMember,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    """Assign a member of the ticket's assigned team."""
    ticket = await ticket_service.get_visible_ticket(session, ticket_id, principal)
    await ticket_service.assign_member(session, principal, ticket, body.assigned_to)
    await session.commit()

    response = await _response(session, ticket, principal, "Member assigned successfully")
    await _fan_out(session, TicketRef.of(ticket), [NotificationType.TICKET_ASSIGNED])
    return response


@router.delete("/{ticket_id}", response_model=MessageResponse)
async def delete_ticket(
    ticket_id: int,
    principal: Principal = Depends(require_admin_or_above),
    session: AsyncSession = Depends(get_session),
):
    ticket = await ticket_service.get_visible_ticket(session, ticket_id, principal)
    await ticket_service.delete_ticket(session, ticket)
    return MessageResponse(message="Ticket deleted successfully")


# ---------------------------------------------------------------------------
# Comments and resource requests
# ---------------------------------------------------------------------------


@router.post("/{ticket_id}/comments", response_model=CommentResponse, status_code=201)
async def add_comment(
    ticket_id: int,
    comment_in: CommentCreate,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    ticket = await ticket_service.get_visible_ticket(session, ticket_id, principal)
    comment = await ticket_service.add_comment(session, principal, ticket, comment_in)
    return CommentResponse(
        comment=CommentRead.model_validate(comment), message="Comment added successfully"
    )


@router.post("/{ticket_id}/resources", response_model=ResourceRequestResponse, status_code=201)
async def request_resource(
    ticket_id: int,
    body: TicketResourceRequestCreate,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    """Ask for a resource on behalf of a ticket; the team managers are notified."""
    ticket = await ticket_service.get_visible_ticket(session, ticket_id, principal)
    request = await ticket_service.request_resource(session, principal, ticket, body)
    await session.commit()

    response = ResourceRequestResponse(
        request=ResourceRequestRead.model_validate(request),
        message="Resource request submitted",
    )
    await notification_service.notify_ticket_event(
        session,
        TicketRef.of(ticket),
        NotificationType.RESOURCE_REQUEST,
        metadata={"resourceId": body.resource_id, "quantity": body.quantity},
    )
    return response


@router.put("/{ticket_id}/resources/{index}", response_model=ResourceRequestResponse)
async def decide_resource_request(
    ticket_id: int,
    index: int,
    body: RequestDecision,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    """Approve or deny the ticket's N-th resource request."""
    ticket = await ticket_service.get_visible_ticket(session, ticket_id, principal)
    requests = await ticket_service.ticket_requests(session, ticket.id)
    request = resource_service.request_at(requests, index)
    resource = await resource_service.get_resource_or_404(
        session, request.resource_id, for_update=True
    )
    await resource_service.process_request(
        session, principal, resource, request, body.status, body.note
    )
    return ResourceRequestResponse(
        request=ResourceRequestRead.model_validate(request),
        message=f"Request {request.status}",
    )
