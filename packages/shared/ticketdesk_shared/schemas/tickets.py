"""Ticket-related Pydantic schemas for shared use across server and frontend codegen."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .common import (
    CamelModel,
    Department,
    Pagination,
    RequestStatus,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    TicketType,
    reject_null,
)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

TICKET_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.PENDING_APPROVAL: frozenset({TicketStatus.APPROVED, TicketStatus.REJECTED}),
    TicketStatus.APPROVED: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.COMPLETED}),
    TicketStatus.IN_PROGRESS: frozenset({TicketStatus.COMPLETED}),
    TicketStatus.COMPLETED: frozenset(),
    TicketStatus.REJECTED: frozenset(),
}

# Statuses that only an approver may set, and only from PENDING_APPROVAL.
APPROVAL_DECISIONS = frozenset({TicketStatus.APPROVED, TicketStatus.REJECTED})

# Tickets in these statuses cannot be deleted.
UNDELETABLE_STATUSES = frozenset({TicketStatus.IN_PROGRESS, TicketStatus.COMPLETED})

# Tickets in these statuses keep their project and people "busy".
OPEN_STATUSES = frozenset(
    {TicketStatus.PENDING_APPROVAL, TicketStatus.APPROVED, TicketStatus.IN_PROGRESS}
)


def validate_transition(current: TicketStatus, target: TicketStatus) -> tuple[bool, str]:
    """Validate a ticket status transition.

    Rules:
    - PENDING_APPROVAL moves only to APPROVED or REJECTED.
    - APPROVED moves to IN_PROGRESS or straight to COMPLETED.
    - IN_PROGRESS moves only to COMPLETED.
    - COMPLETED and REJECTED are terminal.

    Returns (is_valid, error_message).
    """
    allowed = TICKET_TRANSITIONS[current]
    if target in allowed:
        return True, ""
    if not allowed:
        return False, f"Ticket is {current.value} and can no longer change status"
    return False, (
        f"Cannot transition from {current.value} to {target.value}. "
        f"Allowed: {sorted(s.value for s in allowed)}"
    )


# ---------------------------------------------------------------------------
# Ticket CRUD
# ---------------------------------------------------------------------------

class TicketCreate(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    type: TicketType = TicketType.TASK
    category: TicketCategory = TicketCategory.TECHNICAL
    department: Department = Department.IT
    priority: TicketPriority = TicketPriority.MEDIUM
    due_date: datetime
    team_id: int
    project_id: Optional[int] = None
    assigned_to: Optional[int] = None
    assigned_team_id: Optional[int] = None
    expected_closure: Optional[datetime] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    tags: List[str] = Field(default_factory=list)
    attachments: List[dict] = Field(default_factory=list)


class TicketUpdate(CamelModel):
    """Partial update. Server-managed fields are not part of the schema and are dropped."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1)
    type: Optional[TicketType] = None
    category: Optional[TicketCategory] = None
    department: Optional[Department] = None
    priority: Optional[TicketPriority] = None
    status: Optional[TicketStatus] = None
    due_date: Optional[datetime] = None
    expected_closure: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    project_id: Optional[int] = None
    assigned_to: Optional[int] = None
    assigned_team_id: Optional[int] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)
    tags: Optional[List[str]] = None
    attachments: Optional[List[dict]] = None

    @field_validator(
        "title", "description", "type", "category", "department", "priority",
        "status", "due_date", "tags", "attachments",
    )
    @classmethod
    def _required_columns(cls, value):
        return reject_null(value)


class TicketApproval(CamelModel):
    """Request body for PUT /tickets/{id}/approve."""
    approved: bool
    priority: Optional[TicketPriority] = None
    expected_closure: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class TicketStatusUpdate(CamelModel):
    """Request body for PATCH /tickets/{id}/status."""
    status: TicketStatus
    rejection_reason: Optional[str] = None


class TicketAssignMember(CamelModel):
    """Request body for PUT /tickets/{id}/assign-member."""
    assigned_to: int


class CommentCreate(CamelModel):
    content: str = Field(min_length=1, max_length=5000)
    is_internal: bool = False


class CommentRead(CamelModel):
    id: int
    ticket_id: int
    author_id: int
    content: str
    is_internal: bool
    created_at: datetime


class TicketResourceRequestCreate(CamelModel):
    """Request body for POST /tickets/{id}/resources."""
    resource_id: int
    quantity: int = Field(ge=1)
    reason: Optional[str] = None


class RequestDecision(CamelModel):
    """Approve or deny a pending resource request."""
    status: RequestStatus
    note: Optional[str] = None


class TicketRead(CamelModel):
    id: int
    title: str
    description: str
    type: str
    category: str
    department: str
    priority: str
    status: str
    due_date: datetime
    expected_closure: Optional[datetime] = None
    actual_closure: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    created_by: int
    team_id: int
    assigned_team_id: Optional[int] = None
    assigned_to: Optional[int] = None
    project_id: Optional[int] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    attachments: List[dict] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TicketDetail(TicketRead):
    comments: List[CommentRead] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------

class TicketResponse(CamelModel):
    ticket: TicketDetail
    message: Optional[str] = None


class TicketListResponse(BaseModel):
    tickets: List[TicketRead]
    pagination: Pagination


class CommentResponse(CamelModel):
    comment: CommentRead
    message: Optional[str] = None


class TicketStats(CamelModel):
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
