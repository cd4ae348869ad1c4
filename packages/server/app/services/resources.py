"""
Resource ledger: quantity bookkeeping, allocations, history and requests.

Every mutation keeps ``available_quantity + allocated_quantity == quantity``.
Callers load the resource with ``for_update=True`` so concurrent allocations
against the same row serialize on the database lock.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import structlog
from sqlalchemy import delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Principal
from app.core.errors import (
    AllocationNotFound,
    Conflict,
    InsufficientAvailableQuantity,
    NotFound,
    OverDeallocation,
    RequestNotFound,
)
from app.models.base import utcnow
from app.models.project import Project
from app.models.resource import Resource, ResourceAllocation, ResourceHistory, ResourceRequest
from app.models.ticket import Ticket
from ticketdesk_shared.schemas.common import RequestStatus, ResourceStatus, ResourceType
from ticketdesk_shared.schemas.resources import (
    ResourceCreate,
    ResourceRequestCreate,
    ResourceUpdate,
)

log = structlog.get_logger()

# Statuses set by hand that quantity changes must not overwrite.
MANUAL_STATUSES = frozenset({ResourceStatus.MAINTENANCE.value, ResourceStatus.DISCONTINUED.value})


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


# ---------------------------------------------------------------------------
# Ledger arithmetic
# ---------------------------------------------------------------------------


def derive_status(resource: Resource) -> str:
    if resource.status in MANUAL_STATUSES:
        return resource.status
    if resource.available_quantity == 0:
        return ResourceStatus.OUT_OF_STOCK.value
    if resource.allocated_quantity > 0:
        return ResourceStatus.ALLOCATED.value
    return ResourceStatus.AVAILABLE.value


def check_available(resource: Resource, quantity: int) -> None:
    if quantity > resource.available_quantity:
        raise InsufficientAvailableQuantity(
            f"Only {resource.available_quantity} {resource.unit} available",
            details=[{"available": resource.available_quantity, "requested": quantity}],
        )


def take(resource: Resource, quantity: int) -> None:
    """Move ``quantity`` from available to allocated."""
    check_available(resource, quantity)
    resource.available_quantity -= quantity
    resource.allocated_quantity += quantity
    resource.status = derive_status(resource)


def give_back(resource: Resource, quantity: int) -> None:
    """Move ``quantity`` from allocated back to available."""
    if quantity > resource.allocated_quantity:
        raise OverDeallocation(
            f"Only {resource.allocated_quantity} {resource.unit} allocated",
            details=[{"allocated": resource.allocated_quantity, "requested": quantity}],
        )
    resource.allocated_quantity -= quantity
    resource.available_quantity += quantity
    resource.status = derive_status(resource)


def resize(resource: Resource, quantity: int) -> None:
    """Change the total quantity, keeping allocations intact."""
    available = quantity - resource.allocated_quantity
    if available < 0:
        raise Conflict(
            f"Quantity cannot be lower than the allocated amount ({resource.allocated_quantity})",
            error="Invalid quantity",
        )
    resource.quantity = quantity
    resource.available_quantity = available


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_resource_or_404(
    session: AsyncSession, resource_id: int, *, for_update: bool = False
) -> Resource:
    stmt = select(Resource).where(Resource.id == resource_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    resource = (await session.execute(stmt)).scalar_one_or_none()
    if not resource:
        raise NotFound("Resource not found")
    return resource


async def list_allocations(session: AsyncSession, resource_id: int) -> list[ResourceAllocation]:
    result = await session.execute(
        select(ResourceAllocation)
        .where(ResourceAllocation.resource_id == resource_id)
        .order_by(ResourceAllocation.id)
    )
    return list(result.scalars().all())


async def list_requests(session: AsyncSession, resource_id: int) -> list[ResourceRequest]:
    result = await session.execute(
        select(ResourceRequest)
        .where(ResourceRequest.resource_id == resource_id)
        .order_by(ResourceRequest.id)
    )
    return list(result.scalars().all())


async def list_history(session: AsyncSession, resource_id: int) -> list[ResourceHistory]:
    result = await session.execute(
        select(ResourceHistory)
        .where(ResourceHistory.resource_id == resource_id)
        .order_by(ResourceHistory.performed_at, ResourceHistory.id)
    )
    return list(result.scalars().all())


def request_at(requests: list[ResourceRequest], index: int) -> ResourceRequest:
    """The request at a list position, as addressed by the API."""
    if index < 0 or index >= len(requests):
        raise RequestNotFound(f"No request at index {index}")
    return requests[index]


def build_list_query(
    *,
    type: Optional[ResourceType] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
):
    stmt = select(Resource)
    if type:
        stmt = stmt.where(Resource.type == _plain(type))
    if category:
        stmt = stmt.where(Resource.category == _plain(category))
    if status:
        stmt = stmt.where(Resource.status == _plain(status))
    if priority:
        stmt = stmt.where(Resource.priority == _plain(priority))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Resource.name.ilike(pattern), Resource.description.ilike(pattern)))
    return stmt.order_by(Resource.created_at.desc(), Resource.id.desc())


def available_query():
    return (
        select(Resource)
        .where(
            Resource.available_quantity > 0,
            Resource.status.notin_(MANUAL_STATUSES),
        )
        .order_by(Resource.name)
    )


def _record(
    session: AsyncSession,
    resource: Resource,
    action: str,
    description: str,
    actor_id: int,
    quantity: Optional[int] = None,
) -> None:
    session.add(
        ResourceHistory(
            resource_id=resource.id,
            action=action,
            quantity=quantity,
            description=description,
            performed_by=actor_id,
        )
    )


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_resource(
    session: AsyncSession, principal: Principal, resource_in: ResourceCreate
) -> Resource:
    data = {k: _plain(v) for k, v in resource_in.model_dump().items()}
    resource = Resource(
        **data,
        available_quantity=resource_in.quantity,
        allocated_quantity=0,
        status=ResourceStatus.AVAILABLE.value,
        created_by=principal.id,
    )
    session.add(resource)
    await session.flush()
    _record(
        session, resource, "created",
        f"Resource created with {resource.quantity} {resource.unit}",
        principal.id, resource.quantity,
    )
    await session.flush()
    log.info("resource.created", resource_id=resource.id, quantity=resource.quantity)
    return resource


async def update_resource(
    session: AsyncSession,
    principal: Principal,
    resource: Resource,
    resource_in: ResourceUpdate,
) -> Resource:
    data = {k: _plain(v) for k, v in resource_in.model_dump(exclude_unset=True).items()}
    quantity = data.pop("quantity", None)
    status = data.pop("status", None)

    for key, value in data.items():
        setattr(resource, key, value)
    if quantity is not None and quantity != resource.quantity:
        previous = resource.quantity
        resize(resource, quantity)
        _record(
            session, resource, "updated",
            f"Quantity changed from {previous} to {quantity} {resource.unit}",
            principal.id, quantity,
        )
    if status is not None:
        resource.status = status
    resource.status = derive_status(resource)

    session.add(resource)
    await session.flush()
    log.info("resource.updated", resource_id=resource.id)
    return resource


async def delete_resource(session: AsyncSession, resource: Resource) -> None:
    if resource.allocated_quantity > 0:
        raise Conflict(
            "Cannot delete a resource with active allocations",
            error="Resource is allocated",
        )
    for model in (ResourceAllocation, ResourceHistory, ResourceRequest):
        await session.execute(delete(model).where(model.resource_id == resource.id))
    await session.delete(resource)
    await session.flush()
    log.info("resource.deleted", resource_id=resource.id)


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------


async def allocate(
    session: AsyncSession,
    resource: Resource,
    quantity: int,
    project_id: int,
    actor_id: int,
) -> ResourceAllocation:
    """Allocate ``quantity`` to a project. Nothing changes when it fails."""
    if not await session.get(Project, project_id):
        raise NotFound("Project not found")
    check_available(resource, quantity)

    result = await session.execute(
        select(ResourceAllocation).where(
            ResourceAllocation.resource_id == resource.id,
            ResourceAllocation.project_id == project_id,
        )
    )
    allocation = result.scalar_one_or_none()
    if allocation is None:
        allocation = ResourceAllocation(
            resource_id=resource.id,
            project_id=project_id,
            allocated_quantity=0,
            allocated_by=actor_id,
        )
    allocation.allocated_quantity += quantity
    allocation.allocated_by = actor_id
    allocation.allocated_at = utcnow()

    take(resource, quantity)
    session.add(allocation)
    session.add(resource)
    _record(
        session, resource, "allocated",
        f"Allocated {quantity} {resource.unit} to project",
        actor_id, quantity,
    )
    await session.flush()
    log.info(
        "resource.allocated",
        resource_id=resource.id,
        project_id=project_id,
        quantity=quantity,
        available=resource.available_quantity,
    )
    return allocation


async def deallocate(
    session: AsyncSession,
    resource: Resource,
    quantity: int,
    project_id: int,
    actor_id: int,
) -> None:
    """Return ``quantity`` from a project's allocation to the available pool."""
    result = await session.execute(
        select(ResourceAllocation).where(
            ResourceAllocation.resource_id == resource.id,
            ResourceAllocation.project_id == project_id,
        )
    )
    allocation = result.scalar_one_or_none()
    if allocation is None:
        raise AllocationNotFound("No allocation found for this project")
    if quantity > allocation.allocated_quantity:
        raise OverDeallocation(
            f"Only {allocation.allocated_quantity} {resource.unit} allocated to this project",
            details=[{"allocated": allocation.allocated_quantity, "requested": quantity}],
        )

    give_back(resource, quantity)
    if quantity == allocation.allocated_quantity:
        await session.delete(allocation)
    else:
        allocation.allocated_quantity -= quantity
        session.add(allocation)
    session.add(resource)
    _record(
        session, resource, "deallocated",
        f"Deallocated {quantity} {resource.unit} from project",
        actor_id, quantity,
    )
    await session.flush()
    log.info(
        "resource.deallocated",
        resource_id=resource.id,
        project_id=project_id,
        quantity=quantity,
        available=resource.available_quantity,
    )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


async def create_request(
    session: AsyncSession,
    principal: Principal,
    resource: Resource,
    request_in: ResourceRequestCreate,
) -> ResourceRequest:
    if request_in.ticket_id is not None and not await session.get(Ticket, request_in.ticket_id):
        raise NotFound("Ticket not found")
    if request_in.project_id is not None and not await session.get(Project, request_in.project_id):
        raise NotFound("Project not found")
    request = ResourceRequest(
        resource_id=resource.id,
        ticket_id=request_in.ticket_id,
        project_id=request_in.project_id,
        quantity=request_in.quantity,
        reason=request_in.reason,
        requested_by=principal.id,
    )
    session.add(request)
    await session.flush()
    log.info("resource.request_created", resource_id=resource.id, request_id=request.id)
    return request


async def process_request(
    session: AsyncSession,
    principal: Principal,
    resource: Resource,
    request: ResourceRequest,
    decision: RequestStatus,
    note: Optional[str] = None,
) -> ResourceRequest:
    """Approve or deny a pending request."""
    if request.status != RequestStatus.PENDING.value:
        raise Conflict(f"Request has already been {request.status}", error="Request already processed")
    if decision == RequestStatus.PENDING:
        raise Conflict("A request can only be approved or denied", error="Invalid decision")
    if decision == RequestStatus.APPROVED:
        check_available(resource, request.quantity)

    request.status = decision.value
    request.processed_by = principal.id
    request.processed_at = utcnow()
    request.decision_note = note
    session.add(request)
    _record(
        session, resource, f"request_{decision.value}",
        f"Request for {request.quantity} {resource.unit} {decision.value}",
        principal.id, request.quantity,
    )
    await session.flush()
    log.info(
        "resource.request_processed",
        resource_id=resource.id,
        request_id=request.id,
        decision=decision.value,
    )
    return request


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


async def overview(session: AsyncSession) -> dict:
    totals = (
        await session.execute(
            select(
                func.count(Resource.id),
                func.coalesce(func.sum(Resource.quantity), 0),
                func.coalesce(func.sum(Resource.available_quantity), 0),
                func.coalesce(func.sum(Resource.allocated_quantity), 0),
            )
        )
    ).one()
    count, quantity, available, allocated = (int(v) for v in totals)

    by_type = dict(
        (await session.execute(select(Resource.type, func.count()).group_by(Resource.type))).all()
    )
    by_status = dict(
        (await session.execute(select(Resource.status, func.count()).group_by(Resource.status))).all()
    )
    pending = (
        await session.execute(
            select(func.count()).select_from(ResourceRequest).where(
                ResourceRequest.status == RequestStatus.PENDING.value
            )
        )
    ).scalar_one()

    return {
        "total_resources": count,
        "total_quantity": quantity,
        "available_quantity": available,
        "allocated_quantity": allocated,
        "utilization_rate": round(allocated / quantity * 100, 2) if quantity else 0.0,
        "by_type": by_type,
        "by_status": by_status,
        "pending_requests": pending,
    }
