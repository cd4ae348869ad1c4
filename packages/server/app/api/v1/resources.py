"""
Resource endpoints: inventory CRUD, the allocation ledger and resource requests.

Ledger invariant: available + allocated == quantity. Every mutation of the
quantities locks the resource row first.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    Principal,
    require_admin_or_above,
    require_manager_or_above,
    require_principal,
)
from app.core.database import get_session
from app.core.pagination import PageParams, page_params, paginate
from app.models.resource import Resource
from app.services import resources as resource_service
from ticketdesk_shared.schemas.common import (
    Level,
    MessageResponse,
    RequestStatus,
    ResourceCategory,
    ResourceStatus,
    ResourceType,
)
from ticketdesk_shared.schemas.resources import (
    AllocationChange,
    AllocationRead,
    HistoryRead,
    HistoryResponse,
    RequestNote,
    ResourceCreate,
    ResourceDetail,
    ResourceListResponse,
    ResourceOverview,
    ResourceRead,
    ResourceRequestCreate,
    ResourceRequestRead,
    ResourceRequestResponse,
    ResourceResponse,
    ResourceUpdate,
)

router = APIRouter()


async def _response(
    session: AsyncSession, resource: Resource, message: Optional[str] = None
) -> ResourceResponse:
    detail = ResourceDetail.model_validate(resource)
    detail.allocations = [
        AllocationRead.model_validate(a)
        for a in await resource_service.list_allocations(session, resource.id)
    ]
    detail.requests = [
        ResourceRequestRead.model_validate(r)
        for r in await resource_service.list_requests(session, resource.id)
    ]
    return ResourceResponse(resource=detail, message=message)


async def _list(session: AsyncSession, stmt, params: PageParams) -> ResourceListResponse:
    resources, pagination = await paginate(session, stmt, params)
    return ResourceListResponse(
        resources=[ResourceRead.model_validate(r) for r in resources], pagination=pagination
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get("/", response_model=ResourceListResponse)
async def list_resources(
    type: Optional[ResourceType] = None,
    category: Optional[ResourceCategory] = None,
    status: Optional[ResourceStatus] = None,
    priority: Optional[Level] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    stmt = resource_service.build_list_query(
        type=type, category=category, status=status, priority=priority, search=search
    )
    return await _list(session, stmt, params)


@router.get("/available", response_model=ResourceListResponse)
async def list_available(
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    return await _list(session, resource_service.available_query(), params)


@router.get("/stats/overview", response_model=ResourceOverview)
async def resource_overview(
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    return await resource_service.overview(session)


@router.get("/type/{resource_type}", response_model=ResourceListResponse)
async def list_by_type(
    resource_type: ResourceType,
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    return await _list(session, resource_service.build_list_query(type=resource_type), params)


@router.get("/{resource_id}", response_model=ResourceResponse)
async def get_resource(
    resource_id: int,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    resource = await resource_service.get_resource_or_404(session, resource_id)
    return await _response(session, resource)


@router.get("/{resource_id}/history", response_model=HistoryResponse)
async def get_history(
    resource_id: int,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    await resource_service.get_resource_or_404(session, resource_id)
    history = await resource_service.list_history(session, resource_id)
    return HistoryResponse(history=[HistoryRead.model_validate(h) for h in history])


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


@router.post("/", response_model=ResourceResponse, status_code=201)
async def create_resource(
    resource_in: ResourceCreate,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    resource = await resource_service.create_resource(session, principal, resource_in)
    return await _response(session, resource, "Resource created successfully")


@router.put("/{resource_id}", response_model=ResourceResponse)
async def update_resource(
    resource_id: int,
    resource_in: ResourceUpdate,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    """Edit a resource. A new quantity keeps the allocated amount and re-derives available."""
    resource = await resource_service.get_resource_or_404(session, resource_id, for_update=True)
    await resource_service.update_resource(session, principal, resource, resource_in)
    return await _response(session, resource, "Resource updated successfully")


@router.delete("/{resource_id}", response_model=MessageResponse)
async def delete_resource(
    resource_id: int,
    principal: Principal = Depends(require_admin_or_above),
    session: AsyncSession = Depends(get_session),
):
    resource = await resource_service.get_resource_or_404(session, resource_id, for_update=True)
    await resource_service.delete_resource(session, resource)
    return MessageResponse(message="Resource deleted successfully")


# ---------------------------------------------------------------------------
# Allocation ledger
# ---------------------------------------------------------------------------


@router.post("/{resource_id}/allocate", response_model=ResourceResponse)
async def allocate_resource(
    resource_id: int,
    body: AllocationChange,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    resource = await resource_service.get_resource_or_404(session, resource_id, for_update=True)
    await resource_service.allocate(session, resource, body.quantity, body.project_id, principal.id)
    return await _response(session, resource, "Resource allocated successfully")


@router.post("/{resource_id}/deallocate", response_model=ResourceResponse)
async def deallocate_resource(
    resource_id: int,
    body: AllocationChange,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    resource = await resource_service.get_resource_or_404(session, resource_id, for_update=True)
    await resource_service.deallocate(
        session, resource, body.quantity, body.project_id, principal.id
    )
    return await _response(session, resource, "Resource deallocated successfully")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@router.post("/{resource_id}/requests", response_model=ResourceRequestResponse, status_code=201)
async def create_request(
    resource_id: int,
    body: ResourceRequestCreate,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    resource = await resource_service.get_resource_or_404(session, resource_id)
    request = await resource_service.create_request(session, principal, resource, body)
    return ResourceRequestResponse(
        request=ResourceRequestRead.model_validate(request),
        message="Resource request submitted",
    )


async def _decide(
    session: AsyncSession,
    principal: Principal,
    resource_id: int,
    index: int,
    decision: RequestStatus,
    note: Optional[str],
) -> ResourceRequestResponse:
    resource = await resource_service.get_resource_or_404(session, resource_id, for_update=True)
    requests = await resource_service.list_requests(session, resource.id)
    request = resource_service.request_at(requests, index)
    await resource_service.process_request(session, principal, resource, request, decision, note)
    return ResourceRequestResponse(
        request=ResourceRequestRead.model_validate(request),
        message=f"Request {decision.value}",
    )


@router.put("/{resource_id}/requests/{index}/approve", response_model=ResourceRequestResponse)
async def approve_request(
    resource_id: int,
    index: int,
    body: Optional[RequestNote] = None,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    note = body.note if body else None
    return await _decide(session, principal, resource_id, index, RequestStatus.APPROVED, note)


@router.put("/{resource_id}/requests/{index}/deny", response_model=ResourceRequestResponse)
async def deny_request(
    resource_id: int,
    index: int,
    body: Optional[RequestNote] = None,
    principal: Principal = Depends(require_manager_or_above),
    session: AsyncSession = Depends(get_session),
):
    note = body.note if body else None
    return await _decide(session, principal, resource_id, index, RequestStatus.DENIED, note)
