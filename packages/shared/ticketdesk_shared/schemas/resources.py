"""Resource ledger schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .common import (
    CamelModel,
    Level,
    Pagination,
    ResourceCategory,
    ResourceStatus,
    ResourceType,
    ResourceUnit,
    reject_null,
)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ResourceCreate(CamelModel):
    name: str = Field(min_length=3, max_length=100)
    type: ResourceType
    category: ResourceCategory
    description: str = Field(min_length=10, max_length=500)
    quantity: int = Field(ge=1)
    unit: ResourceUnit
    priority: Level = Level.MEDIUM
    cost: dict = Field(default_factory=dict)
    location: dict = Field(default_factory=dict)
    specifications: dict = Field(default_factory=dict)
    supplier: dict = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    departments: List[str] = Field(default_factory=list)
    managed_by: Optional[int] = None


class ResourceUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    type: Optional[ResourceType] = None
    category: Optional[ResourceCategory] = None
    description: Optional[str] = Field(default=None, min_length=10, max_length=500)
    quantity: Optional[int] = Field(default=None, ge=1)
    unit: Optional[ResourceUnit] = None
    status: Optional[ResourceStatus] = None
    priority: Optional[Level] = None
    cost: Optional[dict] = None
    location: Optional[dict] = None
    specifications: Optional[dict] = None
    supplier: Optional[dict] = None
    tags: Optional[List[str]] = None
    departments: Optional[List[str]] = None
    managed_by: Optional[int] = None

    @field_validator(
        "name", "type", "category", "description", "quantity", "unit", "status", "priority",
        "cost", "location", "specifications", "supplier", "tags", "departments",
    )
    @classmethod
    def _required_columns(cls, value):
        return reject_null(value)


class AllocationChange(CamelModel):
    """Request body for POST /resources/{id}/allocate and /deallocate."""
    project_id: int
    quantity: int = Field(ge=1)


class ResourceRequestCreate(CamelModel):
    quantity: int = Field(ge=1)
    reason: Optional[str] = None
    project_id: Optional[int] = None
    ticket_id: Optional[int] = None


class RequestNote(CamelModel):
    note: Optional[str] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class AllocationRead(CamelModel):
    id: int
    project_id: int
    allocated_quantity: int
    allocated_by: int
    allocated_at: datetime


class HistoryRead(CamelModel):
    id: int
    action: str
    quantity: Optional[int] = None
    description: str
    performed_by: int
    performed_at: datetime


class ResourceRequestRead(CamelModel):
    id: int
    resource_id: int
    ticket_id: Optional[int] = None
    project_id: Optional[int] = None
    quantity: int
    reason: Optional[str] = None
    status: str
    requested_by: int
    requested_at: datetime
    processed_by: Optional[int] = None
    processed_at: Optional[datetime] = None
    decision_note: Optional[str] = None


class ResourceRead(CamelModel):
    id: int
    name: str
    type: str
    category: str
    description: str
    quantity: int
    unit: str
    available_quantity: int
    allocated_quantity: int
    status: str
    priority: str
    cost: dict = Field(default_factory=dict)
    location: dict = Field(default_factory=dict)
    specifications: dict = Field(default_factory=dict)
    supplier: dict = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    departments: List[str] = Field(default_factory=list)
    created_by: int
    managed_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class ResourceDetail(ResourceRead):
    allocations: List[AllocationRead] = Field(default_factory=list)
    requests: List[ResourceRequestRead] = Field(default_factory=list)


class ResourceResponse(CamelModel):
    resource: ResourceDetail
    message: Optional[str] = None


class ResourceListResponse(BaseModel):
    resources: List[ResourceRead]
    pagination: Pagination


class ResourceRequestResponse(CamelModel):
    request: ResourceRequestRead
    message: Optional[str] = None


class HistoryResponse(BaseModel):
    history: List[HistoryRead]


class ResourceOverview(CamelModel):
    total_resources: int
    total_quantity: int
    available_quantity: int
    allocated_quantity: int
    utilization_rate: float
    by_type: dict[str, int]
    by_status: dict[str, int]
    pending_requests: int
