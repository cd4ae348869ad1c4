"""Resource model and its ledger child tables."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import IDMixin, TimestampMixin, utcnow

JSONColumn = sa.JSON().with_variant(JSONB, "postgresql")


class Resource(IDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "resources"
    __table_args__ = (
        sa.CheckConstraint("available_quantity >= 0", name="ck_resources_available_non_negative"),
        sa.CheckConstraint("allocated_quantity >= 0", name="ck_resources_allocated_non_negative"),
        sa.CheckConstraint(
            "available_quantity + allocated_quantity = quantity",
            name="ck_resources_quantity_balance",
        ),
    )

    name: str = Field(nullable=False, max_length=100, index=True)
    type: str = Field(nullable=False, index=True)
    category: str = Field(nullable=False)
    description: str = Field(nullable=False, sa_type=sa.Text)
    quantity: int = Field(nullable=False)
    unit: str = Field(nullable=False)
    available_quantity: int = Field(nullable=False)
    allocated_quantity: int = Field(default=0, nullable=False)
    status: str = Field(default="available", nullable=False, index=True)
    priority: str = Field(default="medium", nullable=False)

    cost: dict = Field(default_factory=dict, sa_type=JSONColumn, nullable=False)
    location: dict = Field(default_factory=dict, sa_type=JSONColumn, nullable=False)
    specifications: dict = Field(default_factory=dict, sa_type=JSONColumn, nullable=False)
    supplier: dict = Field(default_factory=dict, sa_type=JSONColumn, nullable=False)
    tags: list = Field(default_factory=list, sa_type=JSONColumn, nullable=False)
    departments: list = Field(default_factory=list, sa_type=JSONColumn, nullable=False)

    created_by: int = Field(foreign_key="accounts.id", nullable=False)
    managed_by: Optional[int] = Field(default=None, foreign_key="accounts.id")


class ResourceAllocation(IDMixin, SQLModel, table=True):
    __tablename__ = "resource_allocations"
    __table_args__ = (
        sa.UniqueConstraint("resource_id", "project_id", name="uq_resource_allocations_project"),
    )

    resource_id: int = Field(
        nullable=False,
        index=True,
        sa_column_args=[sa.ForeignKey("resources.id", ondelete="CASCADE")],
    )
    project_id: int = Field(foreign_key="projects.id", nullable=False, index=True)
    allocated_quantity: int = Field(nullable=False)
    allocated_by: int = Field(foreign_key="accounts.id", nullable=False)
    allocated_at: datetime = Field(
        default_factory=utcnow, nullable=False, sa_type=sa.DateTime(timezone=True)
    )


class ResourceHistory(IDMixin, SQLModel, table=True):
    __tablename__ = "resource_history"

    resource_id: int = Field(
        nullable=False,
        index=True,
        sa_column_args=[sa.ForeignKey("resources.id", ondelete="CASCADE")],
    )
    action: str = Field(nullable=False)  # created | allocated | deallocated | updated | request_*
    quantity: Optional[int] = None
    description: str = Field(nullable=False)
    performed_by: int = Field(foreign_key="accounts.id", nullable=False)
    performed_at: datetime = Field(
        default_factory=utcnow, nullable=False, sa_type=sa.DateTime(timezone=True)
    )


class ResourceRequest(IDMixin, SQLModel, table=True):
    __tablename__ = "resource_requests"

    resource_id: int = Field(
        nullable=False,
        index=True,
        sa_column_args=[sa.ForeignKey("resources.id", ondelete="CASCADE")],
    )
    ticket_id: Optional[int] = Field(
        default=None,
        index=True,
        sa_column_args=[sa.ForeignKey("tickets.id", ondelete="CASCADE")],
    )
    project_id: Optional[int] = Field(default=None, foreign_key="projects.id")
    quantity: int = Field(nullable=False)
    reason: Optional[str] = None
    status: str = Field(default="pending", nullable=False)  # pending | approved | denied
    requested_by: int = Field(foreign_key="accounts.id", nullable=False)
    requested_at: datetime = Field(
        default_factory=utcnow, nullable=False, sa_type=sa.DateTime(timezone=True)
    )
    processed_by: Optional[int] = Field(default=None, foreign_key="accounts.id")
    processed_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    decision_note: Optional[str] = None
