"""Ticket and ticket comment models."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import IDMixin, TimestampMixin, utcnow

JSONList = sa.JSON().with_variant(JSONB, "postgresql")


class Ticket(IDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tickets"

    title: str = Field(nullable=False, max_length=200)
    description: str = Field(nullable=False, sa_type=sa.Text)
    type: str = Field(nullable=False)  # bug | feature | task | improvement | support | requirement
    category: str = Field(nullable=False)
    department: str = Field(nullable=False)
    priority: str = Field(default="MEDIUM", nullable=False, index=True)
    status: str = Field(default="PENDING_APPROVAL", nullable=False, index=True)

    due_date: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    expected_closure: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    actual_closure: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None

    created_by: int = Field(foreign_key="accounts.id", nullable=False, index=True)
    team_id: int = Field(foreign_key="teams.id", nullable=False, index=True)
    assigned_team_id: Optional[int] = Field(default=None, foreign_key="teams.id", index=True)
    assigned_to: Optional[int] = Field(default=None, foreign_key="accounts.id", index=True)
    project_id: Optional[int] = Field(default=None, foreign_key="projects.id", index=True)

    approved_by: Optional[int] = Field(default=None, foreign_key="accounts.id")
    approved_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    rejection_reason: Optional[str] = None

    tags: list = Field(default_factory=list, sa_type=JSONList, nullable=False)
    attachments: list = Field(default_factory=list, sa_type=JSONList, nullable=False)


class TicketComment(IDMixin, SQLModel, table=True):
    __tablename__ = "ticket_comments"

    ticket_id: int = Field(
        nullable=False,
        index=True,
        sa_column_args=[sa.ForeignKey("tickets.id", ondelete="CASCADE")],
    )
    author_id: int = Field(foreign_key="accounts.id", nullable=False)
    content: str = Field(nullable=False, sa_type=sa.Text)
    is_internal: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
