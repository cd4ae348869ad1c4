"""Notification model."""

from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import IDMixin, TimestampMixin


class Notification(IDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "notifications"

    recipient_id: int = Field(
        nullable=False,
        index=True,
        sa_column_args=[sa.ForeignKey("accounts.id", ondelete="CASCADE")],
    )
    ticket_id: Optional[int] = Field(
        default=None,
        sa_column_args=[sa.ForeignKey("tickets.id", ondelete="SET NULL")],
    )
    title: str = Field(nullable=False)
    message: str = Field(nullable=False, sa_type=sa.Text)
    type: str = Field(nullable=False)  # see NotificationType
    priority: str = Field(default="medium", nullable=False)
    is_read: bool = Field(default=False, nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    meta: dict = Field(
        default_factory=dict,
        sa_type=sa.JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
    )
