"""Project model."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import IDMixin, TimestampMixin

JSONColumn = sa.JSON().with_variant(JSONB, "postgresql")


class Project(IDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"

    name: str = Field(nullable=False, max_length=100)
    code: str = Field(nullable=False, unique=True, index=True, max_length=20)
    description: str = Field(default="", nullable=False, sa_type=sa.Text)
    status: str = Field(default="active", nullable=False)  # active | on-hold | completed | cancelled
    priority: str = Field(default="medium", nullable=False)  # low | medium | high | critical
    start_date: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    end_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    actual_end_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    budget: Optional[float] = None
    progress: int = Field(default=0, nullable=False)

    manager_id: Optional[int] = Field(default=None, foreign_key="accounts.id", index=True)
    team_id: Optional[int] = Field(default=None, foreign_key="teams.id", index=True)

    departments: list = Field(default_factory=list, sa_type=JSONColumn, nullable=False)
    tags: list = Field(default_factory=list, sa_type=JSONColumn, nullable=False)
    client: dict = Field(default_factory=dict, sa_type=JSONColumn, nullable=False)
    risks: list = Field(default_factory=list, sa_type=JSONColumn, nullable=False)
    documents: list = Field(default_factory=list, sa_type=JSONColumn, nullable=False)
    milestones: list = Field(default_factory=list, sa_type=JSONColumn, nullable=False)
