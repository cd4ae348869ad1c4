"""Team model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import IDMixin, TimestampMixin


class Team(IDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "teams"

    team_name: str = Field(nullable=False, unique=True, index=True)
    manager_name: str = Field(nullable=False)
    email: Optional[str] = None
    is_active: bool = Field(default=True, nullable=False)
    admin_id: Optional[int] = Field(default=None, foreign_key="accounts.id", index=True)
    super_admin_id: Optional[int] = Field(default=None, foreign_key="accounts.id")
