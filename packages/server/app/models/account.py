"""Account model: the login credential of every principal kind."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import IDMixin, TimestampMixin


class Account(IDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "accounts"
    __table_args__ = (
        sa.CheckConstraint(
            "role <> 'user' OR team_id IS NOT NULL", name="ck_accounts_user_has_team"
        ),
    )

    email: str = Field(nullable=False, unique=True, index=True)
    password_hash: str = Field(nullable=False)
    role: str = Field(nullable=False, index=True)  # super_admin | admin | team | user
    name: str = Field(nullable=False)
    username: Optional[str] = Field(default=None, unique=True)
    is_active: bool = Field(default=True, nullable=False)
    # user: team membership; team: the team this credential manages
    team_id: Optional[int] = Field(
        default=None,
        index=True,
        sa_column_args=[sa.ForeignKey("teams.id", use_alter=True, name="fk_accounts_team_id")],
    )
    # admin: the super admin that registered it
    super_admin_id: Optional[int] = Field(default=None, foreign_key="accounts.id")
    last_login_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
