"""Account and member management schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .common import CamelModel, Pagination, Role, reject_null


class AccountRead(CamelModel):
    """Public view of any principal. Never carries the password hash."""
    id: int
    email: str
    name: str
    username: Optional[str] = None
    role: Role
    is_active: bool
    team_id: Optional[int] = None
    super_admin_id: Optional[int] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime


class AccountUpdate(CamelModel):
    """Profile update. Role, password and id are not accepted here."""
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    username: Optional[str] = Field(default=None, min_length=3, max_length=50)
    email: Optional[EmailStr] = None
    team_id: Optional[int] = None

    @field_validator("name", "email")
    @classmethod
    def _required_columns(cls, value):
        return reject_null(value)


class StatusUpdate(CamelModel):
    is_active: bool


class AccountOption(CamelModel):
    id: int
    name: str
    email: str
    team_id: Optional[int] = None


class AccountResponse(CamelModel):
    user: AccountRead
    message: Optional[str] = None


class AccountListResponse(BaseModel):
    users: List[AccountRead]
    pagination: Pagination


class AccountDropdownResponse(BaseModel):
    users: List[AccountOption]


class AccountStats(CamelModel):
    user_id: int
    created_tickets: int
    assigned_tickets: int
    open_assigned_tickets: int
    completed_tickets: int
    managed_projects: int
