"""Team schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .common import CamelModel, Pagination, reject_null
from .users import AccountRead


class TeamUpdate(CamelModel):
    team_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    manager_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    admin_id: Optional[int] = None

    @field_validator("team_name", "manager_name")
    @classmethod
    def _required_columns(cls, value):
        return reject_null(value)


class TeamRead(CamelModel):
    id: int
    team_name: str
    manager_name: str
    email: Optional[str] = None
    is_active: bool
    admin_id: Optional[int] = None
    super_admin_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class TeamSummary(TeamRead):
    member_count: int = 0


class TeamDetail(TeamRead):
    members: List[AccountRead] = Field(default_factory=list)


class TeamOption(CamelModel):
    id: int
    team_name: str


class TeamResponse(CamelModel):
    team: TeamDetail
    message: Optional[str] = None


class TeamListResponse(BaseModel):
    teams: List[TeamSummary]
    pagination: Pagination


class TeamDropdownResponse(BaseModel):
    teams: List[TeamOption]


class TeamStats(CamelModel):
    team_id: int
    total_members: int
    active_members: int
    total_tickets: int
    open_tickets: int
    completed_tickets: int
    total_projects: int
