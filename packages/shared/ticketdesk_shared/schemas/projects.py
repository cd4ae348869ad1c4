"""Project schemas."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .common import CamelModel, Level, Pagination, ProjectStatus, reject_null


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class ProjectBase(CamelModel):
    name: str = Field(min_length=3, max_length=100)
    code: str = Field(min_length=2, max_length=20, pattern=r"^[A-Za-z0-9_-]+$")
    description: str = Field(default="", max_length=1000)
    status: ProjectStatus = ProjectStatus.ACTIVE
    priority: Level = Level.MEDIUM
    start_date: datetime
    end_date: Optional[datetime] = None
    budget: Optional[float] = Field(default=None, ge=0)
    progress: int = Field(default=0, ge=0, le=100)
    departments: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    client: dict = Field(default_factory=dict)
    risks: List[dict] = Field(default_factory=list)
    documents: List[dict] = Field(default_factory=list)
    milestones: List[dict] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_dates(self):
        if self.end_date is not None and _utc(self.end_date) < _utc(self.start_date):
            raise ValueError("endDate must not be before startDate")
        return self


class ProjectCreate(ProjectBase):
    manager_id: Optional[int] = None
    team_id: Optional[int] = None


class ProjectUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    code: Optional[str] = Field(default=None, min_length=2, max_length=20, pattern=r"^[A-Za-z0-9_-]+$")
    description: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[ProjectStatus] = None
    priority: Optional[Level] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    budget: Optional[float] = Field(default=None, ge=0)
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    manager_id: Optional[int] = None
    team_id: Optional[int] = None
    departments: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    client: Optional[dict] = None
    risks: Optional[List[dict]] = None
    documents: Optional[List[dict]] = None
    milestones: Optional[List[dict]] = None

    @field_validator(
        "name", "code", "description", "status", "priority", "start_date", "progress",
        "departments", "tags", "client", "risks", "documents", "milestones",
    )
    @classmethod
    def _required_columns(cls, value):
        return reject_null(value)


class ProjectRead(CamelModel):
    id: int
    name: str
    code: str
    description: str
    status: str
    priority: str
    start_date: datetime
    end_date: Optional[datetime] = None
    actual_end_date: Optional[datetime] = None
    budget: Optional[float] = None
    progress: int
    manager_id: Optional[int] = None
    team_id: Optional[int] = None
    departments: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    client: dict = Field(default_factory=dict)
    risks: List[dict] = Field(default_factory=list)
    documents: List[dict] = Field(default_factory=list)
    milestones: List[dict] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ProjectOption(CamelModel):
    id: int
    name: str
    code: str


class ProjectResponse(CamelModel):
    project: ProjectRead
    message: Optional[str] = None


class ProjectListResponse(BaseModel):
    projects: List[ProjectRead]
    pagination: Pagination


class ProjectDropdownResponse(BaseModel):
    projects: List[ProjectOption]


class ProjectStats(CamelModel):
    project_id: int
    total_tickets: int
    by_status: dict[str, int]
    progress: int
