"""Authentication request/response schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import EmailStr, Field

from .common import CamelModel
from .teams import TeamRead
from .users import AccountRead


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RegisterSuperAdmin(CamelModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)


class RegisterAdmin(RegisterSuperAdmin):
    super_admin_id: int


class RegisterTeam(CamelModel):
    team_name: str = Field(min_length=2, max_length=100)
    manager_name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)
    admin_id: Optional[int] = None
    super_admin_id: Optional[int] = None


class RegisterUser(CamelModel):
    username: str = Field(min_length=3, max_length=50)
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)
    team_id: int


class TokenResponse(CamelModel):
    message: str
    token: str
    user: AccountRead
    team: Optional[TeamRead] = None


class MeResponse(CamelModel):
    user: AccountRead
    team: Optional[TeamRead] = None
