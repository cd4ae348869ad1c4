"""
Account service: registration, login and member management for all
principal kinds.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import delete, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Principal, create_jwt, hash_password, verify_password
from app.core.errors import (
    AccountDeactivated,
    Conflict,
    DuplicateEntry,
    Forbidden,
    NotFound,
    Unauthenticated,
    ValidationFailed,
)
from app.core.permissions import ADMIN_ROLES, owns_or_manages
from app.models.account import Account
from app.models.base import utcnow
from app.models.notification import Notification
from app.models.project import Project
from app.models.resource import Resource, ResourceAllocation, ResourceHistory, ResourceRequest
from app.models.team import Team
from app.models.ticket import Ticket, TicketComment
from ticketdesk_shared.schemas.auth import (
    RegisterAdmin,
    RegisterSuperAdmin,
    RegisterTeam,
    RegisterUser,
)
from ticketdesk_shared.schemas.common import ProjectStatus, Role, TicketStatus
from ticketdesk_shared.schemas.tickets import OPEN_STATUSES
from ticketdesk_shared.schemas.users import AccountUpdate

log = structlog.get_logger()

ACTIVE_PROJECT_STATUSES = (ProjectStatus.ACTIVE.value, ProjectStatus.ON_HOLD.value)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_account_or_404(session: AsyncSession, account_id: int) -> Account:
    account = await session.get(Account, account_id)
    if not account:
        raise NotFound("User not found")
    return account


async def get_account_by_email(session: AsyncSession, email: str) -> Optional[Account]:
    result = await session.execute(
        select(Account).where(func.lower(Account.email) == email.lower())
    )
    return result.scalar_one_or_none()


async def _ensure_email_free(session: AsyncSession, email: str) -> None:
    if await get_account_by_email(session, email):
        raise DuplicateEntry("An account already exists with this email")


async def _ensure_username_free(session: AsyncSession, username: str) -> None:
    result = await session.execute(
        select(Account.id).where(func.lower(Account.username) == username.lower())
    )
    if result.first():
        raise DuplicateEntry("Username is already taken")


async def _require_role(
    session: AsyncSession, account_id: int, role: Role, field: str
) -> Account:
    account = await session.get(Account, account_id)
    if not account or account.role != role.value:
        label = role.value.replace("_", " ")
        raise ValidationFailed(
            f"Invalid {label}", details=[{"field": field, "message": f"{label} not found"}]
        )
    return account


def _new_account(
    *, email: str, password: str, role: Role, name: str, **extra
) -> Account:
    return Account(
        email=email.lower(),
        password_hash=hash_password(password),
        role=role.value,
        name=name,
        **extra,
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


async def register_super_admin(session: AsyncSession, body: RegisterSuperAdmin) -> Account:
    await _ensure_email_free(session, body.email)
    account = _new_account(
        email=body.email, password=body.password, role=Role.SUPER_ADMIN, name=body.name
    )
    session.add(account)
    await session.flush()
    log.info("account.registered", account_id=account.id, role=account.role)
    return account


async def register_admin(session: AsyncSession, body: RegisterAdmin) -> Account:
    await _ensure_email_free(session, body.email)
    await _require_role(session, body.super_admin_id, Role.SUPER_ADMIN, "superAdminId")
    account = _new_account(
        email=body.email,
        password=body.password,
        role=Role.ADMIN,
        name=body.name,
        super_admin_id=body.super_admin_id,
    )
    session.add(account)
    await session.flush()
    log.info("account.registered", account_id=account.id, role=account.role)
    return account


async def register_team(session: AsyncSession, body: RegisterTeam) -> tuple[Account, Team]:
    await _ensure_email_free(session, body.email)
    existing = await session.execute(
        select(Team.id).where(func.lower(Team.team_name) == body.team_name.lower())
    )
    if existing.first():
        raise DuplicateEntry("A team with this name already exists")
    if body.admin_id is not None:
        await _require_role(session, body.admin_id, Role.ADMIN, "adminId")
    if body.super_admin_id is not None:
        await _require_role(session, body.super_admin_id, Role.SUPER_ADMIN, "superAdminId")

    team = Team(
        team_name=body.team_name,
        manager_name=body.manager_name,
        email=body.email.lower(),
        admin_id=body.admin_id,
        super_admin_id=body.super_admin_id,
    )
    session.add(team)
    await session.flush()

    account = _new_account(
        email=body.email,
        password=body.password,
        role=Role.TEAM,
        name=body.manager_name,
        team_id=team.id,
    )
    session.add(account)
    await session.flush()
    log.info("account.registered", account_id=account.id, role=account.role, team_id=team.id)
    return account, team


async def register_user(session: AsyncSession, body: RegisterUser) -> Account:
    await _ensure_email_free(session, body.email)
    await _ensure_username_free(session, body.username)
    team = await session.get(Team, body.team_id)
    if not team:
        raise ValidationFailed(
            "Invalid team", details=[{"field": "teamId", "message": "Team not found"}]
        )
    if not team.is_active:
        raise ValidationFailed(
            "Team is not active", details=[{"field": "teamId", "message": "Team is deactivated"}]
        )
    account = _new_account(
        email=body.email,
        password=body.password,
        role=Role.USER,
        name=body.name,
        username=body.username,
        team_id=team.id,
    )
    session.add(account)
    await session.flush()
    log.info("account.registered", account_id=account.id, role=account.role, team_id=team.id)
    return account


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


async def authenticate(session: AsyncSession, email: str, password: str) -> Account:
    """Check credentials. The same error covers unknown emails and bad passwords."""
    account = await get_account_by_email(session, email)
    if account is None or not verify_password(password, account.password_hash):
        log.info("auth.login_failed", email=email)
        raise Unauthenticated("Invalid credentials")
    if not account.is_active:
        raise AccountDeactivated()
    if account.role == Role.TEAM.value:
        team = await session.get(Team, account.team_id)
        if team is None or not team.is_active:
            raise AccountDeactivated("Team is deactivated")

    account.last_login_at = utcnow()
    session.add(account)
    await session.flush()
    log.info("auth.login", account_id=account.id, role=account.role)
    return account


def issue_token(account: Account) -> str:
    token, _ = create_jwt(account.id, account.email, account.role)
    return token


# ---------------------------------------------------------------------------
# Member management
# ---------------------------------------------------------------------------


def build_list_query(
    principal: Principal,
    *,
    role: Optional[Role] = None,
    team: Optional[int] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
):
    stmt = select(Account)
    if principal.role == Role.TEAM:
        stmt = stmt.where(Account.role == Role.USER.value, Account.team_id == principal.team_id)
    elif role:
        stmt = stmt.where(Account.role == role.value)
    if team is not None:
        stmt = stmt.where(Account.team_id == team)
    if is_active is not None:
        stmt = stmt.where(Account.is_active == is_active)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                Account.name.ilike(pattern),
                Account.email.ilike(pattern),
                Account.username.ilike(pattern),
            )
        )
    return stmt.order_by(Account.name, Account.id)


def ensure_account_access(principal: Principal, account: Account) -> None:
    """Members reach only themselves; team managers their own members."""
    if owns_or_manages(principal, account, "id"):
        return
    if (
        principal.role == Role.TEAM
        and account.role == Role.USER.value
        and account.team_id == principal.team_id
    ):
        return
    raise Forbidden("You can only access your own profile")


async def update_account(
    session: AsyncSession, principal: Principal, account: Account, body: AccountUpdate
) -> Account:
    data = body.model_dump(exclude_unset=True)
    if data.get("email") and data["email"].lower() != account.email:
        await _ensure_email_free(session, data["email"])
        data["email"] = data["email"].lower()
    if data.get("username") and data["username"] != account.username:
        await _ensure_username_free(session, data["username"])
    if "team_id" in data:
        if principal.role not in ADMIN_ROLES:
            raise Forbidden("Only admins can move members between teams")
        if account.role != Role.USER.value:
            raise ValidationFailed("Only members belong to a team")
        if data["team_id"] is None or not await session.get(Team, data["team_id"]):
            raise ValidationFailed(
                "Invalid team", details=[{"field": "teamId", "message": "Team not found"}]
            )

    for key, value in data.items():
        setattr(account, key, value)
    session.add(account)
    await session.flush()
    log.info("account.updated", account_id=account.id, actor_id=principal.id)
    return account


async def set_account_status(
    session: AsyncSession, principal: Principal, account: Account, is_active: bool
) -> Account:
    if account.id == principal.id:
        raise Conflict("You cannot change your own status")
    if account.role in {r.value for r in ADMIN_ROLES} and principal.role != Role.SUPER_ADMIN:
        raise Forbidden("Only super admins can change admin accounts")
    account.is_active = is_active
    session.add(account)
    await session.flush()
    log.info("account.status_changed", account_id=account.id, is_active=is_active)
    return account


async def _count(session: AsyncSession, model, *conditions) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(*conditions))
    return result.scalar_one()


async def account_stats(session: AsyncSession, account: Account) -> dict:
    open_values = [s.value for s in OPEN_STATUSES]
    return {
        "user_id": account.id,
        "created_tickets": await _count(session, Ticket, Ticket.created_by == account.id),
        "assigned_tickets": await _count(session, Ticket, Ticket.assigned_to == account.id),
        "open_assigned_tickets": await _count(
            session, Ticket, Ticket.assigned_to == account.id, Ticket.status.in_(open_values)
        ),
        "completed_tickets": await _count(
            session,
            Ticket,
            Ticket.assigned_to == account.id,
            Ticket.status == TicketStatus.COMPLETED.value,
        ),
        "managed_projects": await _count(session, Project, Project.manager_id == account.id),
    }


async def delete_account(session: AsyncSession, principal: Principal, account: Account) -> None:
    """Delete an account that has no open work and no recorded activity."""
    if account.id == principal.id:
        raise Conflict("You cannot delete your own account")
    if account.role in {r.value for r in ADMIN_ROLES} and principal.role != Role.SUPER_ADMIN:
        raise Forbidden("Only super admins can delete admin accounts")

    open_values = [s.value for s in OPEN_STATUSES]
    open_tickets = await _count(
        session,
        Ticket,
        or_(Ticket.created_by == account.id, Ticket.assigned_to == account.id),
        Ticket.status.in_(open_values),
    )
    if open_tickets:
        raise Conflict(
            f"User has {open_tickets} active ticket(s)",
            error="Cannot delete user with active tickets",
        )
    active_projects = await _count(
        session,
        Project,
        Project.manager_id == account.id,
        Project.status.in_(ACTIVE_PROJECT_STATUSES),
    )
    if active_projects:
        raise Conflict(
            f"User manages {active_projects} active project(s)",
            error="Cannot delete user with active projects",
        )

    history = (
        await _count(
            session,
            Ticket,
            or_(Ticket.created_by == account.id, Ticket.approved_by == account.id),
        )
        + await _count(session, TicketComment, TicketComment.author_id == account.id)
        + await _count(
            session,
            Resource,
            or_(Resource.created_by == account.id, Resource.managed_by == account.id),
        )
        + await _count(session, ResourceHistory, ResourceHistory.performed_by == account.id)
        + await _count(session, ResourceAllocation, ResourceAllocation.allocated_by == account.id)
        + await _count(
            session,
            ResourceRequest,
            or_(
                ResourceRequest.requested_by == account.id,
                ResourceRequest.processed_by == account.id,
            ),
        )
    )
    if history:
        raise Conflict(
            "This account has recorded activity; deactivate it instead",
            error="Cannot delete user with history",
        )

    await session.execute(
        update(Ticket).where(Ticket.assigned_to == account.id).values(assigned_to=None)
    )
    await session.execute(
        update(Project).where(Project.manager_id == account.id).values(manager_id=None)
    )
    await session.execute(update(Team).where(Team.admin_id == account.id).values(admin_id=None))
    await session.execute(
        update(Team).where(Team.super_admin_id == account.id).values(super_admin_id=None)
    )
    await session.execute(
        update(Account).where(Account.super_admin_id == account.id).values(super_admin_id=None)
    )
    await session.execute(delete(Notification).where(Notification.recipient_id == account.id))
    await session.delete(account)
    await session.flush()
    log.info("account.deleted", account_id=account.id, actor_id=principal.id)
