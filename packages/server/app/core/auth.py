"""
Authentication and authorization for Ticketdesk.

Supports:
- Email/password login for all four principal kinds (super_admin, admin, team, user)
- Bearer JWT sessions with a Redis revocation list
- A single discriminated principal lookup (account id + role claim)
- Role-gate dependencies for FastAPI routes
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import AccountDeactivated, Forbidden, Unauthenticated
from app.core.permissions import is_admin_or_above, is_manager_or_above
from app.core.redis import get_redis
from app.models.account import Account
from ticketdesk_shared.schemas.common import Role

log = structlog.get_logger()
settings = get_settings()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with the configured cost factor."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    account_id: int,
    email: str,
    role: str,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(account_id),
        "email": email,
        "role": role,
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# JWT Revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_jwt(jti: str, ttl_seconds: int = 3600) -> None:
    """Add a JWT ID to the revocation list in Redis."""
    redis = await get_redis()
    await redis.setex(f"jwt:revoked:{jti}", max(ttl_seconds, 1), "1")


async def is_jwt_revoked(jti: str) -> bool:
    """Check if a JWT ID has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


# ---------------------------------------------------------------------------
# Identity resolution
# ---------------------------------------------------------------------------

class Principal:
    """The resolved caller: its account row and normalized role."""

    def __init__(self, account: Account, claims: Optional[dict[str, Any]] = None):
        self.account = account
        self.id: int = account.id
        self.role = Role.normalize(account.role)
        self.team_id: Optional[int] = account.team_id
        self.claims = claims or {}

    def __repr__(self) -> str:
        return f"<Principal id={self.id} role={self.role.value}>"


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise Unauthenticated("No token provided")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("No token provided")
    return token.strip()


async def resolve_principal(token: str, session: AsyncSession) -> Principal:
    """Turn a bearer token into a Principal.

    The role claim selects which kind of principal the id refers to; the
    stored account must carry the same role.
    """
    try:
        payload = decode_jwt(token)
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid token")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise Unauthenticated("Token has been revoked")

    try:
        account_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise Unauthenticated("Invalid token")

    role = Role.normalize(payload.get("role"))
    account = await session.get(Account, account_id)
    if account is None or Role.normalize(account.role) != role:
        raise Unauthenticated("Invalid token")
    if not account.is_active:
        raise AccountDeactivated()

    return Principal(account, payload)


async def get_current_principal(
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> Principal:
    """Main authentication dependency: resolves the bearer token."""
    token = bearer_token(authorization)
    return await resolve_principal(token, session)


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

async def require_principal(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Any authenticated principal can access this endpoint."""
    return principal


async def require_manager_or_above(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Requires team manager, admin or super admin."""
    if not is_manager_or_above(principal):
        raise Forbidden("Manager or admin privileges required")
    return principal


async def require_admin_or_above(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Requires admin or super admin."""
    if not is_admin_or_above(principal):
        raise Forbidden("Admin privileges required")
    return principal


async def require_super_admin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Requires super admin."""
    if principal.role != Role.SUPER_ADMIN:
        raise Forbidden("Super admin privileges required")
    return principal
