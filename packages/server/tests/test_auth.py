"""
Tests for authentication and identity resolution.

Covers:
- Password hashing and JWT creation/decoding
- Bearer token resolution (missing, malformed, expired, revoked, role mismatch)
- Per-role registration and duplicate emails
- Login, including deactivated members and teams
- /auth/me and /auth/logout
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import jwt as pyjwt
import pytest
from httpx import AsyncClient

from app.core.auth import create_jwt, decode_jwt, hash_password, verify_password
from .factories import PASSWORD, auth_header, make_account


# ---------------------------------------------------------------------------
# Unit Tests: Password hashing
# ---------------------------------------------------------------------------

class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("MySecureP@ssw0rd!")
        assert hashed != "MySecureP@ssw0rd!"
        assert verify_password("MySecureP@ssw0rd!", hashed)

    def test_wrong_password_fails(self):
        hashed = hash_password("correct-password")
        assert not verify_password("wrong-password", hashed)

    def test_different_hashes_for_same_password(self):
        """bcrypt uses random salt, so hashes differ."""
        assert hash_password("same") != hash_password("same")


# ---------------------------------------------------------------------------
# Unit Tests: JWT
# ---------------------------------------------------------------------------

class TestJWT:
    def test_create_and_decode(self):
        token, jti = create_jwt(42, "someone@desk.example.com", "admin")
        payload = decode_jwt(token)
        assert payload["sub"] == "42"
        assert payload["email"] == "someone@desk.example.com"
        assert payload["role"] == "admin"
        assert payload["jti"] == jti

    def test_expired_jwt_raises(self):
        token, _ = create_jwt(1, "a@desk.example.com", "user", expires_delta=timedelta(seconds=-1))
        with pytest.raises(pyjwt.ExpiredSignatureError):
            decode_jwt(token)

    def test_tampered_jwt_raises(self):
        token, _ = create_jwt(1, "a@desk.example.com", "user")
        forged, _ = create_jwt(1, "a@desk.example.com", "super_admin")
        header, _, signature = token.split(".")
        with pytest.raises(pyjwt.InvalidSignatureError):
            decode_jwt(".".join([header, forged.split(".")[1], signature]))


# ---------------------------------------------------------------------------
# Identity resolution
# ---------------------------------------------------------------------------

class TestIdentityResolution:
    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient):
        resp = await client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Access denied", "message": "No token provided"}

    @pytest.mark.asyncio
    async def test_non_bearer_scheme(self, client: AsyncClient, org):
        resp = await client.get("/auth/me", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_garbage_token(self, client: AsyncClient):
        resp = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid token"

    @pytest.mark.asyncio
    async def test_expired_token(self, client: AsyncClient, org):
        token, _ = create_jwt(
            org.alice.id, org.alice.email, "user", expires_delta=timedelta(seconds=-5)
        )
        resp = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Token expired"

    @pytest.mark.asyncio
    async def test_revoked_token(self, client: AsyncClient, org, no_revocations):
        no_revocations.return_value = True
        resp = await client.get("/auth/me", headers=auth_header(org.alice))
        assert resp.status_code == 401
        assert resp.json()["message"] == "Token has been revoked"

    @pytest.mark.asyncio
    async def test_unknown_account(self, client: AsyncClient, org):
        token, _ = create_jwt(9999, "ghost@desk.example.com", "user")
        resp = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_role_claim_must_match_account(self, client: AsyncClient, org):
        token, _ = create_jwt(org.alice.id, org.alice.email, "admin")
        resp = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_role_claim_resolves_as_member(self, client: AsyncClient, org):
        token, _ = create_jwt(org.alice.id, org.alice.email, "wizard")
        resp = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "user"

    @pytest.mark.asyncio
    async def test_deactivated_member(self, client: AsyncClient, db, org):
        dormant = await make_account(
            db, "user", "dormant@desk.example.com", team_id=org.platform.id, is_active=False
        )
        resp = await client.get("/auth/me", headers=auth_header(dormant))
        assert resp.status_code == 401
        assert resp.json()["error"] == "Account is deactivated"

    @pytest.mark.asyncio
    async def test_me_returns_account_and_team(self, client: AsyncClient, org):
        resp = await client.get("/auth/me", headers=auth_header(org.platform_lead))
        assert resp.status_code == 200
        body = resp.json()
        assert body["user"]["email"] == "platform@teams.example.com"
        assert body["user"]["role"] == "team"
        assert body["team"]["teamName"] == "Platform"
        assert "passwordHash" not in body["user"]


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_full_chain(self, client: AsyncClient):
        resp = await client.post(
            "/auth/register/super-admin",
            json={"name": "Root", "email": "root@desk.example.com", "password": "secret1"},
        )
        assert resp.status_code == 201
        root = resp.json()["user"]
        assert root["role"] == "super_admin"
        assert resp.json()["token"]

        resp = await client.post(
            "/auth/register/admin",
            json={
                "name": "Ada",
                "email": "ada@desk.example.com",
                "password": "secret1",
                "superAdminId": root["id"],
            },
        )
        assert resp.status_code == 201
        admin = resp.json()["user"]
        assert admin["superAdminId"] == root["id"]

        resp = await client.post(
            "/auth/register/team",
            json={
                "teamName": "Service Desk",
                "managerName": "Sam Lead",
                "email": "desk@teams.example.com",
                "password": "secret1",
                "adminId": admin["id"],
            },
        )
        assert resp.status_code == 201
        team = resp.json()["team"]
        assert team["teamName"] == "Service Desk"
        assert team["adminId"] == admin["id"]
        assert resp.json()["user"]["teamId"] == team["id"]

        resp = await client.post(
            "/auth/register/user",
            json={
                "username": "mia",
                "name": "Mia",
                "email": "mia@desk.example.com",
                "password": "secret1",
                "teamId": team["id"],
            },
        )
        assert resp.status_code == 201
        assert resp.json()["user"]["teamId"] == team["id"]

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client: AsyncClient, org):
        resp = await client.post(
            "/auth/register/super-admin",
            json={"name": "Again", "email": "ROOT@desk.example.com", "password": "secret1"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Duplicate entry"

    @pytest.mark.asyncio
    async def test_admin_needs_existing_super_admin(self, client: AsyncClient, org):
        resp = await client.post(
            "/auth/register/admin",
            json={
                "name": "Ada",
                "email": "ada@desk.example.com",
                "password": "secret1",
                "superAdminId": org.admin.id,
            },
        )
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "superAdminId"

    @pytest.mark.asyncio
    async def test_user_needs_existing_team(self, client: AsyncClient):
        resp = await client.post(
            "/auth/register/user",
            json={
                "username": "mia",
                "name": "Mia",
                "email": "mia@desk.example.com",
                "password": "secret1",
                "teamId": 404,
            },
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Validation failed"

    @pytest.mark.asyncio
    async def test_short_password_rejected(self, client: AsyncClient):
        resp = await client.post(
            "/auth/register/super-admin",
            json={"name": "Root", "email": "root@desk.example.com", "password": "123"},
        )
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "password"


# ---------------------------------------------------------------------------
# Login and logout
# ---------------------------------------------------------------------------

class TestLogin:
    @pytest.mark.asyncio
    async def test_login_success(self, client: AsyncClient, org):
        resp = await client.post(
            "/auth/login", json={"email": "alice@desk.example.com", "password": PASSWORD}
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Login successful"
        assert body["user"]["lastLoginAt"] is not None
        assert body["team"]["id"] == org.platform.id
        assert decode_jwt(body["token"])["sub"] == str(org.alice.id)

    @pytest.mark.asyncio
    async def test_token_from_login_authenticates(self, client: AsyncClient, org):
        resp = await client.post(
            "/auth/login", json={"email": "admin@desk.example.com", "password": PASSWORD}
        )
        token = resp.json()["token"]
        me = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["user"]["role"] == "admin"

    @pytest.mark.asyncio
    async def test_wrong_password(self, client: AsyncClient, org):
        resp = await client.post(
            "/auth/login", json={"email": "alice@desk.example.com", "password": "nope"}
        )
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_unknown_email(self, client: AsyncClient, org):
        resp = await client.post(
            "/auth/login", json={"email": "nobody@desk.example.com", "password": PASSWORD}
        )
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_deactivated_member_cannot_login(self, client: AsyncClient, db, org):
        await make_account(
            db, "user", "dormant@desk.example.com", team_id=org.platform.id, is_active=False
        )
        resp = await client.post(
            "/auth/login", json={"email": "dormant@desk.example.com", "password": PASSWORD}
        )
        assert resp.status_code == 401
        assert resp.json()["error"] == "Account is deactivated"

    @pytest.mark.asyncio
    async def test_inactive_team_login_refused(self, client: AsyncClient, db, org):
        org.infra.is_active = False
        db.add(org.infra)
        await db.commit()
        resp = await client.post(
            "/auth/login", json={"email": "infra@teams.example.com", "password": PASSWORD}
        )
        assert resp.status_code == 401
        assert resp.json()["message"] == "Team is deactivated"

    @pytest.mark.asyncio
    async def test_logout_revokes_token(self, client: AsyncClient, org):
        headers = auth_header(org.alice)
        with patch("app.api.v1.auth.revoke_jwt", AsyncMock()) as revoke:
            resp = await client.post("/auth/logout", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out successfully"}
        jti, ttl = revoke.await_args.args
        assert jti == decode_jwt(headers["Authorization"].split()[1])["jti"]
        assert 0 < ttl <= 24 * 60 * 60
