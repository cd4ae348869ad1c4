"""
Tests for the error taxonomy and the JSON error envelope.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel, Field

from app.core.errors import (
    AccountDeactivated,
    AlreadyProcessed,
    Conflict,
    Forbidden,
    InsufficientAvailableQuantity,
    NotFound,
    RequestNotFound,
    register_exception_handlers,
)


class TestEnvelope:
    def test_minimal(self):
        assert NotFound().to_dict() == {"error": "Not found"}

    def test_message_and_details(self):
        err = InsufficientAvailableQuantity(
            "Only 2 pieces available", details=[{"available": 2, "requested": 3}]
        )
        assert err.status_code == 400
        assert err.to_dict() == {
            "error": "Insufficient available quantity",
            "message": "Only 2 pieces available",
            "details": [{"available": 2, "requested": 3}],
        }

    def test_error_override(self):
        err = Conflict("Release allocations first", error="Resource is allocated")
        assert err.to_dict()["error"] == "Resource is allocated"
        assert str(err) == "Release allocations first"

    @pytest.mark.parametrize(
        "exc,status",
        [
            (AlreadyProcessed(), 400),
            (AccountDeactivated(), 401),
            (Forbidden(), 403),
            (RequestNotFound(), 404),
        ],
    )
    def test_status_codes(self, exc, status):
        assert exc.status_code == status


class _Body(BaseModel):
    quantity: int = Field(ge=1)


def _app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/conflict")
    async def conflict():
        raise AlreadyProcessed("Ticket has already been processed")

    @app.post("/validate")
    async def validate(body: _Body):
        return {"ok": True}

    @app.get("/boom")
    async def boom():
        raise RuntimeError("database password is hunter2")

    return app


class TestHandlers:
    @pytest.mark.asyncio
    async def test_app_error_rendered(self):
        transport = ASGITransport(app=_app())
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.get("/conflict")
        assert resp.status_code == 400
        assert resp.json() == {
            "error": "Ticket already processed",
            "message": "Ticket has already been processed",
        }

    @pytest.mark.asyncio
    async def test_request_validation_rendered(self):
        transport = ASGITransport(app=_app())
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.post("/validate", json={"quantity": 0})
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Validation failed"
        assert body["details"][0]["field"] == "quantity"

    @pytest.mark.asyncio
    async def test_unexpected_error_hides_message(self):
        transport = ASGITransport(app=_app(), raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.get("/boom")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
