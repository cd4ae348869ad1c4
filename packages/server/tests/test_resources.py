"""
Tests for the resource ledger.

Covers:
- Ledger arithmetic (take, give_back, resize, derive_status)
- Allocate/deallocate round trip against a project
- Shortfalls and over-deallocation leave the ledger untouched
- Request approval/denial by index
- Delete guard, history and the overview
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from app.core.errors import Conflict, InsufficientAvailableQuantity, OverDeallocation, RequestNotFound
from app.models.resource import Resource
from app.services.resources import derive_status, give_back, request_at, resize, take

from .factories import auth_header, make_project, make_resource

RESOURCES = "/api/v1/resources"


def _resource(quantity: int = 5, allocated: int = 0, status: str = "available") -> Resource:
    return Resource(
        name="GPU hours",
        type="hardware",
        category="development",
        description="Shared GPU cluster time",
        quantity=quantity,
        unit="hours",
        available_quantity=quantity - allocated,
        allocated_quantity=allocated,
        status=status,
        created_by=1,
    )


def _ledger(body: dict) -> tuple[int, int, int]:
    resource = body["resource"]
    return resource["quantity"], resource["availableQuantity"], resource["allocatedQuantity"]


# ---------------------------------------------------------------------------
# Unit Tests: Ledger arithmetic
# ---------------------------------------------------------------------------

class TestLedgerArithmetic:
    def test_take_and_give_back(self):
        resource = _resource(5)
        take(resource, 3)
        assert (resource.available_quantity, resource.allocated_quantity) == (2, 3)
        assert resource.status == "allocated"
        give_back(resource, 3)
        assert (resource.available_quantity, resource.allocated_quantity) == (5, 0)
        assert resource.status == "available"

    def test_take_everything_is_out_of_stock(self):
        resource = _resource(2)
        take(resource, 2)
        assert resource.status == "out_of_stock"

    def test_shortfall_changes_nothing(self):
        resource = _resource(5, allocated=3)
        with pytest.raises(InsufficientAvailableQuantity):
            take(resource, 3)
        assert (resource.available_quantity, resource.allocated_quantity) == (2, 3)

    def test_over_deallocation(self):
        resource = _resource(5, allocated=1)
        with pytest.raises(OverDeallocation):
            give_back(resource, 2)
        assert resource.allocated_quantity == 1

    def test_manual_status_survives(self):
        resource = _resource(5, allocated=2, status="maintenance")
        assert derive_status(resource) == "maintenance"

    def test_resize_keeps_allocations(self):
        resource = _resource(5, allocated=3)
        resize(resource, 8)
        assert (resource.quantity, resource.available_quantity, resource.allocated_quantity) == (8, 5, 3)
        with pytest.raises(Conflict):
            resize(resource, 2)

    def test_request_at(self):
        requests = ["first", "second"]
        assert request_at(requests, 1) == "second"
        with pytest.raises(RequestNotFound):
            request_at(requests, 2)
        with pytest.raises(RequestNotFound):
            request_at(requests, -1)


# ---------------------------------------------------------------------------
# Allocation endpoints
# ---------------------------------------------------------------------------

class TestAllocation:
    @pytest.mark.asyncio
    async def test_allocate_shortfall_and_deallocate(self, client: AsyncClient, db, org):
        resource = await make_resource(db, org.admin, quantity=5)
        project = await make_project(db, "OPS")
        headers = auth_header(org.platform_lead)
        body = {"projectId": project.id, "quantity": 3}

        resp = await client.post(f"{RESOURCES}/{resource.id}/allocate", json=body, headers=headers)
        assert resp.status_code == 200, resp.text
        assert _ledger(resp.json()) == (5, 2, 3)
        assert resp.json()["resource"]["allocations"][0]["allocatedQuantity"] == 3

        resp = await client.post(f"{RESOURCES}/{resource.id}/allocate", json=body, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Insufficient available quantity"

        resp = await client.get(f"{RESOURCES}/{resource.id}", headers=headers)
        assert _ledger(resp.json()) == (5, 2, 3)

        resp = await client.post(f"{RESOURCES}/{resource.id}/deallocate", json=body, headers=headers)
        assert resp.status_code == 200
        assert _ledger(resp.json()) == (5, 5, 0)
        assert resp.json()["resource"]["allocations"] == []
        assert resp.json()["resource"]["status"] == "available"

    @pytest.mark.asyncio
    async def test_allocations_accumulate_per_project(self, client: AsyncClient, db, org):
        resource = await make_resource(db, org.admin, quantity=5)
        project = await make_project(db, "OPS")
        headers = auth_header(org.admin)

        for _ in range(2):
            resp = await client.post(
                f"{RESOURCES}/{resource.id}/allocate",
                json={"projectId": project.id, "quantity": 2},
                headers=headers,
            )
        allocations = resp.json()["resource"]["allocations"]
        assert len(allocations) == 1
        assert allocations[0]["allocatedQuantity"] == 4

    @pytest.mark.asyncio
    async def test_over_deallocation_rejected(self, client: AsyncClient, db, org):
        resource = await make_resource(db, org.admin, quantity=5)
        project = await make_project(db, "OPS")
        headers = auth_header(org.admin)
        await client.post(
            f"{RESOURCES}/{resource.id}/allocate",
            json={"projectId": project.id, "quantity": 2},
            headers=headers,
        )

        resp = await client.post(
            f"{RESOURCES}/{resource.id}/deallocate",
            json={"projectId": project.id, "quantity": 3},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Cannot deallocate more than allocated"

    @pytest.mark.asyncio
    async def test_deallocate_without_allocation(self, client: AsyncClient, db, org):
        resource = await make_resource(db, org.admin, quantity=5)
        project = await make_project(db, "OPS")
        resp = await client.post(
            f"{RESOURCES}/{resource.id}/deallocate",
            json={"projectId": project.id, "quantity": 1},
            headers=auth_header(org.admin),
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == "Allocation not found"

    @pytest.mark.asyncio
    async def test_allocate_to_unknown_project(self, client: AsyncClient, db, org):
        resource = await make_resource(db, org.admin, quantity=5)
        resp = await client.post(
            f"{RESOURCES}/{resource.id}/allocate",
            json={"projectId": 404, "quantity": 1},
            headers=auth_header(org.admin),
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_member_cannot_allocate(self, client: AsyncClient, db, org):
        resource = await make_resource(db, org.admin, quantity=5)
        project = await make_project(db, "OPS")
        resp = await client.post(
            f"{RESOURCES}/{resource.id}/allocate",
            json={"projectId": project.id, "quantity": 1},
            headers=auth_header(org.alice),
        )
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

class TestResourceCrud:
    @pytest.mark.asyncio
    async def test_create_records_history(self, client: AsyncClient, org):
        headers = auth_header(org.admin)
        resp = await client.post(
            f"{RESOURCES}/",
            json={
                "name": "Design licenses",
                "type": "software",
                "category": "development",
                "description": "Seats for the design tool",
                "quantity": 10,
                "unit": "licenses",
            },
            headers=headers,
        )
        assert resp.status_code == 201, resp.text
        resource = resp.json()["resource"]
        assert (resource["availableQuantity"], resource["allocatedQuantity"]) == (10, 0)
        assert resource["createdBy"] == org.admin.id

        resp = await client.get(f"{RESOURCES}/{resource['id']}/history", headers=headers)
        assert [h["action"] for h in resp.json()["history"]] == ["created"]

    @pytest.mark.asyncio
    async def test_member_cannot_create(self, client: AsyncClient, org):
        resp = await client.post(
            f"{RESOURCES}/",
            json={
                "name": "Chairs",
                "type": "equipment",
                "category": "support",
                "description": "Ergonomic office chairs",
                "quantity": 4,
                "unit": "pieces",
            },
            headers=auth_header(org.alice),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_resize_below_allocation_conflicts(self, client: AsyncClient, db, org):
        resource = await make_resource(db, org.admin, quantity=5)
        project = await make_project(db, "OPS")
        headers = auth_header(org.admin)
        await client.post(
            f"{RESOURCES}/{resource.id}/allocate",
            json={"projectId": project.id, "quantity": 3},
            headers=headers,
        )

        resp = await client.put(f"{RESOURCES}/{resource.id}", json={"quantity": 2}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid quantity"

        resp = await client.put(f"{RESOURCES}/{resource.id}", json={"quantity": 8}, headers=headers)
        assert resp.status_code == 200
        assert _ledger(resp.json()) == (8, 5, 3)

    @pytest.mark.asyncio
    async def test_delete_blocked_while_allocated(self, client: AsyncClient, db, org):
        resource = await make_resource(db, org.admin, quantity=5)
        project = await make_project(db, "OPS")
        headers = auth_header(org.admin)
        await client.post(
            f"{RESOURCES}/{resource.id}/allocate",
            json={"projectId": project.id, "quantity": 1},
            headers=headers,
        )

        resp = await client.delete(f"{RESOURCES}/{resource.id}", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Resource is allocated"

        await client.post(
            f"{RESOURCES}/{resource.id}/deallocate",
            json={"projectId": project.id, "quantity": 1},
            headers=headers,
        )
        resp = await client.delete(f"{RESOURCES}/{resource.id}", headers=headers)
        assert resp.status_code == 200
        assert (await client.get(f"{RESOURCES}/{resource.id}", headers=headers)).status_code == 404

    @pytest.mark.asyncio
    async def test_available_and_by_type(self, client: AsyncClient, db, org):
        await make_resource(db, org.admin, quantity=3, name="Spare laptops")
        await make_resource(
            db, org.admin, quantity=2, name="Old servers", status="discontinued", type="equipment"
        )
        await make_resource(
            db, org.admin, quantity=1, name="Projector", available_quantity=0,
            allocated_quantity=1, status="out_of_stock",
        )
        headers = auth_header(org.alice)

        resp = await client.get(f"{RESOURCES}/available", headers=headers)
        assert [r["name"] for r in resp.json()["resources"]] == ["Spare laptops"]

        resp = await client.get(f"{RESOURCES}/type/equipment", headers=headers)
        assert [r["name"] for r in resp.json()["resources"]] == ["Old servers"]

    @pytest.mark.asyncio
    async def test_overview(self, client: AsyncClient, db, org):
        await make_resource(db, org.admin, quantity=4)
        await make_resource(
            db, org.admin, quantity=6, available_quantity=3, allocated_quantity=3,
            status="allocated",
        )

        resp = await client.get(f"{RESOURCES}/stats/overview", headers=auth_header(org.platform_lead))
        assert resp.status_code == 200
        stats = resp.json()
        assert stats["totalResources"] == 2
        assert stats["totalQuantity"] == 10
        assert stats["allocatedQuantity"] == 3
        assert stats["utilizationRate"] == 30.0

        resp = await client.get(f"{RESOURCES}/stats/overview", headers=auth_header(org.alice))
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class TestResourceRequests:
    @pytest.mark.asyncio
    async def test_approve_by_index_once(self, client: AsyncClient, db, org):
        resource = await make_resource(db, org.admin, quantity=5)
        resp = await client.post(
            f"{RESOURCES}/{resource.id}/requests",
            json={"quantity": 2, "reason": "Onboarding"},
            headers=auth_header(org.alice),
        )
        assert resp.status_code == 201
        assert resp.json()["request"]["requestedBy"] == org.alice.id

        lead = auth_header(org.platform_lead)
        resp = await client.put(
            f"{RESOURCES}/{resource.id}/requests/0/approve",
            json={"note": "Go ahead"},
            headers=lead,
        )
        assert resp.status_code == 200
        assert resp.json()["request"]["status"] == "approved"
        assert resp.json()["request"]["decisionNote"] == "Go ahead"

        resp = await client.put(f"{RESOURCES}/{resource.id}/requests/0/deny", headers=lead)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Request already processed"

        resp = await client.get(f"{RESOURCES}/{resource.id}", headers=lead)
        assert _ledger(resp.json()) == (5, 5, 0)

    @pytest.mark.asyncio
    async def test_approval_needs_availability(self, client: AsyncClient, db, org):
        resource = await make_resource(
            db, org.admin, quantity=5, available_quantity=1, allocated_quantity=4,
            status="allocated",
        )
        await client.post(
            f"{RESOURCES}/{resource.id}/requests",
            json={"quantity": 3},
            headers=auth_header(org.alice),
        )
        lead = auth_header(org.platform_lead)

        resp = await client.put(f"{RESOURCES}/{resource.id}/requests/0/approve", headers=lead)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Insufficient available quantity"

        resp = await client.put(f"{RESOURCES}/{resource.id}/requests/0/deny", headers=lead)
        assert resp.status_code == 200
        assert resp.json()["request"]["status"] == "denied"

    @pytest.mark.asyncio
    async def test_unknown_index(self, client: AsyncClient, db, org):
        resource = await make_resource(db, org.admin, quantity=5)
        resp = await client.put(
            f"{RESOURCES}/{resource.id}/requests/0/approve", headers=auth_header(org.admin)
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == "Request not found"
