"""Discrepancy case queries and reviewer decisions."""
from datetime import datetime, timedelta, timezone

import pytest


API = "/api/v1/discrepancy-cases"


@pytest.fixture
def mixed_receipt(make_receipt):
    """Receipt raising a shortage, an overage and an invoice-mismatch case."""

    async def _make():
        return await make_receipt(90, 55, {"received_qty": 10, "invoiced_qty": 12})

    return _make


class TestQueries:

    async def test_get_includes_display_fields(self, client, mixed_receipt):
        body = await mixed_receipt()
        case_id = body["cases"][0]["id"]

        resp = await client.get(f"{API}/{case_id}")
        assert resp.status_code == 200
        case = resp.json()
        assert case["grn_number"] == body["grn"]["grn_number"]
        assert case["po_number"] == "PO-2026-001"
        assert case["vendor_name"] == "Shree Fabrics"
        assert case["entity_type"] == "grn"
        assert case["requested_by"] == "store.keeper"
        assert case["department"] == "stores"

    async def test_list_filters(self, client, mixed_receipt, make_receipt):
        first = await mixed_receipt()
        await make_receipt(80)

        resp = await client.get(API)
        assert resp.json()["total"] == 4

        resp = await client.get(API, params={"type": "shortage"})
        assert resp.json()["total"] == 2
        assert {c["complaint_type"] for c in resp.json()["items"]} == {"shortage"}

        resp = await client.get(API, params={"grn_id": first["grn"]["id"]})
        assert resp.json()["total"] == 3

        resp = await client.get(API, params={"status": "approved"})
        assert resp.json()["total"] == 0

    async def test_list_by_date(self, client, mixed_receipt):
        await mixed_receipt()
        today = datetime.now(timezone.utc).date()

        resp = await client.get(API, params={"date_from": today.isoformat()})
        assert resp.json()["total"] == 3

        resp = await client.get(API, params={"date_to": (today - timedelta(days=1)).isoformat()})
        assert resp.json()["total"] == 0

    async def test_pagination(self, client, mixed_receipt):
        await mixed_receipt()
        resp = await client.get(API, params={"page": 2, "size": 2})
        body = resp.json()
        assert body["total"] == 3
        assert body["pages"] == 2
        assert len(body["items"]) == 1

    async def test_unknown_case(self, client, new_uuid):
        resp = await client.get(f"{API}/{new_uuid()}")
        assert resp.status_code == 404


class TestReview:

    @pytest.mark.parametrize("decision,status", [
        ("approve", "approved"),
        ("reject", "rejected"),
        ("skip", "skipped"),
        ("cancel", "canceled"),
    ])
    async def test_decision_closes_case(self, client, mixed_receipt, decision, status):
        case = (await mixed_receipt())["cases"][0]
        resp = await client.post(f"{API}/{case['id']}/{decision}", json={"notes": "reviewed"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == status
        assert body["resolved_by"] == "store.keeper"
        assert body["resolved_at"] is not None
        assert body["resolution_notes"] == "reviewed"
        assert body["grn_number"] is not None

    async def test_decision_without_body(self, client, mixed_receipt):
        case = (await mixed_receipt())["cases"][1]
        resp = await client.post(f"{API}/{case['id']}/approve")
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"

    async def test_closed_case_cannot_be_reviewed_again(self, client, mixed_receipt):
        case = (await mixed_receipt())["cases"][0]
        await client.post(f"{API}/{case['id']}/skip", json={})
        resp = await client.post(f"{API}/{case['id']}/approve", json={})
        assert resp.status_code == 409
        assert resp.json()["type"] == "ConflictError"

    async def test_stale_expected_status(self, client, mixed_receipt):
        case = (await mixed_receipt())["cases"][0]
        resp = await client.post(f"{API}/{case['id']}/approve", json={"expected_status": "in_progress"})
        assert resp.status_code == 409
        assert resp.json()["details"]["current_status"] == "pending"

    async def test_in_progress_case_can_be_approved(self, client, mixed_receipt):
        case = (await mixed_receipt())["cases"][0]
        await client.post("/api/v1/vendor-requests", json={"complaint_id": case["id"]})

        resp = await client.post(f"{API}/{case['id']}/approve", json={"expected_status": "in_progress"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"

    async def test_review_is_audited(self, client, mixed_receipt):
        case = (await mixed_receipt())["cases"][0]
        await client.post(f"{API}/{case['id']}/reject", json={"notes": "vendor disputes count"})

        resp = await client.get("/api/v1/audit-trails", params={"entity_id": case["id"]})
        entries = resp.json()["items"]
        rejected = [e for e in entries if e["action"] == "rejected"]
        assert len(rejected) == 1
        assert rejected[0]["status_before"] == "pending"
        assert rejected[0]["status_after"] == "rejected"
        assert rejected[0]["reason"] == "vendor disputes count"
