"""Vendor request lifecycle and its effect on the originating case."""
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import update

from grn_recon.core.actor import Actor
from grn_recon.core.exceptions import ConflictError
from grn_recon.models.vendor_request import VendorRequest
from grn_recon.services.vendor_request_service import VendorRequestService, build_vendor_message


API = "/api/v1/vendor-requests"


@pytest.fixture
def shortage_case(make_receipt):
    """GRN with a 10 m cotton shortage; returns (grn, case)."""

    async def _make():
        body = await make_receipt(90, 50, 10)
        return body["grn"], body["cases"][0]

    return _make


@pytest.fixture
def open_request(client, shortage_case):
    async def _open():
        grn, case = await shortage_case()
        resp = await client.post(API, json={"complaint_id": case["id"]})
        assert resp.status_code == 201, resp.text
        return grn, case, resp.json()["vendor_request"]

    return _open


async def _advance(client, request_id, *steps):
    for step in steps:
        resp = await client.post(f"{API}/{request_id}/{step}", json={})
        assert resp.status_code == 200, resp.text
    return resp.json()


class TestCreate:

    async def test_create_moves_case_in_progress(self, client, shortage_case):
        grn, case = await shortage_case()
        resp = await client.post(API, json={"complaint_id": case["id"], "remarks": "urgent"})
        assert resp.status_code == 201
        body = resp.json()

        request = body["vendor_request"]
        assert body["case_status"] == "in_progress"
        assert request["status"] == "pending"
        assert request["request_type"] == "shortage"
        assert request["request_number"].startswith("VRQ")
        assert request["grn_id"] == grn["id"]
        assert Decimal(request["total_value"]) == Decimal("100.00")
        assert "Cotton fabric" in request["message_to_vendor"]
        assert "PO-2026-001" in request["message_to_vendor"]
        assert request["created_by"] == "store.keeper"

    async def test_invoice_mismatch_case_not_eligible(self, client, make_receipt):
        body = await make_receipt(None, None, {"received_qty": 10, "invoiced_qty": 12})
        resp = await client.post(API, json={"complaint_id": body["cases"][0]["id"]})
        assert resp.status_code == 422
        assert resp.json()["details"]["complaint_type"] == "invoice_mismatch"

    async def test_one_active_request_per_case(self, client, open_request):
        _, case, _ = await open_request()
        resp = await client.post(API, json={"complaint_id": case["id"]})
        assert resp.status_code == 409

    async def test_closed_case_not_eligible(self, client, shortage_case):
        _, case = await shortage_case()
        await client.post(f"/api/v1/discrepancy-cases/{case['id']}/skip", json={})
        resp = await client.post(API, json={"complaint_id": case["id"]})
        assert resp.status_code == 409

    async def test_unknown_case(self, client, new_uuid):
        resp = await client.post(API, json={"complaint_id": new_uuid()})
        assert resp.status_code == 404


class TestLifecycle:

    async def test_send_acknowledge_in_transit(self, client, open_request, notifier):
        _, _, request = await open_request()

        resp = await client.post(f"{API}/{request['id']}/send", json={})
        assert resp.status_code == 200
        assert resp.json()["status"] == "sent"
        assert resp.json()["sent_by"] == "store.keeper"
        assert resp.json()["sent_at"] is not None
        assert "vendor_request_sent" in notifier.names()

        resp = await client.post(
            f"{API}/{request['id']}/acknowledge",
            json={"vendor_response": "Dispatching balance", "expected_fulfillment_date": "2026-11-02"},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "acknowledged"
        assert resp.json()["vendor_response"] == "Dispatching balance"
        assert resp.json()["expected_fulfillment_date"] == "2026-11-02"

        body = await _advance(client, request["id"], "in-transit")
        assert body["status"] == "in_transit"
        assert body["in_transit_at"] is not None

    async def test_illegal_transition_is_conflict(self, client, open_request):
        _, _, request = await open_request()
        resp = await client.post(f"{API}/{request['id']}/acknowledge", json={})
        assert resp.status_code == 409
        assert resp.json()["details"]["current_status"] == "pending"

    async def test_stale_expected_status(self, client, open_request):
        _, _, request = await open_request()
        resp = await client.post(f"{API}/{request['id']}/send", json={"expected_status": "sent"})
        assert resp.status_code == 409

    async def test_list_and_get(self, client, open_request):
        _, case, request = await open_request()
        resp = await client.get(API, params={"complaint_id": case["id"]})
        assert resp.json()["total"] == 1
        resp = await client.get(f"{API}/{request['id']}")
        assert resp.json()["request_number"] == request["request_number"]


class TestFulfillment:

    async def test_reconciled_follow_up_closes_case(self, client, make_receipt, open_request, notifier):
        grn, case, request = await open_request()
        await _advance(client, request["id"], "send", "in-transit")

        # Ordered quantity defaults to the outstanding 10 m
        follow_up = await make_receipt(10, vendor_request_id=request["id"])
        assert follow_up["grn"]["verification_status"] == "verified"
        assert follow_up["grn"]["vendor_request_id"] == request["id"]

        resp = await client.post(
            f"{API}/{request['id']}/fulfill", json={"fulfillment_grn_id": follow_up["grn"]["id"]},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["vendor_request"]["status"] == "fulfilled"
        assert body["vendor_request"]["fulfillment_grn_id"] == follow_up["grn"]["id"]
        assert body["case_closed"] is True
        assert body["case_status"] == "approved"
        assert "vendor_request_fulfilled" in notifier.names()

        case_body = (await client.get(f"/api/v1/discrepancy-cases/{case['id']}")).json()
        assert case_body["status"] == "approved"
        assert case_body["resolved_by"] == "store.keeper"

    async def test_discrepant_follow_up_keeps_case_open(self, client, make_receipt, open_request):
        _, case, request = await open_request()
        await _advance(client, request["id"], "send")

        follow_up = await make_receipt(8, vendor_request_id=request["id"])
        assert follow_up["grn"]["verification_status"] == "discrepancy"
        assert follow_up["shortage_count"] == 1

        resp = await client.post(
            f"{API}/{request['id']}/fulfill", json={"fulfillment_grn_id": follow_up["grn"]["id"]},
        )
        assert resp.status_code == 200
        assert resp.json()["case_closed"] is False
        assert resp.json()["case_status"] == "in_progress"

    async def test_fulfillment_grn_required(self, client, open_request):
        _, _, request = await open_request()
        await _advance(client, request["id"], "send")
        resp = await client.post(f"{API}/{request['id']}/fulfill", json={})
        assert resp.status_code == 422
        assert resp.json()["type"] == "InvariantViolation"

    async def test_originating_grn_cannot_fulfill(self, client, open_request):
        grn, _, request = await open_request()
        await _advance(client, request["id"], "send")
        resp = await client.post(f"{API}/{request['id']}/fulfill", json={"fulfillment_grn_id": grn["id"]})
        assert resp.status_code == 422
        assert resp.json()["type"] == "InvariantViolation"

    async def test_unknown_fulfillment_grn(self, client, open_request, new_uuid):
        _, _, request = await open_request()
        await _advance(client, request["id"], "send")
        resp = await client.post(f"{API}/{request['id']}/fulfill", json={"fulfillment_grn_id": new_uuid()})
        assert resp.status_code == 404

    async def test_unrelated_receipt_cannot_fulfill(self, client, make_receipt, open_request):
        _, case, request = await open_request()
        await _advance(client, request["id"], "send")

        # Buttons arrive in full on an ordinary receipt; the cotton is still missing
        unrelated = await make_receipt(None, None, 10)
        assert unrelated["grn"]["verification_status"] == "verified"

        resp = await client.post(
            f"{API}/{request['id']}/fulfill", json={"fulfillment_grn_id": unrelated["grn"]["id"]},
        )
        assert resp.status_code == 422
        assert resp.json()["type"] == "InvariantViolation"

        case_body = (await client.get(f"/api/v1/discrepancy-cases/{case['id']}")).json()
        assert case_body["status"] == "in_progress"
        assert (await client.get(f"{API}/{request['id']}")).json()["status"] == "sent"

    async def test_follow_up_must_cover_requested_lines(self, client, make_receipt, open_request, purchase_order):
        _, _, request = await open_request()
        await _advance(client, request["id"], "send")

        follow_up = await make_receipt(None, None, 10, vendor_request_id=request["id"])
        resp = await client.post(
            f"{API}/{request['id']}/fulfill", json={"fulfillment_grn_id": follow_up["grn"]["id"]},
        )
        assert resp.status_code == 422
        assert resp.json()["details"]["missing_po_item_ids"] == [purchase_order["items"][0]]

    async def test_split_lines_default_to_combined_variance(self, client, make_receipt, purchase_order):
        cotton = purchase_order["items"][0]
        resp = await client.post("/api/v1/goods-receipts", json={
            "purchase_order_id": purchase_order["id"],
            "items_received": [
                {"po_item_id": cotton, "ordered_qty": 50, "received_qty": 40},
                {"po_item_id": cotton, "ordered_qty": 50, "received_qty": 45},
            ],
        })
        case = resp.json()["cases"][0]
        assert len(case["items_affected"]) == 2

        request = (await client.post(API, json={"complaint_id": case["id"]})).json()["vendor_request"]
        await _advance(client, request["id"], "send")

        # 10 m + 5 m outstanding on the same PO line
        follow_up = await make_receipt(15, vendor_request_id=request["id"])
        line = follow_up["grn"]["items_received"][0]
        assert Decimal(line["ordered_qty"]) == Decimal("15")
        assert follow_up["grn"]["verification_status"] == "verified"

        resp = await client.post(
            f"{API}/{request['id']}/fulfill", json={"fulfillment_grn_id": follow_up["grn"]["id"]},
        )
        assert resp.json()["case_closed"] is True

    async def test_pending_request_cannot_be_fulfilled(self, client, make_receipt, open_request):
        _, _, request = await open_request()
        follow_up = await make_receipt(10, vendor_request_id=request["id"])
        resp = await client.post(
            f"{API}/{request['id']}/fulfill", json={"fulfillment_grn_id": follow_up["grn"]["id"]},
        )
        assert resp.status_code == 409


class TestCancel:

    async def test_cancel_requires_reason(self, client, open_request):
        _, _, request = await open_request()
        resp = await client.post(f"{API}/{request['id']}/cancel", json={})
        assert resp.status_code == 422

    async def test_cancel_returns_case_to_pending(self, client, open_request):
        _, case, request = await open_request()
        await _advance(client, request["id"], "send")

        resp = await client.post(f"{API}/{request['id']}/cancel", json={"reason": "Vendor out of stock"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["vendor_request"]["status"] == "cancelled"
        assert body["vendor_request"]["cancellation_reason"] == "Vendor out of stock"
        assert body["case_status"] == "pending"

        # A new request may now be raised on the same case
        resp = await client.post(API, json={"complaint_id": case["id"]})
        assert resp.status_code == 201

    async def test_cancelled_is_terminal(self, client, open_request):
        _, _, request = await open_request()
        await client.post(f"{API}/{request['id']}/cancel", json={"reason": "duplicate"})
        resp = await client.post(f"{API}/{request['id']}/send", json={})
        assert resp.status_code == 409


async def test_concurrent_transition_detected(session_factory, open_request):
    """A row moved by another transaction after it was read is a stale-state conflict."""
    _, _, request = await open_request()

    async with session_factory() as session:
        service = VendorRequestService(session)
        loaded = await service.get_request(uuid.UUID(request["id"]))
        assert loaded.status == "pending"

        await session.execute(
            update(VendorRequest)
            .where(VendorRequest.id == loaded.id)
            .values(status="cancelled")
            .execution_options(synchronize_session=False)
        )
        with pytest.raises(ConflictError):
            await service.send(loaded.id, Actor(user_id="buyer"))
        await session.rollback()


def test_vendor_message_for_overage():
    message = build_vendor_message(
        "overage", "Shree Fabrics", "PO-2026-001", "GRN/APL/26-27/00001",
        [{"material_name": "Polyester yarn", "ordered_qty": "50", "received_qty": "55", "variance_qty": "5"}],
        Decimal("102.5"),
    )
    assert message.startswith("Dear Shree Fabrics,")
    assert "an overage" in message
    assert "Overage 5" in message
    assert "INR 102.50" in message
