"""Receipt submission: classification, case spawning, inventory and review."""
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from grn_recon.core.actor import Actor
from grn_recon.core.exceptions import ConflictError
from grn_recon.models.audit_trail import AuditTrail
from grn_recon.models.discrepancy_case import DiscrepancyCase
from grn_recon.models.inventory import InventoryItem, StockMovement
from grn_recon.models.purchase import GoodsReceiptNote
from grn_recon.services.discrepancy_service import DiscrepancyService
from grn_recon.services.grn_service import GRNService
from tests.conftest import receipt


class TestPerfectMatch:

    async def test_all_lines_match_verifies_receipt(self, make_receipt, notifier):
        body = await make_receipt(100, 50, 10, supplier_invoice_number="INV-881")

        grn = body["grn"]
        assert grn["verification_status"] == "verified"
        assert grn["grn_number"].startswith("GRN")
        assert grn["po_number"] == "PO-2026-001"
        assert grn["vendor_name"] == "Shree Fabrics"
        assert grn["inventory_added"] is True
        assert body["perfect_match_count"] == 3
        assert body["shortage_count"] == 0
        assert body["other_count"] == 0
        assert body["cases"] == []
        assert "verified" in body["summary"]
        assert Decimal(grn["total_received_value"]) == Decimal("2075.00")
        assert [item["discrepancy_class"] for item in grn["items_received"]] == ["perfect_match"] * 3
        assert notifier.names() == ["grn_created"]

    async def test_invoice_defaults_to_ordered_quantity(self, make_receipt):
        body = await make_receipt({"received_qty": 40, "ordered_qty": 40})
        line = body["grn"]["items_received"][0]
        assert Decimal(line["ordered_qty"]) == Decimal("40")
        assert Decimal(line["invoiced_qty"]) == Decimal("40")
        assert line["discrepancy_class"] == "perfect_match"


class TestDiscrepancies:

    async def test_shortage_raises_one_case(self, make_receipt, notifier):
        body = await make_receipt(90, 50, 10)

        assert body["grn"]["verification_status"] == "discrepancy"
        assert body["perfect_match_count"] == 2
        assert body["shortage_count"] == 1
        assert len(body["cases"]) == 1

        case = body["cases"][0]
        assert case["complaint_type"] == "shortage"
        assert case["status"] == "pending"
        assert case["grn_number"] == body["grn"]["grn_number"]
        assert Decimal(case["total_value"]) == Decimal("100.00")
        assert len(case["items_affected"]) == 1
        assert Decimal(case["items_affected"][0]["variance_qty"]) == Decimal("10")
        assert case["action_required"]

        line = body["grn"]["items_received"][0]
        assert Decimal(line["shortage_qty"]) == Decimal("10")
        assert Decimal(line["overage_qty"]) == Decimal("0")
        assert notifier.names() == ["grn_created", "grn_discrepancy"]

    async def test_overage_case_value(self, make_receipt):
        body = await make_receipt(100, 55, 10)
        assert body["overage_count"] == 1
        case = body["cases"][0]
        assert case["complaint_type"] == "overage"
        assert Decimal(case["total_value"]) == Decimal("102.50")

    async def test_invoice_mismatch_uses_invoiced_value(self, make_receipt):
        body = await make_receipt(None, None, {"received_qty": 10, "invoiced_qty": 12})
        assert body["invoice_mismatch_count"] == 1
        case = body["cases"][0]
        assert case["complaint_type"] == "invoice_mismatch"
        assert Decimal(case["total_value"]) == Decimal("60.00")
        assert case["action_required"]

    async def test_mixed_lines_raise_one_case_per_class(self, make_receipt):
        body = await make_receipt(90, 55, {"received_qty": 10, "invoiced_qty": 12})

        assert body["perfect_match_count"] == 0
        assert [c["complaint_type"] for c in body["cases"]] == ["shortage", "overage", "invoice_mismatch"]
        details = body["grn"]["discrepancy_details"]
        assert details["total_lines"] == 3
        assert details["shortage_count"] == 1
        assert sorted(details["case_ids"]) == sorted(c["id"] for c in body["cases"])

    async def test_lines_of_one_class_share_a_case(self, make_receipt):
        body = await make_receipt(90, 45, 10)
        assert len(body["cases"]) == 1
        assert len(body["cases"][0]["items_affected"]) == 2
        # 10 x 10.00 + 5 x 20.50
        assert Decimal(body["cases"][0]["total_value"]) == Decimal("202.50")


class TestInventory:

    async def test_discrepant_lines_still_reach_stock(self, make_receipt, db):
        body = await make_receipt(90, 55, 10)

        movements = (await db.execute(select(func.count(StockMovement.id)))).scalar()
        assert movements == 3

        on_hand = {
            item.material_name: item.quantity_on_hand
            for item in (await db.execute(select(InventoryItem))).scalars()
        }
        assert on_hand["Cotton fabric"] == Decimal("90")
        assert on_hand["Polyester yarn"] == Decimal("55")
        assert body["grn"]["inventory_added_at"] is not None

    async def test_receipts_accumulate(self, make_receipt, db):
        await make_receipt(60)
        await make_receipt({"received_qty": 40, "ordered_qty": 40})
        item = (
            await db.execute(select(InventoryItem).where(InventoryItem.material_name == "Cotton fabric"))
        ).scalar_one()
        assert item.quantity_on_hand == Decimal("100")


class TestRejections:

    async def test_negative_quantity_rejected_and_nothing_persisted(self, client, purchase_order, db):
        resp = await client.post("/api/v1/goods-receipts", json=receipt(purchase_order, 100, -5, 10))
        assert resp.status_code == 422
        body = resp.json()
        assert body["type"] == "ValidationError"
        assert body["details"]["lines"][0]["line"] == 2
        assert body["path"] == "/api/v1/goods-receipts"

        assert (await db.execute(select(func.count(GoodsReceiptNote.id)))).scalar() == 0
        assert (await db.execute(select(func.count(StockMovement.id)))).scalar() == 0
        assert (await db.execute(select(func.count(AuditTrail.id)))).scalar() == 0

    async def test_every_bad_line_is_reported(self, client, purchase_order, new_uuid):
        payload = receipt(purchase_order, -1, 50)
        payload["items_received"].append({"po_item_id": new_uuid(), "received_qty": 3})
        resp = await client.post("/api/v1/goods-receipts", json=payload)
        assert resp.status_code == 422
        assert [line["line"] for line in resp.json()["details"]["lines"]] == [1, 3]

    async def test_empty_receipt_rejected(self, client, purchase_order):
        resp = await client.post("/api/v1/goods-receipts", json=receipt(purchase_order))
        assert resp.status_code == 422

    async def test_unknown_purchase_order(self, client, purchase_order, new_uuid):
        payload = receipt(purchase_order, 100)
        payload["purchase_order_id"] = new_uuid()
        resp = await client.post("/api/v1/goods-receipts", json=payload)
        assert resp.status_code == 404
        assert resp.json()["type"] == "NotFoundError"

    async def test_duplicate_grn_number(self, make_receipt, db):
        await make_receipt(90, grn_number="GRN-MANUAL-1")
        resp = await make_receipt(90, grn_number="GRN-MANUAL-1", expected_status=409)
        assert resp["type"] == "ConflictError"

        # The first receipt's case is not duplicated
        assert (await db.execute(select(func.count(DiscrepancyCase.id)))).scalar() == 1

    async def test_missing_body_field_uses_error_shape(self, client):
        resp = await client.post("/api/v1/goods-receipts", json={"items_received": []})
        assert resp.status_code == 422
        assert resp.json()["type"] == "ValidationError"


class TestQueriesAndReview:

    async def test_get_and_list(self, client, make_receipt, purchase_order):
        first = await make_receipt(100, 50, 10)
        await make_receipt(90)

        resp = await client.get(f"/api/v1/goods-receipts/{first['grn']['id']}")
        assert resp.status_code == 200
        assert len(resp.json()["items_received"]) == 3

        resp = await client.get("/api/v1/goods-receipts", params={"verification_status": "discrepancy"})
        body = resp.json()
        assert body["total"] == 1
        assert body["items"][0]["verification_status"] == "discrepancy"

        resp = await client.get("/api/v1/goods-receipts", params={"purchase_order_id": purchase_order["id"]})
        assert resp.json()["total"] == 2

    async def test_unknown_grn(self, client, new_uuid):
        resp = await client.get(f"/api/v1/goods-receipts/{new_uuid()}")
        assert resp.status_code == 404

    async def test_approve(self, client, make_receipt):
        grn = (await make_receipt(100, 50, 10))["grn"]
        resp = await client.post(f"/api/v1/goods-receipts/{grn['id']}/approve", json={"notes": "ok"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["verification_status"] == "approved"
        assert body["verified_by"] == "store.keeper"

        again = await client.post(f"/api/v1/goods-receipts/{grn['id']}/approve")
        assert again.status_code == 409

    async def test_reject_requires_notes(self, client, make_receipt):
        grn = (await make_receipt(90))["grn"]
        resp = await client.post(f"/api/v1/goods-receipts/{grn['id']}/reject", json={})
        assert resp.status_code == 422

        resp = await client.post(
            f"/api/v1/goods-receipts/{grn['id']}/reject", json={"notes": "Damaged on arrival"},
        )
        assert resp.status_code == 200
        assert resp.json()["verification_status"] == "rejected"
        assert resp.json()["review_notes"] == "Damaged on arrival"

    async def test_review_with_stale_expected_status(self, client, make_receipt):
        grn = (await make_receipt(90))["grn"]
        resp = await client.post(
            f"/api/v1/goods-receipts/{grn['id']}/approve", json={"expected_status": "verified"},
        )
        assert resp.status_code == 409
        assert resp.json()["details"]["current_status"] == "discrepancy"


class TestAtomicity:

    async def test_failure_midway_leaves_nothing_behind(self, client, purchase_order, db, monkeypatch):
        original = DiscrepancyService.create_case

        async def create_case(self, grn, complaint_type, lines, actor):
            if complaint_type == "overage":
                raise ConflictError("Case store unavailable", {"complaint_type": complaint_type})
            return await original(self, grn, complaint_type, lines, actor)

        monkeypatch.setattr(DiscrepancyService, "create_case", create_case)

        # Shortage case is raised first, then the overage case fails
        resp = await client.post("/api/v1/goods-receipts", json=receipt(purchase_order, 90, 55, 10))
        assert resp.status_code == 409

        for model in (GoodsReceiptNote, StockMovement, DiscrepancyCase, AuditTrail):
            assert (await db.execute(select(func.count(model.id)))).scalar() == 0
        on_hand = (await db.execute(select(func.count(InventoryItem.id)))).scalar()
        assert on_hand == 0

    async def test_one_open_case_per_class_and_receipt(self, client, make_receipt, session_factory):
        body = await make_receipt(90)
        grn_id = uuid.UUID(body["grn"]["id"])

        async with session_factory() as session:
            grn = await GRNService(session).get_grn(grn_id)
            with pytest.raises(ConflictError):
                await DiscrepancyService(session).create_case(grn, "shortage", grn.items[:1], Actor("auditor"))
            await session.rollback()

        # Once the open case is closed a new one may be raised
        await client.post(f"/api/v1/discrepancy-cases/{body['cases'][0]['id']}/skip", json={})
        async with session_factory() as session:
            grn = await GRNService(session).get_grn(grn_id)
            case = await DiscrepancyService(session).create_case(grn, "shortage", grn.items[:1], Actor("auditor"))
            assert case.status == "pending"
            assert case.total_value == Decimal("100.00")
            await session.rollback()
