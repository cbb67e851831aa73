"""
GRN Service - Receipt Aggregator.

Runs the three-way match over every line of a goods receipt, decides the
receipt's verification outcome, raises one discrepancy case per class found
and receives the counted quantities into stock. Everything happens in the
caller's transaction; the endpoint commits once the whole unit succeeded.
"""
import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from grn_recon.core.actor import Actor
from grn_recon.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from grn_recon.models.discrepancy_case import DiscrepancyCase
from grn_recon.models.purchase import (
    PurchaseOrder,
    PurchaseOrderItem,
    GoodsReceiptNote,
    GRNItem,
    DiscrepancyClass,
    VerificationStatus,
)
from grn_recon.models.vendor_request import VendorRequest
from grn_recon.schemas.goods_receipt import GRNCreate
from grn_recon.services.audit_service import AuditService
from grn_recon.services.discrepancy_service import DiscrepancyService, money
from grn_recon.services.document_sequence_service import DocumentSequenceService
from grn_recon.services.inventory_service import InventoryService
from grn_recon.services.state_guard import compare_and_set_status, check_expected_status
from grn_recon.services.three_way_match import classify, variance, to_quantity
from grn_recon.services.vendor_request_state_machine import is_terminal as request_is_terminal


logger = logging.getLogger(__name__)

# Case creation order; also the order counts are reported in
DISCREPANCY_ORDER = [
    DiscrepancyClass.SHORTAGE.value,
    DiscrepancyClass.OVERAGE.value,
    DiscrepancyClass.INVOICE_MISMATCH.value,
    DiscrepancyClass.OTHER.value,
]

REVIEWABLE_STATUSES = [VerificationStatus.VERIFIED.value, VerificationStatus.DISCREPANCY.value]


class GRNResult:
    """Outcome of a receipt submission."""

    def __init__(self, grn: GoodsReceiptNote, counts: Dict[str, int], cases: List[DiscrepancyCase], summary: str):
        self.grn = grn
        self.counts = counts
        self.cases = cases
        self.summary = summary

    @property
    def has_discrepancy(self) -> bool:
        return bool(self.cases)


def build_summary(counts: Dict[str, int], total_lines: int, case_count: int) -> str:
    """Human-readable counts per class, e.g. for notifications and UI toasts."""
    if counts[DiscrepancyClass.PERFECT_MATCH.value] == total_lines:
        return f"All {total_lines} line(s) matched the purchase order and invoice. GRN verified."
    parts = [f"{counts[DiscrepancyClass.PERFECT_MATCH.value]} perfect match"]
    for cls in DISCREPANCY_ORDER:
        if counts[cls]:
            parts.append(f"{counts[cls]} {cls.replace('_', ' ')}")
    return f"{total_lines} line(s) received: {', '.join(parts)}. {case_count} discrepancy case(s) raised."


class GRNService:
    """Creates goods receipts and handles reviewer decisions on them."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    # ==================== Lookups ====================

    async def _get_purchase_order(self, po_id: uuid.UUID) -> PurchaseOrder:
        result = await self.db.execute(
            select(PurchaseOrder)
            .options(selectinload(PurchaseOrder.items), selectinload(PurchaseOrder.vendor))
            .where(PurchaseOrder.id == po_id)
        )
        po = result.scalar_one_or_none()
        if not po:
            raise NotFoundError("Purchase order not found", {"purchase_order_id": str(po_id)})
        return po

    async def _get_vendor_request(self, request_id: uuid.UUID, po: PurchaseOrder) -> VendorRequest:
        result = await self.db.execute(
            select(VendorRequest).where(VendorRequest.id == request_id)
        )
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundError("Vendor request not found", {"vendor_request_id": str(request_id)})
        if request.purchase_order_id != po.id:
            raise ValidationError(
                "Vendor request belongs to a different purchase order",
                {"vendor_request_id": str(request_id), "purchase_order_id": str(request.purchase_order_id)},
            )
        if request_is_terminal(request.status):
            raise ConflictError(
                f"Vendor request {request.request_number} is already {request.status}",
                {"vendor_request_id": str(request_id), "status": request.status},
            )
        return request

    async def get_grn(self, grn_id: uuid.UUID) -> GoodsReceiptNote:
        result = await self.db.execute(
            select(GoodsReceiptNote)
            .options(
                selectinload(GoodsReceiptNote.items),
                selectinload(GoodsReceiptNote.purchase_order),
                selectinload(GoodsReceiptNote.vendor),
            )
            .where(GoodsReceiptNote.id == grn_id)
        )
        grn = result.scalar_one_or_none()
        if not grn:
            raise NotFoundError("GRN not found", {"id": str(grn_id)})
        return grn

    async def list_grns(
        self,
        purchase_order_id: Optional[uuid.UUID] = None,
        vendor_id: Optional[uuid.UUID] = None,
        verification_status: Optional[str] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[GoodsReceiptNote], int]:
        conditions = []
        if purchase_order_id:
            conditions.append(GoodsReceiptNote.purchase_order_id == purchase_order_id)
        if vendor_id:
            conditions.append(GoodsReceiptNote.vendor_id == vendor_id)
        if verification_status:
            conditions.append(GoodsReceiptNote.verification_status == verification_status)

        count_query = select(func.count(GoodsReceiptNote.id))
        query = select(GoodsReceiptNote).options(
            selectinload(GoodsReceiptNote.items),
            selectinload(GoodsReceiptNote.purchase_order),
            selectinload(GoodsReceiptNote.vendor),
        )
        if conditions:
            count_query = count_query.where(and_(*conditions))
            query = query.where(and_(*conditions))

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        result = await self.db.execute(
            query.order_by(GoodsReceiptNote.created_at.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all()), total

    # ==================== Receipt submission ====================

    def _resolve_lines(
        self,
        data: GRNCreate,
        po: PurchaseOrder,
        outstanding: Dict[uuid.UUID, Decimal],
    ) -> List[Dict[str, Any]]:
        """
        Validate every submitted line and resolve defaulted quantities.

        All line problems are collected so the caller can fix them in one go.
        """
        if not data.items_received:
            raise ValidationError("items_received must contain at least one line")

        po_items = {item.id: item for item in po.items}
        resolved = []
        errors = []

        for index, line in enumerate(data.items_received):
            line_errors = []
            po_item: Optional[PurchaseOrderItem] = po_items.get(line.po_item_id)
            if po_item is None:
                line_errors.append(f"po_item_id {line.po_item_id} is not a line of PO {po.po_number}")

            quantities = {}
            default_ordered = None
            if po_item is not None:
                default_ordered = outstanding.get(po_item.id, po_item.quantity_ordered)
            raw = {
                "ordered_qty": line.ordered_qty if line.ordered_qty is not None else default_ordered,
                "received_qty": line.received_qty,
            }
            for field, value in raw.items():
                if value is None:
                    if field != "ordered_qty" or po_item is not None:
                        line_errors.append(f"{field} is required")
                    continue
                try:
                    quantities[field] = to_quantity(value, field)
                except ValidationError as e:
                    line_errors.append(e.message)

            invoiced = line.invoiced_qty if line.invoiced_qty is not None else quantities.get("ordered_qty")
            if invoiced is not None:
                try:
                    quantities["invoiced_qty"] = to_quantity(invoiced, "invoiced_qty")
                except ValidationError as e:
                    line_errors.append(e.message)

            if line_errors:
                errors.append({"line": index + 1, "po_item_id": str(line.po_item_id), "errors": line_errors})
                continue

            resolved.append({
                "po_item": po_item,
                "ordered_qty": quantities["ordered_qty"],
                "invoiced_qty": quantities["invoiced_qty"],
                "received_qty": quantities["received_qty"],
                "remarks": line.remarks,
            })

        if errors:
            raise ValidationError("Receipt has invalid lines", {"lines": errors})
        return resolved

    async def create_grn(self, data: GRNCreate, actor: Actor) -> GRNResult:
        """
        Submit a goods receipt.

        Raises:
            ValidationError: bad or missing line data; nothing is persisted
            NotFoundError: unknown purchase order or vendor request
            ConflictError: duplicate grn_number, or a case rule was broken
        """
        po = await self._get_purchase_order(data.purchase_order_id)

        outstanding: Dict[uuid.UUID, Decimal] = {}
        if data.vendor_request_id:
            request = await self._get_vendor_request(data.vendor_request_id, po)
            for item in request.items or []:
                key = uuid.UUID(item["po_item_id"])
                outstanding[key] = outstanding.get(key, Decimal("0")) + Decimal(item["variance_qty"])

        lines = self._resolve_lines(data, po, outstanding)

        if data.grn_number:
            existing = await self.db.execute(
                select(GoodsReceiptNote.id).where(GoodsReceiptNote.grn_number == data.grn_number)
            )
            if existing.scalar_one_or_none():
                raise ConflictError(
                    f"GRN number {data.grn_number} already exists",
                    {"grn_number": data.grn_number},
                )
            grn_number = data.grn_number
        else:
            grn_number = await DocumentSequenceService(self.db).get_next_number("GRN")

        # Three-way match, one line at a time
        counts: Dict[str, int] = OrderedDict((cls.value, 0) for cls in DiscrepancyClass)
        grn_items: List[GRNItem] = []
        total_value = Decimal("0")
        for line_number, line in enumerate(lines, start=1):
            po_item = line["po_item"]
            discrepancy_class = classify(line["ordered_qty"], line["invoiced_qty"], line["received_qty"])
            shortage_qty, overage_qty = variance(line["ordered_qty"], line["invoiced_qty"], line["received_qty"])
            received_value = money(line["received_qty"] * po_item.unit_price)
            total_value += received_value
            counts[discrepancy_class.value] += 1

            grn_items.append(GRNItem(
                id=uuid.uuid4(),
                po_item_id=po_item.id,
                line_number=line_number,
                material_name=po_item.material_name,
                color=po_item.color,
                specification=po_item.specification,
                uom=po_item.uom,
                unit_price=po_item.unit_price,
                ordered_qty=line["ordered_qty"],
                invoiced_qty=line["invoiced_qty"],
                received_qty=line["received_qty"],
                discrepancy_class=discrepancy_class.value,
                shortage_qty=shortage_qty,
                overage_qty=overage_qty,
                received_value=received_value,
                remarks=line["remarks"],
            ))

        all_perfect = counts[DiscrepancyClass.PERFECT_MATCH.value] == len(grn_items)
        status = VerificationStatus.VERIFIED.value if all_perfect else VerificationStatus.DISCREPANCY.value

        grn = GoodsReceiptNote(
            grn_number=grn_number,
            purchase_order_id=po.id,
            vendor_id=po.vendor_id,
            received_date=data.received_date,
            supplier_invoice_number=data.supplier_invoice_number,
            inward_challan_number=data.inward_challan_number,
            verification_status=status,
            vendor_request_id=data.vendor_request_id,
            total_received_value=money(total_value),
            remarks=data.remarks,
            created_by=actor.user_id,
        )
        grn.purchase_order = po
        grn.vendor = po.vendor
        grn.items = grn_items
        self.db.add(grn)

        try:
            await self.db.flush()
        except IntegrityError as e:
            logger.error(f"GRN insert failed for {grn_number}: {e}")
            raise ConflictError(
                f"GRN number {grn_number} already exists",
                {"grn_number": grn_number},
            ) from e

        # Stock moves on every line; cases track the variance, not a block on stock
        po_items = {item.id: item for item in po.items}
        for item in grn_items:
            await InventoryService(self.db).apply_received_quantity(
                po_item=po_items[item.po_item_id],
                quantity=item.received_qty,
                reference_id=grn.id,
                reference_number=grn.grn_number,
                reference_line_id=item.id,
                performed_by=actor.user_id,
            )
        grn.inventory_added = True
        grn.inventory_added_at = datetime.now(timezone.utc)

        # One case per discrepancy class present
        cases: List[DiscrepancyCase] = []
        if not all_perfect:
            discrepancy_service = DiscrepancyService(self.db)
            for cls in DISCREPANCY_ORDER:
                class_lines = [item for item in grn_items if item.discrepancy_class == cls]
                if class_lines:
                    cases.append(await discrepancy_service.create_case(grn, cls, class_lines, actor))

        summary = build_summary(counts, len(grn_items), len(cases))
        grn.discrepancy_details = {
            "total_lines": len(grn_items),
            **{f"{cls}_count": count for cls, count in counts.items()},
            "case_ids": [str(case.id) for case in cases],
            "summary": summary,
        }
        await self.db.flush()

        await self.audit.record(
            entity_type="grn",
            entity_id=grn.id,
            action="created",
            status_before=None,
            status_after=status,
            performed_by=actor.user_id,
            department=actor.department,
            metadata={
                "grn_number": grn.grn_number,
                "purchase_order_id": str(po.id),
                "counts": dict(counts),
                "vendor_request_id": str(data.vendor_request_id) if data.vendor_request_id else None,
            },
        )

        logger.info(f"GRN {grn.grn_number} created against {po.po_number}: {summary}")
        return GRNResult(grn, dict(counts), cases, summary)

    # ==================== Reviewer decisions ====================

    async def _review(
        self,
        grn_id: uuid.UUID,
        new_status: str,
        actor: Actor,
        notes: Optional[str],
        expected_status: Optional[str],
    ) -> GoodsReceiptNote:
        grn = await self.get_grn(grn_id)
        before = grn.verification_status
        check_expected_status("GRN", before, expected_status)
        if before not in REVIEWABLE_STATUSES:
            raise ConflictError(
                f"GRN {grn.grn_number} is already {before}",
                {"id": str(grn.id), "verification_status": before},
            )

        await compare_and_set_status(
            self.db, grn, before, new_status,
            status_field="verification_status",
            verified_by=actor.user_id,
            verified_at=datetime.now(timezone.utc),
            review_notes=notes,
        )
        await self.audit.record(
            entity_type="grn",
            entity_id=grn.id,
            action=new_status,
            status_before=before,
            status_after=new_status,
            performed_by=actor.user_id,
            department=actor.department,
            reason=notes,
        )
        logger.info(f"GRN {grn.grn_number}: {before} -> {new_status}")
        return grn

    async def approve_grn(
        self,
        grn_id: uuid.UUID,
        actor: Actor,
        notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> GoodsReceiptNote:
        return await self._review(grn_id, VerificationStatus.APPROVED.value, actor, notes, expected_status)

    async def reject_grn(
        self,
        grn_id: uuid.UUID,
        actor: Actor,
        notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> GoodsReceiptNote:
        if not notes:
            raise ValidationError("A reason is required to reject a GRN")
        return await self._review(grn_id, VerificationStatus.REJECTED.value, actor, notes, expected_status)
