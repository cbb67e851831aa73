"""
Discrepancy Case Manager.

Materializes one case per discrepancy class found on a goods receipt and
owns every case status change:

    pending -> in_progress            a vendor request or credit note is raised
    in_progress -> pending            that resolution path was cancelled/rejected and
                                      no other vendor request or credit note is active
    pending | in_progress -> approved resolved (fulfilled request, settled credit)
    pending | in_progress -> rejected | skipped | canceled   reviewer decision
"""
import logging
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Tuple, Sequence

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from grn_recon.core.actor import Actor
from grn_recon.core.exceptions import ConflictError, NotFoundError, ValidationError
from grn_recon.models.credit_note import CreditNote
from grn_recon.models.discrepancy_case import DiscrepancyCase, CaseStatus, ComplaintType
from grn_recon.models.purchase import GoodsReceiptNote, GRNItem, PurchaseOrder
from grn_recon.models.vendor import Vendor
from grn_recon.models.vendor_request import VendorRequest
from grn_recon.services.audit_service import AuditService
from grn_recon.services.credit_note_state_machine import TERMINAL_STATUSES as CREDIT_NOTE_TERMINAL
from grn_recon.services.document_sequence_service import DocumentSequenceService
from grn_recon.services.state_guard import compare_and_set_status, check_expected_status
from grn_recon.services.vendor_request_state_machine import TERMINAL_STATUSES as VENDOR_REQUEST_TERMINAL


logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")

ACTION_REQUIRED = {
    ComplaintType.SHORTAGE.value: (
        "Ask the vendor to ship the missing quantity, or settle the shortage with a credit note."
    ),
    ComplaintType.OVERAGE.value: (
        "Agree with the vendor whether the excess is returned or accepted against a credit note."
    ),
    ComplaintType.INVOICE_MISMATCH.value: (
        "Invoice quantity differs from the purchase order. Obtain a corrected invoice "
        "or adjust the invoice through a credit note."
    ),
    ComplaintType.OTHER.value: (
        "Line could not be classified automatically. Review the receipt manually."
    ),
}

# Reviewer decisions on an open case
REVIEW_OUTCOMES = {
    "approve": CaseStatus.APPROVED.value,
    "reject": CaseStatus.REJECTED.value,
    "skip": CaseStatus.SKIPPED.value,
    "cancel": CaseStatus.CANCELED.value,
}

CaseRow = Tuple[DiscrepancyCase, str, str, str]


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def build_affected_item(item: GRNItem, complaint_type: str) -> dict:
    """Snapshot of one GRN line as carried on a case, vendor request or credit note."""
    if complaint_type in (ComplaintType.SHORTAGE.value, ComplaintType.OVERAGE.value):
        variance_qty = abs(item.received_qty - item.ordered_qty)
    else:
        variance_qty = item.invoiced_qty
    return {
        "grn_item_id": str(item.id),
        "po_item_id": str(item.po_item_id),
        "line_number": item.line_number,
        "material_name": item.material_name,
        "color": item.color,
        "specification": item.specification,
        "uom": item.uom,
        "ordered_qty": str(item.ordered_qty),
        "invoiced_qty": str(item.invoiced_qty),
        "received_qty": str(item.received_qty),
        "shortage_qty": str(item.shortage_qty),
        "overage_qty": str(item.overage_qty),
        "variance_qty": str(variance_qty),
        "unit_price": str(item.unit_price),
        "variance_value": str(money(variance_qty * item.unit_price)),
        "remarks": item.remarks,
    }


class DiscrepancyService:
    """Creates, queries and moves discrepancy cases."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    # ==================== Creation ====================

    async def create_case(
        self,
        grn: GoodsReceiptNote,
        complaint_type: str,
        lines: Sequence[GRNItem],
        actor: Actor,
    ) -> DiscrepancyCase:
        """
        Raise a case for the lines of one discrepancy class on a receipt.

        Raises:
            ValidationError: no lines, or a type that is not a discrepancy
            ConflictError: an open case for (grn, complaint_type) already exists
        """
        if complaint_type not in [t.value for t in ComplaintType]:
            raise ValidationError(f"Unknown complaint type '{complaint_type}'")
        if not lines:
            raise ValidationError("A discrepancy case needs at least one affected line")

        existing = await self.db.execute(
            select(DiscrepancyCase.id).where(
                DiscrepancyCase.entity_type == "grn",
                DiscrepancyCase.entity_id == grn.id,
                DiscrepancyCase.complaint_type == complaint_type,
                DiscrepancyCase.status.in_(CaseStatus.open_statuses()),
            )
        )
        if existing.scalar_one_or_none():
            raise ConflictError(
                f"An open {complaint_type} case already exists for GRN {grn.grn_number}",
                {"grn_id": str(grn.id), "complaint_type": complaint_type},
            )

        items_affected = [build_affected_item(line, complaint_type) for line in lines]
        total_value = money(sum((Decimal(i["variance_value"]) for i in items_affected), Decimal("0")))

        case_number = await DocumentSequenceService(self.db).get_next_number("DC")
        label = complaint_type.replace("_", " ")
        case = DiscrepancyCase(
            case_number=case_number,
            entity_type="grn",
            entity_id=grn.id,
            entity_number=grn.grn_number,
            purchase_order_id=grn.purchase_order_id,
            vendor_id=grn.vendor_id,
            complaint_type=complaint_type,
            title=f"{label.capitalize()} on {grn.grn_number}: {len(lines)} line(s)",
            items_affected=items_affected,
            total_value=total_value,
            action_required=ACTION_REQUIRED[complaint_type],
            status=CaseStatus.PENDING.value,
            requested_by=actor.user_id,
            department=actor.department,
        )
        self.db.add(case)
        await self.db.flush()

        await self.audit.record(
            entity_type="discrepancy_case",
            entity_id=case.id,
            action="created",
            status_before=None,
            status_after=case.status,
            performed_by=actor.user_id,
            department=actor.department,
            metadata={
                "case_number": case_number,
                "grn_id": str(grn.id),
                "grn_number": grn.grn_number,
                "complaint_type": complaint_type,
                "line_count": len(lines),
                "total_value": str(total_value),
            },
        )
        logger.info(f"Raised {complaint_type} case {case_number} for {grn.grn_number} ({len(lines)} lines)")
        return case

    # ==================== Queries ====================

    async def get_case(self, case_id: uuid.UUID) -> DiscrepancyCase:
        result = await self.db.execute(
            select(DiscrepancyCase).where(DiscrepancyCase.id == case_id)
        )
        case = result.scalar_one_or_none()
        if not case:
            raise NotFoundError("Discrepancy case not found", {"id": str(case_id)})
        return case

    def _denormalized_query(self):
        return (
            select(
                DiscrepancyCase,
                GoodsReceiptNote.grn_number,
                PurchaseOrder.po_number,
                Vendor.name,
            )
            .join(GoodsReceiptNote, GoodsReceiptNote.id == DiscrepancyCase.entity_id)
            .join(PurchaseOrder, PurchaseOrder.id == DiscrepancyCase.purchase_order_id)
            .join(Vendor, Vendor.id == DiscrepancyCase.vendor_id)
        )

    async def get_case_row(self, case_id: uuid.UUID) -> CaseRow:
        """Case with GRN number, PO number and vendor name."""
        result = await self.db.execute(
            self._denormalized_query().where(DiscrepancyCase.id == case_id)
        )
        row = result.first()
        if not row:
            raise NotFoundError("Discrepancy case not found", {"id": str(case_id)})
        return tuple(row)

    async def list_cases(
        self,
        status: Optional[str] = None,
        complaint_type: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        grn_id: Optional[uuid.UUID] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[CaseRow], int]:
        """List cases newest first with display fields joined in."""
        conditions = [DiscrepancyCase.entity_type == "grn"]
        if status:
            conditions.append(DiscrepancyCase.status == status)
        if complaint_type:
            conditions.append(DiscrepancyCase.complaint_type == complaint_type)
        if grn_id:
            conditions.append(DiscrepancyCase.entity_id == grn_id)
        if date_from:
            conditions.append(
                DiscrepancyCase.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc)
            )
        if date_to:
            conditions.append(
                DiscrepancyCase.created_at <= datetime.combine(date_to, time.max, tzinfo=timezone.utc)
            )

        count_result = await self.db.execute(
            select(func.count(DiscrepancyCase.id)).where(and_(*conditions))
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            self._denormalized_query()
            .where(and_(*conditions))
            .order_by(DiscrepancyCase.created_at.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        return [tuple(row) for row in result.all()], total

    # ==================== Transitions ====================

    async def _move(
        self,
        case: DiscrepancyCase,
        new_status: str,
        actor: Actor,
        action: str,
        reason: Optional[str] = None,
        metadata: Optional[dict] = None,
        resolve: bool = False,
    ) -> DiscrepancyCase:
        before = case.status
        values = {}
        if resolve:
            values = {
                "resolved_by": actor.user_id,
                "resolved_at": datetime.now(timezone.utc),
                "resolution_notes": reason,
            }
        await compare_and_set_status(self.db, case, before, new_status, **values)
        await self.audit.record(
            entity_type="discrepancy_case",
            entity_id=case.id,
            action=action,
            status_before=before,
            status_after=new_status,
            performed_by=actor.user_id,
            department=actor.department,
            reason=reason,
            metadata=metadata,
        )
        logger.info(f"Case {case.case_number}: {before} -> {new_status} ({action})")
        return case

    def _require_open(self, case: DiscrepancyCase) -> None:
        if not case.is_open:
            raise ConflictError(
                f"Case {case.case_number} is already {case.status}",
                {"id": str(case.id), "status": case.status},
            )

    async def review(
        self,
        case_id: uuid.UUID,
        decision: str,
        actor: Actor,
        notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> DiscrepancyCase:
        """Reviewer decision on an open case: approve, reject, skip or cancel."""
        if decision not in REVIEW_OUTCOMES:
            raise ValidationError(f"Unknown decision '{decision}'", {"allowed": list(REVIEW_OUTCOMES)})
        case = await self.get_case(case_id)
        check_expected_status("Discrepancy case", case.status, expected_status)
        self._require_open(case)
        return await self._move(
            case, REVIEW_OUTCOMES[decision], actor, action=REVIEW_OUTCOMES[decision],
            reason=notes, resolve=True,
        )

    async def require_open_case(
        self,
        case_id: uuid.UUID,
        allowed_types: Optional[Sequence[str]] = None,
    ) -> DiscrepancyCase:
        """Fetch a case a resolution path is about to be raised against."""
        case = await self.get_case(case_id)
        self._require_open(case)
        if allowed_types and case.complaint_type not in allowed_types:
            raise ValidationError(
                f"Case {case.case_number} is a {case.complaint_type} case",
                {"complaint_type": case.complaint_type, "allowed_types": list(allowed_types)},
            )
        return case

    async def mark_in_progress(
        self,
        case: DiscrepancyCase,
        actor: Actor,
        reason: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> DiscrepancyCase:
        """A resolution path was opened; no-op if the case is already in progress."""
        if case.status == CaseStatus.IN_PROGRESS.value:
            return case
        self._require_open(case)
        return await self._move(
            case, CaseStatus.IN_PROGRESS.value, actor, action="in_progress",
            reason=reason, metadata=metadata,
        )

    async def active_resolutions(self, case_id: uuid.UUID) -> List[str]:
        """Numbers of the non-terminal vendor requests and credit notes raised on a case."""
        requests = await self.db.execute(
            select(VendorRequest.request_number).where(
                VendorRequest.complaint_id == case_id,
                VendorRequest.status.notin_(VENDOR_REQUEST_TERMINAL),
            )
        )
        notes = await self.db.execute(
            select(CreditNote.credit_note_number).where(
                CreditNote.complaint_id == case_id,
                CreditNote.status.notin_(CREDIT_NOTE_TERMINAL),
            )
        )
        return list(requests.scalars().all()) + list(notes.scalars().all())

    async def reopen(
        self,
        case: DiscrepancyCase,
        actor: Actor,
        reason: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> DiscrepancyCase:
        """Send the case back to pending for an alternate resolution."""
        if case.status != CaseStatus.IN_PROGRESS.value:
            # Already pending, or closed by another path
            return case
        active = await self.active_resolutions(case.id)
        if active:
            logger.info(f"Case {case.case_number} stays {case.status}; still open: {', '.join(active)}")
            return case
        return await self._move(
            case, CaseStatus.PENDING.value, actor, action="reopened",
            reason=reason, metadata=metadata,
        )

    async def close(
        self,
        case: DiscrepancyCase,
        actor: Actor,
        reason: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> DiscrepancyCase:
        """Resolve the case as approved."""
        self._require_open(case)
        return await self._move(
            case, CaseStatus.APPROVED.value, actor, action="resolved",
            reason=reason, metadata=metadata, resolve=True,
        )
