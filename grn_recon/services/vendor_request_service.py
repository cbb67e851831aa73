"""
Vendor Request Workflow.

Formal shortage/overage follow-up with a vendor. Every status change goes
through vendor_request_state_machine and an optimistic status update, and
the originating discrepancy case moves in the same transaction:

    created    -> case in_progress
    fulfilled  -> case approved, if the fulfillment receipt reconciled
    cancelled  -> case back to pending for another resolution
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from grn_recon.core.actor import Actor
from grn_recon.core.exceptions import (
    ConflictError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from grn_recon.models.discrepancy_case import DiscrepancyCase, ComplaintType
from grn_recon.models.purchase import GoodsReceiptNote
from grn_recon.models.vendor_request import VendorRequest
from grn_recon.schemas.vendor_request import VendorRequestCreate
from grn_recon.services.audit_service import AuditService
from grn_recon.services.discrepancy_service import DiscrepancyService
from grn_recon.services.document_sequence_service import DocumentSequenceService
from grn_recon.services.state_guard import compare_and_set_status, check_expected_status
from grn_recon.services.vendor_request_state_machine import (
    VendorRequestStatus,
    STATUS_TIMESTAMPS,
    TERMINAL_STATUSES,
    validate_transition,
    get_transition_action,
)


logger = logging.getLogger(__name__)


def build_vendor_message(
    request_type: str,
    vendor_name: str,
    po_number: str,
    grn_number: str,
    items: List[dict],
    total_value: Decimal,
) -> str:
    """Plain-text message asking the vendor to act on a shortage or overage."""
    label = "shortage" if request_type == ComplaintType.SHORTAGE.value else "overage"
    article = "a" if label == "shortage" else "an"
    lines = [
        f"Dear {vendor_name},",
        "",
        f"We have identified {article} {label} in the materials received against Purchase Order "
        f"{po_number} (GRN: {grn_number}).",
        "",
        f"{label.capitalize()} Details:",
    ]
    for item in items:
        lines.append(
            f"- {item['material_name']}: Ordered {item['ordered_qty']}, "
            f"Received {item['received_qty']}, {label.capitalize()} {item['variance_qty']}"
        )
    lines += ["", f"Total {label.capitalize()} Value: INR {total_value:.2f}", ""]
    if label == "shortage":
        lines.append("Please arrange to send the shortage materials at the earliest.")
    else:
        lines.append("Please review and provide instructions on how to proceed with the excess materials.")
    lines += ["", "Regards,", "Procurement Team"]
    return "\n".join(lines)


class VendorRequestService:
    """Creates vendor requests and drives their lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.cases = DiscrepancyService(db)

    # ==================== Queries ====================

    async def get_request(self, request_id: uuid.UUID) -> VendorRequest:
        result = await self.db.execute(
            select(VendorRequest).where(VendorRequest.id == request_id)
        )
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundError("Vendor request not found", {"id": str(request_id)})
        return request

    async def list_requests(
        self,
        status: Optional[str] = None,
        request_type: Optional[str] = None,
        purchase_order_id: Optional[uuid.UUID] = None,
        vendor_id: Optional[uuid.UUID] = None,
        complaint_id: Optional[uuid.UUID] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[VendorRequest], int]:
        conditions = []
        if status:
            conditions.append(VendorRequest.status == status)
        if request_type:
            conditions.append(VendorRequest.request_type == request_type)
        if purchase_order_id:
            conditions.append(VendorRequest.purchase_order_id == purchase_order_id)
        if vendor_id:
            conditions.append(VendorRequest.vendor_id == vendor_id)
        if complaint_id:
            conditions.append(VendorRequest.complaint_id == complaint_id)

        count_query = select(func.count(VendorRequest.id))
        query = select(VendorRequest)
        if conditions:
            count_query = count_query.where(and_(*conditions))
            query = query.where(and_(*conditions))

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(VendorRequest.created_at.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all()), total

    # ==================== Creation ====================

    async def create_request(self, data: VendorRequestCreate, actor: Actor) -> Tuple[VendorRequest, DiscrepancyCase]:
        """
        Raise a vendor request for an open shortage or overage case.

        Raises:
            NotFoundError: unknown case
            ValidationError: case is not a shortage/overage case
            ConflictError: case closed, or it already has an active request
        """
        case = await self.cases.require_open_case(
            data.complaint_id,
            allowed_types=[ComplaintType.SHORTAGE.value, ComplaintType.OVERAGE.value],
        )

        active = await self.db.execute(
            select(VendorRequest.request_number).where(
                VendorRequest.complaint_id == case.id,
                VendorRequest.status.notin_(TERMINAL_STATUSES),
            )
        )
        active_number = active.scalar_one_or_none()
        if active_number:
            raise ConflictError(
                f"Case {case.case_number} already has active vendor request {active_number}",
                {"complaint_id": str(case.id), "request_number": active_number},
            )

        _, grn_number, po_number, vendor_name = await self.cases.get_case_row(case.id)

        items = list(case.items_affected)
        total_value = Decimal(case.total_value)
        message = data.message_to_vendor or build_vendor_message(
            case.complaint_type, vendor_name, po_number, grn_number, items, total_value
        )

        request = VendorRequest(
            request_number=await DocumentSequenceService(self.db).get_next_number("VRQ"),
            purchase_order_id=case.purchase_order_id,
            grn_id=case.entity_id,
            vendor_id=case.vendor_id,
            complaint_id=case.id,
            request_type=case.complaint_type,
            items=items,
            total_value=total_value,
            status=VendorRequestStatus.PENDING,
            message_to_vendor=message,
            expected_fulfillment_date=data.expected_fulfillment_date,
            remarks=data.remarks,
            created_by=actor.user_id,
        )
        self.db.add(request)
        await self.db.flush()

        await self.audit.record(
            entity_type="vendor_request",
            entity_id=request.id,
            action="created",
            status_before=None,
            status_after=request.status,
            performed_by=actor.user_id,
            department=actor.department,
            metadata={
                "request_number": request.request_number,
                "complaint_id": str(case.id),
                "request_type": request.request_type,
                "total_value": str(total_value),
            },
        )
        await self.cases.mark_in_progress(
            case, actor,
            reason=f"Vendor request {request.request_number} raised",
            metadata={"vendor_request_id": str(request.id)},
        )

        logger.info(f"Vendor request {request.request_number} raised for case {case.case_number}")
        return request, case

    # ==================== Transitions ====================

    async def _transition(
        self,
        request_id: uuid.UUID,
        new_status: str,
        actor: Actor,
        expected_status: Optional[str] = None,
        reason: Optional[str] = None,
        metadata: Optional[dict] = None,
        **values,
    ) -> VendorRequest:
        request = await self.get_request(request_id)
        before = request.status
        check_expected_status("Vendor request", before, expected_status)
        validate_transition(before, new_status)

        stamp = STATUS_TIMESTAMPS.get(new_status)
        if stamp:
            values[stamp] = datetime.now(timezone.utc)
        await compare_and_set_status(self.db, request, before, new_status, **values)

        await self.audit.record(
            entity_type="vendor_request",
            entity_id=request.id,
            action=get_transition_action(before, new_status),
            status_before=before,
            status_after=new_status,
            performed_by=actor.user_id,
            department=actor.department,
            reason=reason,
            metadata=metadata,
        )
        logger.info(f"Vendor request {request.request_number}: {before} -> {new_status}")
        return request

    async def send(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        sent_by: Optional[str] = None,
        notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> VendorRequest:
        sent_by = sent_by or actor.user_id
        if not sent_by:
            raise ValidationError("sent_by is required to send a vendor request")
        return await self._transition(
            request_id, VendorRequestStatus.SENT, actor, expected_status,
            reason=notes, metadata={"sent_by": sent_by}, sent_by=sent_by,
        )

    async def acknowledge(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        vendor_response: Optional[str] = None,
        expected_fulfillment_date=None,
        notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> VendorRequest:
        values = {}
        if vendor_response is not None:
            values["vendor_response"] = vendor_response
        if expected_fulfillment_date is not None:
            values["expected_fulfillment_date"] = expected_fulfillment_date
        return await self._transition(
            request_id, VendorRequestStatus.ACKNOWLEDGED, actor, expected_status,
            reason=notes, **values,
        )

    async def mark_in_transit(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> VendorRequest:
        return await self._transition(
            request_id, VendorRequestStatus.IN_TRANSIT, actor, expected_status, reason=notes,
        )

    async def _get_fulfillment_grn(self, request: VendorRequest, grn_id: uuid.UUID) -> GoodsReceiptNote:
        result = await self.db.execute(
            select(GoodsReceiptNote)
            .options(selectinload(GoodsReceiptNote.items))
            .where(GoodsReceiptNote.id == grn_id)
        )
        grn = result.scalar_one_or_none()
        if not grn:
            raise NotFoundError("Fulfillment GRN not found", {"fulfillment_grn_id": str(grn_id)})
        if grn.id == request.grn_id:
            raise InvariantViolation(
                "A vendor request cannot be fulfilled by the GRN that raised it",
                {"fulfillment_grn_id": str(grn_id)},
            )
        if grn.purchase_order_id != request.purchase_order_id:
            raise InvariantViolation(
                "Fulfillment GRN belongs to a different purchase order",
                {"fulfillment_grn_id": str(grn_id), "purchase_order_id": str(grn.purchase_order_id)},
            )
        if grn.vendor_request_id != request.id:
            raise InvariantViolation(
                f"GRN {grn.grn_number} was not received against {request.request_number}",
                {
                    "fulfillment_grn_id": str(grn_id),
                    "vendor_request_id": str(grn.vendor_request_id) if grn.vendor_request_id else None,
                },
            )

        received = {str(item.po_item_id) for item in grn.items}
        missing = sorted({item["po_item_id"] for item in request.items or []} - received)
        if missing:
            raise InvariantViolation(
                f"GRN {grn.grn_number} does not receive every line of {request.request_number}",
                {"fulfillment_grn_id": str(grn_id), "missing_po_item_ids": missing},
            )

        used = await self.db.execute(
            select(VendorRequest.request_number).where(
                VendorRequest.fulfillment_grn_id == grn.id,
                VendorRequest.id != request.id,
            )
        )
        used_by = used.scalar_one_or_none()
        if used_by:
            raise ConflictError(
                f"GRN {grn.grn_number} already fulfilled vendor request {used_by}",
                {"fulfillment_grn_id": str(grn_id), "request_number": used_by},
            )
        return grn

    async def fulfill(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        fulfillment_grn_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> Tuple[VendorRequest, DiscrepancyCase, bool]:
        """
        Mark the request fulfilled by a follow-up receipt.

        The originating case closes in the same transaction when that
        receipt reconciled (every line a perfect match); otherwise it stays
        open for manual resolution.
        """
        if not fulfillment_grn_id:
            raise InvariantViolation(
                "fulfillment_grn_id is required to fulfill a vendor request",
                {"id": str(request_id)},
            )

        request = await self.get_request(request_id)
        check_expected_status("Vendor request", request.status, expected_status)
        validate_transition(request.status, VendorRequestStatus.FULFILLED)
        grn = await self._get_fulfillment_grn(request, fulfillment_grn_id)
        reconciled = grn.is_reconciled

        await self._transition(
            request_id, VendorRequestStatus.FULFILLED, actor, expected_status,
            reason=notes,
            metadata={
                "fulfillment_grn_id": str(grn.id),
                "fulfillment_grn_number": grn.grn_number,
                "reconciled": reconciled,
            },
            fulfillment_grn_id=grn.id,
        )

        case = await self.cases.get_case(request.complaint_id)
        case_closed = False
        if reconciled and case.is_open:
            await self.cases.close(
                case, actor,
                reason=f"Fulfilled by GRN {grn.grn_number} via {request.request_number}",
                metadata={"vendor_request_id": str(request.id), "fulfillment_grn_id": str(grn.id)},
            )
            case_closed = True
        elif not reconciled:
            logger.info(
                f"{request.request_number} fulfilled by {grn.grn_number} with discrepancies; "
                f"case {case.case_number} stays {case.status}"
            )
        return request, case, case_closed

    async def cancel(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        reason: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> Tuple[VendorRequest, DiscrepancyCase]:
        """Cancel the request; the case goes back to pending for another resolution."""
        if not reason:
            raise ValidationError("A reason is required to cancel a vendor request")

        request = await self._transition(
            request_id, VendorRequestStatus.CANCELLED, actor, expected_status,
            reason=reason, cancellation_reason=reason,
        )
        case = await self.cases.get_case(request.complaint_id)
        await self.cases.reopen(
            case, actor,
            reason=f"Vendor request {request.request_number} cancelled: {reason}",
            metadata={"vendor_request_id": str(request.id)},
        )
        return request, case
