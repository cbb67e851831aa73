"""
Credit Note Settlement Workflow.

Financial resolution of a discrepancy case. Amounts are computed with
Decimal and ROUND_HALF_UP; the model's flush-time hook rejects any row
whose total is not subtotal + tax, or whose settlement completed before
the note was settled.

Case effects, applied in the same transaction:
    created           -> case in_progress
    settled           -> case approved
    rejected/cancelled -> case back to pending
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from grn_recon.config import settings
from grn_recon.core.actor import Actor
from grn_recon.core.exceptions import ConflictError, NotFoundError, ValidationError
from grn_recon.models.credit_note import CreditNote, CreditNoteType
from grn_recon.models.discrepancy_case import DiscrepancyCase, ComplaintType
from grn_recon.models.vendor import Vendor
from grn_recon.schemas.credit_note import CreditNoteCreate, CreditNoteUpdate, CreditNoteItem
from grn_recon.services.audit_service import AuditService
from grn_recon.services.credit_note_state_machine import (
    CreditNoteStatus,
    SettlementStatus,
    validate_transition,
    validate_settlement_transition,
    can_edit,
)
from grn_recon.services.discrepancy_service import DiscrepancyService, money
from grn_recon.services.document_sequence_service import DocumentSequenceService
from grn_recon.services.state_guard import compare_and_set_status, check_expected_status


logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")

OUTSTANDING_STATUSES = [CreditNoteStatus.ISSUED, CreditNoteStatus.ACCEPTED]


def items_from_case(case: DiscrepancyCase) -> List[Dict[str, Any]]:
    """Default credit lines: the case's variance quantities at PO price."""
    return [
        {
            "grn_item_id": line["grn_item_id"],
            "material_name": line["material_name"],
            "quantity": line["variance_qty"],
            "unit_price": line["unit_price"],
            "amount": line["variance_value"],
            "reason": case.complaint_type,
        }
        for line in case.items_affected
    ]


def normalize_items(items: List[CreditNoteItem]) -> List[Dict[str, Any]]:
    normalized = []
    for item in items:
        amount = item.amount if item.amount is not None else money(item.quantity * item.unit_price)
        normalized.append({
            "grn_item_id": str(item.grn_item_id) if item.grn_item_id else None,
            "material_name": item.material_name,
            "quantity": str(item.quantity),
            "unit_price": str(item.unit_price),
            "amount": str(money(amount)),
            "reason": item.reason,
        })
    return normalized


def compute_amounts(
    items: List[Dict[str, Any]],
    tax_percentage: Decimal,
    subtotal: Optional[Decimal] = None,
    tax_amount: Optional[Decimal] = None,
    total: Optional[Decimal] = None,
) -> Dict[str, Decimal]:
    """
    Subtotal, tax and total for a credit note.

    Caller-supplied figures win over computed ones; the total is only
    derived when not supplied, so an inconsistent supplied total is left
    for the invariant check to reject.
    """
    if subtotal is None:
        subtotal = sum((Decimal(i["amount"]) for i in items), Decimal("0"))
    subtotal = money(subtotal)
    if tax_amount is None:
        tax_amount = subtotal * Decimal(tax_percentage) / HUNDRED
    tax_amount = money(tax_amount)
    if total is None:
        total = subtotal + tax_amount
    return {
        "subtotal_credit_amount": subtotal,
        "tax_percentage": Decimal(tax_percentage),
        "tax_amount": tax_amount,
        "total_credit_amount": money(total),
    }


class CreditNoteService:
    """Creates credit notes and drives their status and settlement."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.cases = DiscrepancyService(db)

    # ==================== Queries ====================

    async def get_credit_note(self, credit_note_id: uuid.UUID) -> CreditNote:
        result = await self.db.execute(
            select(CreditNote).where(CreditNote.id == credit_note_id)
        )
        note = result.scalar_one_or_none()
        if not note:
            raise NotFoundError("Credit note not found", {"id": str(credit_note_id)})
        return note

    async def list_credit_notes(
        self,
        status: Optional[str] = None,
        credit_note_type: Optional[str] = None,
        settlement_status: Optional[str] = None,
        vendor_id: Optional[uuid.UUID] = None,
        complaint_id: Optional[uuid.UUID] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[CreditNote], int]:
        conditions = []
        if status:
            conditions.append(CreditNote.status == status)
        if credit_note_type:
            conditions.append(CreditNote.credit_note_type == credit_note_type)
        if settlement_status:
            conditions.append(CreditNote.settlement_status == settlement_status)
        if vendor_id:
            conditions.append(CreditNote.vendor_id == vendor_id)
        if complaint_id:
            conditions.append(CreditNote.complaint_id == complaint_id)

        count_query = select(func.count(CreditNote.id))
        query = select(CreditNote)
        if conditions:
            count_query = count_query.where(and_(*conditions))
            query = query.where(and_(*conditions))

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(CreditNote.created_at.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all()), total

    async def vendor_summary(self, vendor_id: uuid.UUID) -> Dict[str, Any]:
        """Credit note counts and amounts for one vendor."""
        vendor = (await self.db.execute(select(Vendor).where(Vendor.id == vendor_id))).scalar_one_or_none()
        if not vendor:
            raise NotFoundError("Vendor not found", {"vendor_id": str(vendor_id)})

        result = await self.db.execute(
            select(
                CreditNote.status,
                CreditNote.settlement_status,
                func.count(CreditNote.id),
                func.coalesce(func.sum(CreditNote.total_credit_amount), 0),
            )
            .where(CreditNote.vendor_id == vendor_id)
            .group_by(CreditNote.status, CreditNote.settlement_status)
        )

        by_status: Dict[str, int] = {status: 0 for status in CreditNoteStatus.all()}
        by_settlement: Dict[str, int] = {status: 0 for status in SettlementStatus.all()}
        total_count = 0
        total_amount = Decimal("0")
        settled_amount = Decimal("0")
        outstanding_amount = Decimal("0")
        for status, settlement_status, count, amount in result.all():
            amount = Decimal(str(amount))
            by_status[status] = by_status.get(status, 0) + count
            by_settlement[settlement_status] = by_settlement.get(settlement_status, 0) + count
            total_count += count
            if status in (CreditNoteStatus.REJECTED, CreditNoteStatus.CANCELLED):
                continue
            total_amount += amount
            if status == CreditNoteStatus.SETTLED:
                settled_amount += amount
            elif status in OUTSTANDING_STATUSES:
                outstanding_amount += amount

        return {
            "vendor_id": vendor.id,
            "vendor_name": vendor.name,
            "total_credit_notes": total_count,
            "by_status": by_status,
            "by_settlement_status": by_settlement,
            "total_credit_amount": money(total_amount),
            "settled_amount": money(settled_amount),
            "outstanding_amount": money(outstanding_amount),
        }

    # ==================== Creation and edit ====================

    def _check_type(self, credit_note_type: str, case: DiscrepancyCase) -> None:
        if (
            credit_note_type == CreditNoteType.PARTIAL_CREDIT.value
            and case.complaint_type != ComplaintType.OVERAGE.value
        ):
            raise ValidationError(
                "A partial credit note can only be raised against an overage case",
                {"complaint_type": case.complaint_type, "credit_note_type": credit_note_type},
            )

    async def create_credit_note(self, data: CreditNoteCreate, actor: Actor) -> Tuple[CreditNote, DiscrepancyCase]:
        """
        Raise a draft credit note against an open case.

        Raises:
            NotFoundError: unknown case
            ConflictError: case already closed
            ValidationError: partial credit against a non-overage case
            InvariantViolation: supplied totals do not add up
        """
        case = await self.cases.require_open_case(data.complaint_id)
        credit_note_type = data.credit_note_type.value
        self._check_type(credit_note_type, case)

        items = normalize_items(data.items) if data.items else items_from_case(case)
        tax_percentage = (
            data.tax_percentage if data.tax_percentage is not None
            else settings.CREDIT_NOTE_DEFAULT_TAX_PERCENTAGE
        )
        amounts = compute_amounts(
            items, tax_percentage,
            subtotal=data.subtotal_credit_amount,
            tax_amount=data.tax_amount,
            total=data.total_credit_amount,
        )

        note = CreditNote(
            credit_note_number="",
            grn_id=case.entity_id,
            purchase_order_id=case.purchase_order_id,
            vendor_id=case.vendor_id,
            complaint_id=case.id,
            credit_note_type=credit_note_type,
            items=items,
            status=CreditNoteStatus.DRAFT,
            settlement_method=data.settlement_method.value,
            settlement_status=SettlementStatus.PENDING,
            remarks=data.remarks,
            created_by=actor.user_id,
            **amounts,
        )
        # Reject before a number is consumed
        note.check_invariants()
        note.credit_note_number = await DocumentSequenceService(self.db).get_next_number("CN")
        self.db.add(note)
        await self.db.flush()

        await self.audit.record(
            entity_type="credit_note",
            entity_id=note.id,
            action="created",
            status_before=None,
            status_after=note.status,
            performed_by=actor.user_id,
            department=actor.department,
            metadata={
                "credit_note_number": note.credit_note_number,
                "complaint_id": str(case.id),
                "credit_note_type": credit_note_type,
                "total_credit_amount": str(note.total_credit_amount),
            },
        )
        await self.cases.mark_in_progress(
            case, actor,
            reason=f"Credit note {note.credit_note_number} raised",
            metadata={"credit_note_id": str(note.id)},
        )

        logger.info(
            f"Credit note {note.credit_note_number} ({credit_note_type}) for case {case.case_number}: "
            f"{note.total_credit_amount}"
        )
        return note, case

    async def update_credit_note(
        self,
        credit_note_id: uuid.UUID,
        data: CreditNoteUpdate,
        actor: Actor,
    ) -> CreditNote:
        """Edit a draft; totals are recomputed and the invariant rechecked on flush."""
        note = await self.get_credit_note(credit_note_id)
        if not can_edit(note.status):
            raise ConflictError(
                f"Credit note {note.credit_note_number} is {note.status}; only drafts can be edited",
                {"status": note.status},
            )

        changes = data.model_dump(exclude_unset=True)
        if data.credit_note_type is not None:
            case = await self.cases.get_case(note.complaint_id)
            self._check_type(data.credit_note_type.value, case)
            note.credit_note_type = data.credit_note_type.value
        if data.settlement_method is not None:
            note.settlement_method = data.settlement_method.value
        if "remarks" in changes:
            note.remarks = data.remarks

        amount_fields = {"items", "tax_percentage", "subtotal_credit_amount", "tax_amount", "total_credit_amount"}
        if amount_fields & changes.keys():
            if data.items is not None:
                note.items = normalize_items(data.items)
            tax_percentage = data.tax_percentage if data.tax_percentage is not None else note.tax_percentage
            amounts = compute_amounts(
                note.items, tax_percentage,
                subtotal=data.subtotal_credit_amount,
                tax_amount=data.tax_amount,
                total=data.total_credit_amount,
            )
            for field, value in amounts.items():
                setattr(note, field, value)

        await self.db.flush()
        await self.audit.record(
            entity_type="credit_note",
            entity_id=note.id,
            action="updated",
            status_before=note.status,
            status_after=note.status,
            performed_by=actor.user_id,
            department=actor.department,
            metadata={
                "fields": sorted(changes.keys()),
                "total_credit_amount": str(note.total_credit_amount),
            },
        )
        return note

    # ==================== Status transitions ====================

    async def _transition(
        self,
        credit_note_id: uuid.UUID,
        new_status: str,
        actor: Actor,
        expected_status: Optional[str] = None,
        reason: Optional[str] = None,
        metadata: Optional[dict] = None,
        **values,
    ) -> CreditNote:
        note = await self.get_credit_note(credit_note_id)
        before = note.status
        check_expected_status("Credit note", before, expected_status)
        validate_transition(before, new_status)

        await compare_and_set_status(self.db, note, before, new_status, **values)
        note.check_invariants()

        await self.audit.record(
            entity_type="credit_note",
            entity_id=note.id,
            action=new_status,
            status_before=before,
            status_after=new_status,
            performed_by=actor.user_id,
            department=actor.department,
            reason=reason,
            metadata=metadata,
        )
        logger.info(f"Credit note {note.credit_note_number}: {before} -> {new_status}")
        return note

    async def issue(
        self,
        credit_note_id: uuid.UUID,
        actor: Actor,
        notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> CreditNote:
        return await self._transition(
            credit_note_id, CreditNoteStatus.ISSUED, actor, expected_status,
            reason=notes, issued_by=actor.user_id, issued_at=datetime.now(timezone.utc),
        )

    async def accept(
        self,
        credit_note_id: uuid.UUID,
        actor: Actor,
        vendor_response: Optional[str] = None,
        notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> CreditNote:
        return await self._transition(
            credit_note_id, CreditNoteStatus.ACCEPTED, actor, expected_status,
            reason=notes, vendor_response=vendor_response,
            vendor_response_at=datetime.now(timezone.utc),
        )

    async def reject(
        self,
        credit_note_id: uuid.UUID,
        actor: Actor,
        vendor_response: Optional[str] = None,
        notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> Tuple[CreditNote, DiscrepancyCase]:
        """Vendor rejected the note; the case returns to pending for another resolution."""
        note = await self._transition(
            credit_note_id, CreditNoteStatus.REJECTED, actor, expected_status,
            reason=notes or vendor_response,
            vendor_response=vendor_response,
            vendor_response_at=datetime.now(timezone.utc),
        )
        note.settlement_status = SettlementStatus.FAILED
        await self.db.flush()

        case = await self.cases.get_case(note.complaint_id)
        await self.cases.reopen(
            case, actor,
            reason=f"Credit note {note.credit_note_number} rejected by vendor",
            metadata={"credit_note_id": str(note.id)},
        )
        return note, case

    async def settle(
        self,
        credit_note_id: uuid.UUID,
        actor: Actor,
        settlement_notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> Tuple[CreditNote, DiscrepancyCase]:
        """
        Settle an accepted note: settlement completes and the originating
        case closes, all in one transaction.
        """
        note = await self.get_credit_note(credit_note_id)
        if note.settlement_status == SettlementStatus.FAILED:
            raise ConflictError(
                f"Settlement of {note.credit_note_number} failed; it cannot be settled",
                {"settlement_status": note.settlement_status},
            )

        note = await self._transition(
            credit_note_id, CreditNoteStatus.SETTLED, actor, expected_status,
            reason=settlement_notes,
            settled_by=actor.user_id,
            settled_at=datetime.now(timezone.utc),
        )
        note.settlement_status = SettlementStatus.COMPLETED
        if settlement_notes:
            note.settlement_notes = settlement_notes
        await self.db.flush()

        case = await self.cases.get_case(note.complaint_id)
        if case.is_open:
            await self.cases.close(
                case, actor,
                reason=f"Settled by credit note {note.credit_note_number}",
                metadata={"credit_note_id": str(note.id), "total_credit_amount": str(note.total_credit_amount)},
            )
        return note, case

    async def cancel(
        self,
        credit_note_id: uuid.UUID,
        actor: Actor,
        reason: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> Tuple[CreditNote, DiscrepancyCase]:
        note = await self._transition(
            credit_note_id, CreditNoteStatus.CANCELLED, actor, expected_status,
            reason=reason, cancelled_at=datetime.now(timezone.utc),
        )
        case = await self.cases.get_case(note.complaint_id)
        await self.cases.reopen(
            case, actor,
            reason=f"Credit note {note.credit_note_number} cancelled",
            metadata={"credit_note_id": str(note.id)},
        )
        return note, case

    # ==================== Settlement ====================

    async def update_settlement(
        self,
        credit_note_id: uuid.UUID,
        settlement_status: str,
        actor: Actor,
        settlement_notes: Optional[str] = None,
        expected_settlement_status: Optional[str] = None,
    ) -> CreditNote:
        """Advance settlement_status on an accepted or settled note."""
        if settlement_status not in SettlementStatus.all():
            raise ValidationError(
                f"Unknown settlement status '{settlement_status}'",
                {"allowed": SettlementStatus.all()},
            )

        note = await self.get_credit_note(credit_note_id)
        before = note.settlement_status
        check_expected_status("Settlement", before, expected_settlement_status)
        validate_settlement_transition(note.status, before, settlement_status)

        await compare_and_set_status(
            self.db, note, before, settlement_status, status_field="settlement_status",
        )
        if settlement_notes:
            note.settlement_notes = settlement_notes
        await self.db.flush()

        await self.audit.record(
            entity_type="credit_note",
            entity_id=note.id,
            action=f"settlement_{settlement_status}",
            status_before=before,
            status_after=settlement_status,
            performed_by=actor.user_id,
            department=actor.department,
            reason=settlement_notes,
            metadata={"status": note.status},
        )
        logger.info(f"Credit note {note.credit_note_number} settlement: {before} -> {settlement_status}")
        return note
