"""Credit note API endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from grn_recon.api.deps import DB, CurrentActor, Notifier
from grn_recon.schemas.base import TransitionRequest, page_count
from grn_recon.schemas.credit_note import (
    CreditNoteCreate,
    CreditNoteUpdate,
    CreditNoteVendorAction,
    CreditNoteSettleRequest,
    CreditNoteCancelRequest,
    SettlementUpdate,
    CreditNoteResponse,
    CreditNoteTransitionResponse,
    CreditNoteListResponse,
    VendorCreditSummary,
)
from grn_recon.services.credit_note_service import CreditNoteService
from grn_recon.services.notification_service import NotificationEvent

router = APIRouter()


def _transition_response(note, case) -> CreditNoteTransitionResponse:
    return CreditNoteTransitionResponse(
        credit_note=CreditNoteResponse.model_validate(note),
        case_status=case.status,
    )


@router.post("", response_model=CreditNoteTransitionResponse, status_code=status.HTTP_201_CREATED)
async def create_credit_note(
    data: CreditNoteCreate,
    db: DB,
    actor: CurrentActor,
    notifier: Notifier,
):
    """Raise a draft credit note against an open discrepancy case."""
    note, case = await CreditNoteService(db).create_credit_note(data, actor)
    await db.commit()

    await notifier.notify(
        NotificationEvent.CREDIT_NOTE_CREATED,
        {
            "credit_note_id": str(note.id),
            "number": note.credit_note_number,
            "vendor_id": str(note.vendor_id),
            "total_credit_amount": str(note.total_credit_amount),
        },
    )
    return _transition_response(note, case)


@router.get("", response_model=CreditNoteListResponse)
async def list_credit_notes(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    credit_note_type: Optional[str] = None,
    settlement_status: Optional[str] = None,
    vendor_id: Optional[UUID] = None,
    complaint_id: Optional[UUID] = None,
):
    notes, total = await CreditNoteService(db).list_credit_notes(
        status=status,
        credit_note_type=credit_note_type,
        settlement_status=settlement_status,
        vendor_id=vendor_id,
        complaint_id=complaint_id,
        page=page,
        size=size,
    )
    return CreditNoteListResponse(
        items=[CreditNoteResponse.model_validate(n) for n in notes],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


@router.get("/vendor/{vendor_id}/summary", response_model=VendorCreditSummary)
async def get_vendor_credit_summary(vendor_id: UUID, db: DB):
    """Credit note counts and amounts for one vendor."""
    return await CreditNoteService(db).vendor_summary(vendor_id)


@router.get("/{credit_note_id}", response_model=CreditNoteResponse)
async def get_credit_note(credit_note_id: UUID, db: DB):
    return await CreditNoteService(db).get_credit_note(credit_note_id)


@router.put("/{credit_note_id}", response_model=CreditNoteResponse)
async def update_credit_note(
    credit_note_id: UUID,
    data: CreditNoteUpdate,
    db: DB,
    actor: CurrentActor,
):
    """Edit a draft credit note. Totals are recomputed."""
    note = await CreditNoteService(db).update_credit_note(credit_note_id, data, actor)
    await db.commit()
    return note


@router.post("/{credit_note_id}/issue", response_model=CreditNoteResponse)
async def issue_credit_note(
    credit_note_id: UUID,
    db: DB,
    actor: CurrentActor,
    data: Optional[TransitionRequest] = None,
):
    data = data or TransitionRequest()
    note = await CreditNoteService(db).issue(
        credit_note_id, actor, notes=data.notes, expected_status=data.expected_status,
    )
    await db.commit()
    return note


@router.post("/{credit_note_id}/accept", response_model=CreditNoteResponse)
async def accept_credit_note(
    credit_note_id: UUID,
    db: DB,
    actor: CurrentActor,
    data: Optional[CreditNoteVendorAction] = None,
):
    data = data or CreditNoteVendorAction()
    note = await CreditNoteService(db).accept(
        credit_note_id, actor,
        vendor_response=data.vendor_response,
        notes=data.notes,
        expected_status=data.expected_status,
    )
    await db.commit()
    return note


@router.post("/{credit_note_id}/reject", response_model=CreditNoteTransitionResponse)
async def reject_credit_note(
    credit_note_id: UUID,
    db: DB,
    actor: CurrentActor,
    data: Optional[CreditNoteVendorAction] = None,
):
    """Vendor rejected the note. Settlement fails and the case returns to pending."""
    data = data or CreditNoteVendorAction()
    note, case = await CreditNoteService(db).reject(
        credit_note_id, actor,
        vendor_response=data.vendor_response,
        notes=data.notes,
        expected_status=data.expected_status,
    )
    await db.commit()
    return _transition_response(note, case)


@router.post("/{credit_note_id}/settle", response_model=CreditNoteTransitionResponse)
async def settle_credit_note(
    credit_note_id: UUID,
    db: DB,
    actor: CurrentActor,
    notifier: Notifier,
    data: Optional[CreditNoteSettleRequest] = None,
):
    """Settle an accepted note. Settlement completes and the case closes."""
    data = data or CreditNoteSettleRequest()
    note, case = await CreditNoteService(db).settle(
        credit_note_id, actor,
        settlement_notes=data.settlement_notes or data.notes,
        expected_status=data.expected_status,
    )
    await db.commit()

    await notifier.notify(
        NotificationEvent.CREDIT_NOTE_SETTLED,
        {
            "credit_note_id": str(note.id),
            "number": note.credit_note_number,
            "case_id": str(case.id),
            "total_credit_amount": str(note.total_credit_amount),
        },
    )
    return _transition_response(note, case)


@router.post("/{credit_note_id}/cancel", response_model=CreditNoteTransitionResponse)
async def cancel_credit_note(
    credit_note_id: UUID,
    db: DB,
    actor: CurrentActor,
    data: Optional[CreditNoteCancelRequest] = None,
):
    data = data or CreditNoteCancelRequest()
    note, case = await CreditNoteService(db).cancel(
        credit_note_id, actor,
        reason=data.reason or data.notes,
        expected_status=data.expected_status,
    )
    await db.commit()
    return _transition_response(note, case)


@router.patch("/{credit_note_id}/settlement", response_model=CreditNoteResponse)
async def update_credit_note_settlement(
    credit_note_id: UUID,
    data: SettlementUpdate,
    db: DB,
    actor: CurrentActor,
):
    """Advance settlement_status: pending -> in_progress -> completed | failed."""
    note = await CreditNoteService(db).update_settlement(
        credit_note_id, data.settlement_status, actor,
        settlement_notes=data.settlement_notes,
        expected_settlement_status=data.expected_settlement_status,
    )
    await db.commit()
    return note
