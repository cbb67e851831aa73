"""Discrepancy case API endpoints."""
from typing import Optional
from uuid import UUID
from datetime import date

from fastapi import APIRouter, Query

from grn_recon.api.deps import DB, CurrentActor
from grn_recon.schemas.base import TransitionRequest, page_count
from grn_recon.schemas.discrepancy import (
    DiscrepancyCaseResponse,
    DiscrepancyCaseListResponse,
    case_response,
)
from grn_recon.services.discrepancy_service import DiscrepancyService

router = APIRouter()


@router.get("", response_model=DiscrepancyCaseListResponse)
async def list_discrepancy_cases(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    type: Optional[str] = Query(None, description="Complaint type"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    grn_id: Optional[UUID] = None,
):
    """List cases newest first, with GRN number, PO number and vendor name."""
    rows, total = await DiscrepancyService(db).list_cases(
        status=status,
        complaint_type=type,
        date_from=date_from,
        date_to=date_to,
        grn_id=grn_id,
        page=page,
        size=size,
    )
    return DiscrepancyCaseListResponse(
        items=[case_response(*row) for row in rows],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


@router.get("/{case_id}", response_model=DiscrepancyCaseResponse)
async def get_discrepancy_case(case_id: UUID, db: DB):
    return case_response(*await DiscrepancyService(db).get_case_row(case_id))


async def _review(db, case_id: UUID, decision: str, actor, request: Optional[TransitionRequest]):
    request = request or TransitionRequest()
    service = DiscrepancyService(db)
    await service.review(case_id, decision, actor, request.notes, request.expected_status)
    await db.commit()
    return case_response(*await service.get_case_row(case_id))


@router.post("/{case_id}/approve", response_model=DiscrepancyCaseResponse)
async def approve_discrepancy_case(
    case_id: UUID,
    db: DB,
    actor: CurrentActor,
    request: Optional[TransitionRequest] = None,
):
    return await _review(db, case_id, "approve", actor, request)


@router.post("/{case_id}/reject", response_model=DiscrepancyCaseResponse)
async def reject_discrepancy_case(
    case_id: UUID,
    db: DB,
    actor: CurrentActor,
    request: Optional[TransitionRequest] = None,
):
    return await _review(db, case_id, "reject", actor, request)


@router.post("/{case_id}/skip", response_model=DiscrepancyCaseResponse)
async def skip_discrepancy_case(
    case_id: UUID,
    db: DB,
    actor: CurrentActor,
    request: Optional[TransitionRequest] = None,
):
    return await _review(db, case_id, "skip", actor, request)


@router.post("/{case_id}/cancel", response_model=DiscrepancyCaseResponse)
async def cancel_discrepancy_case(
    case_id: UUID,
    db: DB,
    actor: CurrentActor,
    request: Optional[TransitionRequest] = None,
):
    return await _review(db, case_id, "cancel", actor, request)
