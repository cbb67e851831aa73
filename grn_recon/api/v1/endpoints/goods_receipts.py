"""Goods Receipt Note (GRN) API endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from grn_recon.api.deps import DB, CurrentActor, Notifier
from grn_recon.schemas.base import page_count
from grn_recon.schemas.discrepancy import case_response
from grn_recon.schemas.goods_receipt import (
    GRNCreate,
    GRNReviewRequest,
    GRNResponse,
    GRNCreateResponse,
    GRNListResponse,
)
from grn_recon.services.grn_service import GRNService
from grn_recon.services.notification_service import NotificationEvent

router = APIRouter()


@router.post("", response_model=GRNCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_goods_receipt(
    data: GRNCreate,
    db: DB,
    actor: CurrentActor,
    notifier: Notifier,
):
    """
    Submit a goods receipt against a purchase order.

    Every line is classified against the PO and invoice quantities. One
    discrepancy case is raised per non-perfect class. Received quantities
    go to inventory for all lines.
    """
    result = await GRNService(db).create_grn(data, actor)
    await db.commit()

    grn = result.grn
    response = GRNCreateResponse(
        grn=GRNResponse.model_validate(grn),
        perfect_match_count=result.counts["perfect_match"],
        shortage_count=result.counts["shortage"],
        overage_count=result.counts["overage"],
        invoice_mismatch_count=result.counts["invoice_mismatch"],
        other_count=result.counts["other"],
        cases=[case_response(case, grn.grn_number, grn.po_number, grn.vendor_name) for case in result.cases],
        summary=result.summary,
    )

    payload = {
        "grn_id": str(grn.id),
        "number": grn.grn_number,
        "po_number": grn.po_number,
        "vendor_name": grn.vendor_name,
        "verification_status": grn.verification_status,
        "summary": result.summary,
    }
    await notifier.notify(NotificationEvent.GRN_CREATED, payload)
    if result.has_discrepancy:
        await notifier.notify(
            NotificationEvent.GRN_DISCREPANCY,
            {**payload, "case_numbers": [case.case_number for case in result.cases]},
        )
    return response


@router.get("", response_model=GRNListResponse)
async def list_goods_receipts(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    purchase_order_id: Optional[UUID] = None,
    vendor_id: Optional[UUID] = None,
    verification_status: Optional[str] = None,
):
    """List GRNs with filtering and pagination."""
    grns, total = await GRNService(db).list_grns(
        purchase_order_id=purchase_order_id,
        vendor_id=vendor_id,
        verification_status=verification_status,
        page=page,
        size=size,
    )
    return GRNListResponse(
        items=[GRNResponse.model_validate(grn) for grn in grns],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


@router.get("/{grn_id}", response_model=GRNResponse)
async def get_goods_receipt(grn_id: UUID, db: DB):
    """Get GRN by ID with its lines."""
    return await GRNService(db).get_grn(grn_id)


@router.post("/{grn_id}/approve", response_model=GRNResponse)
async def approve_goods_receipt(
    grn_id: UUID,
    db: DB,
    actor: CurrentActor,
    request: Optional[GRNReviewRequest] = None,
):
    """Approve a verified or discrepant GRN."""
    request = request or GRNReviewRequest()
    grn = await GRNService(db).approve_grn(grn_id, actor, request.notes, request.expected_status)
    await db.commit()
    return grn


@router.post("/{grn_id}/reject", response_model=GRNResponse)
async def reject_goods_receipt(
    grn_id: UUID,
    request: GRNReviewRequest,
    db: DB,
    actor: CurrentActor,
):
    """Reject a GRN. Notes are required."""
    grn = await GRNService(db).reject_grn(grn_id, actor, request.notes, request.expected_status)
    await db.commit()
    return grn
