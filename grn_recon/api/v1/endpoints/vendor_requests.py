"""Vendor request API endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from grn_recon.api.deps import DB, CurrentActor, Notifier
from grn_recon.schemas.base import TransitionRequest, page_count
from grn_recon.schemas.vendor_request import (
    VendorRequestCreate,
    VendorRequestSend,
    VendorRequestAcknowledge,
    VendorRequestFulfill,
    VendorRequestCancel,
    VendorRequestResponse,
    VendorRequestTransitionResponse,
    VendorRequestListResponse,
)
from grn_recon.services.notification_service import NotificationEvent
from grn_recon.services.vendor_request_service import VendorRequestService

router = APIRouter()


def _transition_response(request, case, case_closed: bool = False) -> VendorRequestTransitionResponse:
    return VendorRequestTransitionResponse(
        vendor_request=VendorRequestResponse.model_validate(request),
        case_status=case.status,
        case_closed=case_closed,
    )


@router.post("", response_model=VendorRequestTransitionResponse, status_code=status.HTTP_201_CREATED)
async def create_vendor_request(
    data: VendorRequestCreate,
    db: DB,
    actor: CurrentActor,
):
    """Raise a vendor request against an open shortage or overage case."""
    request, case = await VendorRequestService(db).create_request(data, actor)
    await db.commit()
    return _transition_response(request, case)


@router.get("", response_model=VendorRequestListResponse)
async def list_vendor_requests(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    request_type: Optional[str] = None,
    purchase_order_id: Optional[UUID] = None,
    vendor_id: Optional[UUID] = None,
    complaint_id: Optional[UUID] = None,
):
    requests, total = await VendorRequestService(db).list_requests(
        status=status,
        request_type=request_type,
        purchase_order_id=purchase_order_id,
        vendor_id=vendor_id,
        complaint_id=complaint_id,
        page=page,
        size=size,
    )
    return VendorRequestListResponse(
        items=[VendorRequestResponse.model_validate(r) for r in requests],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


@router.get("/{request_id}", response_model=VendorRequestResponse)
async def get_vendor_request(request_id: UUID, db: DB):
    return await VendorRequestService(db).get_request(request_id)


@router.post("/{request_id}/send", response_model=VendorRequestResponse)
async def send_vendor_request(
    request_id: UUID,
    db: DB,
    actor: CurrentActor,
    notifier: Notifier,
    data: Optional[VendorRequestSend] = None,
):
    """Send the request to the vendor. Transmission is best effort after commit."""
    data = data or VendorRequestSend()
    request = await VendorRequestService(db).send(
        request_id, actor, sent_by=data.sent_by, notes=data.notes, expected_status=data.expected_status,
    )
    await db.commit()

    await notifier.notify(
        NotificationEvent.VENDOR_REQUEST_SENT,
        {
            "vendor_request_id": str(request.id),
            "number": request.request_number,
            "vendor_id": str(request.vendor_id),
            "request_type": request.request_type,
            "message": request.message_to_vendor,
        },
    )
    return request


@router.post("/{request_id}/acknowledge", response_model=VendorRequestResponse)
async def acknowledge_vendor_request(
    request_id: UUID,
    db: DB,
    actor: CurrentActor,
    data: Optional[VendorRequestAcknowledge] = None,
):
    data = data or VendorRequestAcknowledge()
    request = await VendorRequestService(db).acknowledge(
        request_id, actor,
        vendor_response=data.vendor_response,
        expected_fulfillment_date=data.expected_fulfillment_date,
        notes=data.notes,
        expected_status=data.expected_status,
    )
    await db.commit()
    return request


@router.post("/{request_id}/in-transit", response_model=VendorRequestResponse)
async def mark_vendor_request_in_transit(
    request_id: UUID,
    db: DB,
    actor: CurrentActor,
    data: Optional[TransitionRequest] = None,
):
    data = data or TransitionRequest()
    request = await VendorRequestService(db).mark_in_transit(
        request_id, actor, notes=data.notes, expected_status=data.expected_status,
    )
    await db.commit()
    return request


@router.post("/{request_id}/fulfill", response_model=VendorRequestTransitionResponse)
async def fulfill_vendor_request(
    request_id: UUID,
    db: DB,
    actor: CurrentActor,
    notifier: Notifier,
    data: Optional[VendorRequestFulfill] = None,
):
    """
    Mark the request fulfilled by a follow-up GRN.

    The originating case closes only when that GRN reconciled.
    """
    data = data or VendorRequestFulfill()
    request, case, case_closed = await VendorRequestService(db).fulfill(
        request_id, actor,
        fulfillment_grn_id=data.fulfillment_grn_id,
        notes=data.notes,
        expected_status=data.expected_status,
    )
    await db.commit()

    await notifier.notify(
        NotificationEvent.VENDOR_REQUEST_FULFILLED,
        {
            "vendor_request_id": str(request.id),
            "number": request.request_number,
            "fulfillment_grn_id": str(request.fulfillment_grn_id),
            "case_id": str(case.id),
            "case_closed": case_closed,
        },
    )
    return _transition_response(request, case, case_closed)


@router.post("/{request_id}/cancel", response_model=VendorRequestTransitionResponse)
async def cancel_vendor_request(
    request_id: UUID,
    data: VendorRequestCancel,
    db: DB,
    actor: CurrentActor,
):
    """Cancel the request. A reason is required; the case returns to pending."""
    request, case = await VendorRequestService(db).cancel(
        request_id, actor, reason=data.reason, expected_status=data.expected_status,
    )
    await db.commit()
    return _transition_response(request, case)
