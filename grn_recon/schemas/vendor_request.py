"""Pydantic schemas for vendor requests."""
from datetime import datetime, date
from typing import Optional, List
from decimal import Decimal
from uuid import UUID
from pydantic import Field

from grn_recon.schemas.base import BaseResponseSchema, BaseCreateSchema, TransitionRequest, PaginatedResponse


class VendorRequestCreate(BaseCreateSchema):
    """Raise a vendor request against an open shortage/overage case."""
    complaint_id: UUID
    message_to_vendor: Optional[str] = None  # Generated from the case lines when omitted
    expected_fulfillment_date: Optional[date] = None
    remarks: Optional[str] = None


class VendorRequestSend(TransitionRequest):
    sent_by: Optional[str] = Field(None, description="Defaults to the acting user")


class VendorRequestAcknowledge(TransitionRequest):
    vendor_response: Optional[str] = None
    expected_fulfillment_date: Optional[date] = None


class VendorRequestFulfill(TransitionRequest):
    # Optional here so a missing id is reported as a workflow violation
    fulfillment_grn_id: Optional[UUID] = None


class VendorRequestCancel(TransitionRequest):
    reason: Optional[str] = None


class VendorRequestResponse(BaseResponseSchema):
    id: UUID
    request_number: str
    purchase_order_id: UUID
    grn_id: UUID
    vendor_id: UUID
    complaint_id: UUID
    request_type: str
    items: List[dict]
    total_value: Decimal
    status: str
    message_to_vendor: Optional[str] = None
    vendor_response: Optional[str] = None
    expected_fulfillment_date: Optional[date] = None
    fulfillment_grn_id: Optional[UUID] = None
    created_by: str
    sent_by: Optional[str] = None
    sent_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    in_transit_at: Optional[datetime] = None
    fulfilled_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    remarks: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class VendorRequestTransitionResponse(BaseResponseSchema):
    """Transition result, including the originating case status after the change."""
    vendor_request: VendorRequestResponse
    case_status: str
    case_closed: bool = False


class VendorRequestListResponse(PaginatedResponse):
    items: List[VendorRequestResponse]
