"""Pydantic schemas for discrepancy cases."""
from datetime import datetime
from typing import Optional, List
from decimal import Decimal
from uuid import UUID

from grn_recon.schemas.base import BaseResponseSchema, PaginatedResponse


class DiscrepancyCaseResponse(BaseResponseSchema):
    """Case with GRN, PO and vendor display fields."""
    id: UUID
    case_number: str
    entity_type: str
    entity_id: UUID
    purchase_order_id: UUID
    vendor_id: UUID
    complaint_type: str
    title: str
    items_affected: List[dict]
    total_value: Decimal
    action_required: Optional[str] = None
    status: str
    requested_by: str
    department: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    grn_number: Optional[str] = None
    po_number: Optional[str] = None
    vendor_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class DiscrepancyCaseListResponse(PaginatedResponse):
    items: List[DiscrepancyCaseResponse]


def case_response(
    case,
    grn_number: Optional[str] = None,
    po_number: Optional[str] = None,
    vendor_name: Optional[str] = None,
) -> DiscrepancyCaseResponse:
    """Build a case response with the denormalized display fields filled in."""
    return DiscrepancyCaseResponse.model_validate(case).model_copy(
        update={"grn_number": grn_number, "po_number": po_number, "vendor_name": vendor_name}
    )
