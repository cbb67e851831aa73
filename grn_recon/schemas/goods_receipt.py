"""Pydantic schemas for goods receipts."""
from datetime import datetime, date
from typing import Optional, List
from decimal import Decimal
from uuid import UUID
from pydantic import Field

from grn_recon.schemas.base import BaseResponseSchema, BaseCreateSchema, TransitionRequest, PaginatedResponse
from grn_recon.schemas.discrepancy import DiscrepancyCaseResponse


# ==================== Requests ====================

class GRNItemCreate(BaseCreateSchema):
    """
    One counted line.

    ordered_qty defaults to the PO line quantity (or the outstanding
    quantity of the vendor request being answered); invoiced_qty defaults
    to ordered_qty. Negative values are rejected per line by the service.
    """
    po_item_id: UUID
    ordered_qty: Optional[Decimal] = None
    invoiced_qty: Optional[Decimal] = None
    received_qty: Decimal
    remarks: Optional[str] = None


class GRNCreate(BaseCreateSchema):
    """Schema for submitting a goods receipt."""
    purchase_order_id: UUID
    grn_number: Optional[str] = Field(None, max_length=50)
    received_date: date = Field(default_factory=date.today)
    supplier_invoice_number: Optional[str] = Field(None, max_length=50)
    inward_challan_number: Optional[str] = Field(None, max_length=50)
    vendor_request_id: Optional[UUID] = None
    remarks: Optional[str] = None
    items_received: List[GRNItemCreate]


class GRNReviewRequest(TransitionRequest):
    """Reviewer approval/rejection. Rejection requires notes."""
    pass


# ==================== Responses ====================

class GRNItemResponse(BaseResponseSchema):
    id: UUID
    po_item_id: UUID
    line_number: int
    material_name: str
    color: Optional[str] = None
    specification: Optional[str] = None
    uom: str
    unit_price: Decimal
    ordered_qty: Decimal
    invoiced_qty: Decimal
    received_qty: Decimal
    discrepancy_class: str
    shortage_qty: Decimal
    overage_qty: Decimal
    received_value: Decimal
    remarks: Optional[str] = None


class GRNResponse(BaseResponseSchema):
    id: UUID
    grn_number: str
    received_date: date
    purchase_order_id: UUID
    po_number: Optional[str] = None
    vendor_id: UUID
    vendor_name: Optional[str] = None
    supplier_invoice_number: Optional[str] = None
    inward_challan_number: Optional[str] = None
    verification_status: str
    discrepancy_details: Optional[dict] = None
    inventory_added: bool
    inventory_added_at: Optional[datetime] = None
    total_received_value: Decimal
    vendor_request_id: Optional[UUID] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    remarks: Optional[str] = None
    created_by: str
    items_received: List[GRNItemResponse] = Field(default_factory=list, validation_alias="items")
    created_at: datetime
    updated_at: datetime


class GRNCreateResponse(BaseResponseSchema):
    """Receipt submission result with counts per class and the spawned cases."""
    grn: GRNResponse
    perfect_match_count: int
    shortage_count: int
    overage_count: int
    invoice_mismatch_count: int
    other_count: int
    cases: List[DiscrepancyCaseResponse]
    summary: str


class GRNListResponse(PaginatedResponse):
    items: List[GRNResponse]
