"""Pydantic schemas for credit notes."""
from datetime import datetime
from typing import Optional, List, Dict
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, Field

from grn_recon.models.credit_note import CreditNoteType, SettlementMethod
from grn_recon.schemas.base import (
    BaseResponseSchema,
    BaseCreateSchema,
    BaseUpdateSchema,
    TransitionRequest,
    PaginatedResponse,
)


class CreditNoteItem(BaseCreateSchema):
    """One credited line. amount is computed as quantity x unit_price when omitted."""
    grn_item_id: Optional[UUID] = None
    material_name: str
    quantity: Decimal = Field(..., ge=0)
    unit_price: Decimal = Field(..., ge=0)
    amount: Optional[Decimal] = Field(None, ge=0)
    reason: Optional[str] = None


class CreditNoteCreate(BaseCreateSchema):
    """
    Raise a credit note against an open case.

    items default to the case's variance lines. Totals are computed; when a
    caller supplies them they must satisfy total = subtotal + tax.
    """
    complaint_id: UUID
    credit_note_type: CreditNoteType = CreditNoteType.PARTIAL_CREDIT
    settlement_method: SettlementMethod = SettlementMethod.ADJUST_INVOICE
    items: Optional[List[CreditNoteItem]] = None
    tax_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    subtotal_credit_amount: Optional[Decimal] = Field(None, ge=0)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    total_credit_amount: Optional[Decimal] = Field(None, ge=0)
    remarks: Optional[str] = None


class CreditNoteUpdate(BaseUpdateSchema):
    """Edit a draft credit note. Totals are recomputed."""
    credit_note_type: Optional[CreditNoteType] = None
    settlement_method: Optional[SettlementMethod] = None
    items: Optional[List[CreditNoteItem]] = None
    tax_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    subtotal_credit_amount: Optional[Decimal] = Field(None, ge=0)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    total_credit_amount: Optional[Decimal] = Field(None, ge=0)
    remarks: Optional[str] = None


class CreditNoteVendorAction(TransitionRequest):
    """Vendor acceptance or rejection."""
    vendor_response: Optional[str] = None


class CreditNoteSettleRequest(TransitionRequest):
    settlement_notes: Optional[str] = None


class CreditNoteCancelRequest(TransitionRequest):
    reason: Optional[str] = None


class SettlementUpdate(BaseCreateSchema):
    settlement_status: str
    settlement_notes: Optional[str] = None
    expected_settlement_status: Optional[str] = None


class CreditNoteResponse(BaseResponseSchema):
    id: UUID
    credit_note_number: str
    grn_id: UUID
    purchase_order_id: UUID
    vendor_id: UUID
    complaint_id: UUID
    credit_note_type: str
    items: List[dict]
    subtotal_credit_amount: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    total_credit_amount: Decimal
    status: str
    settlement_method: str
    settlement_status: str
    vendor_response: Optional[str] = None
    settlement_notes: Optional[str] = None
    remarks: Optional[str] = None
    created_by: str
    issued_by: Optional[str] = None
    issued_at: Optional[datetime] = None
    vendor_response_at: Optional[datetime] = None
    settled_by: Optional[str] = None
    settled_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class CreditNoteTransitionResponse(BaseModel):
    credit_note: CreditNoteResponse
    case_status: str


class CreditNoteListResponse(PaginatedResponse):
    items: List[CreditNoteResponse]


class VendorCreditSummary(BaseModel):
    vendor_id: UUID
    vendor_name: str
    total_credit_notes: int
    by_status: Dict[str, int]
    by_settlement_status: Dict[str, int]
    total_credit_amount: Decimal
    settled_amount: Decimal
    outstanding_amount: Decimal
