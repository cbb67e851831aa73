"""
Credit Note Model.

A vendor credit raised against a discrepancy case. Amounts are stored as
Decimal and two invariants are enforced at flush time for every insert and
update:

- total_credit_amount == subtotal_credit_amount + tax_amount
- settlement_status == completed only while status == settled
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from grn_recon.core.exceptions import InvariantViolation
from grn_recon.database import Base
from grn_recon.db_types import UUIDType, JSONType, MoneyType, PercentType


class CreditNoteType(str, Enum):
    FULL_RETURN = "full_return"
    PARTIAL_CREDIT = "partial_credit"
    ADJUSTMENT = "adjustment"


class SettlementMethod(str, Enum):
    CASH_CREDIT = "cash_credit"
    RETURN_MATERIAL = "return_material"
    ADJUST_INVOICE = "adjust_invoice"
    FUTURE_DEDUCTION = "future_deduction"


class CreditNote(Base):
    """Credit note. Status lifecycle lives in credit_note_state_machine."""
    __tablename__ = "credit_notes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    credit_note_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="CN/APL/25-26/00001"
    )

    # References
    grn_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("goods_receipt_notes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    complaint_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("discrepancy_cases.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    credit_note_type: Mapped[str] = mapped_column(String(30), nullable=False)
    items: Mapped[list] = mapped_column(JSONType, nullable=False)

    # Amounts
    subtotal_credit_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, default=Decimal("0"))
    tax_percentage: Mapped[Decimal] = mapped_column(PercentType, nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, default=Decimal("0"))
    total_credit_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, default=Decimal("0"))

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default="draft",
        nullable=False,
        index=True,
        comment="draft, issued, accepted, rejected, settled, cancelled"
    )
    settlement_method: Mapped[str] = mapped_column(
        String(30),
        default=SettlementMethod.ADJUST_INVOICE.value,
        nullable=False
    )
    settlement_status: Mapped[str] = mapped_column(
        String(30),
        default="pending",
        nullable=False,
        comment="pending, in_progress, completed, failed"
    )

    vendor_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    settlement_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Actors and milestones
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    issued_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    vendor_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    settled_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def check_invariants(self) -> None:
        """Raise InvariantViolation if the row may not be persisted."""
        subtotal = Decimal(str(self.subtotal_credit_amount or 0))
        tax = Decimal(str(self.tax_amount or 0))
        total = Decimal(str(self.total_credit_amount or 0))
        if subtotal + tax != total:
            raise InvariantViolation(
                "Credit note total must equal subtotal plus tax",
                {
                    "subtotal_credit_amount": str(subtotal),
                    "tax_amount": str(tax),
                    "total_credit_amount": str(total),
                },
            )
        if self.settlement_status == "completed" and self.status != "settled":
            raise InvariantViolation(
                "Settlement can only be completed on a settled credit note",
                {"status": self.status, "settlement_status": self.settlement_status},
            )

    def __repr__(self) -> str:
        return f"<CreditNote(credit_note_number='{self.credit_note_number}', status='{self.status}')>"


@event.listens_for(CreditNote, "before_insert")
@event.listens_for(CreditNote, "before_update")
def _enforce_credit_note_invariants(mapper, connection, target: CreditNote) -> None:
    target.check_invariants()
