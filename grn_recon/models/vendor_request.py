"""Vendor request raised against a shortage or overage case.

Asks the vendor to ship missing material (shortage) or instruct on excess
material (overage), and tracks the request until a follow-up receipt
fulfills it.
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Text, Date
from sqlalchemy.orm import Mapped, mapped_column

from grn_recon.database import Base
from grn_recon.db_types import UUIDType, JSONType, MoneyType


class VendorRequestType(str, Enum):
    SHORTAGE = "shortage"
    OVERAGE = "overage"


class VendorRequest(Base):
    """Vendor request. Status lifecycle lives in vendor_request_state_machine."""
    __tablename__ = "vendor_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    request_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="VRQ/APL/25-26/00001"
    )

    # Origin
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    grn_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("goods_receipt_notes.id", ondelete="RESTRICT"),
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

    request_type: Mapped[str] = mapped_column(String(20), nullable=False)
    items: Mapped[list] = mapped_column(JSONType, nullable=False)
    total_value: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, default=Decimal("0"))

    status: Mapped[str] = mapped_column(
        String(50),
        default="pending",
        nullable=False,
        index=True,
        comment="pending, sent, acknowledged, in_transit, fulfilled, cancelled"
    )

    # Correspondence
    message_to_vendor: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    vendor_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expected_fulfillment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Set only on the transition to fulfilled; never the originating receipt
    fulfillment_grn_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("goods_receipt_notes.id", ondelete="RESTRICT"),
        nullable=True,
        unique=True
    )

    # Actors and milestones
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    sent_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    in_transit_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    fulfilled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    def __repr__(self) -> str:
        return f"<VendorRequest(request_number='{self.request_number}', status='{self.status}')>"
