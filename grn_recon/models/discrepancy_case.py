"""
Discrepancy Case Model.

Approval-style record raised against a goods receipt for each class of
mismatch found by the three-way match:
- SHORTAGE: less received than ordered/invoiced
- OVERAGE: more received than ordered/invoiced
- INVOICE_MISMATCH: invoice disagrees with the PO
- OTHER: unclassified, needs manual review

At most one open case exists per (receipt, complaint type).
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, Text
from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from grn_recon.database import Base
from grn_recon.db_types import UUIDType, JSONType, MoneyType


class ComplaintType(str, Enum):
    """Kind of discrepancy a case tracks."""
    SHORTAGE = "shortage"
    OVERAGE = "overage"
    INVOICE_MISMATCH = "invoice_mismatch"
    OTHER = "other"


class CaseStatus(str, Enum):
    """Status of a discrepancy case."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"
    CANCELED = "canceled"

    @classmethod
    def open_statuses(cls) -> List[str]:
        return [cls.PENDING.value, cls.IN_PROGRESS.value]


class DiscrepancyCase(Base):
    """
    Discrepancy case for a goods receipt.

    Tracks:
    - Which receipt and which of its lines are affected
    - The monetary value at stake
    - Who resolved it, when, and how
    """
    __tablename__ = "discrepancy_cases"
    __table_args__ = (
        Index("ix_discrepancy_entity", "entity_type", "entity_id"),
        Index("ix_discrepancy_entity_type_status", "entity_id", "complaint_type", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    case_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="DC/APL/25-26/00001"
    )

    # Entity reference
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="grn"
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=False,
        comment="Goods receipt this case was raised against"
    )
    entity_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="GRN number for display"
    )
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=False,
        index=True
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=False,
        index=True
    )

    complaint_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    items_affected: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        comment="GRN line ids with per-line variance quantity and value"
    )
    total_value: Mapped[Decimal] = mapped_column(
        MoneyType,
        nullable=False,
        default=Decimal("0")
    )
    action_required: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=CaseStatus.PENDING.value,
        nullable=False,
        index=True
    )

    # Who raised it
    requested_by: Mapped[str] = mapped_column(String(100), nullable=False)
    department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Resolution
    resolved_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
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

    @property
    def is_open(self) -> bool:
        return self.status in CaseStatus.open_statuses()

    def __repr__(self) -> str:
        return f"<DiscrepancyCase(case_number='{self.case_number}', type='{self.complaint_type}', status='{self.status}')>"
