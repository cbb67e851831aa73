"""Purchase/Receiving models for the reconciliation cycle.

Supports:
- Purchase Order (read-only here, owned by procurement)
- Goods Receipt Note (GRN) with per-line three-way match results
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Date
from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from grn_recon.database import Base
from grn_recon.db_types import UUIDType, JSONType, MoneyType, QuantityType

if TYPE_CHECKING:
    from grn_recon.models.vendor import Vendor
    from grn_recon.models.inventory import InventoryItem


# ==================== Enums ====================

class DiscrepancyClass(str, Enum):
    """Outcome of the three-way match for one receipt line."""
    PERFECT_MATCH = "perfect_match"
    SHORTAGE = "shortage"
    OVERAGE = "overage"
    INVOICE_MISMATCH = "invoice_mismatch"
    OTHER = "other"  # Unclassified edge case, routed to manual review


class VerificationStatus(str, Enum):
    """GRN verification status."""
    PENDING = "pending"
    VERIFIED = "verified"
    DISCREPANCY = "discrepancy"
    APPROVED = "approved"
    REJECTED = "rejected"


# ==================== Purchase Order ====================

class PurchaseOrder(Base):
    """
    Purchase Order header.
    Created and approved by procurement; read-only for receiving.
    """
    __tablename__ = "purchase_orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    po_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True
    )
    po_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        default="approved",
        nullable=False,
        comment="Owned by procurement"
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    vendor: Mapped["Vendor"] = relationship("Vendor", back_populates="purchase_orders")
    items: Mapped[List["PurchaseOrderItem"]] = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        order_by="PurchaseOrderItem.line_number"
    )
    grns: Mapped[List["GoodsReceiptNote"]] = relationship(
        "GoodsReceiptNote",
        back_populates="purchase_order"
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder(po_number='{self.po_number}', status='{self.status}')>"


class PurchaseOrderItem(Base):
    """Purchase Order line item. Immutable once a GRN references it."""
    __tablename__ = "purchase_order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, default=1)

    # Identifying fields
    material_name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    specification: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    uom: Mapped[str] = mapped_column(String(20), default="PCS")

    quantity_ordered: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Stock record the received quantity lands in (created on first receipt)
    inventory_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("inventory_items.id", ondelete="SET NULL"),
        nullable=True
    )

    purchase_order: Mapped["PurchaseOrder"] = relationship(
        "PurchaseOrder",
        back_populates="items"
    )
    inventory_item: Mapped[Optional["InventoryItem"]] = relationship("InventoryItem")

    def __repr__(self) -> str:
        return f"<PurchaseOrderItem(line={self.line_number}, material='{self.material_name}')>"


# ==================== Goods Receipt Note ====================

class GoodsReceiptNote(Base):
    """
    Goods Receipt Note model.
    Records one delivery event against a PO together with the three-way
    match outcome of every line. Never deleted.
    """
    __tablename__ = "goods_receipt_notes"
    __table_args__ = (
        Index("ix_grn_po", "purchase_order_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    # Identification
    grn_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="GRN/APL/25-26/00001 or caller supplied"
    )
    received_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Against PO
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        nullable=False
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Vendor's paperwork
    supplier_invoice_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    inward_challan_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Verification
    verification_status: Mapped[str] = mapped_column(
        String(50),
        default=VerificationStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, verified, discrepancy, approved, rejected"
    )
    discrepancy_details: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Counts per discrepancy class and summary message"
    )
    verified_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Inventory
    inventory_added: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    inventory_added_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Value of everything physically received
    total_received_value: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0"),
        nullable=False
    )

    # Set when this receipt answers a shortage/overage vendor request
    vendor_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendor_requests.id", ondelete="SET NULL", use_alter=True),
        nullable=True
    )

    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)

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

    # Relationships
    purchase_order: Mapped["PurchaseOrder"] = relationship(
        "PurchaseOrder",
        back_populates="grns"
    )
    vendor: Mapped["Vendor"] = relationship("Vendor")
    items: Mapped[List["GRNItem"]] = relationship(
        "GRNItem",
        back_populates="grn",
        order_by="GRNItem.line_number"
    )

    @property
    def po_number(self) -> Optional[str]:
        return self.purchase_order.po_number if self.purchase_order else None

    @property
    def vendor_name(self) -> Optional[str]:
        return self.vendor.name if self.vendor else None

    @property
    def is_reconciled(self) -> bool:
        """True when every line matched perfectly at submission time."""
        details = self.discrepancy_details or {}
        total = details.get("total_lines", 0)
        return total > 0 and details.get("perfect_match_count") == total

    def __repr__(self) -> str:
        return f"<GoodsReceiptNote(grn_number='{self.grn_number}', status='{self.verification_status}')>"


class GRNItem(Base):
    """One counted line of a GRN with its three-way match result. Append-only."""
    __tablename__ = "grn_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    grn_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("goods_receipt_notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    po_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("purchase_order_items.id", ondelete="RESTRICT"),
        nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Denormalized from the PO line
    material_name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    specification: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    uom: Mapped[str] = mapped_column(String(20), default="PCS")
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Three-way match inputs
    ordered_qty: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    invoiced_qty: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    received_qty: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)

    # Three-way match outcome
    discrepancy_class: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        index=True,
        comment="perfect_match, shortage, overage, invoice_mismatch, other"
    )
    shortage_qty: Mapped[Decimal] = mapped_column(QuantityType, default=Decimal("0"))
    overage_qty: Mapped[Decimal] = mapped_column(QuantityType, default=Decimal("0"))
    received_value: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"))

    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    grn: Mapped["GoodsReceiptNote"] = relationship(
        "GoodsReceiptNote",
        back_populates="items"
    )
    po_item: Mapped["PurchaseOrderItem"] = relationship("PurchaseOrderItem")

    def __repr__(self) -> str:
        return f"<GRNItem(line={self.line_number}, class='{self.discrepancy_class}')>"
