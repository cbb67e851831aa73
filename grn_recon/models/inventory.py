"""Inventory stock records fed by goods receipts.

Minimal stand-in for the inventory subsystem: an on-hand balance per
purchased material and one movement row per receipt line applied.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from grn_recon.database import Base
from grn_recon.db_types import UUIDType, QuantityType


class StockMovementType(str, Enum):
    RECEIPT = "receipt"


class InventoryItem(Base):
    """On-hand balance for one material."""
    __tablename__ = "inventory_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    material_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    specification: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    uom: Mapped[str] = mapped_column(String(20), default="PCS")

    quantity_on_hand: Mapped[Decimal] = mapped_column(
        QuantityType,
        default=Decimal("0"),
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<InventoryItem(material='{self.material_name}', on_hand={self.quantity_on_hand})>"


class StockMovement(Base):
    """Ledger entry for a quantity change on an inventory item."""
    __tablename__ = "stock_movements"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    inventory_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    movement_type: Mapped[str] = mapped_column(
        String(30),
        default=StockMovementType.RECEIPT.value,
        nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)

    # Source document
    reference_type: Mapped[str] = mapped_column(String(30), default="grn", nullable=False)
    reference_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False, index=True)
    reference_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reference_line_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    performed_by: Mapped[str] = mapped_column(String(100), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<StockMovement(item='{self.inventory_item_id}', qty={self.quantity})>"
