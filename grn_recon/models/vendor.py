"""Vendor master data.

Owned by the vendor management subsystem; the reconciliation engine only
reads it to denormalize names onto receipts, cases and requests.
"""
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from grn_recon.database import Base
from grn_recon.db_types import UUIDType

if TYPE_CHECKING:
    from grn_recon.models.purchase import PurchaseOrder


class Vendor(Base):
    """Supplier of purchased materials."""
    __tablename__ = "vendors"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    purchase_orders: Mapped[List["PurchaseOrder"]] = relationship(
        "PurchaseOrder",
        back_populates="vendor"
    )

    def __repr__(self) -> str:
        return f"<Vendor(code='{self.code}', name='{self.name}')>"
