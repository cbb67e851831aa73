"""
Document Sequence Model for Atomic Number Generation

Financial year based numbering (April-March), continuous within the year.
Format: {PREFIX}/{COMPANY_CODE}/{FY}/{SEQUENCE}

DOCUMENT FORMATS:
• GRN: GRN/APL/25-26/00001 (Goods Receipt Note)
• DC:  DC/APL/25-26/00001  (Discrepancy Case)
• VRQ: VRQ/APL/25-26/00001 (Vendor Request)
• CN:  CN/APL/25-26/00001  (Credit Note)
"""

import uuid
from datetime import datetime, date, timezone
from typing import Optional

from sqlalchemy import String, Integer, Boolean, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from grn_recon.database import Base
from grn_recon.db_types import UUIDType


class DocumentSequence(Base):
    """
    One counter row per document type and financial year.

    Example:
        document_type = "CN"
        financial_year = "25-26"
        current_number = 42
        → Next credit note number: CN/APL/25-26/00043
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint(
            "document_type", "financial_year",
            name="uq_document_type_fy"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    document_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
        comment="GRN, DC, VRQ, CN"
    )
    document_name: Mapped[str] = mapped_column(String(100), nullable=False)
    company_code: Mapped[str] = mapped_column(String(10), nullable=False, default="APL")
    financial_year: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="e.g., 25-26 for FY 2025-26"
    )

    # Last used sequence number
    current_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    padding_length: Mapped[int] = mapped_column(Integer, default=5)
    separator: Mapped[str] = mapped_column(String(5), default="/")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

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

    def format_number(self, number: int) -> str:
        seq = str(number).zfill(self.padding_length)
        sep = self.separator
        return f"{self.document_type}{sep}{self.company_code}{sep}{self.financial_year}{sep}{seq}"

    def get_next_number(self) -> str:
        """
        Increment the counter and return the formatted number.

        Does NOT commit; the caller owns the transaction.
        """
        self.current_number += 1
        return self.format_number(self.current_number)

    @staticmethod
    def get_financial_year(on: Optional[date] = None) -> str:
        """
        Financial year string for a date (April to March).

        - Jan 2026 → 25-26
        - Apr 2026 → 26-27
        """
        on = on or datetime.now(timezone.utc).date()
        fy_start = on.year if on.month >= 4 else on.year - 1
        return f"{fy_start % 100:02d}-{(fy_start + 1) % 100:02d}"

    def __repr__(self) -> str:
        return f"<DocumentSequence({self.document_type}/{self.financial_year}: {self.current_number})>"
