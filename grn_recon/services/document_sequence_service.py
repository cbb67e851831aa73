"""
Document Sequence Service for Atomic Number Generation

- Financial year based numbering (April-March)
- Continuous sequence within financial year (NO daily reset)
- Atomic number generation with database-level locking
- Format: {PREFIX}/{COMPANY_CODE}/{FY}/{SEQUENCE}

USAGE:
    from grn_recon.services.document_sequence_service import DocumentSequenceService

    async def create_case(db: AsyncSession):
        service = DocumentSequenceService(db)
        case_number = await service.get_next_number("DC")
        # Returns: DC/APL/25-26/00001

SUPPORTED DOCUMENT TYPES:
    GRN - Goods Receipt Note
    DC  - Discrepancy Case
    VRQ - Vendor Request
    CN  - Credit Note
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grn_recon.config import settings
from grn_recon.models.document_sequence import DocumentSequence


logger = logging.getLogger(__name__)


# Document type metadata
DOCUMENT_METADATA = {
    "GRN": {"name": "Goods Receipt Note", "padding": 5},
    "DC": {"name": "Discrepancy Case", "padding": 5},
    "VRQ": {"name": "Vendor Request", "padding": 5},
    "CN": {"name": "Credit Note", "padding": 5},
}


class DocumentSequenceService:
    """
    Service for generating atomic document numbers.

    Uses SELECT FOR UPDATE so no duplicate numbers are generated under
    concurrent load. The increment joins the caller's transaction, so a
    rolled back operation does not consume a number.
    """

    def __init__(self, db: AsyncSession, company_code: Optional[str] = None):
        self.db = db
        self.company_code = company_code or settings.COMPANY_CODE

    async def get_next_number(
        self,
        document_type: str,
        financial_year: Optional[str] = None
    ) -> str:
        """
        Get next document number with atomic increment.

        Raises:
            ValueError: If document_type is invalid
        """
        doc_type = document_type.upper()
        if doc_type not in DOCUMENT_METADATA:
            valid_types = ", ".join(DOCUMENT_METADATA.keys())
            raise ValueError(f"Invalid document type '{doc_type}'. Valid types: {valid_types}")

        if not financial_year:
            financial_year = DocumentSequence.get_financial_year()

        sequence = await self._get_or_create_sequence(doc_type, financial_year)
        doc_number = sequence.get_next_number()
        await self.db.flush()

        logger.debug("Issued %s", doc_number)
        return doc_number

    async def _find_sequence(
        self,
        document_type: str,
        financial_year: str,
    ) -> Optional[DocumentSequence]:
        query = select(DocumentSequence).where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.financial_year == financial_year,
            DocumentSequence.is_active == True
        )
        result = await self.db.execute(query.with_for_update())
        return result.scalar_one_or_none()

    async def _get_or_create_sequence(
        self,
        document_type: str,
        financial_year: str
    ) -> DocumentSequence:
        """Get existing sequence with row lock, or create new one."""
        sequence = await self._find_sequence(document_type, financial_year)
        if sequence:
            return sequence

        metadata = DOCUMENT_METADATA[document_type]
        sequence = DocumentSequence(
            document_type=document_type,
            document_name=metadata["name"],
            company_code=self.company_code,
            financial_year=financial_year,
            current_number=0,
            padding_length=metadata["padding"],
            separator="/",
            is_active=True,
        )
        self.db.add(sequence)
        await self.db.flush()

        # Re-fetch with lock to ensure atomicity
        result = await self.db.execute(
            select(DocumentSequence)
            .where(DocumentSequence.id == sequence.id)
            .with_for_update()
        )
        return result.scalar_one()
