from typing import Optional, Dict, Any, Tuple, List
import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from grn_recon.config import settings
from grn_recon.models.audit_trail import AuditTrail


class AuditService:
    """
    Audit trail recorder for every state change in the reconciliation cycle.

    Entries are written inside the caller's transaction; if the write fails
    the whole operation fails with it.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        action: str,
        status_before: Optional[str],
        status_after: Optional[str],
        performed_by: str,
        department: Optional[str] = None,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditTrail:
        """
        Create an audit trail entry.

        Args:
            entity_type: grn, discrepancy_case, vendor_request or credit_note
            entity_id: ID of the affected entity
            action: What happened (created, sent, settled, ...)
            status_before: Status before the action, None on creation
            status_after: Status after the action
            performed_by: Actor identity
            department: Actor department (falls back to DEFAULT_DEPARTMENT)
            reason: Free-text reason, required by some transitions
            metadata: Extra structured context

        Returns:
            The created AuditTrail entry
        """
        entry = AuditTrail(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            status_before=status_before,
            status_after=status_after,
            performed_by=performed_by,
            department=department or settings.DEFAULT_DEPARTMENT,
            reason=reason,
            extra_metadata=metadata,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_entries(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        action: Optional[str] = None,
        page: int = 1,
        size: int = 50,
    ) -> Tuple[List[AuditTrail], int]:
        """
        Get audit trail entries with filtering, newest first.

        Returns:
            Tuple of (entries, total_count)
        """
        query = select(AuditTrail)
        count_query = select(func.count(AuditTrail.id))

        if entity_type:
            query = query.where(AuditTrail.entity_type == entity_type)
            count_query = count_query.where(AuditTrail.entity_type == entity_type)
        if entity_id:
            query = query.where(AuditTrail.entity_id == entity_id)
            count_query = count_query.where(AuditTrail.entity_id == entity_id)
        if action:
            query = query.where(AuditTrail.action == action)
            count_query = count_query.where(AuditTrail.action == action)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        skip = (page - 1) * size
        query = query.order_by(AuditTrail.created_at.desc()).offset(skip).limit(size)
        result = await self.db.execute(query)
        entries = list(result.scalars().all())

        return entries, total
