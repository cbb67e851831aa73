"""Audit trail API endpoints. Read only; entries are never edited."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from grn_recon.api.deps import DB
from grn_recon.schemas.audit_trail import AuditTrailResponse, AuditTrailListResponse
from grn_recon.schemas.base import page_count
from grn_recon.services.audit_service import AuditService

router = APIRouter()


@router.get("", response_model=AuditTrailListResponse)
async def list_audit_trails(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    action: Optional[str] = None,
):
    """
    List audit trail entries, newest first.

    Filters:
    - entity_type: grn, discrepancy_case, vendor_request, credit_note
    - entity_id: a specific entity
    - action: created, sent, fulfilled, settled, ...
    """
    entries, total = await AuditService(db).list_entries(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        page=page,
        size=size,
    )
    return AuditTrailListResponse(
        items=[AuditTrailResponse.model_validate(e) for e in entries],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )
