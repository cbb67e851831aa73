"""Pydantic schemas for audit trail entries."""
from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import Field

from grn_recon.schemas.base import BaseResponseSchema, PaginatedResponse


class AuditTrailResponse(BaseResponseSchema):
    id: UUID
    entity_type: str
    entity_id: UUID
    action: str
    status_before: Optional[str] = None
    status_after: Optional[str] = None
    performed_by: str
    department: Optional[str] = None
    reason: Optional[str] = None
    metadata: Optional[dict] = Field(None, validation_alias="extra_metadata")
    created_at: datetime


class AuditTrailListResponse(PaginatedResponse):
    items: List[AuditTrailResponse]
