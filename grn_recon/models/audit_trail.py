import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Text, Index, event
from sqlalchemy.orm import Mapped, mapped_column

from grn_recon.core.exceptions import InvariantViolation
from grn_recon.database import Base
from grn_recon.db_types import UUIDType, JSONType


class AuditTrail(Base):
    """
    Append-only record of every state-changing action in the engine.
    Records: receipt creation, case spawning, case/request/credit note
    transitions, reviewer decisions.
    """
    __tablename__ = "audit_trails"
    __table_args__ = (
        Index("ix_audit_trail_entity", "entity_type", "entity_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    # Entity being changed
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # Entity types: grn, discrepancy_case, vendor_request, credit_note

    entity_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=False
    )

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status_before: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status_after: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Who performed the action
    performed_by: Mapped[str] = mapped_column(String(100), nullable=False)
    department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<AuditTrail(action='{self.action}', entity='{self.entity_type}', id='{self.entity_id}')>"


@event.listens_for(AuditTrail, "before_update")
def _reject_audit_update(mapper, connection, target: AuditTrail) -> None:
    raise InvariantViolation("Audit trail entries are append-only", {"id": str(target.id)})


@event.listens_for(AuditTrail, "before_delete")
def _reject_audit_delete(mapper, connection, target: AuditTrail) -> None:
    raise InvariantViolation("Audit trail entries cannot be deleted", {"id": str(target.id)})
