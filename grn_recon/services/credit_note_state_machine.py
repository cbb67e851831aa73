"""
Credit Note State Machine

Two independent lifecycles live on a credit note:

    status:            draft -> issued -> accepted -> settled
                                       -> rejected
                       draft | issued -> cancelled

    settlement_status: pending -> in_progress -> completed | failed

settlement_status only moves while status is accepted or settled, and only
reaches completed once the note is settled.
"""

from typing import List, Dict

from grn_recon.core.exceptions import ConflictError, InvariantViolation


# =============================================================================
# STATUS DEFINITIONS
# =============================================================================

class CreditNoteStatus:
    """Credit note status constants."""
    DRAFT = "draft"
    ISSUED = "issued"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    SETTLED = "settled"
    CANCELLED = "cancelled"

    @classmethod
    def all(cls) -> List[str]:
        return [cls.DRAFT, cls.ISSUED, cls.ACCEPTED, cls.REJECTED, cls.SETTLED, cls.CANCELLED]


class SettlementStatus:
    """Settlement status constants."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def all(cls) -> List[str]:
        return [cls.PENDING, cls.IN_PROGRESS, cls.COMPLETED, cls.FAILED]


# =============================================================================
# TRANSITION RULES
# =============================================================================

CREDIT_NOTE_TRANSITIONS: Dict[str, List[str]] = {
    CreditNoteStatus.DRAFT: [
        CreditNoteStatus.ISSUED,
        CreditNoteStatus.CANCELLED,
    ],
    CreditNoteStatus.ISSUED: [
        CreditNoteStatus.ACCEPTED,
        CreditNoteStatus.REJECTED,
        CreditNoteStatus.CANCELLED,     # Withdrawn before the vendor accepted
    ],
    CreditNoteStatus.ACCEPTED: [
        CreditNoteStatus.SETTLED,
    ],
    CreditNoteStatus.REJECTED: [],      # Terminal
    CreditNoteStatus.SETTLED: [],       # Terminal
    CreditNoteStatus.CANCELLED: [],     # Terminal
}

SETTLEMENT_TRANSITIONS: Dict[str, List[str]] = {
    SettlementStatus.PENDING: [SettlementStatus.IN_PROGRESS],
    SettlementStatus.IN_PROGRESS: [SettlementStatus.COMPLETED, SettlementStatus.FAILED],
    SettlementStatus.COMPLETED: [],
    SettlementStatus.FAILED: [],
}

# Credit note statuses in which settlement may advance
SETTLEMENT_ACTIVE_STATUSES = [CreditNoteStatus.ACCEPTED, CreditNoteStatus.SETTLED]

TERMINAL_STATUSES = [CreditNoteStatus.REJECTED, CreditNoteStatus.SETTLED, CreditNoteStatus.CANCELLED]


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in CREDIT_NOTE_TRANSITIONS.get(current_status, [])


def validate_transition(current_status: str, new_status: str) -> None:
    """Raise ConflictError if the credit note cannot move to new_status."""
    if can_transition(current_status, new_status):
        return

    allowed = CREDIT_NOTE_TRANSITIONS.get(current_status, [])
    if not allowed:
        raise ConflictError(
            f"Credit note in '{current_status}' status cannot be changed. This is a terminal state.",
            {"current_status": current_status, "requested_status": new_status},
        )
    raise ConflictError(
        f"Cannot change credit note from '{current_status}' to '{new_status}'. "
        f"Allowed transitions: {', '.join(allowed)}",
        {"current_status": current_status, "requested_status": new_status, "allowed": allowed},
    )


def validate_settlement_transition(status: str, current: str, new: str) -> None:
    """
    Validate a settlement_status change for a credit note in `status`.

    Ordering problems are conflicts; completing an unsettled note breaks the
    monetary invariant and is reported as such.
    """
    if status not in SETTLEMENT_ACTIVE_STATUSES:
        raise ConflictError(
            f"Settlement cannot advance while credit note is '{status}'",
            {"status": status, "allowed_statuses": SETTLEMENT_ACTIVE_STATUSES},
        )
    if new not in SETTLEMENT_TRANSITIONS.get(current, []):
        raise ConflictError(
            f"Cannot change settlement from '{current}' to '{new}'",
            {"current_settlement_status": current, "requested_settlement_status": new},
        )
    if new == SettlementStatus.COMPLETED and status != CreditNoteStatus.SETTLED:
        raise InvariantViolation(
            "Settlement can only be completed on a settled credit note",
            {"status": status},
        )


def can_edit(status: str) -> bool:
    return status == CreditNoteStatus.DRAFT

