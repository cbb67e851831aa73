"""
Vendor Request State Machine

This module is the single place that knows which vendor request status
transitions are legal. Services validate here before touching a row.

    pending -> sent -> acknowledged -> in_transit -> fulfilled
    cancelled is reachable from every non-terminal status
"""

from typing import List, Dict

from grn_recon.core.exceptions import ConflictError


# =============================================================================
# STATUS DEFINITIONS
# =============================================================================

class VendorRequestStatus:
    """Vendor request status constants - use these instead of strings."""
    PENDING = "pending"
    SENT = "sent"
    ACKNOWLEDGED = "acknowledged"
    IN_TRANSIT = "in_transit"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"

    @classmethod
    def all(cls) -> List[str]:
        return [
            cls.PENDING, cls.SENT, cls.ACKNOWLEDGED,
            cls.IN_TRANSIT, cls.FULFILLED, cls.CANCELLED,
        ]


# =============================================================================
# TRANSITION RULES
# =============================================================================

# current_status -> [allowed next statuses]
VENDOR_REQUEST_TRANSITIONS: Dict[str, List[str]] = {
    VendorRequestStatus.PENDING: [
        VendorRequestStatus.SENT,
        VendorRequestStatus.CANCELLED,
    ],
    VendorRequestStatus.SENT: [
        VendorRequestStatus.ACKNOWLEDGED,
        VendorRequestStatus.IN_TRANSIT,     # Vendor shipped without acknowledging
        VendorRequestStatus.FULFILLED,      # Replacement already arrived
        VendorRequestStatus.CANCELLED,
    ],
    VendorRequestStatus.ACKNOWLEDGED: [
        VendorRequestStatus.IN_TRANSIT,
        VendorRequestStatus.FULFILLED,
        VendorRequestStatus.CANCELLED,
    ],
    VendorRequestStatus.IN_TRANSIT: [
        VendorRequestStatus.FULFILLED,
        VendorRequestStatus.CANCELLED,
    ],
    VendorRequestStatus.FULFILLED: [],      # Terminal
    VendorRequestStatus.CANCELLED: [],      # Terminal
}

TERMINAL_STATUSES = [VendorRequestStatus.FULFILLED, VendorRequestStatus.CANCELLED]

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (VendorRequestStatus.PENDING, VendorRequestStatus.SENT): "sent",
    (VendorRequestStatus.SENT, VendorRequestStatus.ACKNOWLEDGED): "acknowledged",
    (VendorRequestStatus.SENT, VendorRequestStatus.IN_TRANSIT): "in_transit",
    (VendorRequestStatus.ACKNOWLEDGED, VendorRequestStatus.IN_TRANSIT): "in_transit",
    (VendorRequestStatus.SENT, VendorRequestStatus.FULFILLED): "fulfilled",
    (VendorRequestStatus.ACKNOWLEDGED, VendorRequestStatus.FULFILLED): "fulfilled",
    (VendorRequestStatus.IN_TRANSIT, VendorRequestStatus.FULFILLED): "fulfilled",
}

# Timestamp column stamped when a status is entered
STATUS_TIMESTAMPS: Dict[str, str] = {
    VendorRequestStatus.SENT: "sent_at",
    VendorRequestStatus.ACKNOWLEDGED: "acknowledged_at",
    VendorRequestStatus.IN_TRANSIT: "in_transit_at",
    VendorRequestStatus.FULFILLED: "fulfilled_at",
    VendorRequestStatus.CANCELLED: "cancelled_at",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in VENDOR_REQUEST_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return VENDOR_REQUEST_TRANSITIONS.get(current_status, [])


def get_transition_action(current_status: str, new_status: str) -> str:
    """Audit action name for a transition."""
    if new_status == VendorRequestStatus.CANCELLED:
        return "cancelled"
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status}_to_{new_status}")


def validate_transition(current_status: str, new_status: str) -> None:
    """Raise ConflictError if the request cannot move to new_status."""
    if can_transition(current_status, new_status):
        return

    allowed = get_allowed_transitions(current_status)
    if not allowed:
        raise ConflictError(
            f"Vendor request in '{current_status}' status cannot be changed. This is a terminal state.",
            {"current_status": current_status, "requested_status": new_status},
        )
    raise ConflictError(
        f"Cannot change vendor request from '{current_status}' to '{new_status}'. "
        f"Allowed transitions: {', '.join(allowed)}",
        {"current_status": current_status, "requested_status": new_status, "allowed": allowed},
    )


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES
