"""Error taxonomy for the reconciliation engine.

Services raise these; ``grn_recon.main`` turns them into structured JSON
responses. None of them is retried inside the engine.
"""
from typing import Any, Optional


class ReconciliationError(Exception):
    """Base class for every rejection the engine reports to a caller."""

    status_code: int = 400

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "type": type(self).__name__,
            "details": self.details,
        }


class ValidationError(ReconciliationError):
    """Negative or missing quantities, malformed item arrays."""

    status_code = 422


class NotFoundError(ReconciliationError):
    """Unknown purchase order, GRN, case, vendor request or credit note."""

    status_code = 404


class ConflictError(ReconciliationError):
    """Stale-state transition, duplicate open case or duplicate document number."""

    status_code = 409


class InvariantViolation(ReconciliationError):
    """A workflow rule would be broken, e.g. a credit note total mismatch."""

    status_code = 422
