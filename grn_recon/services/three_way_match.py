"""
Three-way match classifier.

Compares, for one receipt line, the quantity ordered on the PO, the
quantity on the vendor's invoice and the quantity physically counted.
Pure functions only: no database access, no side effects.

Evaluation order (first match wins):
    1. received == ordered == invoiced          -> perfect_match
    2. received <  min(ordered, invoiced)       -> shortage
    3. received >  max(ordered, invoiced)       -> overage
    4. invoiced != ordered                      -> invoice_mismatch
    5. anything else                            -> other
"""

from decimal import Decimal, InvalidOperation
from typing import Tuple, Union

from grn_recon.core.exceptions import ValidationError
from grn_recon.models.purchase import DiscrepancyClass


Number = Union[int, float, str, Decimal]

ZERO = Decimal("0")


def to_quantity(value: Number, field: str = "quantity") -> Decimal:
    """Coerce a quantity to Decimal, rejecting negatives and non-numbers."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", {"field": field})
    try:
        qty = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", {"field": field, "value": str(value)})
    if not qty.is_finite():
        raise ValidationError(f"{field} must be a finite number", {"field": field, "value": str(value)})
    if qty < ZERO:
        raise ValidationError(f"{field} cannot be negative", {"field": field, "value": str(value)})
    return qty


def classify(ordered: Number, invoiced: Number, received: Number) -> DiscrepancyClass:
    """Classify one receipt line. Deterministic and total over non-negative inputs."""
    ordered = to_quantity(ordered, "ordered_qty")
    invoiced = to_quantity(invoiced, "invoiced_qty")
    received = to_quantity(received, "received_qty")

    if received == ordered and received == invoiced:
        return DiscrepancyClass.PERFECT_MATCH
    if received < min(ordered, invoiced):
        return DiscrepancyClass.SHORTAGE
    if received > max(ordered, invoiced):
        return DiscrepancyClass.OVERAGE
    if invoiced != ordered:
        return DiscrepancyClass.INVOICE_MISMATCH
    # Unreachable for well-formed numbers; kept so the function stays total
    return DiscrepancyClass.OTHER


def variance(ordered: Number, invoiced: Number, received: Number) -> Tuple[Decimal, Decimal]:
    """
    Return (shortage_qty, overage_qty) for a line.

    Shortage is measured below min(ordered, invoiced), overage above
    max(ordered, invoiced); at most one of them is non-zero.
    """
    ordered = to_quantity(ordered, "ordered_qty")
    invoiced = to_quantity(invoiced, "invoiced_qty")
    received = to_quantity(received, "received_qty")

    floor = min(ordered, invoiced)
    ceiling = max(ordered, invoiced)
    shortage = floor - received if received < floor else ZERO
    overage = received - ceiling if received > ceiling else ZERO
    return shortage, overage
