"""Three-way match classifier: pure, total and deterministic."""
from decimal import Decimal

import pytest

from grn_recon.core.exceptions import ValidationError
from grn_recon.models.purchase import DiscrepancyClass
from grn_recon.services.three_way_match import classify, variance, to_quantity


@pytest.mark.parametrize(
    "ordered, invoiced, received, expected",
    [
        (100, 100, 100, DiscrepancyClass.PERFECT_MATCH),
        (100, 100, 90, DiscrepancyClass.SHORTAGE),
        (100, 100, 110, DiscrepancyClass.OVERAGE),
        (10, 12, 10, DiscrepancyClass.INVOICE_MISMATCH),
        (10, 12, 11, DiscrepancyClass.INVOICE_MISMATCH),
        (12, 10, 11, DiscrepancyClass.INVOICE_MISMATCH),
        # Shortage and overage are measured against both documents
        (10, 12, 9, DiscrepancyClass.SHORTAGE),
        (10, 12, 13, DiscrepancyClass.OVERAGE),
        (0, 0, 0, DiscrepancyClass.PERFECT_MATCH),
        (0, 0, 5, DiscrepancyClass.OVERAGE),
    ],
)
def test_classify(ordered, invoiced, received, expected):
    assert classify(ordered, invoiced, received) == expected


def test_classify_accepts_decimal_strings_and_floats():
    assert classify("12.500", Decimal("12.5"), 12.5) == DiscrepancyClass.PERFECT_MATCH
    assert classify("1.25", "1.25", "1.2") == DiscrepancyClass.SHORTAGE


def test_classify_is_deterministic():
    results = {classify(50, 55, 52) for _ in range(20)}
    assert results == {DiscrepancyClass.INVOICE_MISMATCH}


def test_classify_never_returns_other_for_well_formed_numbers():
    values = [0, 1, 2, 3]
    for o in values:
        for i in values:
            for r in values:
                assert classify(o, i, r) != DiscrepancyClass.OTHER


@pytest.mark.parametrize("bad", [-1, "-0.5", Decimal("-3")])
def test_negative_quantities_rejected(bad):
    with pytest.raises(ValidationError) as exc:
        classify(10, 10, bad)
    assert exc.value.details["field"] == "received_qty"


@pytest.mark.parametrize("bad", [None, True, "ten", "NaN", "Infinity"])
def test_to_quantity_rejects_non_numbers(bad):
    with pytest.raises(ValidationError):
        to_quantity(bad, "ordered_qty")


def test_variance_shortage_against_min():
    assert variance(10, 12, 7) == (Decimal("3"), Decimal("0"))


def test_variance_overage_against_max():
    assert variance(10, 12, 15) == (Decimal("0"), Decimal("3"))


def test_variance_zero_when_between_documents():
    assert variance(10, 12, 11) == (Decimal("0"), Decimal("0"))
