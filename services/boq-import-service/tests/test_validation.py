import pytest

from models.boq import DEFAULT_UNIT, ParsedLineItem, WorkCategory
from parsers.validation import (
    REASON_AI_FLAGGED,
    REASON_QUANTITY_MISSING,
    REASON_RATE_AND_AMOUNT_MISSING,
    REASON_UNIT_UNVERIFIED,
    apply_review_flags,
    build_line_item,
    flag_reason_for,
    triangulate,
)


def _build(**overrides) -> ParsedLineItem:
    values = {
        "description": "Cement",
        "category": WorkCategory.MATERIAL,
        "quantity": 10.0,
        "rate": 5.0,
        "amount": 0.0,
    }
    values.update(overrides)
    return build_line_item(**values)


def test_rate_is_not_derived_without_quantity():
    values = triangulate(quantity=0.0, rate=0.0, amount=1000.0)

    assert values.quantity == 0.0
    assert values.rate == 0.0

    item = _build(quantity=0.0, rate=0.0, amount=1000.0)
    assert item.is_review_flagged
    assert item.flag_reason == REASON_QUANTITY_MISSING


def test_rate_is_derived_from_amount_and_quantity():
    values = triangulate(quantity=10.0, rate=0.0, amount=500.0)
    assert values.rate == pytest.approx(50.0)
    assert values.quantity == 10.0

    item = _build(quantity=10.0, rate=0.0, amount=500.0)
    assert item.rate == pytest.approx(50.0)
    assert not item.is_review_flagged
    assert item.flag_reason is None


def test_quantity_is_derived_from_amount_and_rate():
    values = triangulate(quantity=0.0, rate=25.0, amount=500.0)

    assert values.quantity == pytest.approx(20.0)
    assert values.rate == 25.0


def test_only_one_derivation_is_attempted():
    values = triangulate(quantity=4.0, rate=3.0, amount=999.0)

    assert (values.quantity, values.rate) == (4.0, 3.0)
    assert values.amount == 999.0


def test_missing_quantity_and_rate_default_to_minimal_flagged_state():
    item = _build(quantity=0.0, rate=0.0, amount=0.0)

    assert item.quantity == 1.0
    assert item.rate == 0.0
    assert item.flag_reason == REASON_QUANTITY_MISSING


def test_rate_and_amount_missing_reason():
    item = _build(quantity=3.0, rate=0.0, amount=0.0)

    assert item.flag_reason == REASON_RATE_AND_AMOUNT_MISSING


def test_unit_hint_with_placeholder_unit_is_flagged():
    item = _build(description="Plastering 12mm sq ft", unit="")

    assert item.unit == DEFAULT_UNIT
    assert item.flag_reason == REASON_UNIT_UNVERIFIED


def test_unit_hint_with_explicit_unit_is_clean():
    item = _build(description="Plastering 12mm sq ft", unit="sqft")

    assert not item.is_review_flagged


def test_flag_rules_apply_in_order():
    assert flag_reason_for(0, 0, 0, DEFAULT_UNIT, "Steel kg") == REASON_QUANTITY_MISSING
    assert flag_reason_for(1, 0, 0, DEFAULT_UNIT, "Steel kg") == REASON_RATE_AND_AMOUNT_MISSING
    assert flag_reason_for(1, 1, 0, DEFAULT_UNIT, "Steel kg") == REASON_UNIT_UNVERIFIED
    assert flag_reason_for(1, 1, 0, "kg", "Steel kg") is None


def test_apply_review_flags_keeps_collaborator_flag():
    item = ParsedLineItem(
        description="Mixer hire",
        category=WorkCategory.EQUIPMENT,
        unit="day",
        quantity=2,
        rate=100,
        is_review_flagged=True,
        flag_reason="Hire duration unclear",
    )

    assert apply_review_flags(item).flag_reason == "Hire duration unclear"


@pytest.mark.parametrize("quantity, rate", [(0, 100), (5, 0)])
def test_apply_review_flags_flags_non_positive_values(quantity, rate):
    item = ParsedLineItem(description="Bricks", category=WorkCategory.MATERIAL, unit="nos", quantity=quantity, rate=rate)

    flagged = apply_review_flags(item)

    assert flagged.is_review_flagged
    assert flagged.flag_reason == REASON_AI_FLAGGED
    assert not item.is_review_flagged
