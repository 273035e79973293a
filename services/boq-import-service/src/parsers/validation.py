"""
Quantity/rate/amount triangulation and review flagging for parsed BOQ rows.

Flags are driven by what the source document actually supplied, not by the
final (possibly derived or defaulted) values, so a reviewer always sees which
rows were incomplete in the original estimate.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Optional

from models.boq import DEFAULT_UNIT, ParsedLineItem, WorkCategory

REASON_QUANTITY_MISSING = "Quantity is zero or missing"
REASON_RATE_AND_AMOUNT_MISSING = "Rate and amount are both zero or missing"
REASON_UNIT_UNVERIFIED = "Unit may need verification"
REASON_AI_FLAGGED = "AI flagged for review"

# Description tokens that imply an area/length/weight/volume unit.
UNIT_HINT_TOKENS = ("sq", "meter", "metre", "kg", "cum")


@dataclass(frozen=True, slots=True)
class Triangulated:
    quantity: float
    rate: float
    amount: float


def triangulate(quantity: float, rate: float, amount: float) -> Triangulated:
    """Fill in a missing rate or quantity from the row amount; at most one derivation."""

    if amount > 0 and rate == 0 and quantity > 0:
        return Triangulated(quantity=quantity, rate=amount / quantity, amount=amount)
    if amount > 0 and quantity == 0 and rate > 0:
        return Triangulated(quantity=amount / rate, rate=rate, amount=amount)
    return Triangulated(quantity=quantity, rate=rate, amount=amount)


def flag_reason_for(quantity: float, rate: float, amount: float, unit: str, description: str) -> Optional[str]:
    """Return the first applicable review reason, or None when the row looks complete."""

    if quantity <= 0:
        return REASON_QUANTITY_MISSING
    if rate <= 0 and amount <= 0:
        return REASON_RATE_AND_AMOUNT_MISSING
    if not unit or unit == DEFAULT_UNIT:
        lowered = description.lower()
        if any(token in lowered for token in UNIT_HINT_TOKENS):
            return REASON_UNIT_UNVERIFIED
    return None


def build_line_item(
    *,
    description: str,
    category: WorkCategory,
    quantity: float,
    rate: float,
    amount: float,
    unit: Optional[str] = None,
    code: Optional[str] = None,
    section_name: Optional[str] = None,
) -> ParsedLineItem:
    """Triangulate, flag and assemble a line item from normalized cell values."""

    resolved_unit = (unit or "").strip() or DEFAULT_UNIT
    values = triangulate(quantity, rate, amount)
    reason = flag_reason_for(values.quantity, values.rate, values.amount, resolved_unit, description)

    return ParsedLineItem(
        code=code or None,
        category=category,
        description=description,
        unit=resolved_unit,
        # A missing quantity is stored as the minimal 1; the flag above keeps it visible.
        quantity=values.quantity or 1.0,
        rate=values.rate or 0.0,
        section_name=section_name or None,
        is_review_flagged=reason is not None,
        flag_reason=reason,
    )


def apply_review_flags(item: ParsedLineItem) -> ParsedLineItem:
    """
    Re-validate an item produced outside the tabular path.

    An existing flag (and its reason) is kept as-is; otherwise a non-positive
    quantity or rate flags the item.
    """

    if item.is_review_flagged:
        return dataclasses.replace(item, flag_reason=item.flag_reason or REASON_AI_FLAGGED)
    if item.quantity <= 0 or item.rate <= 0:
        return dataclasses.replace(item, is_review_flagged=True, flag_reason=item.flag_reason or REASON_AI_FLAGGED)
    return item
