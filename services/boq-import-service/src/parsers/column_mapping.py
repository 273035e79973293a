from __future__ import annotations

from dataclasses import dataclass, fields
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

# Lower-cased substrings tried in order; earlier variants win over later ones.
COLUMN_VARIANTS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "code": ("code", "item code", "item no", "item_code", "sr no", "sr. no", "s.no", "sl no", "sl. no"),
        "description": (
            "description",
            "item description",
            "particulars",
            "item",
            "work description",
            "details",
            "name",
        ),
        "unit": ("unit", "uom", "unit of measurement", "units"),
        "quantity": ("quantity", "qty", "qnty", "nos", "no.", "number"),
        "rate": ("rate", "unit rate", "price", "unit price", "cost", "amount per unit"),
        "amount": ("amount", "total", "total amount", "value", "total cost"),
        "section": ("section", "category", "work type", "head", "heading", "group"),
    }
)


@dataclass(frozen=True, slots=True)
class ColumnMap:
    """Semantic field -> original header text, or None when no header matched."""

    code: Optional[str] = None
    description: Optional[str] = None
    unit: Optional[str] = None
    quantity: Optional[str] = None
    rate: Optional[str] = None
    amount: Optional[str] = None
    section: Optional[str] = None

    def get(self, row: Mapping[str, object], field_name: str) -> object:
        header = getattr(self, field_name)
        if header is None:
            return None
        return row.get(header)

    def as_dict(self) -> dict[str, Optional[str]]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


def detect_column_mapping(headers: Sequence[str]) -> ColumnMap:
    """
    Infer which header carries each semantic BOQ field.

    For every field the variants are tried in priority order and, per variant,
    the first header containing it is claimed. Fields claim headers
    independently of each other.
    """

    normalized = [(header or "").lower().strip() for header in headers]
    claimed: dict[str, str] = {}

    for field_name, variants in COLUMN_VARIANTS.items():
        header = _first_match(headers, normalized, variants)
        if header is not None:
            claimed[field_name] = header

    return ColumnMap(**claimed)


def _first_match(headers: Sequence[str], normalized: Sequence[str], variants: Sequence[str]) -> Optional[str]:
    for variant in variants:
        for index, candidate in enumerate(normalized):
            if variant in candidate:
                return headers[index]
    return None
