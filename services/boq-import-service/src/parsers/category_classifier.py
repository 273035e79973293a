from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from models.boq import WorkCategory

# Checked in WorkCategory declaration order; the first category with a hit wins.
CATEGORY_KEYWORDS: Mapping[WorkCategory, tuple[str, ...]] = MappingProxyType(
    {
        WorkCategory.MATERIAL: (
            "material", "cement", "steel", "brick", "sand", "aggregate",
            "tile", "paint", "pipe", "wire", "fitting",
        ),
        WorkCategory.LABOUR: (
            "labour", "labor", "mason", "carpenter", "plumber",
            "electrician", "worker", "manpower", "wages",
        ),
        WorkCategory.SUB_WORK: ("sub work", "subwork", "sub-work", "contract", "subcontract", "turnkey"),
        WorkCategory.EQUIPMENT: (
            "equipment", "machinery", "machine", "tool", "rental",
            "hire", "crane", "mixer", "scaffolding",
        ),
        WorkCategory.OTHER: ("other", "misc", "miscellaneous", "general", "overhead"),
    }
)

DEFAULT_CATEGORY = WorkCategory.MATERIAL


def detect_category(description: str, section: str | None = None) -> WorkCategory:
    """Keyword scan over the description plus its enclosing section name."""

    text = f"{description or ''} {section or ''}".lower()
    for category in WorkCategory:
        if any(keyword in text for keyword in CATEGORY_KEYWORDS[category]):
            return category
    return DEFAULT_CATEGORY


def coerce_category(raw_value: object) -> WorkCategory:
    """Map a free-form category label onto the enumeration; unknown labels become MATERIAL."""

    if isinstance(raw_value, WorkCategory):
        return raw_value
    candidate = str(raw_value or "").strip().upper().replace(" ", "_").replace("-", "_")
    if candidate == "LABOR":
        candidate = WorkCategory.LABOUR.value
    try:
        return WorkCategory(candidate)
    except ValueError:
        return DEFAULT_CATEGORY
