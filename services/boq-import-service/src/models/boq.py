from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

DEFAULT_UNIT = "nos"


class WorkCategory(str, Enum):
    """Work categories a BOQ line item can belong to, in detection priority order."""

    MATERIAL = "MATERIAL"
    LABOUR = "LABOUR"
    SUB_WORK = "SUB_WORK"
    EQUIPMENT = "EQUIPMENT"
    OTHER = "OTHER"


@dataclass(slots=True)
class ParsedLineItem:
    """A single quoted unit of work or material extracted from a BOQ document."""

    description: str
    category: WorkCategory
    unit: str
    quantity: float
    rate: float
    code: str | None = None
    section_name: str | None = None
    is_review_flagged: bool = False
    flag_reason: str | None = None

    @property
    def amount(self) -> float:
        return self.quantity * self.rate


@dataclass(slots=True)
class ParseResult:
    """Container for one upload's parsed-but-not-yet-reviewed line items."""

    items: list[ParsedLineItem] = field(default_factory=list)
    sections: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def total_items(self) -> int:
        return len(self.items)

    @property
    def flagged_items(self) -> int:
        return sum(1 for item in self.items if item.is_review_flagged)

    @classmethod
    def failure(cls, message: str) -> "ParseResult":
        """Empty result carrying a single explanatory error."""
        return cls(items=[], sections=[], errors=[message])


@dataclass(frozen=True, slots=True)
class TabularSource:
    """Spreadsheet bytes (CSV or XLSX); only the first sheet is read."""

    data: bytes
    filename: str = ""


@dataclass(frozen=True, slots=True)
class FreeTextSource:
    """Text already extracted from a PDF or similar document."""

    text: str
    filename: str = ""


BOQSource = Union[TabularSource, FreeTextSource]
