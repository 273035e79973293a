"""
Row-by-row classification of tabular BOQ data.

Section headers are inferred from layout: a short description with no
numbers beside it starts a new section. This also catches genuine line items
whose quantity, rate and amount are all blank, which then become section
names instead of items. The convention matches how most estimates are
authored, so the misclassification is accepted rather than second-guessed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from functools import reduce
from typing import Iterable, Mapping, Optional

from models.boq import ParsedLineItem
from parsers.category_classifier import detect_category
from parsers.column_mapping import ColumnMap
from parsers.numeric import parse_number
from parsers.validation import build_line_item

SECTION_HEADER_MAX_LENGTH = 100
TOTAL_TOKEN = "TOTAL"
_NON_LETTERS = re.compile(r"[^A-Z]")


class RowKind(str, Enum):
    BLANK = "blank"
    SECTION_HEADER = "section_header"
    LINE_ITEM = "line_item"


@dataclass(frozen=True, slots=True)
class ClassifierState:
    """
    Accumulator threaded through the rows of one sheet.

    `just_updated_section` is True right after a header row changed the
    active section and False once an item (or blank row) has been consumed.
    """

    current_section: str = ""
    items: tuple[ParsedLineItem, ...] = ()
    sections: tuple[str, ...] = ()
    just_updated_section: bool = False


def cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def classify_row(row: Mapping[str, object], column_map: ColumnMap) -> RowKind:
    description = cell_text(column_map.get(row, "description"))
    if not description:
        return RowKind.BLANK

    quantity = parse_number(column_map.get(row, "quantity"))
    rate = parse_number(column_map.get(row, "rate"))
    amount = parse_number(column_map.get(row, "amount"))

    if quantity == 0 and rate == 0 and amount == 0:
        # A bare "TOTAL" marker with no figures is an empty subtotal placeholder.
        if _NON_LETTERS.sub("", description.upper()) == TOTAL_TOKEN:
            return RowKind.BLANK
        if len(description) < SECTION_HEADER_MAX_LENGTH and TOTAL_TOKEN not in description.upper():
            return RowKind.SECTION_HEADER
    return RowKind.LINE_ITEM


def row_to_item(row: Mapping[str, object], column_map: ColumnMap, current_section: str) -> ParsedLineItem:
    description = cell_text(column_map.get(row, "description"))
    section_name = current_section or None
    return build_line_item(
        description=description,
        category=detect_category(description, current_section),
        quantity=parse_number(column_map.get(row, "quantity")),
        rate=parse_number(column_map.get(row, "rate")),
        amount=parse_number(column_map.get(row, "amount")),
        unit=cell_text(column_map.get(row, "unit")),
        code=cell_text(column_map.get(row, "code")) or None,
        section_name=section_name,
    )


def advance(state: ClassifierState, row: Mapping[str, object], column_map: ColumnMap) -> ClassifierState:
    """Single fold step: consume one row and return the next state."""

    kind = classify_row(row, column_map)

    if kind is RowKind.BLANK:
        return replace(state, just_updated_section=False)

    if kind is RowKind.SECTION_HEADER:
        section = cell_text(column_map.get(row, "description"))
        sections = state.sections if section in state.sections else state.sections + (section,)
        return replace(state, current_section=section, sections=sections, just_updated_section=True)

    item = row_to_item(row, column_map, state.current_section)
    return replace(state, items=state.items + (item,), just_updated_section=False)


def fold_rows(
    rows: Iterable[Mapping[str, object]],
    column_map: ColumnMap,
    initial: Optional[ClassifierState] = None,
) -> ClassifierState:
    return reduce(lambda state, row: advance(state, row, column_map), rows, initial or ClassifierState())
