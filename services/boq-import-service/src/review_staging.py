"""
Editable, selectable working set built from a ParseResult before import.

A ReviewSession is immutable: every user action returns a new session, so
a half-applied change is never observable. Totals and counts are derived on
access and always match the current item state.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Literal, Optional

from models.boq import ParsedLineItem, ParseResult, WorkCategory

OTHER_SECTION = "Other"
EDITABLE_FIELDS = frozenset({"code", "category", "description", "unit", "quantity", "rate", "section_name"})

ShowFilter = Literal["all", "flagged", "selected"]


@dataclass(frozen=True, slots=True)
class ReviewItem:
    id: str
    item: ParsedLineItem
    is_selected: bool = True
    is_editing: bool = False
    stage_id: Optional[str] = None
    category_item_id: Optional[str] = None

    @property
    def section_label(self) -> str:
        return self.item.section_name or OTHER_SECTION

    @property
    def amount(self) -> float:
        return self.item.amount


@dataclass(frozen=True, slots=True)
class ReviewSession:
    items: tuple[ReviewItem, ...] = ()
    sections: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_parse_result(cls, result: ParseResult) -> "ReviewSession":
        return cls(
            items=tuple(
                ReviewItem(id=f"import-{index}", item=dataclasses.replace(item))
                for index, item in enumerate(result.items)
            ),
            sections=tuple(result.sections),
        )

    # Derived views -------------------------------------------------------

    @property
    def selected_items(self) -> List[ReviewItem]:
        return [item for item in self.items if item.is_selected]

    @property
    def selected_count(self) -> int:
        return len(self.selected_items)

    @property
    def flagged_count(self) -> int:
        return sum(1 for item in self.items if item.item.is_review_flagged)

    @property
    def selected_total(self) -> Decimal:
        """Quoted amount of the selected items, summed exactly."""
        return sum(
            (Decimal(str(entry.item.quantity)) * Decimal(str(entry.item.rate)) for entry in self.selected_items),
            Decimal("0"),
        )

    def get(self, item_id: str) -> ReviewItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise KeyError(item_id)

    def group_by_section(self, items: Optional[Iterable[ReviewItem]] = None) -> Dict[str, List[ReviewItem]]:
        groups: Dict[str, List[ReviewItem]] = {}
        for item in self.items if items is None else items:
            groups.setdefault(item.section_label, []).append(item)
        return groups

    def filter(self, search: str = "", show: ShowFilter = "all") -> List[ReviewItem]:
        needle = search.strip().lower()
        filtered: List[ReviewItem] = []
        for item in self.items:
            if needle and needle not in item.item.description.lower():
                continue
            if show == "flagged" and not item.item.is_review_flagged:
                continue
            if show == "selected" and not item.is_selected:
                continue
            filtered.append(item)
        return filtered

    # Mutations (each returns a new session) ------------------------------

    def toggle_item(self, item_id: str) -> "ReviewSession":
        return self._update_one(item_id, lambda item: dataclasses.replace(item, is_selected=not item.is_selected))

    def set_section_selected(self, section: str, selected: bool) -> "ReviewSession":
        return self._update_where(
            lambda item: item.section_label == section,
            lambda item: dataclasses.replace(item, is_selected=selected),
        )

    def select_all(self, selected: bool) -> "ReviewSession":
        return self._update_where(lambda item: True, lambda item: dataclasses.replace(item, is_selected=selected))

    def start_editing(self, item_id: str) -> "ReviewSession":
        return self._update_one(item_id, lambda item: dataclasses.replace(item, is_editing=True))

    def cancel_editing(self, item_id: str) -> "ReviewSession":
        return self._update_one(item_id, lambda item: dataclasses.replace(item, is_editing=False))

    def save_edit(self, item_id: str, **changes: object) -> "ReviewSession":
        """
        Apply an inline edit and treat the item as reviewed.

        Saving clears the flag and reason unconditionally; the edited values
        are not re-validated, so an edit back to a zero quantity stays
        unflagged.
        """

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")
        if "category" in changes:
            changes["category"] = WorkCategory(changes["category"])

        def apply(entry: ReviewItem) -> ReviewItem:
            edited = dataclasses.replace(entry.item, **changes, is_review_flagged=False, flag_reason=None)
            return dataclasses.replace(entry, item=edited, is_editing=False)

        return self._update_one(item_id, apply)

    def assign_stage_to_selected(self, stage_id: Optional[str]) -> "ReviewSession":
        return self._update_where(
            lambda item: item.is_selected,
            lambda item: dataclasses.replace(item, stage_id=stage_id),
        )

    def set_category_item(self, item_id: str, category_item_id: Optional[str]) -> "ReviewSession":
        return self._update_one(item_id, lambda item: dataclasses.replace(item, category_item_id=category_item_id))

    def _update_one(self, item_id: str, change: Callable[[ReviewItem], ReviewItem]) -> "ReviewSession":
        self.get(item_id)
        return self._update_where(lambda item: item.id == item_id, change)

    def _update_where(
        self,
        predicate: Callable[[ReviewItem], bool],
        change: Callable[[ReviewItem], ReviewItem],
    ) -> "ReviewSession":
        items = tuple(change(item) if predicate(item) else item for item in self.items)
        return dataclasses.replace(self, items=items)
