"""
Commits reviewed BOQ items as persisted budget line items.

A commit is one import event: every confirmed item is written, or none is.
References to stages and category items are checked against the project's
organization before anything is written, and any failure rolls the whole
transaction back.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from models.boq import ParsedLineItem, WorkCategory
from persistence.models import BOQItem, CategoryItem
from persistence.repository import BOQRepository, to_decimal
from review_staging import ReviewItem, ReviewSession

logger = logging.getLogger(__name__)

QUANTITY_PLACES = "0.0001"
RATE_PLACES = "0.01"
# Exclusive upper bounds of the Numeric(15, 4) and Numeric(15, 2) columns.
QUANTITY_LIMIT = 10**11
RATE_LIMIT = 10**13


class BOQImportError(Exception):
    """Base class for commit-time failures; the message is shown to the user."""


class EmptySelectionError(BOQImportError):
    def __init__(self) -> None:
        super().__init__("No items selected for import")


class ScopeError(BOQImportError):
    """A referenced project, stage or category item is outside the caller's scope."""


class InvalidItemError(BOQImportError):
    """A confirmed item carries values that cannot be stored."""


@dataclass(frozen=True, slots=True)
class ConfirmedItem:
    item: ParsedLineItem
    stage_id: Optional[str] = None
    category_item_id: Optional[str] = None

    @classmethod
    def from_review_item(cls, review_item: ReviewItem) -> "ConfirmedItem":
        return cls(
            item=review_item.item,
            stage_id=review_item.stage_id,
            category_item_id=review_item.category_item_id,
        )


@dataclass(frozen=True, slots=True)
class ImportOutcome:
    imported_count: int
    item_ids: tuple[str, ...]
    section_names: tuple[str, ...]


class ImportCommitter:
    def __init__(self, db: Session):
        self._db = db
        self._repository = BOQRepository(db)

    def commit_review_session(self, organization_id: str, project_id: str, session: ReviewSession) -> ImportOutcome:
        confirmed = [ConfirmedItem.from_review_item(item) for item in session.selected_items]
        return self.commit(organization_id, project_id, confirmed)

    def commit(self, organization_id: str, project_id: str, items: Sequence[ConfirmedItem]) -> ImportOutcome:
        if not items:
            raise EmptySelectionError()

        try:
            outcome = self._write_batch(organization_id, project_id, items)
            self._db.commit()
        except BOQImportError as exc:
            self._db.rollback()
            logger.warning(
                {
                    "event": "boq_import_rejected",
                    "project_id": project_id,
                    "item_count": len(items),
                    "reason": str(exc),
                }
            )
            raise
        except Exception:
            self._db.rollback()
            logger.exception({"event": "boq_import_failed", "project_id": project_id, "item_count": len(items)})
            raise

        logger.info(
            {
                "event": "boq_import_committed",
                "project_id": project_id,
                "imported_count": outcome.imported_count,
                "section_count": len(outcome.section_names),
            }
        )
        return outcome

    def _write_batch(self, organization_id: str, project_id: str, items: Sequence[ConfirmedItem]) -> ImportOutcome:
        repository = self._repository
        if repository.get_project(organization_id, project_id) is None:
            raise ScopeError("Project not found in this organization")

        category_ids = self._resolve_categories(organization_id, items)
        self._check_stages(organization_id, project_id, items)
        for confirmed in items:
            _check_storable(confirmed.item)

        section_ids: dict[str, str] = {}
        for confirmed in items:
            name = confirmed.item.section_name
            if name and name not in section_ids:
                section_ids[name] = repository.find_or_create_section(organization_id, project_id, name).id

        records = repository.add_items(
            BOQItem(
                organization_id=organization_id,
                project_id=project_id,
                section_id=section_ids.get(confirmed.item.section_name or ""),
                stage_id=confirmed.stage_id,
                category_item_id=category_id,
                code=confirmed.item.code,
                category=confirmed.item.category,
                description=confirmed.item.description,
                unit=confirmed.item.unit,
                quantity=to_decimal(confirmed.item.quantity, QUANTITY_PLACES),
                rate=to_decimal(confirmed.item.rate, RATE_PLACES),
                is_review_flagged=confirmed.item.is_review_flagged,
                flag_reason=confirmed.item.flag_reason,
            )
            for confirmed, category_id in zip(items, category_ids)
        )

        repository.record_event(
            organization_id=organization_id,
            project_id=project_id,
            action="boq_import",
            details={
                "imported_count": len(records),
                "flagged_count": sum(1 for record in records if record.is_review_flagged),
                "sections": list(section_ids),
            },
        )
        return ImportOutcome(
            imported_count=len(records),
            item_ids=tuple(record.id for record in records),
            section_names=tuple(section_ids),
        )

    def _resolve_categories(self, organization_id: str, items: Iterable[ConfirmedItem]) -> List[str]:
        explicit: dict[str, CategoryItem | None] = {}
        by_category: dict[WorkCategory, CategoryItem | None] = {}
        resolved: List[str] = []

        for confirmed in items:
            if confirmed.category_item_id:
                if confirmed.category_item_id not in explicit:
                    explicit[confirmed.category_item_id] = self._repository.get_category_item(
                        organization_id, confirmed.category_item_id
                    )
                category_item = explicit[confirmed.category_item_id]
                if category_item is None:
                    raise ScopeError(f"Category item '{confirmed.category_item_id}' not found in this organization")
            else:
                category = confirmed.item.category
                if category not in by_category:
                    by_category[category] = self._repository.find_category_item_for(organization_id, category)
                category_item = by_category[category]
                if category_item is None:
                    raise ScopeError(f"No work category configured for {category.value}")
            resolved.append(category_item.id)
        return resolved

    def _check_stages(self, organization_id: str, project_id: str, items: Iterable[ConfirmedItem]) -> None:
        checked: set[str] = set()
        for confirmed in items:
            stage_id = confirmed.stage_id
            if not stage_id or stage_id in checked:
                continue
            if self._repository.get_stage(organization_id, project_id, stage_id) is None:
                raise ScopeError(f"Stage '{stage_id}' does not belong to this project")
            checked.add(stage_id)


def _check_storable(item: ParsedLineItem) -> None:
    if not item.description.strip():
        raise InvalidItemError("Every item needs a description")
    if item.quantity < 0 or item.rate < 0:
        raise InvalidItemError(f"Quantity and rate must not be negative ({item.description})")
    if not _within(item.quantity, QUANTITY_LIMIT) or not _within(item.rate, RATE_LIMIT):
        raise InvalidItemError(f"Quantity or rate is too large to store ({item.description})")


def _within(value: float, limit: int) -> bool:
    return math.isfinite(value) and value < limit
