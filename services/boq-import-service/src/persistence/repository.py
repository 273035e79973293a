"""BOQ data access helpers; every lookup is scoped to the caller's organization."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from models.boq import WorkCategory
from persistence.models import (
    AuditEvent,
    BOQExpenseLink,
    BOQItem,
    BOQSection,
    CategoryItem,
    Project,
    Stage,
)


class BOQRepository:
    """Thin repository that encapsulates BOQ persistence operations."""

    def __init__(self, db: Session):
        self._db = db

    # External entities (read-only) --------------------------------------

    def get_project(self, organization_id: str, project_id: str) -> Project | None:
        return self._db.scalar(
            select(Project).where(Project.id == project_id, Project.organization_id == organization_id)
        )

    def get_stage(self, organization_id: str, project_id: str, stage_id: str) -> Stage | None:
        return self._db.scalar(
            select(Stage).where(
                Stage.id == stage_id,
                Stage.organization_id == organization_id,
                Stage.project_id == project_id,
            )
        )

    def get_category_item(self, organization_id: str, category_item_id: str) -> CategoryItem | None:
        return self._db.scalar(
            select(CategoryItem).where(
                CategoryItem.id == category_item_id,
                CategoryItem.organization_id == organization_id,
                CategoryItem.is_active.is_(True),
            )
        )

    def find_category_item_for(self, organization_id: str, category: WorkCategory) -> CategoryItem | None:
        return self._db.scalar(
            select(CategoryItem)
            .where(
                CategoryItem.organization_id == organization_id,
                CategoryItem.work_category == category,
                CategoryItem.is_active.is_(True),
            )
            .order_by(CategoryItem.name)
            .limit(1)
        )

    # Sections ------------------------------------------------------------

    def find_or_create_section(self, organization_id: str, project_id: str, name: str) -> BOQSection:
        existing = self._db.scalar(
            select(BOQSection).where(
                BOQSection.organization_id == organization_id,
                BOQSection.project_id == project_id,
                BOQSection.name == name,
            )
        )
        if existing is not None:
            return existing

        max_sort = self._db.scalar(
            select(func.max(BOQSection.sort_order)).where(
                BOQSection.organization_id == organization_id,
                BOQSection.project_id == project_id,
            )
        )
        section = BOQSection(
            organization_id=organization_id,
            project_id=project_id,
            name=name,
            sort_order=(max_sort or 0) + 1,
        )
        self._db.add(section)
        self._db.flush()
        return section

    # Items ---------------------------------------------------------------

    def add_items(self, items: Iterable[BOQItem]) -> List[BOQItem]:
        records = list(items)
        self._db.add_all(records)
        self._db.flush()
        return records

    def list_items(self, organization_id: str, project_id: str) -> List[BOQItem]:
        statement = (
            select(BOQItem)
            .where(BOQItem.organization_id == organization_id, BOQItem.project_id == project_id)
            .options(
                selectinload(BOQItem.stage),
                selectinload(BOQItem.expense_links).selectinload(BOQExpenseLink.expense),
            )
            .order_by(BOQItem.created_at, BOQItem.id)
        )
        return list(self._db.scalars(statement))

    # Audit ---------------------------------------------------------------

    def record_event(
        self,
        *,
        organization_id: str,
        project_id: str,
        action: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self._db.add(
            AuditEvent(
                organization_id=organization_id,
                project_id=project_id,
                action=action,
                details=details,
            )
        )


def to_decimal(value: float | Decimal | int, places: str) -> Decimal:
    """Convert a parsed number to a Decimal quantized for storage."""
    if isinstance(value, Decimal):
        return value.quantize(Decimal(places))
    return Decimal(str(value)).quantize(Decimal(places))
