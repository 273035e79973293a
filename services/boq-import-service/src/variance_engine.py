"""
Quoted-versus-actual reconciliation for committed BOQ items.

Every figure is a `Decimal`. Variance is never clamped: a negative value is an
overrun and must stay visible. Only `display_budget_usage` is bounded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from models.boq import WorkCategory
from persistence.repository import BOQRepository

ZERO = Decimal("0")
HUNDRED = Decimal("100")
UNASSIGNED_STAGE = "Unassigned"


@dataclass(frozen=True, slots=True)
class ItemCosts:
    item_id: str
    category: WorkCategory
    quantity: Decimal
    rate: Decimal
    description: str = ""
    stage_id: Optional[str] = None
    stage_name: Optional[str] = None
    expenses: Tuple[Tuple[Decimal, Decimal], ...] = ()


@dataclass(frozen=True, slots=True)
class ItemVariance:
    item_id: str
    description: str
    category: WorkCategory
    stage_id: Optional[str]
    quoted_amount: Decimal
    actual_amount: Decimal
    variance: Decimal


@dataclass(slots=True)
class Rollup:
    quoted: Decimal = ZERO
    actual: Decimal = ZERO
    count: int = 0
    name: Optional[str] = None

    @property
    def variance(self) -> Decimal:
        return self.quoted - self.actual

    def add(self, row: ItemVariance) -> None:
        self.quoted += row.quoted_amount
        self.actual += row.actual_amount
        self.count += 1


@dataclass(slots=True)
class VarianceReport:
    items: List[ItemVariance] = field(default_factory=list)
    by_category: Dict[WorkCategory, Rollup] = field(default_factory=dict)
    by_stage: Dict[Optional[str], Rollup] = field(default_factory=dict)
    total_quoted: Decimal = ZERO
    total_actual: Decimal = ZERO

    @property
    def variance(self) -> Decimal:
        return self.total_quoted - self.total_actual

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def variance_percent(self) -> Decimal:
        if self.total_quoted <= 0:
            return ZERO
        return self.variance / self.total_quoted * HUNDRED

    @property
    def budget_usage(self) -> Decimal:
        if self.total_quoted <= 0:
            return ZERO
        return self.total_actual / self.total_quoted * HUNDRED

    @property
    def display_budget_usage(self) -> Decimal:
        return min(max(self.budget_usage, ZERO), HUNDRED)


def item_variance(costs: ItemCosts) -> ItemVariance:
    """
    Compute the quoted amount, the actual spend and the difference for one item.

    Args:
        costs: ItemCosts whose expenses are (rate, quantity) pairs of linked actual-cost records.
    Returns:
        ItemVariance with quoted = quantity x rate and actual = sum of expense rate x quantity.
    Assumptions:
        Pure; an item with no linked expenses has an actual amount of zero.
    """
    quoted = costs.quantity * costs.rate
    actual = sum((rate * quantity for rate, quantity in costs.expenses), ZERO)
    return ItemVariance(
        item_id=costs.item_id,
        description=costs.description,
        category=costs.category,
        stage_id=costs.stage_id,
        quoted_amount=quoted,
        actual_amount=actual,
        variance=quoted - actual,
    )


def compute_variance_report(items: Iterable[ItemCosts]) -> VarianceReport:
    """
    Roll item variances up by work category and by stage.

    Args:
        items: ItemCosts for one project's committed line items.
    Returns:
        VarianceReport whose category rollups list every WorkCategory (zeroed when unused)
        and whose stage rollups are keyed by stage id (None for unassigned items).
    Assumptions:
        Totals are sums of the per-item rows, so rollups always reconcile with the item list.
    """
    report = VarianceReport(by_category={category: Rollup() for category in WorkCategory})

    for costs in items:
        row = item_variance(costs)
        report.items.append(row)
        report.total_quoted += row.quoted_amount
        report.total_actual += row.actual_amount
        report.by_category[costs.category].add(row)

        stage = report.by_stage.get(costs.stage_id)
        if stage is None:
            stage = Rollup(name=costs.stage_name or (UNASSIGNED_STAGE if costs.stage_id is None else costs.stage_id))
            report.by_stage[costs.stage_id] = stage
        stage.add(row)

    return report


def load_item_costs(db: Session, organization_id: str, project_id: str) -> Sequence[ItemCosts]:
    """Read committed items and their linked expenses for a project without modifying anything."""
    repository = BOQRepository(db)
    return [
        ItemCosts(
            item_id=item.id,
            category=item.category,
            quantity=item.quantity,
            rate=item.rate,
            description=item.description,
            stage_id=item.stage_id,
            stage_name=item.stage.name if item.stage is not None else None,
            expenses=tuple((link.expense.rate, link.expense.quantity) for link in item.expense_links),
        )
        for item in repository.list_items(organization_id, project_id)
    ]
