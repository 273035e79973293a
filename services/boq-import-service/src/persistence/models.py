"""
SQLAlchemy models for persisted BOQ data.

Projects, stages, category items and expenses belong to the surrounding
platform; they are mapped here only so imports and variance reports can
look them up within the owning organization.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from models.boq import WorkCategory


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Stage(Base):
    __tablename__ = "stages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class CategoryItem(Base):
    """Organization-defined work category; `work_category` ties it to a detected category."""

    __tablename__ = "category_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    work_category: Mapped[Optional[WorkCategory]] = mapped_column(
        SAEnum(WorkCategory, native_enum=False, length=16), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rate: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False, default=Decimal("1"))
    expense_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class BOQSection(Base):
    __tablename__ = "boq_sections"
    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_boq_sections_project_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    items: Mapped[List["BOQItem"]] = relationship(back_populates="section")


class BOQItem(Base):
    """A committed budget line item; quantity and rate are exact decimals."""

    __tablename__ = "boq_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    section_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("boq_sections.id", ondelete="SET NULL"), nullable=True, index=True
    )
    stage_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("stages.id", ondelete="SET NULL"), nullable=True, index=True
    )
    category_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("category_items.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    category: Mapped[WorkCategory] = mapped_column(SAEnum(WorkCategory, native_enum=False, length=16), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_review_flagged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    flag_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    section: Mapped[Optional["BOQSection"]] = relationship(back_populates="items")
    stage: Mapped[Optional["Stage"]] = relationship()
    category_item: Mapped["CategoryItem"] = relationship()
    expense_links: Mapped[List["BOQExpenseLink"]] = relationship(
        back_populates="boq_item",
        cascade="all, delete-orphan",
        order_by="BOQExpenseLink.id",
    )


class BOQExpenseLink(Base):
    """Associates a recorded expense with the BOQ item it was spent against."""

    __tablename__ = "boq_expense_links"
    __table_args__ = (UniqueConstraint("boq_item_id", "expense_id", name="uq_boq_expense_links_pair"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    boq_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("boq_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    expense_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    boq_item: Mapped["BOQItem"] = relationship(back_populates="expense_links")
    expense: Mapped["Expense"] = relationship()


class AuditEvent(Base):
    """Tracks import mutations for later troubleshooting."""

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    project_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
