"""Pytest configuration for boq-import-service tests.

Ensures the service's own src directory takes precedence in sys.path
and provides SQLite-backed sessions seeded with the external entities
an import needs (project, stages, category items).
"""

import sys
from pathlib import Path

import pytest

SERVICES_ROOT = Path(__file__).resolve().parents[2]

# Ensure this service's src is first in sys.path
SERVICE_SRC = Path(__file__).resolve().parents[1] / "src"
if str(SERVICE_SRC) not in sys.path:
    sys.path.insert(0, str(SERVICE_SRC))

# `shared` lives directly under services/
if str(SERVICES_ROOT) not in sys.path:
    sys.path.insert(1, str(SERVICES_ROOT))

from models.boq import WorkCategory  # noqa: E402
from persistence.database import build_session_factory, create_db_engine, init_db  # noqa: E402
from persistence.models import BOQExpenseLink, CategoryItem, Project, Stage  # noqa: E402

ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"
PROJECT_ID = "project-1"
OTHER_PROJECT_ID = "project-2"


@pytest.fixture
def engine(tmp_path: Path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'boq.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def seeded(session_factory) -> dict:
    """Two projects in one organization plus a foreign organization's category item."""
    with session_factory() as session:
        session.add_all(
            [
                Project(id=PROJECT_ID, organization_id=ORG_ID, name="Villa"),
                Project(id=OTHER_PROJECT_ID, organization_id=ORG_ID, name="Warehouse"),
                Stage(id="stage-foundation", organization_id=ORG_ID, project_id=PROJECT_ID, name="Foundation"),
                Stage(id="stage-warehouse", organization_id=ORG_ID, project_id=OTHER_PROJECT_ID, name="Shell"),
                CategoryItem(id="cat-material", organization_id=ORG_ID, name="Materials", work_category=WorkCategory.MATERIAL),
                CategoryItem(id="cat-labour", organization_id=ORG_ID, name="Labour", work_category=WorkCategory.LABOUR),
                CategoryItem(id="cat-equipment", organization_id=ORG_ID, name="Equipment", work_category=WorkCategory.EQUIPMENT),
                CategoryItem(id="cat-sub-work", organization_id=ORG_ID, name="Subcontract", work_category=WorkCategory.SUB_WORK),
                CategoryItem(id="cat-foreign", organization_id=OTHER_ORG_ID, name="Materials", work_category=WorkCategory.MATERIAL),
            ]
        )
        session.commit()
    return {
        "organization_id": ORG_ID,
        "project_id": PROJECT_ID,
        "other_project_id": OTHER_PROJECT_ID,
        "stage_id": "stage-foundation",
        "foreign_stage_id": "stage-warehouse",
    }


@pytest.fixture
def link_expenses():
    """Record expense links the way the expense-tracking subsystem does."""

    def _link(session, boq_item_id, *expense_ids):
        session.add_all(BOQExpenseLink(boq_item_id=boq_item_id, expense_id=expense_id) for expense_id in expense_ids)
        session.commit()

    return _link
