from decimal import Decimal
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from main import app, reload_extraction_provider_for_tests
from parsers.free_text_parser import ERROR_NOT_CONFIGURED
from persistence.database import get_session
from persistence.models import BOQItem, Expense
from persistence.repository import BOQRepository

client = TestClient(app)

BOQ_CSV = (
    b"Item No,Description,Unit,Qty,Rate,Amount\n"
    b",EARTHWORK,,,,\n"
    b"1.1,Excavation in ordinary soil,cum,120,350,42000\n"
    b"1.2,Mason and helper,day,,1200,\n"
    b",Grand Total,,,,\n"
)


@pytest.fixture(autouse=True)
def override_session(session_factory):
    def _session():
        with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    yield
    app.dependency_overrides.pop(get_session, None)


@pytest.fixture
def mock_provider(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("BOQ_EXTRACTION_PROVIDER", "mock")
    monkeypatch.delenv("BOQ_EXTRACTION_FIXTURE", raising=False)
    reload_extraction_provider_for_tests()
    yield
    monkeypatch.setenv("BOQ_EXTRACTION_PROVIDER", "disabled")
    reload_extraction_provider_for_tests()


def _headers(seeded) -> Dict[str, str]:
    return {"x-organization-id": seeded["organization_id"]}


def _confirm_items() -> List[Dict[str, Any]]:
    return [
        {
            "code": "1.1",
            "category": "MATERIAL",
            "description": "Cement",
            "unit": "bags",
            "quantity": 10,
            "rate": 100,
            "section_name": "CONCRETE",
        },
        {
            "category": "LABOUR",
            "description": "Mason wages",
            "unit": "day",
            "quantity": 5,
            "rate": 900,
        },
    ]


def test_health_reports_provider():
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["x-request-id"]


def test_parse_csv_upload():
    response = client.post(
        "/projects/project-1/boq/parse",
        files={"file": ("estimate.csv", BOQ_CSV, "text/csv")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["file_name"] == "estimate.csv"
    assert body["source_kind"] == "csv"
    assert body["sections"] == ["EARTHWORK"]
    assert body["total_items"] == 3
    assert body["flagged_items"] == 2
    assert body["errors"] == []
    assert body["items"][0]["amount"] == pytest.approx(42000.0)
    assert body["items"][1]["flag_reason"] == "Quantity is zero or missing"


def test_parse_rejects_unsupported_type():
    response = client.post(
        "/projects/project-1/boq/parse",
        files={"file": ("notes.docx", b"hello", "application/octet-stream")},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "unsupported_file_type"


def test_parse_rejects_empty_file():
    response = client.post("/projects/project-1/boq/parse", files={"file": ("empty.csv", b"", "text/csv")})

    assert response.status_code == 400
    assert response.json()["error"] == "file_empty"


def test_pdf_requires_configured_provider():
    response = client.post(
        "/projects/project-1/boq/parse",
        files={"file": ("tender.pdf", b"%PDF-1.4 ...", "application/pdf")},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "pdf_not_configured", "details": ERROR_NOT_CONFIGURED}


def test_pdf_is_parsed_with_mock_provider(mock_provider, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr("boq_pipeline.extract_pdf_text", lambda _data: "EARTHWORK\n1.1 Excavation cum 120 350")

    response = client.post(
        "/projects/project-1/boq/parse",
        files={"file": ("tender.pdf", b"%PDF-1.4 ...", "application/pdf")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_items"] == 4
    assert body["sections"] == ["EARTHWORK", "CONCRETE WORK"]
    assert body["items"][2]["category"] == "LABOUR"


def test_confirm_imports_items(seeded):
    response = client.post(
        f"/projects/{seeded['project_id']}/boq/confirm",
        json={"items": _confirm_items()},
        headers=_headers(seeded),
    )

    assert response.status_code == 201
    assert response.json() == {"imported_count": 2}


def test_confirm_empty_selection(seeded):
    response = client.post(
        f"/projects/{seeded['project_id']}/boq/confirm",
        json={"items": []},
        headers=_headers(seeded),
    )

    assert response.status_code == 400
    assert response.json() == {"error": "import_failed", "details": "No items selected for import"}


def test_confirm_with_foreign_stage_imports_nothing(seeded, session_factory):
    items = _confirm_items()
    items[1]["stage_id"] = seeded["foreign_stage_id"]

    response = client.post(
        f"/projects/{seeded['project_id']}/boq/confirm",
        json={"items": items},
        headers=_headers(seeded),
    )

    assert response.status_code == 400
    with session_factory() as session:
        assert session.scalar(select(func.count()).select_from(BOQItem)) == 0


def test_confirm_requires_organization(seeded):
    response = client.post(f"/projects/{seeded['project_id']}/boq/confirm", json={"items": _confirm_items()})

    assert response.status_code == 400
    assert response.json()["error"] == "organization_required"


@pytest.mark.parametrize("field, value", [("quantity", -4), ("quantity", 1e30), ("rate", 1e14)])
def test_confirm_validates_payload(seeded, session_factory, field, value):
    items = _confirm_items()
    items[0][field] = value

    response = client.post(
        f"/projects/{seeded['project_id']}/boq/confirm",
        json={"items": items},
        headers=_headers(seeded),
    )

    assert response.status_code == 422
    with session_factory() as session:
        assert session.scalar(select(func.count()).select_from(BOQItem)) == 0


def test_variance_report(seeded, session_factory, link_expenses):
    client.post(
        f"/projects/{seeded['project_id']}/boq/confirm",
        json={"items": _confirm_items()[:1]},
        headers=_headers(seeded),
    )
    with session_factory() as session:
        repository = BOQRepository(session)
        item = repository.list_items(seeded["organization_id"], seeded["project_id"])[0]
        session.add_all(
            [
                Expense(id="exp-1", organization_id="org-1", project_id="project-1", rate=Decimal("40"), quantity=Decimal("1")),
                Expense(id="exp-2", organization_id="org-1", project_id="project-1", rate=Decimal("10"), quantity=Decimal("2")),
            ]
        )
        session.commit()
        link_expenses(session, item.id, "exp-1", "exp-2")

    response = client.get(f"/projects/{seeded['project_id']}/boq/variance", headers=_headers(seeded))

    assert response.status_code == 200
    body = response.json()
    assert body["total_quoted"] == pytest.approx(1000.0)
    assert body["total_actual"] == pytest.approx(60.0)
    assert body["variance"] == pytest.approx(940.0)
    assert body["budget_usage"] == pytest.approx(6.0)
    assert body["by_category"]["MATERIAL"]["count"] == 1
    assert body["by_stage"][0]["name"] == "Unassigned"


def test_variance_unknown_project(seeded):
    response = client.get("/projects/missing/boq/variance", headers=_headers(seeded))

    assert response.status_code == 404
