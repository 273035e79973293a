"""
BOQ Import Service turns uploaded Bills of Quantities into reviewable line items,
commits the confirmed subset to a project budget, and reports quoted-versus-actual
variance for committed items.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, File, Header, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing_extensions import Literal

SRC_DIR = Path(__file__).resolve().parent
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

SERVICES_ROOT = SRC_DIR.parents[1]
if str(SERVICES_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICES_ROOT))

from shared.observability.privacy import describe_upload  # noqa: E402
from shared.observability.telemetry import (  # noqa: E402
    bind_request_context,
    ensure_request_id,
    reset_request_context,
    setup_telemetry,
)
from shared.provider_settings import ProviderSettings, ProviderSettingsError, load_provider_settings  # noqa: E402

from boq_pipeline import parse_source, source_from_pdf  # noqa: E402
from extraction_provider import ExtractionProvider, build_extraction_provider  # noqa: E402
from import_committer import (  # noqa: E402
    QUANTITY_LIMIT,
    RATE_LIMIT,
    BOQImportError,
    ConfirmedItem,
    ImportCommitter,
)
from models.boq import DEFAULT_UNIT, ParsedLineItem, ParseResult, TabularSource, WorkCategory  # noqa: E402
from parsers.free_text_parser import ERROR_NOT_CONFIGURED  # noqa: E402
from parsers.tabular_parser import detect_source_kind  # noqa: E402
from persistence.database import get_session, init_db  # noqa: E402
from persistence.repository import BOQRepository  # noqa: E402
from variance_engine import Rollup, VarianceReport, compute_variance_report, load_item_costs  # noqa: E402

ORGANIZATION_HEADER = "x-organization-id"

logger = logging.getLogger(__name__)

app = FastAPI(title="BOQ Import Service")
setup_telemetry(app, service_name="boq-import-service")


def _load_extraction_provider_settings() -> ProviderSettings:
    return load_provider_settings(
        provider_env="BOQ_EXTRACTION_PROVIDER",
        timeout_env="BOQ_EXTRACTION_TIMEOUT_SECONDS",
        temperature_env="BOQ_EXTRACTION_TEMPERATURE",
        max_tokens_env="BOQ_EXTRACTION_MAX_TOKENS",
        max_input_chars_env="BOQ_EXTRACTION_MAX_INPUT_CHARS",
        fixture_env="BOQ_EXTRACTION_FIXTURE",
    )


try:
    EXTRACTION_PROVIDER_SETTINGS = _load_extraction_provider_settings()
except ProviderSettingsError as exc:
    logger.error("Failed to load BOQ extraction provider settings: %s", exc)
    raise


def _initialize_extraction_provider() -> Optional[ExtractionProvider]:
    provider_name = EXTRACTION_PROVIDER_SETTINGS.provider_name
    try:
        provider = build_extraction_provider(provider_name, settings=EXTRACTION_PROVIDER_SETTINGS)
    except ValueError as exc:
        logger.error("Unsupported BOQ extraction provider '%s'", provider_name)
        raise RuntimeError(f"Unsupported BOQ extraction provider '{provider_name}'") from exc
    logger.info(
        "Initialized BOQ extraction provider: %s (set BOQ_EXTRACTION_PROVIDER=openai to enable PDF import)",
        provider_name,
    )
    return provider


EXTRACTION_PROVIDER = _initialize_extraction_provider()


def reload_extraction_provider_for_tests() -> None:
    """
    Allow tests to reconfigure the provider after mutating environment variables.
    """

    global EXTRACTION_PROVIDER_SETTINGS
    global EXTRACTION_PROVIDER
    EXTRACTION_PROVIDER_SETTINGS = _load_extraction_provider_settings()
    EXTRACTION_PROVIDER = _initialize_extraction_provider()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = ensure_request_id(request)
    token = bind_request_context(request_id, request.headers.get(ORGANIZATION_HEADER))
    try:
        response = await call_next(request)
        response.headers.setdefault("x-request-id", request_id)
        return response
    finally:
        reset_request_context(token)


@app.on_event("startup")
def on_startup() -> None:
    """Initialize persistence before serving requests."""
    init_db()


def error_response(status_code: int, error_code: str, details: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error_code, "details": details},
    )


class ParsedLineItemModel(BaseModel):
    code: Optional[str] = None
    category: WorkCategory
    description: str
    unit: str
    quantity: float
    rate: float
    amount: float
    section_name: Optional[str] = None
    is_review_flagged: bool = False
    flag_reason: Optional[str] = None

    @classmethod
    def from_dataclass(cls, item: ParsedLineItem) -> "ParsedLineItemModel":
        return cls(
            code=item.code,
            category=item.category,
            description=item.description,
            unit=item.unit,
            quantity=item.quantity,
            rate=item.rate,
            amount=item.amount,
            section_name=item.section_name,
            is_review_flagged=item.is_review_flagged,
            flag_reason=item.flag_reason,
        )


class ParseResponseModel(BaseModel):
    file_name: str
    source_kind: Literal["csv", "xlsx", "xls", "pdf"]
    items: List[ParsedLineItemModel] = Field(default_factory=list)
    sections: List[str] = Field(default_factory=list)
    total_items: int = 0
    flagged_items: int = 0
    errors: List[str] = Field(default_factory=list)


class ConfirmItemPayload(BaseModel):
    code: Optional[str] = None
    category: WorkCategory = WorkCategory.MATERIAL
    description: str = Field(min_length=1)
    unit: str = DEFAULT_UNIT
    quantity: float = Field(ge=0, lt=QUANTITY_LIMIT, allow_inf_nan=False)
    rate: float = Field(ge=0, lt=RATE_LIMIT, allow_inf_nan=False)
    section_name: Optional[str] = None
    is_review_flagged: bool = False
    flag_reason: Optional[str] = None
    stage_id: Optional[str] = None
    category_item_id: Optional[str] = None

    def to_confirmed_item(self) -> ConfirmedItem:
        return ConfirmedItem(
            item=ParsedLineItem(
                description=self.description,
                category=self.category,
                unit=self.unit or DEFAULT_UNIT,
                quantity=self.quantity,
                rate=self.rate,
                code=self.code,
                section_name=self.section_name,
                is_review_flagged=self.is_review_flagged,
                flag_reason=self.flag_reason,
            ),
            stage_id=self.stage_id,
            category_item_id=self.category_item_id,
        )


class ConfirmImportPayload(BaseModel):
    items: List[ConfirmItemPayload] = Field(default_factory=list)


class ConfirmImportResponseModel(BaseModel):
    imported_count: int


class RollupModel(BaseModel):
    quoted: float
    actual: float
    variance: float
    count: int
    name: Optional[str] = None

    @classmethod
    def from_rollup(cls, rollup: Rollup) -> "RollupModel":
        return cls(
            quoted=float(rollup.quoted),
            actual=float(rollup.actual),
            variance=float(rollup.variance),
            count=rollup.count,
            name=rollup.name,
        )


class ItemVarianceModel(BaseModel):
    item_id: str
    description: str
    category: WorkCategory
    stage_id: Optional[str] = None
    quoted_amount: float
    actual_amount: float
    variance: float


class VarianceResponseModel(BaseModel):
    project_id: str
    total_quoted: float
    total_actual: float
    variance: float
    variance_percent: float
    budget_usage: float
    display_budget_usage: float
    item_count: int
    by_category: Dict[str, RollupModel]
    by_stage: List[RollupModel]
    items: List[ItemVarianceModel]

    @classmethod
    def from_report(cls, project_id: str, report: VarianceReport) -> "VarianceResponseModel":
        return cls(
            project_id=project_id,
            total_quoted=float(report.total_quoted),
            total_actual=float(report.total_actual),
            variance=float(report.variance),
            variance_percent=float(report.variance_percent),
            budget_usage=float(report.budget_usage),
            display_budget_usage=float(report.display_budget_usage),
            item_count=report.item_count,
            by_category={category.value: RollupModel.from_rollup(rollup) for category, rollup in report.by_category.items()},
            by_stage=[RollupModel.from_rollup(rollup) for rollup in report.by_stage.values()],
            items=[
                ItemVarianceModel(
                    item_id=row.item_id,
                    description=row.description,
                    category=row.category,
                    stage_id=row.stage_id,
                    quoted_amount=float(row.quoted_amount),
                    actual_amount=float(row.actual_amount),
                    variance=float(row.variance),
                )
                for row in report.items
            ],
        )


@app.get("/health")
def health_check() -> dict:
    """Report service health and whether PDF extraction is available."""
    return {
        "status": "ok",
        "service": "boq-import-service",
        "extraction_provider": EXTRACTION_PROVIDER_SETTINGS.provider_name,
    }


@app.post("/projects/{project_id}/boq/parse", response_model=None)
async def parse_boq(
    project_id: str,
    request: Request,
    file: UploadFile = File(...),
) -> ParseResponseModel | JSONResponse:
    """
    Parse an uploaded CSV, XLSX or PDF BOQ into reviewable line items.
    Nothing is persisted; the caller reviews the result and confirms a subset.
    """
    request_id = ensure_request_id(request)
    filename = file.filename or "boq_upload"

    kind = detect_source_kind(filename, file.content_type)
    if kind is None:
        return error_response(400, "unsupported_file_type", "Upload a CSV, XLSX or PDF file.")

    file_bytes = await file.read()
    if not file_bytes:
        return error_response(400, "file_empty", "Uploaded file is empty.")

    logger.info(
        {
            "event": "boq_upload_received",
            "request_id": request_id,
            "project_id": project_id,
            "source_kind": kind,
            **describe_upload(file_bytes, filename),
        }
    )

    if kind == "pdf":
        provider = EXTRACTION_PROVIDER
        if provider is None:
            return error_response(400, "pdf_not_configured", ERROR_NOT_CONFIGURED)
        source = source_from_pdf(file_bytes, filename)
        if isinstance(source, ParseResult):
            result = source
        else:
            result = await run_in_threadpool(
                parse_source,
                source,
                provider,
                max_chars=EXTRACTION_PROVIDER_SETTINGS.max_input_chars,
                context={"project_id": project_id, "surface": "boq_import"},
            )
    else:
        result = parse_source(TabularSource(data=file_bytes, filename=filename))

    logger.info(
        {
            "event": "boq_parse_completed",
            "request_id": request_id,
            "project_id": project_id,
            "total_items": result.total_items,
            "flagged_items": result.flagged_items,
            "section_count": len(result.sections),
            "error_count": len(result.errors),
        }
    )
    return _parse_result_to_response(filename, kind, result)


@app.post("/projects/{project_id}/boq/confirm", response_model=None, status_code=201)
def confirm_boq_import(
    project_id: str,
    payload: ConfirmImportPayload,
    request: Request,
    organization_id: Optional[str] = Header(default=None, alias=ORGANIZATION_HEADER),
    db: Session = Depends(get_session),
) -> ConfirmImportResponseModel | JSONResponse:
    """Commit the reviewed, selected items in one transaction; any failure imports nothing."""
    if not organization_id:
        return error_response(400, "organization_required", f"Missing {ORGANIZATION_HEADER} header.")

    confirmed = [item.to_confirmed_item() for item in payload.items]
    try:
        outcome = ImportCommitter(db).commit(organization_id, project_id, confirmed)
    except BOQImportError as exc:
        return error_response(400, "import_failed", str(exc))

    logger.info(
        {
            "event": "boq_confirm",
            "request_id": ensure_request_id(request),
            "project_id": project_id,
            "imported_count": outcome.imported_count,
        }
    )
    return ConfirmImportResponseModel(imported_count=outcome.imported_count)


@app.get("/projects/{project_id}/boq/variance", response_model=None)
def boq_variance(
    project_id: str,
    organization_id: Optional[str] = Header(default=None, alias=ORGANIZATION_HEADER),
    db: Session = Depends(get_session),
) -> VarianceResponseModel | JSONResponse:
    """Quoted-versus-actual amounts for committed items, rolled up by category and stage."""
    if not organization_id:
        return error_response(400, "organization_required", f"Missing {ORGANIZATION_HEADER} header.")
    if BOQRepository(db).get_project(organization_id, project_id) is None:
        return error_response(404, "project_not_found", "Project not found.")

    report = compute_variance_report(load_item_costs(db, organization_id, project_id))
    return VarianceResponseModel.from_report(project_id, report)


def _parse_result_to_response(filename: str, kind: str, result: ParseResult) -> ParseResponseModel:
    return ParseResponseModel(
        file_name=filename,
        source_kind=kind,
        items=[ParsedLineItemModel.from_dataclass(item) for item in result.items],
        sections=list(result.sections),
        total_items=result.total_items,
        flagged_items=result.flagged_items,
        errors=list(result.errors),
    )
