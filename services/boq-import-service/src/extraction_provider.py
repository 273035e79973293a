from __future__ import annotations

"""
Provider abstraction for free-text BOQ extraction.

Free-text documents (usually PDF text layers) are handed to a provider that
returns a raw structured payload shaped like BOQ_EXTRACTION_SCHEMA. The
payload is untrusted: `parsers.free_text_parser` validates it and re-applies
the same review flags as the tabular path.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, runtime_checkable

from shared.observability.privacy import hash_payload, redact_fields

from models.boq import WorkCategory

logger = logging.getLogger(__name__)

SAFE_CONTEXT_KEYS = frozenset({"project_id", "file_name", "surface"})

BOQ_EXTRACTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "code": {"type": ["string", "null"], "description": "Item code or serial number if present."},
                    "description": {"type": "string", "description": "Full description of the work or material."},
                    "unit": {"type": "string", "description": "Unit of measurement (sqft, cum, kg, nos, ...)."},
                    "quantity": {"type": "number", "description": "Numeric quantity; 0 when missing."},
                    "rate": {"type": "number", "description": "Unit rate; 0 when missing."},
                    "section_name": {
                        "type": ["string", "null"],
                        "description": "Section heading the item belongs to, e.g. EARTHWORK.",
                    },
                    "category": {"type": "string", "enum": [category.value for category in WorkCategory]},
                    "is_review_flagged": {"type": "boolean"},
                    "flag_reason": {"type": ["string", "null"]},
                },
                "required": ["description", "unit", "quantity", "rate", "category"],
            },
        },
        "sections": {"type": "array", "items": {"type": "string"}},
        "errors": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["items", "sections"],
}


class ExtractionProviderError(RuntimeError):
    """Raised when a provider cannot produce a usable response."""


@dataclass(slots=True)
class ExtractionProviderRequest:
    """
    Contract for extraction inputs.

    Attributes:
        text: Document text, already truncated to the configured budget.
        file_name: Original upload name, for logging only.
        context: Optional metadata (project id, surface) for log correlation.
    """

    text: str
    file_name: str = ""
    context: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class ExtractionProvider(Protocol):
    """Swappable text-to-structured-data collaborator."""

    name: str

    def extract(self, request: ExtractionProviderRequest) -> Mapping[str, Any]:
        """Return a raw payload shaped like BOQ_EXTRACTION_SCHEMA or raise ExtractionProviderError."""
        ...


class CallableExtractionProvider:
    """Adapts a plain `text -> payload` function into a provider."""

    name = "callable"

    def __init__(self, func: Callable[[str], Mapping[str, Any]], name: str | None = None):
        self._func = func
        if name:
            self.name = name

    def extract(self, request: ExtractionProviderRequest) -> Mapping[str, Any]:
        try:
            return self._func(request.text)
        except ExtractionProviderError:
            raise
        except Exception as exc:
            raise ExtractionProviderError(f"Extraction failed: {exc}") from exc


class MockBoqExtractionProvider:
    """Fixture-driven provider for tests and offline demos."""

    name = "mock"

    def __init__(self, fixture_path: str | Path | None = None):
        candidate = fixture_path or os.getenv("BOQ_EXTRACTION_FIXTURE") or _default_fixture_path()
        self._fixture_path = Path(candidate)
        if not self._fixture_path.exists():
            raise FileNotFoundError(f"Mock extraction fixture not found at {self._fixture_path}")

    def extract(self, request: ExtractionProviderRequest) -> Mapping[str, Any]:
        try:
            payload = json.loads(self._fixture_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ExtractionProviderError(f"Mock extraction fixture is not valid JSON: {self._fixture_path}") from exc
        log_extraction_request(self.name, request)
        return payload


def _default_fixture_path() -> Path:
    service_root = Path(__file__).resolve().parents[1]
    return service_root / "tests" / "fixtures" / "mock_boq_extraction.json"


def build_extraction_provider(name: str | None, *, settings: Optional[Any] = None) -> Optional[ExtractionProvider]:
    """
    Instantiate the configured provider; returns None when extraction is disabled.
    """

    normalized = (name or "").strip().lower()
    if normalized in ("", "disabled"):
        return None
    if normalized == "mock":
        fixture_path = getattr(settings, "fixture_path", None) if settings else None
        return MockBoqExtractionProvider(fixture_path)
    if normalized == "openai":
        from providers.openai_boq_extraction import OpenAIBoqExtractionProvider

        return OpenAIBoqExtractionProvider(settings=settings)

    raise ValueError(f"Unsupported extraction provider '{name}'")


def log_extraction_request(provider_name: str, request: ExtractionProviderRequest) -> None:
    logger.info(
        {
            "event": "boq_extraction_request",
            "provider": provider_name,
            "text_length": len(request.text),
            "text_hash": hash_payload(request.text),
            "context_snapshot": redact_fields(request.context, SAFE_CONTEXT_KEYS) if request.context else {},
        }
    )
