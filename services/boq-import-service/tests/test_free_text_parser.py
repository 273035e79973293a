"""
Tests for the AI-assisted parser.

Providers are replaced by deterministic stubs so payload validation,
truncation and review flagging can be checked without network access.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

import pytest

from extraction_provider import (
    CallableExtractionProvider,
    ExtractionProviderError,
    ExtractionProviderRequest,
    MockBoqExtractionProvider,
)
from models.boq import WorkCategory
from parsers.free_text_parser import ERROR_NO_TEXT, ERROR_NOT_CONFIGURED, parse_free_text
from parsers.validation import REASON_AI_FLAGGED


class RecordingProvider:
    name = "recording"

    def __init__(self, payload: Any):
        self.payload = payload
        self.requests: List[ExtractionProviderRequest] = []

    def extract(self, request: ExtractionProviderRequest) -> Mapping[str, Any]:
        self.requests.append(request)
        return self.payload


def _payload(*items: Dict[str, Any], sections=None) -> Dict[str, Any]:
    return {"items": list(items), "sections": sections if sections is not None else [], "errors": []}


def test_well_formed_payload_is_revalidated():
    provider = RecordingProvider(
        _payload(
            {"description": "Cement bags", "unit": "bags", "quantity": 100, "rate": 420, "category": "material"},
            {"description": "Helper wages", "unit": "day", "quantity": 20, "rate": 0, "category": "LABOR"},
            {"description": "Mystery item", "unit": "", "quantity": "5", "rate": "1,000", "category": "SERVICES"},
        )
    )

    result = parse_free_text("some boq text", provider)

    assert result.errors == []
    assert [item.category for item in result.items] == [
        WorkCategory.MATERIAL,
        WorkCategory.LABOUR,
        WorkCategory.MATERIAL,
    ]
    assert not result.items[0].is_review_flagged
    assert result.items[1].is_review_flagged
    assert result.items[1].flag_reason == REASON_AI_FLAGGED
    assert result.items[2].unit == "nos"
    assert result.items[2].rate == 1000.0
    assert result.flagged_items == 1


def test_collaborator_flag_and_reason_are_kept():
    provider = RecordingProvider(
        _payload(
            {
                "description": "Mixer hire",
                "unit": "day",
                "quantity": 4,
                "rate": 1500,
                "category": "EQUIPMENT",
                "isReviewFlagged": True,
                "flagReason": "Duration unclear",
                "sectionName": "PLANT",
            }
        )
    )

    result = parse_free_text("text", provider)

    item = result.items[0]
    assert item.is_review_flagged
    assert item.flag_reason == "Duration unclear"
    assert item.section_name == "PLANT"
    assert result.sections == ["PLANT"]


def test_null_and_blank_section_names_are_skipped():
    provider = RecordingProvider(
        _payload(
            {"description": "Excavation", "quantity": 10, "rate": 5},
            sections=[None, "EARTHWORK", "  ", "EARTHWORK"],
        )
    )

    result = parse_free_text("text", provider)

    assert result.errors == []
    assert result.sections == ["EARTHWORK"]


def test_text_is_truncated_before_the_provider_call():
    provider = RecordingProvider(_payload())

    parse_free_text("a" * 50, provider, max_chars=10, file_name="tender.pdf", context={"project_id": "p-1"})

    request = provider.requests[0]
    assert request.text == "a" * 10
    assert request.file_name == "tender.pdf"
    assert request.context["project_id"] == "p-1"
    assert request.context["truncated"] is True


@pytest.mark.parametrize(
    "payload",
    [
        "not an object",
        {"sections": []},
        {"items": {"description": "x"}},
        {"items": [{"unit": "nos", "quantity": 1, "rate": 1}]},
        {"items": ["oops"]},
        {"items": [], "sections": "EARTHWORK"},
    ],
)
def test_malformed_payload_yields_single_error_and_no_items(payload):
    result = parse_free_text("text", RecordingProvider(payload))

    assert result.items == []
    assert len(result.errors) == 1
    assert result.errors[0].startswith("AI response was malformed")


def test_provider_failure_becomes_parse_error():
    def _boom(_text: str) -> Mapping[str, Any]:
        raise ExtractionProviderError("AI extraction failed: APITimeoutError")

    result = parse_free_text("text", CallableExtractionProvider(_boom))

    assert result.items == []
    assert result.errors == ["AI extraction failed: APITimeoutError"]


def test_unexpected_callable_exception_is_wrapped():
    def _boom(_text: str) -> Mapping[str, Any]:
        raise KeyError("items")

    result = parse_free_text("text", CallableExtractionProvider(_boom, name="stub"))

    assert result.items == []
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Extraction failed")


def test_missing_provider_reports_not_configured():
    result = parse_free_text("text", None)

    assert result.errors == [ERROR_NOT_CONFIGURED]


def test_blank_text_is_not_sent():
    provider = RecordingProvider(_payload())

    result = parse_free_text("   \n", provider)

    assert result.errors == [ERROR_NO_TEXT]
    assert provider.requests == []


def test_mock_provider_fixture_round_trips_through_parser():
    result = parse_free_text("fixture driven", MockBoqExtractionProvider())

    assert result.errors == []
    assert result.sections == ["EARTHWORK", "CONCRETE WORK"]
    assert result.total_items == 4
    labour = result.items[2]
    assert labour.category == WorkCategory.LABOUR
    assert labour.is_review_flagged
    assert result.items[3].flag_reason == "Hire duration unclear"
    assert result.flagged_items == 2
