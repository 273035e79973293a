from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from extraction_provider import ExtractionProvider, ExtractionProviderError, ExtractionProviderRequest
from models.boq import DEFAULT_UNIT, ParsedLineItem, ParseResult
from parsers.category_classifier import coerce_category
from parsers.numeric import parse_number
from parsers.validation import apply_review_flags

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 15000

ERROR_NO_TEXT = "Could not extract text from PDF. The file may be image-based or corrupted."
ERROR_NOT_CONFIGURED = (
    "PDF import requires AI extraction to be configured. Please contact your administrator "
    "or use Excel/CSV format instead."
)


class MalformedExtractionError(ValueError):
    """Raised internally when a provider payload does not match the extraction schema."""


def parse_free_text(
    text: str,
    provider: Optional[ExtractionProvider],
    *,
    file_name: str = "",
    max_chars: int = MAX_TEXT_CHARS,
    context: Optional[Mapping[str, Any]] = None,
) -> ParseResult:
    """
    Extract BOQ items from document text through the configured provider.

    The text is truncated to `max_chars` before the provider sees it. Any
    provider failure or malformed payload yields an empty result with one
    error; a response is never partially trusted.
    """

    if provider is None:
        return ParseResult.failure(ERROR_NOT_CONFIGURED)
    if not text or not text.strip():
        return ParseResult.failure(ERROR_NO_TEXT)

    truncated = text[:max_chars]
    request = ExtractionProviderRequest(
        text=truncated,
        file_name=file_name,
        context={**(context or {}), "file_name": file_name, "truncated": len(text) > max_chars},
    )

    try:
        payload = provider.extract(request)
        items, sections, collaborator_errors = _validate_payload(payload)
    except ExtractionProviderError as exc:
        return ParseResult.failure(str(exc) or "AI extraction failed")
    except MalformedExtractionError as exc:
        logger.warning({"event": "boq_extraction_malformed", "provider": provider.name, "reason": str(exc)})
        return ParseResult.failure(f"AI response was malformed: {exc}")

    result = ParseResult(items=items, sections=sections, errors=collaborator_errors)
    logger.info(
        {
            "event": "boq_free_text_parsed",
            "provider": provider.name,
            "text_length": len(text),
            "sent_length": len(truncated),
            "total_items": result.total_items,
            "flagged_items": result.flagged_items,
        }
    )
    return result


def _validate_payload(payload: Any) -> tuple[List[ParsedLineItem], List[str], List[str]]:
    if not isinstance(payload, Mapping):
        raise MalformedExtractionError("expected a JSON object")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        raise MalformedExtractionError("'items' must be a list")

    items = [_item_from_payload(index, raw) for index, raw in enumerate(raw_items)]

    raw_sections = payload.get("sections")
    if raw_sections is not None and not isinstance(raw_sections, list):
        raise MalformedExtractionError("'sections' must be a list")
    candidates = [str(name).strip() for name in raw_sections or [] if name is not None]
    if not candidates:
        candidates = [item.section_name for item in items if item.section_name]
    sections = list(dict.fromkeys(name for name in candidates if name))

    raw_errors = payload.get("errors") or []
    if not isinstance(raw_errors, list):
        raise MalformedExtractionError("'errors' must be a list")
    return items, sections, [str(error) for error in raw_errors]


def _item_from_payload(index: int, raw: Any) -> ParsedLineItem:
    if not isinstance(raw, Mapping):
        raise MalformedExtractionError(f"item {index} is not an object")

    description = str(raw.get("description") or "").strip()
    if not description:
        raise MalformedExtractionError(f"item {index} has no description")

    code = raw.get("code")
    section_name = raw.get("section_name", raw.get("sectionName"))
    flag_reason = raw.get("flag_reason", raw.get("flagReason"))
    flagged = raw.get("is_review_flagged", raw.get("isReviewFlagged", False))

    item = ParsedLineItem(
        code=_optional_text(code),
        category=coerce_category(raw.get("category")),
        description=description,
        unit=str(raw.get("unit") or "").strip() or DEFAULT_UNIT,
        quantity=parse_number(raw.get("quantity")),
        rate=parse_number(raw.get("rate")),
        section_name=_optional_text(section_name),
        is_review_flagged=flagged is True,
        flag_reason=str(flag_reason) if flag_reason else None,
    )
    return apply_review_flags(item)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
