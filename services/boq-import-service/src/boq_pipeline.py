"""
Entry point that turns an uploaded BOQ source into a ParseResult.

Tabular and free-text sources share only the result shape; dispatch matches
on the source type.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from extraction_provider import ExtractionProvider
from models.boq import BOQSource, FreeTextSource, ParseResult, TabularSource
from parsers.free_text_parser import MAX_TEXT_CHARS, ERROR_NO_TEXT, parse_free_text
from parsers.pdf_text import PdfTextError, extract_pdf_text
from parsers.tabular_parser import parse_tabular_bytes

logger = logging.getLogger(__name__)


def parse_source(
    source: BOQSource,
    provider: Optional[ExtractionProvider] = None,
    *,
    max_chars: int = MAX_TEXT_CHARS,
    context: Optional[Mapping[str, Any]] = None,
) -> ParseResult:
    match source:
        case TabularSource(data=data, filename=filename):
            return parse_tabular_bytes(data, filename)
        case FreeTextSource(text=text, filename=filename):
            return parse_free_text(text, provider, file_name=filename, max_chars=max_chars, context=context)
    raise TypeError(f"Unsupported BOQ source: {type(source).__name__}")


def source_from_pdf(file_bytes: bytes, filename: str) -> FreeTextSource | ParseResult:
    """Extract the PDF text layer; returns a failed ParseResult when there is none."""

    try:
        text = extract_pdf_text(file_bytes)
    except PdfTextError as exc:
        return ParseResult.failure(str(exc))
    if not text.strip():
        logger.info({"event": "pdf_without_text_layer", "file_name": filename})
        return ParseResult.failure(ERROR_NO_TEXT)
    return FreeTextSource(text=text, filename=filename)
