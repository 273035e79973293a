from __future__ import annotations

import logging
from io import BytesIO

import pdfplumber

logger = logging.getLogger(__name__)


class PdfTextError(ValueError):
    """Raised when a PDF cannot be opened or read."""


def extract_pdf_text(file_bytes: bytes) -> str:
    """Concatenate the text layer of every page; image-only pages contribute nothing."""

    try:
        with pdfplumber.open(BytesIO(file_bytes)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as exc:  # pdfminer raises a wide range of parser errors
        logger.warning({"event": "pdf_text_extraction_failed", "error_type": type(exc).__name__})
        raise PdfTextError(f"Could not read PDF: {exc}") from exc

    return "\n".join(page for page in pages if page.strip())
