from __future__ import annotations

import csv
import logging
from io import BytesIO, StringIO
from typing import Dict, List, Optional, Sequence

from models.boq import ParseResult
from parsers.column_mapping import detect_column_mapping
from parsers.row_classifier import fold_rows

logger = logging.getLogger(__name__)

ERROR_NO_SHEETS = "No sheets found in file"
ERROR_NO_DATA = "No data found in file"
ERROR_NO_DESCRIPTION = "Could not detect description column"

CSV_EXTENSIONS = (".csv", ".txt")
XLSX_EXTENSIONS = (".xlsx", ".xlsm")
LEGACY_EXCEL_EXTENSIONS = (".xls",)
PDF_EXTENSIONS = (".pdf",)

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "text/plain",
}
XLSX_CONTENT_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
PDF_CONTENT_TYPES = {"application/pdf"}

Row = Dict[str, object]


def detect_source_kind(filename: str | None, content_type: str | None = None) -> Optional[str]:
    """Return "csv", "xlsx", "xls" or "pdf" for a supported upload, else None."""

    name = (filename or "").lower()
    kind = (content_type or "").lower()

    if name.endswith(PDF_EXTENSIONS) or kind in PDF_CONTENT_TYPES:
        return "pdf"
    if name.endswith(XLSX_EXTENSIONS) or kind in XLSX_CONTENT_TYPES:
        return "xlsx"
    if name.endswith(LEGACY_EXCEL_EXTENSIONS) or kind == "application/vnd.ms-excel":
        return "xls"
    if name.endswith(CSV_EXTENSIONS) or kind in CSV_CONTENT_TYPES:
        return "csv"
    return None


def parse_tabular_bytes(file_bytes: bytes, filename: str = "") -> ParseResult:
    """
    Parse spreadsheet bytes (first sheet only) into BOQ line items.

    Structural problems (no sheet, no data rows, no description column) abort
    with a single error and no items; row-level problems only flag items.
    """

    kind = detect_source_kind(filename) or _sniff_kind(file_bytes)
    if kind == "xls":
        return ParseResult.failure("Legacy .xls workbooks are not supported; save the file as .xlsx or CSV.")

    try:
        table = _read_xlsx_rows(file_bytes) if kind == "xlsx" else _read_csv_rows(file_bytes)
    except _NoSheetError:
        return ParseResult.failure(ERROR_NO_SHEETS)
    except (OSError, ValueError, KeyError) as exc:
        logger.warning({"event": "boq_spreadsheet_unreadable", "file_name": filename, "error_type": type(exc).__name__})
        return ParseResult.failure(f"Could not read spreadsheet: {exc}")

    if not table:
        return ParseResult.failure(ERROR_NO_DATA)

    headers = _normalize_headers(table[0])
    rows = [_to_row(headers, raw_row) for raw_row in table[1:]]
    rows = [row for row in rows if any(_has_value(value) for value in row.values())]
    if not rows:
        return ParseResult.failure(ERROR_NO_DATA)

    column_map = detect_column_mapping(headers)
    if column_map.description is None:
        return ParseResult.failure(ERROR_NO_DESCRIPTION)

    state = fold_rows(rows, column_map)
    result = ParseResult(items=list(state.items), sections=list(state.sections), errors=[])

    logger.info(
        {
            "event": "boq_tabular_parsed",
            "file_name": filename,
            "row_count": len(rows),
            "column_map": column_map.as_dict(),
            "total_items": result.total_items,
            "flagged_items": result.flagged_items,
            "section_count": len(result.sections),
        }
    )
    return result


class _NoSheetError(Exception):
    pass


def _sniff_kind(file_bytes: bytes) -> str:
    # XLSX files are zip archives.
    return "xlsx" if file_bytes[:2] == b"PK" else "csv"


def _decode_bytes(file_bytes: bytes) -> str:
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            return file_bytes.decode(encoding)
        except UnicodeDecodeError:
            continue
    return file_bytes.decode("utf-8", errors="ignore")


def _read_csv_rows(file_bytes: bytes) -> List[List[object]]:
    reader = csv.reader(StringIO(_decode_bytes(file_bytes)))
    try:
        return [list(row) for row in reader if row]
    except csv.Error as exc:
        raise ValueError(str(exc)) from exc


def _read_xlsx_rows(file_bytes: bytes) -> List[List[object]]:
    from openpyxl import load_workbook

    try:
        workbook = load_workbook(BytesIO(file_bytes), data_only=True, read_only=True)
    except Exception as exc:  # openpyxl surfaces zip, XML and schema errors alike
        raise ValueError(str(exc) or "invalid workbook") from exc

    try:
        if not workbook.sheetnames:
            raise _NoSheetError()
        sheet = workbook[workbook.sheetnames[0]]
        return [list(row) for row in sheet.iter_rows(values_only=True)]
    except _NoSheetError:
        raise
    except Exception as exc:  # malformed sheet XML only fails on iteration
        raise ValueError(str(exc) or "invalid worksheet") from exc
    finally:
        workbook.close()


def _normalize_headers(header_row: Sequence[object]) -> List[str]:
    normalized: List[str] = []
    for position, cell in enumerate(header_row, start=1):
        text = "" if cell is None else str(cell).strip()
        normalized.append(text or f"column_{position}")
    return normalized


def _to_row(headers: Sequence[str], raw_row: Sequence[object]) -> Row:
    row: Row = {}
    for header, value in zip(headers, raw_row):
        # Duplicate headers keep the first column's value.
        row.setdefault(header, value)
    return row


def _has_value(value: object) -> bool:
    if value is None:
        return False
    return str(value).strip() != ""
