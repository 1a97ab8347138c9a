"""
Export File Reader

Turns a bePaid statement export into a list of {column: value} rows.

bePaid exports come in two shapes:
- CSV, semicolon separated, usually UTF-8 with BOM (older exports cp1251)
- XLSX with a summary sheet first, card transactions on the
  second sheet and ERIP transactions on the third

DESIGN DECISION: The reader knows nothing about column meaning.
Every value comes out as a string and the normalizer decides what
it is. This keeps CSV and Excel rows interchangeable.
"""

import csv
import io
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from bepaid_reconciler.parsing.errors import (
    EmptyFileError,
    ParseError,
    UnsupportedFileError,
)


logger = structlog.get_logger()

CSV_EXTENSIONS = (".csv",)
EXCEL_EXTENSIONS = (".xlsx", ".xls")
SUPPORTED_EXTENSIONS = CSV_EXTENSIONS + EXCEL_EXTENSIONS

CARD_SHEET_INDEX = 1
ERIP_SHEET_INDEX = 2
UID_COLUMN = "UID"

Row = dict[str, str]


def read_export(
    source: Union[str, Path, bytes],
    filename: Optional[str] = None,
) -> list[Row]:
    """
    Read a bePaid export into raw rows.

    Args:
        source: Path to the file, or its raw bytes
        filename: Original file name. Required when source is bytes,
                  used to pick the format.

    Returns:
        List of rows keyed by column header

    Raises:
        UnsupportedFileError: If the file is not CSV/XLSX/XLS
        EmptyFileError: If a CSV has no data lines
        ParseError: If the workbook cannot be opened
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        filename = filename or path.name
        data = path.read_bytes()
    else:
        data = source

    if not filename:
        raise UnsupportedFileError("File name is required to detect the format")

    lower_name = filename.lower()
    if not lower_name.endswith(SUPPORTED_EXTENSIONS):
        raise UnsupportedFileError(
            f"Only CSV and Excel files are supported, got: {filename}"
        )

    if lower_name.endswith(CSV_EXTENSIONS):
        rows = read_csv(data)
    else:
        rows = read_xlsx(data)

    logger.info("export_read", filename=filename, rows=len(rows))
    return rows


# =============================================================================
# CSV
# =============================================================================

def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("cp1251")


def _detect_delimiter(header_line: str) -> str:
    # bePaid uses ';'. Comma exports come from re-saved spreadsheets.
    if header_line.count(",") > header_line.count(";"):
        return ","
    return ";"


def _clean(value: str) -> str:
    return value.strip().replace('"', "")


def read_csv(data: bytes) -> list[Row]:
    """
    Parse CSV bytes into rows.

    Raises:
        EmptyFileError: If there is no header plus at least one data line
    """
    text = _decode(data)
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        raise EmptyFileError("File is empty or contains no data rows")

    delimiter = _detect_delimiter(lines[0])
    reader = csv.reader(lines, delimiter=delimiter)

    headers = [_clean(h) for h in next(reader)]
    rows: list[Row] = []
    for values in reader:
        row: Row = {}
        for i, header in enumerate(headers):
            row[header] = _clean(values[i]) if i < len(values) else ""
        rows.append(row)
    return rows


# =============================================================================
# EXCEL
# =============================================================================

def _cell_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%d.%m.%Y %H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%d.%m.%Y")
    return str(value).strip()


def _sheet_rows(worksheet) -> list[Row]:
    """Rows of one worksheet keyed by its first row, blank rows skipped."""
    iterator = worksheet.iter_rows(values_only=True)
    try:
        header_cells = next(iterator)
    except StopIteration:
        return []

    headers = [_cell_to_str(c) for c in header_cells]
    if UID_COLUMN not in headers:
        return []

    rows: list[Row] = []
    for cells in iterator:
        values = [_cell_to_str(c) for c in cells]
        if not any(values):
            continue
        row: Row = {}
        for i, header in enumerate(headers):
            if not header:
                continue
            row[header] = values[i] if i < len(values) else ""
        rows.append(row)
    return rows


def read_xlsx(data: bytes) -> list[Row]:
    """
    Parse an Excel export.

    Card rows come from the second sheet, ERIP rows from the third.
    A sheet is only used when its header has a UID column. A workbook
    with a single sheet is read from that sheet.

    Raises:
        ParseError: If the workbook cannot be opened
    """
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError) as e:
        raise ParseError(
            f"Could not open workbook (legacy .xls must be re-saved as .xlsx): {e}"
        )

    try:
        sheets = workbook.worksheets

        if len(sheets) == 1:
            return _sheet_rows(sheets[0])

        card_rows: list[Row] = []
        if len(sheets) > CARD_SHEET_INDEX:
            card_rows = _sheet_rows(sheets[CARD_SHEET_INDEX])

        erip_rows: list[Row] = []
        if len(sheets) > ERIP_SHEET_INDEX:
            for row in _sheet_rows(sheets[ERIP_SHEET_INDEX]):
                row["Способ оплаты"] = "erip"
                row["_source"] = "erip"
                erip_rows.append(row)

        logger.debug(
            "workbook_read",
            sheets=len(sheets),
            card_rows=len(card_rows),
            erip_rows=len(erip_rows),
        )
        return card_rows + erip_rows
    finally:
        workbook.close()
