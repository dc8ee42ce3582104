"""
Recipient extraction from uploaded spreadsheets and CSV files.

The first row is the header and must contain a `nomeUser` column
(case-insensitive, trimmed). Each non-empty cell under it becomes one
recipient reference, in source row order. Only the first worksheet of a
workbook is read.
"""

import csv
import io
import struct
import zipfile
from collections.abc import Sequence
from enum import Enum
from pathlib import PurePath
from typing import Any

import openpyxl
import structlog
import xlrd
from openpyxl.utils.exceptions import InvalidFileException
from xlrd.compdoc import CompDocError

from app.core.errors import ParseError, ParseErrorKind, UnsupportedFileType

logger = structlog.get_logger()

RECIPIENT_COLUMN = "nomeUser"


class FileKind(str, Enum):
    SPREADSHEET_LEGACY = "xls"
    SPREADSHEET_MODERN = "xlsx"
    DELIMITED_TEXT = "csv"

    @classmethod
    def from_filename(cls, filename: str) -> "FileKind":
        suffix = PurePath(filename or "").suffix.lower().lstrip(".")
        try:
            return cls(suffix)
        except ValueError:
            raise UnsupportedFileType(
                "Unsupported file format. Use .xlsx, .xls or .csv"
            ) from None


def parse_recipients(data: bytes, kind: FileKind) -> list[str]:
    """Return the recipient references in `data`, in row order.

    Raises ParseError when the file is unreadable, has no rows, lacks the
    recipient column, or has no non-empty recipient cells.
    """
    if kind is FileKind.SPREADSHEET_MODERN:
        rows = _read_xlsx(data)
    elif kind is FileKind.SPREADSHEET_LEGACY:
        rows = _read_xls(data)
    else:
        rows = _read_csv(data)

    references = _extract_column(rows)
    logger.info("tabular.parsed", kind=kind.value, recipients=len(references))
    return references


def _extract_column(rows: list[Sequence[Any]]) -> list[str]:
    if not rows:
        raise ParseError(ParseErrorKind.EMPTY_SOURCE, "The file is empty")

    header = [_cell_text(cell).lower() for cell in rows[0]]
    try:
        column = header.index(RECIPIENT_COLUMN.lower())
    except ValueError:
        raise ParseError(
            ParseErrorKind.MISSING_COLUMN,
            f'Column "{RECIPIENT_COLUMN}" not found in the header row',
        ) from None

    data_rows = rows[1:]
    if not data_rows:
        raise ParseError(ParseErrorKind.EMPTY_SOURCE, "The file has a header but no data rows")

    references = []
    for row in data_rows:
        value = _cell_text(row[column]) if column < len(row) else ""
        if value:
            references.append(value)

    if not references:
        raise ParseError(ParseErrorKind.NO_RECIPIENTS, "No recipients found in the file")
    return references


def _cell_text(value: Any) -> str:
    """Render a cell as trimmed text; whole-number floats lose their `.0`."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------

_XLSX_ERRORS = (
    InvalidFileException,
    zipfile.BadZipFile,
    KeyError,
    OSError,
    SyntaxError,
    ValueError,
    TypeError,
)
_XLS_ERRORS = (xlrd.XLRDError, CompDocError, struct.error, ValueError, IndexError)


def _read_xlsx(data: bytes) -> list[tuple]:
    # ElementTree and lxml parse errors both subclass SyntaxError; read-only
    # sheets parse lazily, so iteration is inside the guard as well
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        try:
            if not workbook.worksheets:
                return []
            return list(workbook.worksheets[0].iter_rows(values_only=True))
        finally:
            workbook.close()
    except _XLSX_ERRORS as e:
        raise ParseError(ParseErrorKind.UNREADABLE, f"Could not read Excel file: {e}") from e


def _read_xls(data: bytes) -> list[list]:
    try:
        book = xlrd.open_workbook(file_contents=data)
        if book.nsheets == 0:
            return []
        sheet = book.sheet_by_index(0)
        return [sheet.row_values(i) for i in range(sheet.nrows)]
    except _XLS_ERRORS as e:
        raise ParseError(ParseErrorKind.UNREADABLE, f"Could not read Excel file: {e}") from e


def _read_csv(data: bytes) -> list[list[str]]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(ParseErrorKind.UNREADABLE, f"CSV file is not valid UTF-8: {e}") from e
    try:
        return list(csv.reader(io.StringIO(text, newline="")))
    except csv.Error as e:
        raise ParseError(ParseErrorKind.UNREADABLE, f"Could not read CSV file: {e}") from e

