"""Spreadsheet gateway for Trade Ledger.

Every read and write in the application goes through a
:class:`SpreadsheetGateway`. A gateway addresses one spreadsheet and works in
terms of tab names and column-letter spans (``"A:H"``), mirroring the A1
notation of the remote service. Two backends share the contract:

1. :class:`GoogleSheetsGateway` talks to the Google Sheets v4 API with a
   service-account credential.
2. :class:`WorkbookGateway` applies the same operations to a local ``.xlsx``
   workbook through ``openpyxl``.

Rows come back the way the Sheets API returns them: the header row first,
blank rows in the middle kept as empty lists (so sheet row numbers stay
stable), trailing blank cells and trailing blank rows dropped.
"""

from __future__ import annotations

import json
import os
import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import openpyxl
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from . import log


SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
SERVICE_ACCOUNT_ENV = "GOOGLE_SERVICE_ACCOUNT"

_COLUMN_SPAN = re.compile(r"^([A-Za-z]+):([A-Za-z]+)$")


class GatewayError(Exception):
    """Raised when the spreadsheet backend cannot complete an operation."""


class SheetNotFoundError(GatewayError):
    """Raised when the requested tab does not exist in the spreadsheet."""


class GatewayAuthError(GatewayError):
    """Raised when service-account credentials are missing or unusable."""


def column_index(letter: str) -> int:
    """Convert a column letter (``"A"``, ``"AB"``) into a 1-based index."""

    cleaned = letter.strip().upper()
    if not cleaned or not cleaned.isalpha():
        raise ValueError(f"Invalid column letter: {letter!r}")
    index = 0
    for char in cleaned:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index


def column_letter(index: int) -> str:
    """Convert a 1-based column index into its letter form."""

    if index < 1:
        raise ValueError(f"Column index must be positive: {index}")
    letters = ""
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def split_columns(columns: str) -> Tuple[int, int]:
    """Parse a span such as ``"A:H"`` into 1-based first/last indices."""

    match = _COLUMN_SPAN.match(columns.strip())
    if match is None:
        raise ValueError(f"Invalid column span: {columns!r}")
    first, last = column_index(match.group(1)), column_index(match.group(2))
    if last < first:
        raise ValueError(f"Column span is reversed: {columns!r}")
    return first, last


def quote_sheet_name(sheet: str) -> str:
    """Quote a tab name for A1 notation when it contains special characters."""

    if re.fullmatch(r"[A-Za-z0-9_]+", sheet):
        return sheet
    return "'" + sheet.replace("'", "''") + "'"


def a1_range(sheet: str, columns: str, *, row: Optional[int] = None) -> str:
    """Build an A1 range, optionally pinned to a single row.

    ``a1_range("Petty Cash", "A:F")`` gives ``'Petty Cash'!A:F`` and
    ``a1_range("Notes", "C:E", row=7)`` gives ``Notes!C7:E7``.
    """

    first, last = split_columns(columns)
    prefix = quote_sheet_name(sheet)
    if row is None:
        return f"{prefix}!{column_letter(first)}:{column_letter(last)}"
    return f"{prefix}!{column_letter(first)}{row}:{column_letter(last)}{row}"


def _trim_row(values: Sequence[Any]) -> List[Any]:
    cells = ["" if value is None else value for value in values]
    while cells and cells[-1] == "":
        cells.pop()
    return cells


def _trim_rows(rows: Iterable[Sequence[Any]]) -> List[List[Any]]:
    trimmed = [_trim_row(row) for row in rows]
    while trimmed and not trimmed[-1]:
        trimmed.pop()
    return trimmed


class SpreadsheetGateway(ABC):
    """Range-based access to the tabs of a single spreadsheet."""

    @abstractmethod
    def read_rows(self, sheet: str, columns: str) -> List[List[Any]]:
        """Return every row of ``sheet`` within ``columns``, header included."""

    @abstractmethod
    def append_rows(self, sheet: str, columns: str, rows: Sequence[Sequence[Any]]) -> None:
        """Append ``rows`` after the last populated row of ``sheet``."""

    @abstractmethod
    def update_row(self, sheet: str, columns: str, row_index: int, values: Sequence[Any]) -> None:
        """Overwrite the cells of one sheet row within ``columns``."""

    @abstractmethod
    def delete_rows(self, sheet: str, row_indices: Iterable[int]) -> None:
        """Delete whole rows, shifting the rows below them up."""

    def read_column(self, sheet: str, column: str) -> List[Any]:
        """Return the first cell of every row in a single column."""

        rows = self.read_rows(sheet, f"{column}:{column}")
        return [row[0] if row else "" for row in rows]


# ---------------------------------------------------------------------------
# Google Sheets backend
# ---------------------------------------------------------------------------


def load_service_account_info(
    credentials_file: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> dict[str, Any]:
    """Load service-account credential JSON.

    The ``GOOGLE_SERVICE_ACCOUNT`` environment variable wins when it holds the
    credential document; otherwise ``credentials_file`` is read from disk.

    Raises:
        GatewayAuthError: If neither source yields a parseable JSON document.
    """

    environ = os.environ if environ is None else environ
    raw = environ.get(SERVICE_ACCOUNT_ENV)
    if raw:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise GatewayAuthError(f"Failed to parse {SERVICE_ACCOUNT_ENV} JSON") from exc

    if credentials_file is None:
        raise GatewayAuthError(
            f"{SERVICE_ACCOUNT_ENV} is not set and no credentials file is configured"
        )

    path = Path(credentials_file).expanduser().resolve()
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise GatewayAuthError(f"Credentials file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise GatewayAuthError(f"Credentials file is not valid JSON: {path}") from exc


def _to_wire_value(value: Any) -> Any:
    """Convert Python cell values into JSON-safe values for the Sheets API."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class GoogleSheetsGateway(SpreadsheetGateway):
    """Gateway backed by the Google Sheets v4 REST API.

    Values are written with ``USER_ENTERED`` so that the service parses
    numbers and dates exactly as if a person had typed them.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        *,
        service: Any = None,
        credentials_info: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if not spreadsheet_id:
            raise GatewayError("A spreadsheet id is required")
        self.spreadsheet_id = spreadsheet_id
        if service is None:
            if credentials_info is None:
                raise GatewayAuthError("Service-account credentials are required")
            try:
                credentials = service_account.Credentials.from_service_account_info(
                    dict(credentials_info), scopes=SCOPES
                )
            except (ValueError, KeyError) as exc:
                raise GatewayAuthError(f"Invalid service-account credentials: {exc}") from exc
            service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        self._service = service
        self._sheet_ids: dict[str, int] = {}

    def _values(self) -> Any:
        return self._service.spreadsheets().values()

    def _translate(self, exc: HttpError, sheet: str, action: str) -> GatewayError:
        status = getattr(exc.resp, "status", None)
        message = str(exc)
        log.error("Google Sheets %s failed for '%s' (status=%s): %s", action, sheet, status, message)
        if status == 404 or "Unable to parse range" in message:
            return SheetNotFoundError(f"Sheet not found: {sheet}")
        if status in (401, 403):
            return GatewayAuthError(f"Access denied while trying to {action} '{sheet}'")
        return GatewayError(f"Unable to {action} '{sheet}': {message}")

    def read_rows(self, sheet: str, columns: str) -> List[List[Any]]:
        target = a1_range(sheet, columns)
        try:
            response = self._values().get(spreadsheetId=self.spreadsheet_id, range=target).execute()
        except HttpError as exc:
            raise self._translate(exc, sheet, "read") from exc
        rows = response.get("values", [])
        log.debug("Read %d rows from %s", len(rows), target)
        return [list(row) for row in rows]

    def append_rows(self, sheet: str, columns: str, rows: Sequence[Sequence[Any]]) -> None:
        if not rows:
            return
        target = a1_range(sheet, columns)
        body = {"values": [[_to_wire_value(value) for value in row] for row in rows]}
        try:
            self._values().append(
                spreadsheetId=self.spreadsheet_id,
                range=target,
                valueInputOption="USER_ENTERED",
                insertDataOption="INSERT_ROWS",
                body=body,
            ).execute()
        except HttpError as exc:
            raise self._translate(exc, sheet, "append to") from exc
        log.info("Appended %d rows to %s", len(rows), target)

    def update_row(self, sheet: str, columns: str, row_index: int, values: Sequence[Any]) -> None:
        target = a1_range(sheet, columns, row=row_index)
        body = {"values": [[_to_wire_value(value) for value in values]]}
        try:
            self._values().update(
                spreadsheetId=self.spreadsheet_id,
                range=target,
                valueInputOption="USER_ENTERED",
                body=body,
            ).execute()
        except HttpError as exc:
            raise self._translate(exc, sheet, "update") from exc
        log.info("Updated %s", target)

    def sheet_id(self, sheet: str) -> int:
        """Resolve the numeric id of a tab, needed for structural edits.

        Matching is exact first, then case-insensitive on trimmed titles.
        """

        if sheet in self._sheet_ids:
            return self._sheet_ids[sheet]
        try:
            response = self._service.spreadsheets().get(
                spreadsheetId=self.spreadsheet_id,
                fields="sheets.properties",
            ).execute()
        except HttpError as exc:
            raise self._translate(exc, sheet, "inspect") from exc

        properties = [entry.get("properties", {}) for entry in response.get("sheets", [])]
        match = next((p for p in properties if p.get("title") == sheet), None)
        if match is None:
            wanted = sheet.strip().lower()
            match = next(
                (p for p in properties if str(p.get("title", "")).strip().lower() == wanted),
                None,
            )
        if match is None:
            available = ", ".join(str(p.get("title")) for p in properties)
            log.error("Sheet '%s' not found. Available: %s", sheet, available)
            raise SheetNotFoundError(f"Sheet not found: {sheet}")

        self._sheet_ids[sheet] = int(match["sheetId"])
        return self._sheet_ids[sheet]

    def delete_rows(self, sheet: str, row_indices: Iterable[int]) -> None:
        indices = sorted(set(row_indices), reverse=True)
        if not indices:
            return
        sheet_id = self.sheet_id(sheet)
        # Descending order keeps the remaining indices valid as rows shift up.
        requests = [
            {
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": index - 1,
                        "endIndex": index,
                    }
                }
            }
            for index in indices
        ]
        try:
            self._service.spreadsheets().batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body={"requests": requests},
            ).execute()
        except HttpError as exc:
            raise self._translate(exc, sheet, "delete rows from") from exc
        log.info("Deleted rows %s from '%s'", indices, sheet)


# ---------------------------------------------------------------------------
# Local workbook backend
# ---------------------------------------------------------------------------


def open_workbook(data_file: Path) -> Workbook:
    """Open a ledger workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")
    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


class WorkbookGateway(SpreadsheetGateway):
    """Gateway that applies range operations to a local ``.xlsx`` file.

    Each write is saved back to ``data_file`` immediately so the file behaves
    like the remote spreadsheet: there is no pending state to flush.
    """

    def __init__(self, data_file: Path, *, workbook: Optional[Workbook] = None) -> None:
        self.data_file = Path(data_file).expanduser().resolve()
        self.workbook = workbook if workbook is not None else open_workbook(self.data_file)

    def _sheet(self, sheet: str) -> Worksheet:
        if sheet in self.workbook.sheetnames:
            return self.workbook[sheet]
        wanted = sheet.strip().lower()
        for title in self.workbook.sheetnames:
            if title.strip().lower() == wanted:
                return self.workbook[title]
        raise SheetNotFoundError(f"Sheet not found: {sheet}")

    def _save(self) -> None:
        try:
            save_workbook(self.workbook, self.data_file)
        except OSError as exc:
            raise GatewayError(f"Unable to save workbook '{self.data_file}': {exc}") from exc

    def read_rows(self, sheet: str, columns: str) -> List[List[Any]]:
        worksheet = self._sheet(sheet)
        first, last = split_columns(columns)
        if worksheet.max_row < 1:
            return []
        raw = worksheet.iter_rows(
            min_row=1,
            max_row=worksheet.max_row,
            min_col=first,
            max_col=last,
            values_only=True,
        )
        rows = _trim_rows(raw)
        log.debug("Read %d rows from workbook sheet '%s'", len(rows), sheet)
        return rows

    def _last_populated_row(self, worksheet: Worksheet) -> int:
        for row_index in range(worksheet.max_row, 0, -1):
            if any(cell.value not in (None, "") for cell in worksheet[row_index]):
                return row_index
        return 0

    def append_rows(self, sheet: str, columns: str, rows: Sequence[Sequence[Any]]) -> None:
        if not rows:
            return
        worksheet = self._sheet(sheet)
        first, _last = split_columns(columns)
        next_row = self._last_populated_row(worksheet) + 1
        for offset, values in enumerate(rows):
            for column_offset, value in enumerate(values):
                worksheet.cell(row=next_row + offset, column=first + column_offset, value=value)
        self._save()
        log.info("Appended %d rows to workbook sheet '%s'", len(rows), sheet)

    def update_row(self, sheet: str, columns: str, row_index: int, values: Sequence[Any]) -> None:
        worksheet = self._sheet(sheet)
        first, last = split_columns(columns)
        width = last - first + 1
        if len(values) > width:
            raise GatewayError(
                f"{len(values)} values do not fit in columns {columns} of '{sheet}'"
            )
        for column_offset, value in enumerate(values):
            worksheet.cell(row=row_index, column=first + column_offset, value=value)
        self._save()
        log.info("Updated workbook sheet '%s' row %d", sheet, row_index)

    def delete_rows(self, sheet: str, row_indices: Iterable[int]) -> None:
        indices = sorted(set(row_indices), reverse=True)
        if not indices:
            return
        worksheet = self._sheet(sheet)
        for index in indices:
            worksheet.delete_rows(index, 1)
        self._save()
        log.info("Deleted rows %s from workbook sheet '%s'", indices, sheet)


__all__ = [
    "SCOPES",
    "GatewayError",
    "SheetNotFoundError",
    "GatewayAuthError",
    "SpreadsheetGateway",
    "GoogleSheetsGateway",
    "WorkbookGateway",
    "column_index",
    "column_letter",
    "split_columns",
    "quote_sheet_name",
    "a1_range",
    "load_service_account_info",
    "open_workbook",
    "save_workbook",
]
