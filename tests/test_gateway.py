"""Tests for the spreadsheet gateways and A1 helpers."""

from __future__ import annotations

import json
from decimal import Decimal
from unittest.mock import MagicMock, Mock

import pytest
from googleapiclient.errors import HttpError

from trade_ledger import gateway
from trade_ledger.constants import SheetName
from trade_ledger.gateway import (
    GatewayAuthError,
    GatewayError,
    GoogleSheetsGateway,
    SheetNotFoundError,
    WorkbookGateway,
)


# ---------------------------------------------------------------------------
# A1 helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(("letter", "index"), [("A", 1), ("h", 8), ("Z", 26), ("AA", 27), ("AB", 28)])
def test_column_index_and_letter_are_inverse(letter, index):
    assert gateway.column_index(letter) == index
    assert gateway.column_letter(index) == letter.upper()


def test_column_index_rejects_non_letters():
    with pytest.raises(ValueError):
        gateway.column_index("A1")


def test_split_columns_rejects_reversed_span():
    assert gateway.split_columns("C:E") == (3, 5)
    with pytest.raises(ValueError):
        gateway.split_columns("E:C")


def test_a1_range_quotes_sheet_names_with_spaces():
    assert gateway.a1_range("Petty Cash", "A:F") == "'Petty Cash'!A:F"
    assert gateway.a1_range("Notes", "C:E", row=7) == "Notes!C7:E7"
    assert gateway.a1_range("Bob's", "A:B") == "'Bob''s'!A:B"


# ---------------------------------------------------------------------------
# Workbook backend
# ---------------------------------------------------------------------------


def test_workbook_gateway_reads_header_row(ledger_workbook_path):
    wb_gateway = WorkbookGateway(ledger_workbook_path)
    rows = wb_gateway.read_rows(SheetName.NOTES.value, "A:E")
    assert rows == [["USER", "CUSTOMER NAME", "NOTES", "TIMING", "SOLVED"]]


def test_workbook_gateway_append_persists_to_disk(ledger_workbook_path):
    """Writes should be saved immediately so a fresh gateway sees them."""

    WorkbookGateway(ledger_workbook_path).append_rows(
        SheetName.NOTES.value, "A:E", [["bob", "ACME", "call back", "", "FALSE"]]
    )
    rows = WorkbookGateway(ledger_workbook_path).read_rows(SheetName.NOTES.value, "A:E")
    assert rows[-1] == ["bob", "ACME", "call back", "", "FALSE"]


def test_workbook_gateway_update_row_within_span(ledger_workbook_path):
    wb_gateway = WorkbookGateway(ledger_workbook_path)
    wb_gateway.append_rows(SheetName.NOTES.value, "A:E", [["bob", "ACME", "old", "t", "FALSE"]])
    wb_gateway.update_row(SheetName.NOTES.value, "C:E", 2, ["new", "t2", "TRUE"])
    assert wb_gateway.read_rows(SheetName.NOTES.value, "A:E")[1] == ["bob", "ACME", "new", "t2", "TRUE"]


def test_workbook_gateway_update_rejects_overflow(ledger_workbook_path):
    wb_gateway = WorkbookGateway(ledger_workbook_path)
    with pytest.raises(GatewayError):
        wb_gateway.update_row(SheetName.NOTES.value, "C:D", 2, ["a", "b", "c"])


def test_workbook_gateway_delete_rows_shifts_up(ledger_workbook_path):
    wb_gateway = WorkbookGateway(ledger_workbook_path)
    wb_gateway.append_rows(
        SheetName.CLOSED.value,
        "A:B",
        [["1", "ONE"], ["2", "TWO"], ["3", "THREE"]],
    )
    wb_gateway.delete_rows(SheetName.CLOSED.value, [2, 4])
    assert wb_gateway.read_rows(SheetName.CLOSED.value, "A:B")[1:] == [["2", "TWO"]]


def test_workbook_gateway_keeps_blank_rows_between_data(ledger_workbook_path):
    """Blank rows in the middle stay as empty lists so row numbers hold."""

    wb_gateway = WorkbookGateway(ledger_workbook_path)
    worksheet = wb_gateway.workbook[SheetName.CLOSED.value]
    worksheet.cell(row=2, column=2, value="FIRST")
    worksheet.cell(row=4, column=2, value="THIRD")
    rows = wb_gateway.read_rows(SheetName.CLOSED.value, "A:B")
    assert rows[1:] == [["", "FIRST"], [], ["", "THIRD"]]


def test_workbook_gateway_sheet_lookup_ignores_case(ledger_workbook_path):
    wb_gateway = WorkbookGateway(ledger_workbook_path)
    assert wb_gateway.read_column("closed", "B") == ["CUSTOMER NAME"]


def test_workbook_gateway_missing_sheet(ledger_workbook_path):
    with pytest.raises(SheetNotFoundError):
        WorkbookGateway(ledger_workbook_path).read_rows("Nope", "A:B")


def test_workbook_gateway_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        WorkbookGateway(tmp_path / "absent.xlsx")


# ---------------------------------------------------------------------------
# Google backend
# ---------------------------------------------------------------------------


def _http_error(status: int, message: str = "boom") -> HttpError:
    response = Mock(status=status, reason="error")
    return HttpError(response, json.dumps({"error": {"message": message}}).encode("utf-8"))


@pytest.fixture
def service() -> MagicMock:
    return MagicMock(name="sheets_service")


def test_google_gateway_reads_values(service):
    values = service.spreadsheets.return_value.values.return_value
    values.get.return_value.execute.return_value = {"values": [["DATE", "NUMBER"], ["2025-01-01", "SAL-1"]]}

    sheets = GoogleSheetsGateway("sheet-id", service=service)
    rows = sheets.read_rows("Invoices", "A:H")

    assert rows == [["DATE", "NUMBER"], ["2025-01-01", "SAL-1"]]
    values.get.assert_called_once_with(spreadsheetId="sheet-id", range="Invoices!A:H")


def test_google_gateway_read_without_values_returns_empty(service):
    service.spreadsheets.return_value.values.return_value.get.return_value.execute.return_value = {}
    assert GoogleSheetsGateway("sheet-id", service=service).read_rows("Notes", "A:E") == []


def test_google_gateway_append_uses_user_entered(service):
    values = service.spreadsheets.return_value.values.return_value
    sheets = GoogleSheetsGateway("sheet-id", service=service)

    sheets.append_rows("Petty Cash", "A:F", [["2025-01-01", "Expense", Decimal("5.50"), "Tea", "", True]])

    kwargs = values.append.call_args.kwargs
    assert kwargs["range"] == "'Petty Cash'!A:F"
    assert kwargs["valueInputOption"] == "USER_ENTERED"
    assert kwargs["body"] == {"values": [["2025-01-01", "Expense", "5.50", "Tea", "", "TRUE"]]}


def test_google_gateway_update_targets_single_row(service):
    values = service.spreadsheets.return_value.values.return_value
    GoogleSheetsGateway("sheet-id", service=service).update_row("DISCOUNTS", "C:C", 5, ["JAN25"])
    assert values.update.call_args.kwargs["range"] == "DISCOUNTS!C5:C5"


def test_google_gateway_delete_rows_descending(service):
    spreadsheets = service.spreadsheets.return_value
    spreadsheets.get.return_value.execute.return_value = {
        "sheets": [{"properties": {"title": "Notes", "sheetId": 42}}]
    }

    GoogleSheetsGateway("sheet-id", service=service).delete_rows("Notes", [3, 7])

    requests = spreadsheets.batchUpdate.call_args.kwargs["body"]["requests"]
    starts = [request["deleteDimension"]["range"]["startIndex"] for request in requests]
    assert starts == [6, 2]
    assert all(request["deleteDimension"]["range"]["sheetId"] == 42 for request in requests)


def test_google_gateway_sheet_id_matches_case_insensitively(service):
    spreadsheets = service.spreadsheets.return_value
    spreadsheets.get.return_value.execute.return_value = {
        "sheets": [{"properties": {"title": " Petty Cash ", "sheetId": 9}}]
    }
    assert GoogleSheetsGateway("sheet-id", service=service).sheet_id("petty cash") == 9


def test_google_gateway_sheet_id_missing(service):
    service.spreadsheets.return_value.get.return_value.execute.return_value = {"sheets": []}
    with pytest.raises(SheetNotFoundError):
        GoogleSheetsGateway("sheet-id", service=service).sheet_id("Ghost")


@pytest.mark.parametrize(
    ("status", "expected"),
    [(404, SheetNotFoundError), (403, GatewayAuthError), (500, GatewayError)],
)
def test_google_gateway_translates_http_errors(service, status, expected):
    values = service.spreadsheets.return_value.values.return_value
    values.get.return_value.execute.side_effect = _http_error(status)

    with pytest.raises(expected):
        GoogleSheetsGateway("sheet-id", service=service).read_rows("Invoices", "A:H")


def test_google_gateway_requires_spreadsheet_id(service):
    with pytest.raises(GatewayError):
        GoogleSheetsGateway("", service=service)


def test_google_gateway_requires_credentials_without_service():
    with pytest.raises(GatewayAuthError):
        GoogleSheetsGateway("sheet-id")


def test_google_gateway_builds_service_from_credentials(monkeypatch):
    credentials = Mock(name="credentials")
    from_info = Mock(return_value=credentials)
    build = Mock(return_value=Mock(name="built_service"))
    monkeypatch.setattr(gateway.service_account.Credentials, "from_service_account_info", from_info)
    monkeypatch.setattr(gateway, "build", build)

    GoogleSheetsGateway("sheet-id", credentials_info={"type": "service_account"})

    from_info.assert_called_once_with({"type": "service_account"}, scopes=gateway.SCOPES)
    build.assert_called_once_with("sheets", "v4", credentials=credentials, cache_discovery=False)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


def test_load_service_account_info_prefers_environment(tmp_path):
    creds_file = tmp_path / "creds.json"
    creds_file.write_text(json.dumps({"source": "file"}))
    info = gateway.load_service_account_info(
        creds_file, environ={gateway.SERVICE_ACCOUNT_ENV: json.dumps({"source": "env"})}
    )
    assert info == {"source": "env"}


def test_load_service_account_info_reads_file(tmp_path):
    creds_file = tmp_path / "creds.json"
    creds_file.write_text(json.dumps({"source": "file"}))
    assert gateway.load_service_account_info(creds_file, environ={}) == {"source": "file"}


@pytest.mark.parametrize("env_value", ["{not json", None])
def test_load_service_account_info_errors(tmp_path, env_value):
    environ = {} if env_value is None else {gateway.SERVICE_ACCOUNT_ENV: env_value}
    with pytest.raises(GatewayAuthError):
        gateway.load_service_account_info(tmp_path / "missing.json", environ=environ)
