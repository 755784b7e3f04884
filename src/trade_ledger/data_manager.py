"""Data access layer for Trade Ledger.

This module turns raw spreadsheet rows into typed records and back. Business
logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini`` and opening the
   configured :class:`~trade_ledger.gateway.SpreadsheetGateway`.
2. Row parsing: one ``deserialize_*``/``serialize_*`` pair per tab. The
   serializers are the only code that knows each tab's column order.
3. Sheet operations: iterating typed records and appending, updating or
   deleting individual rows through the gateway.
"""


from __future__ import annotations

import configparser
import os
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from . import log
from .constants import (
    DEFAULT_STANDARD_SHIFT_HOURS,
    EXPECTED_SCHEMA_VERSION,
    PettyCashType,
    SHEET_COLUMNS,
    SheetName,
    SupplierTransactionType,
)
from .gateway import (
    GoogleSheetsGateway,
    SpreadsheetGateway,
    WorkbookGateway,
    column_index,
    column_letter,
    load_service_account_info,
)
from .tokens import MonthKey, parse_matching_key, parse_month_tokens


CONFIG_FILE_NAME = "config.ini"
BACKEND_GOOGLE = "google"
BACKEND_WORKBOOK = "workbook"
SHEET_ID_ENV = "GOOGLE_SHEET_ID"
SHEET_NAME_ENV = "GOOGLE_SHEET_NAME"


def columns_for(sheet: SheetName) -> str:
    """Return the column span (``"A:H"``) that holds ``sheet``'s schema."""

    return f"A:{column_letter(len(SHEET_COLUMNS[sheet]))}"


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    backend: str
    spreadsheet_id: Optional[str]
    credentials_file: Optional[Path]
    data_file: Optional[Path]
    schema_version: str
    invoice_sheet: str = SheetName.INVOICES.value
    standard_shift_hours: Decimal = Decimal(DEFAULT_STANDARD_SHIFT_HOURS)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceRow:
    """One ledger transaction from the invoice tab."""

    date: Optional[date]
    due_date: Optional[date]
    number: str
    customer_name: str
    sales_rep: str
    debit: Decimal
    credit: Decimal
    matching: Optional[str] = None
    row_index: Optional[int] = None

    @property
    def net(self) -> Decimal:
        return self.debit - self.credit


@dataclass(frozen=True)
class NoteRow:
    """A free-text note attached to a customer."""

    user: str
    customer_name: str
    content: str
    timestamp: str
    is_solved: bool
    row_index: Optional[int] = None


@dataclass(frozen=True)
class CustomerEmailRow:
    customer_id: str
    customer_name: str
    email: str


@dataclass(frozen=True)
class CustomerRef:
    """Entry of the ``CLOSED`` / ``SEMI-CLOSED`` customer lists."""

    customer_id: str
    customer_name: str


@dataclass(frozen=True)
class DiscountEntry:
    """Row of the ``DISCOUNTS`` tab with its parsed reconciliation months."""

    customer_id: str
    customer_name: str
    reconciliation_months: Tuple[MonthKey, ...]
    rejected_tokens: Tuple[str, ...]
    row_index: Optional[int] = None


@dataclass(frozen=True)
class UserRow:
    name: str
    role: str
    password: str


@dataclass(frozen=True)
class InventoryItem:
    """Catalogue entry from the ``Inventory`` tab."""

    barcode: str
    item_code: str
    product_name: str
    tags: str
    item_type: str
    qty_in_box: str
    weight: str
    size: str
    row_index: Optional[int] = None


@dataclass(frozen=True)
class PurchaseOrderLine:
    """One product line of a purchase order under preparation."""

    po_number: str
    product_id: str
    barcode: str
    product_name: str
    qty_order: int
    status: str = "Pending"


@dataclass(frozen=True)
class OvertimeRecord:
    """Row of the ``Employee Overtime`` tab.

    Standard duty (``sd_*``/``ed_*``) and overtime (``ovs_*``/``ove_*``) are
    stored as separate time and AM/PM cells.
    """

    date: str
    employee_id: str
    employee_name_ar: str
    employee_name: str
    particulars: str
    sd_ampm: str
    sd_from: str
    ed_ampm: str
    ed_time: str
    ovs_ampm: str = ""
    ovs_time: str = ""
    ove_ampm: str = ""
    ove_time: str = ""
    row_index: Optional[int] = None


@dataclass(frozen=True)
class PettyCashRecord:
    date: str
    entry_type: PettyCashType
    amount: Decimal
    name: str
    description: str
    paid: str = ""
    row_index: Optional[int] = None


@dataclass(frozen=True)
class CashReceiptRow:
    date: str
    receipt_number: str
    received_from: str
    send_by: str
    amount: Decimal
    amount_in_words: str
    reason: str
    row_index: Optional[int] = None


@dataclass(frozen=True)
class SupplierTransaction:
    """A purchase or refund invoice from one of the supplier tabs."""

    date: Optional[date]
    number: str
    supplier_name: str
    amount: Decimal
    kind: SupplierTransactionType
    row_index: Optional[int] = None


@dataclass(frozen=True)
class SupplierMatchingEntry:
    """Row of ``SUPPLIERS MATCHING``: the months already reconciled with a supplier."""

    supplier_id: str
    supplier_name: str
    matched_months: Tuple[MonthKey, ...]
    rejected_tokens: Tuple[str, ...]
    row_index: Optional[int] = None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match wins.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def _resolve_path(raw: str, base_path: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = (base_path or Path.cwd()) / path
    return path.resolve()


def parse_settings(
    parser: configparser.ConfigParser,
    *,
    base_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``GOOGLE_SHEET_ID`` and ``GOOGLE_SHEET_NAME`` in ``environ`` override the
    spreadsheet id and invoice tab name from the file. Relative file paths are
    anchored at ``base_path`` (the config directory) or the working directory.

    Raises:
        KeyError: If a required section or option is missing, or the backend
            is unknown.
    """

    environ = os.environ if environ is None else environ
    try:
        backend = parser.get("Spreadsheet", "Backend").strip().lower()
        schema_version = parser.get("Spreadsheet", "SchemaVersion").strip()
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    if backend not in (BACKEND_GOOGLE, BACKEND_WORKBOOK):
        raise KeyError(f"Unknown spreadsheet backend: {backend}")

    spreadsheet_id = environ.get(SHEET_ID_ENV) or parser.get("Spreadsheet", "SpreadsheetId", fallback=None)
    credentials_raw = parser.get("Spreadsheet", "CredentialsFile", fallback=None)
    data_file_raw = parser.get("Spreadsheet", "DataFile", fallback=None)

    if backend == BACKEND_GOOGLE and not spreadsheet_id:
        raise KeyError("Missing required configuration entry: Spreadsheet.SpreadsheetId")
    if backend == BACKEND_WORKBOOK and not data_file_raw:
        raise KeyError("Missing required configuration entry: Spreadsheet.DataFile")

    invoice_sheet = environ.get(SHEET_NAME_ENV) or parser.get(
        "Ledger", "InvoiceSheet", fallback=SheetName.INVOICES.value
    )
    shift_raw = parser.get("Ledger", "StandardShiftHours", fallback=str(DEFAULT_STANDARD_SHIFT_HOURS))

    return ConfigSettings(
        backend=backend,
        spreadsheet_id=spreadsheet_id,
        credentials_file=_resolve_path(credentials_raw, base_path) if credentials_raw else None,
        data_file=_resolve_path(data_file_raw, base_path) if data_file_raw else None,
        schema_version=schema_version,
        invoice_sheet=invoice_sheet,
        standard_shift_hours=parse_amount(shift_raw) or Decimal(DEFAULT_STANDARD_SHIFT_HOURS),
    )


def open_gateway(settings: ConfigSettings) -> SpreadsheetGateway:
    """Instantiate the gateway selected by ``settings.backend``."""

    if settings.backend == BACKEND_WORKBOOK:
        if settings.data_file is None:
            raise KeyError("Workbook backend requires Spreadsheet.DataFile")
        return WorkbookGateway(settings.data_file)

    info = load_service_account_info(settings.credentials_file)
    return GoogleSheetsGateway(settings.spreadsheet_id or "", credentials_info=info)


# ---------------------------------------------------------------------------
# Cell coercion
# ---------------------------------------------------------------------------


_MONTH_FORMATS = ("%d-%b-%Y", "%d-%b-%y", "%b %d, %Y", "%d %b %Y", "%B %d, %Y", "%d %B %Y")


def parse_amount(value: object) -> Decimal:
    """Coerce a cell into a :class:`~decimal.Decimal`.

    Thousands separators are stripped. Blank and non-numeric cells become
    zero rather than raising.
    """

    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal("0")
    if isinstance(value, (int, float)):
        amount = Decimal(str(value))
        return amount if amount.is_finite() else Decimal("0")
    text = str(value).strip().replace(",", "")
    if not text:
        return Decimal("0")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return Decimal("0")
    if not amount.is_finite():
        return Decimal("0")
    return amount


def parse_sheet_date(value: object) -> Optional[date]:
    """Coerce a cell into a :class:`~datetime.date`, or ``None``.

    Workbook cells may already hold ``datetime`` values. Text is tried as
    ISO ``YYYY-MM-DD``, then as slash/dash separated ``M/D/Y`` (switching to
    ``D/M/Y`` when the first part cannot be a month), then as spelled-out
    month formats such as ``5-Jan-2025``.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    iso = re.match(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$", text)
    if iso:
        return _safe_date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))

    parts = re.match(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2}|\d{4})$", text)
    if parts:
        first, second, year = (int(p) for p in parts.groups())
        if year < 100:
            year += 2000
        if first > 12:
            return _safe_date(year, second, first)
        return _safe_date(year, first, second)

    for fmt in _MONTH_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def parse_flag(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return parse_text(value).upper() == "TRUE"


def format_sheet_date(value: Optional[date]) -> str:
    return value.isoformat() if value is not None else ""


def _cell(raw_row: Sequence[object], index: int) -> object:
    return raw_row[index] if index < len(raw_row) else None


def iter_data_rows(rows: Sequence[Sequence[object]]) -> Iterator[Tuple[int, Sequence[object]]]:
    """Yield ``(row_index, row)`` for every non-blank row below the header.

    ``row_index`` is the 1-based sheet row number, so the first data row is 2.
    """

    for offset, raw in enumerate(rows[1:], start=2):
        if any(parse_text(cell) for cell in raw):
            yield offset, raw


# ---------------------------------------------------------------------------
# Serializers / deserializers
# ---------------------------------------------------------------------------


def deserialize_invoice(raw_row: Sequence[object], row_index: Optional[int] = None) -> InvoiceRow:
    """Convert an invoice tab row (``DATE .. MATCHING``) into an :class:`InvoiceRow`."""

    return InvoiceRow(
        date=parse_sheet_date(_cell(raw_row, 0)),
        due_date=parse_sheet_date(_cell(raw_row, 1)),
        number=parse_text(_cell(raw_row, 2)),
        customer_name=parse_text(_cell(raw_row, 3)),
        sales_rep=parse_text(_cell(raw_row, 4)),
        debit=parse_amount(_cell(raw_row, 5)),
        credit=parse_amount(_cell(raw_row, 6)),
        matching=parse_matching_key(_cell(raw_row, 7)),
        row_index=row_index,
    )


def serialize_invoice(record: InvoiceRow) -> list[object]:
    return [
        format_sheet_date(record.date),
        format_sheet_date(record.due_date),
        record.number,
        record.customer_name,
        record.sales_rep,
        record.debit,
        record.credit,
        record.matching or "",
    ]


def deserialize_note(raw_row: Sequence[object], row_index: Optional[int] = None) -> NoteRow:
    return NoteRow(
        user=parse_text(_cell(raw_row, 0)),
        customer_name=parse_text(_cell(raw_row, 1)),
        content=parse_text(_cell(raw_row, 2)),
        timestamp=parse_text(_cell(raw_row, 3)),
        is_solved=parse_flag(_cell(raw_row, 4)),
        row_index=row_index,
    )


def serialize_note(record: NoteRow) -> list[object]:
    return [
        record.user,
        record.customer_name,
        record.content,
        record.timestamp,
        "TRUE" if record.is_solved else "FALSE",
    ]


def deserialize_customer_email(raw_row: Sequence[object]) -> CustomerEmailRow:
    return CustomerEmailRow(
        customer_id=parse_text(_cell(raw_row, 0)),
        customer_name=parse_text(_cell(raw_row, 1)),
        email=parse_text(_cell(raw_row, 2)),
    )


def deserialize_customer_ref(raw_row: Sequence[object]) -> CustomerRef:
    return CustomerRef(
        customer_id=parse_text(_cell(raw_row, 0)),
        customer_name=parse_text(_cell(raw_row, 1)),
    )


def deserialize_discount(
    raw_row: Sequence[object],
    row_index: Optional[int] = None,
    *,
    fallback_year: Optional[int] = None,
) -> DiscountEntry:
    """Convert a ``DISCOUNTS`` row, keeping unparseable month tokens visible."""

    keys, rejected = parse_month_tokens(parse_text(_cell(raw_row, 2)), fallback_year=fallback_year)
    return DiscountEntry(
        customer_id=parse_text(_cell(raw_row, 0)),
        customer_name=parse_text(_cell(raw_row, 1)),
        reconciliation_months=tuple(keys),
        rejected_tokens=tuple(rejected),
        row_index=row_index,
    )


def deserialize_user(raw_row: Sequence[object]) -> UserRow:
    return UserRow(
        name=parse_text(_cell(raw_row, 0)),
        role=parse_text(_cell(raw_row, 1)),
        password=parse_text(_cell(raw_row, 2)),
    )


def deserialize_inventory_item(raw_row: Sequence[object], row_index: Optional[int] = None) -> InventoryItem:
    return InventoryItem(
        barcode=parse_text(_cell(raw_row, 0)),
        item_code=parse_text(_cell(raw_row, 1)),
        product_name=parse_text(_cell(raw_row, 2)),
        tags=parse_text(_cell(raw_row, 3)),
        item_type=parse_text(_cell(raw_row, 4)),
        qty_in_box=parse_text(_cell(raw_row, 5)),
        weight=parse_text(_cell(raw_row, 6)),
        size=parse_text(_cell(raw_row, 7)),
        row_index=row_index,
    )


def serialize_inventory_item(record: InventoryItem) -> list[object]:
    return [
        record.barcode,
        record.item_code,
        record.product_name,
        record.tags,
        record.item_type,
        record.qty_in_box,
        record.weight,
        record.size,
    ]


def deserialize_purchase_order_line(raw_row: Sequence[object]) -> PurchaseOrderLine:
    return PurchaseOrderLine(
        po_number=parse_text(_cell(raw_row, 0)),
        product_id=parse_text(_cell(raw_row, 1)),
        barcode=parse_text(_cell(raw_row, 2)),
        product_name=parse_text(_cell(raw_row, 3)),
        qty_order=int(parse_amount(_cell(raw_row, 4))),
        status=parse_text(_cell(raw_row, 5)) or "Pending",
    )


def serialize_purchase_order_line(record: PurchaseOrderLine) -> list[object]:
    return [
        record.po_number,
        record.product_id,
        record.barcode,
        record.product_name,
        record.qty_order,
        record.status,
    ]


def deserialize_overtime(raw_row: Sequence[object], row_index: Optional[int] = None) -> OvertimeRecord:
    values = [parse_text(_cell(raw_row, index)) for index in range(13)]
    return OvertimeRecord(*values, row_index=row_index)


def serialize_overtime(record: OvertimeRecord) -> list[object]:
    return [
        record.date,
        record.employee_id,
        record.employee_name_ar,
        record.employee_name,
        record.particulars,
        record.sd_ampm,
        record.sd_from,
        record.ed_ampm,
        record.ed_time,
        record.ovs_ampm,
        record.ovs_time,
        record.ove_ampm,
        record.ove_time,
    ]


def deserialize_petty_cash(raw_row: Sequence[object], row_index: Optional[int] = None) -> PettyCashRecord:
    """Convert a ``Petty Cash`` row; anything but ``Expense`` counts as a receipt."""

    kind = parse_text(_cell(raw_row, 1))
    return PettyCashRecord(
        date=parse_text(_cell(raw_row, 0)),
        entry_type=PettyCashType.EXPENSE if kind == PettyCashType.EXPENSE.value else PettyCashType.RECEIPT,
        amount=parse_amount(_cell(raw_row, 2)),
        name=parse_text(_cell(raw_row, 3)),
        description=parse_text(_cell(raw_row, 4)),
        paid=parse_text(_cell(raw_row, 5)),
        row_index=row_index,
    )


def serialize_petty_cash(record: PettyCashRecord) -> list[object]:
    return [
        record.date,
        record.entry_type.value,
        record.amount,
        record.name,
        record.description,
        record.paid,
    ]


def deserialize_cash_receipt(raw_row: Sequence[object], row_index: Optional[int] = None) -> CashReceiptRow:
    return CashReceiptRow(
        date=parse_text(_cell(raw_row, 0)),
        receipt_number=parse_text(_cell(raw_row, 1)),
        received_from=parse_text(_cell(raw_row, 2)),
        send_by=parse_text(_cell(raw_row, 3)),
        amount=parse_amount(_cell(raw_row, 4)),
        amount_in_words=parse_text(_cell(raw_row, 5)),
        reason=parse_text(_cell(raw_row, 6)),
        row_index=row_index,
    )


def serialize_cash_receipt(record: CashReceiptRow) -> list[object]:
    return [
        record.date,
        record.receipt_number,
        record.received_from,
        record.send_by,
        record.amount,
        record.amount_in_words,
        record.reason,
    ]


def deserialize_supplier_transaction(
    raw_row: Sequence[object],
    kind: SupplierTransactionType,
    row_index: Optional[int] = None,
) -> SupplierTransaction:
    return SupplierTransaction(
        date=parse_sheet_date(_cell(raw_row, 0)),
        number=parse_text(_cell(raw_row, 1)),
        supplier_name=parse_text(_cell(raw_row, 2)),
        amount=parse_amount(_cell(raw_row, 3)),
        kind=kind,
        row_index=row_index,
    )


def deserialize_supplier_matching(
    raw_row: Sequence[object],
    row_index: Optional[int] = None,
    *,
    fallback_year: Optional[int] = None,
) -> SupplierMatchingEntry:
    keys, rejected = parse_month_tokens(parse_text(_cell(raw_row, 2)), fallback_year=fallback_year)
    return SupplierMatchingEntry(
        supplier_id=parse_text(_cell(raw_row, 0)),
        supplier_name=parse_text(_cell(raw_row, 1)),
        matched_months=tuple(keys),
        rejected_tokens=tuple(rejected),
        row_index=row_index,
    )


# ---------------------------------------------------------------------------
# Sheet operations
# ---------------------------------------------------------------------------


def _read(gateway: SpreadsheetGateway, sheet: SheetName, *, sheet_title: Optional[str] = None) -> List[List[Any]]:
    return gateway.read_rows(sheet_title or sheet.value, columns_for(sheet))


def iter_invoices(gateway: SpreadsheetGateway, sheet_title: str = SheetName.INVOICES.value) -> Iterable[InvoiceRow]:
    """Stream invoice rows, dropping rows without a customer name."""

    for row_index, raw in iter_data_rows(_read(gateway, SheetName.INVOICES, sheet_title=sheet_title)):
        record = deserialize_invoice(raw, row_index)
        if record.customer_name:
            yield record


def iter_notes(gateway: SpreadsheetGateway) -> Iterable[NoteRow]:
    for row_index, raw in iter_data_rows(_read(gateway, SheetName.NOTES)):
        yield deserialize_note(raw, row_index)


def iter_customer_emails(gateway: SpreadsheetGateway) -> Iterable[CustomerEmailRow]:
    for _row_index, raw in iter_data_rows(_read(gateway, SheetName.EMAILS)):
        record = deserialize_customer_email(raw)
        if record.customer_name:
            yield record


def iter_customer_refs(gateway: SpreadsheetGateway, sheet: SheetName) -> Iterable[CustomerRef]:
    for _row_index, raw in iter_data_rows(_read(gateway, sheet)):
        record = deserialize_customer_ref(raw)
        if record.customer_name:
            yield record


def iter_discounts(gateway: SpreadsheetGateway, *, fallback_year: Optional[int] = None) -> Iterable[DiscountEntry]:
    for row_index, raw in iter_data_rows(_read(gateway, SheetName.DISCOUNTS)):
        record = deserialize_discount(raw, row_index, fallback_year=fallback_year)
        if record.customer_name:
            if record.rejected_tokens:
                log.warning(
                    "Ignoring unparseable reconciliation tokens for '%s': %s",
                    record.customer_name,
                    ", ".join(record.rejected_tokens),
                )
            yield record


def iter_users(gateway: SpreadsheetGateway) -> Iterable[UserRow]:
    for _row_index, raw in iter_data_rows(_read(gateway, SheetName.USERS)):
        record = deserialize_user(raw)
        if record.name:
            yield record


def iter_inventory(gateway: SpreadsheetGateway) -> Iterable[InventoryItem]:
    for row_index, raw in iter_data_rows(_read(gateway, SheetName.INVENTORY)):
        yield deserialize_inventory_item(raw, row_index)


def iter_purchase_order_lines(gateway: SpreadsheetGateway) -> Iterable[PurchaseOrderLine]:
    for _row_index, raw in iter_data_rows(_read(gateway, SheetName.PURCHASE_ORDERS)):
        record = deserialize_purchase_order_line(raw)
        if record.po_number:
            yield record


def iter_overtime(gateway: SpreadsheetGateway) -> Iterable[OvertimeRecord]:
    for row_index, raw in iter_data_rows(_read(gateway, SheetName.EMPLOYEE_OVERTIME)):
        record = deserialize_overtime(raw, row_index)
        if record.date and record.employee_name:
            yield record


def iter_petty_cash(gateway: SpreadsheetGateway) -> Iterable[PettyCashRecord]:
    for row_index, raw in iter_data_rows(_read(gateway, SheetName.PETTY_CASH)):
        record = deserialize_petty_cash(raw, row_index)
        if record.date and record.name:
            yield record


def iter_cash_receipts(gateway: SpreadsheetGateway) -> Iterable[CashReceiptRow]:
    for row_index, raw in iter_data_rows(_read(gateway, SheetName.CASH_RECEIPT)):
        record = deserialize_cash_receipt(raw, row_index)
        if record.receipt_number:
            yield record


_SUPPLIER_TABS = (
    (SheetName.SUPPLIER_PURCHASES, SupplierTransactionType.PURCHASE),
    (SheetName.SUPPLIER_REFUNDS, SupplierTransactionType.REFUND),
)


def iter_supplier_transactions(gateway: SpreadsheetGateway) -> Iterable[SupplierTransaction]:
    """Stream purchases, then refunds, dropping rows without a supplier name."""

    for sheet, kind in _SUPPLIER_TABS:
        for row_index, raw in iter_data_rows(_read(gateway, sheet)):
            record = deserialize_supplier_transaction(raw, kind, row_index)
            if record.supplier_name:
                yield record


def iter_supplier_matching(
    gateway: SpreadsheetGateway, *, fallback_year: Optional[int] = None
) -> Iterable[SupplierMatchingEntry]:
    for row_index, raw in iter_data_rows(_read(gateway, SheetName.SUPPLIERS_MATCHING)):
        record = deserialize_supplier_matching(raw, row_index, fallback_year=fallback_year)
        if record.supplier_name:
            if record.rejected_tokens:
                log.warning(
                    "Ignoring unparseable matching tokens for supplier '%s': %s",
                    record.supplier_name,
                    ", ".join(record.rejected_tokens),
                )
            yield record


def append_record(gateway: SpreadsheetGateway, sheet: SheetName, values: Sequence[object]) -> None:
    """Append one serialized record to ``sheet``."""

    gateway.append_rows(sheet.value, columns_for(sheet), [list(values)])


def append_records(gateway: SpreadsheetGateway, sheet: SheetName, rows: Iterable[Sequence[object]]) -> None:
    gateway.append_rows(sheet.value, columns_for(sheet), [list(values) for values in rows])


def update_record(gateway: SpreadsheetGateway, sheet: SheetName, row_index: int, values: Sequence[object]) -> None:
    """Overwrite a whole record in place."""

    gateway.update_row(sheet.value, columns_for(sheet), row_index, list(values))


def update_cells(
    gateway: SpreadsheetGateway,
    sheet: SheetName,
    row_index: int,
    first_column: str,
    values: Sequence[object],
) -> None:
    """Overwrite a contiguous run of cells starting at ``first_column``."""

    last = column_letter(column_index(first_column) + len(values) - 1)
    gateway.update_row(sheet.value, f"{first_column}:{last}", row_index, list(values))


def delete_record(gateway: SpreadsheetGateway, sheet: SheetName, row_index: int) -> None:
    if row_index < 2:
        raise ValueError("The header row cannot be deleted")
    gateway.delete_rows(sheet.value, [row_index])


def locate_row(rows: Sequence[Sequence[object]], column: int, key_value: str) -> Optional[int]:
    """Find the sheet row whose ``column`` equals ``key_value``, ignoring case.

    Returns:
        int | None: 1-based sheet row index, or ``None`` when absent.
    """

    wanted = key_value.strip().lower()
    for row_index, raw in iter_data_rows(rows):
        if parse_text(_cell(raw, column)).lower() == wanted:
            return row_index
    return None


def read_sheet(gateway: SpreadsheetGateway, sheet: SheetName) -> List[List[Any]]:
    """Return the raw rows of ``sheet`` within its schema columns."""

    return _read(gateway, sheet)


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "ConfigSettings",
    "InvoiceRow",
    "NoteRow",
    "CustomerEmailRow",
    "CustomerRef",
    "DiscountEntry",
    "UserRow",
    "InventoryItem",
    "PurchaseOrderLine",
    "OvertimeRecord",
    "PettyCashRecord",
    "CashReceiptRow",
    "SupplierTransaction",
    "SupplierMatchingEntry",
    "find_config_file",
    "read_config",
    "parse_settings",
    "open_gateway",
    "parse_amount",
    "parse_sheet_date",
    "parse_text",
    "parse_flag",
]
