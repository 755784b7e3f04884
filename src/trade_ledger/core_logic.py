"""Business logic layer for Trade Ledger.

Every handler takes a :class:`RuntimeContext` first and talks to the
spreadsheet only through :mod:`trade_ledger.data_manager`. Ledger views are
recomputed from the full invoice tab on each call; nothing derived is ever
written back.
"""

from __future__ import annotations

import hmac
import re
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Set

from . import data_manager, log, reconciliation
from .constants import (
    DEFAULT_RECEIPT_NUMBER,
    EXPECTED_SCHEMA_VERSION,
    PettyCashType,
    SheetName,
)
from .data_manager import (
    CashReceiptRow,
    DiscountEntry,
    InventoryItem,
    InvoiceRow,
    NoteRow,
    OvertimeRecord,
    PettyCashRecord,
    PurchaseOrderLine,
    SupplierMatchingEntry,
)
from .gateway import GatewayError, SpreadsheetGateway
from .tokens import MonthKey, format_month_tokens, parse_month_token


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced row, customer or purchase order is unknown."""


class AuthenticationError(BusinessRuleViolation):
    """Raised when credentials are rejected or a session is required."""


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Session:
    """The signed-in user on whose behalf handlers run."""

    user: str
    role: str


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, the gateway and the active session."""

    settings: data_manager.ConfigSettings
    gateway: SpreadsheetGateway
    session: Optional[Session] = None
    clock: Callable[[], datetime] = field(default=_utc_now, repr=False, compare=False)

    def today(self) -> date:
        return self.clock().date()


def load_runtime_context(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> RuntimeContext:
    """Load configuration settings and open the configured gateway.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.
        environ (Mapping[str, str] | None): Environment used for overrides,
            defaults to ``os.environ``.

    Returns:
        RuntimeContext: Context without a session; see :func:`authenticate`.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
        GatewayError: When the spreadsheet backend cannot be reached.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent, environ=environ)
    gateway = data_manager.open_gateway(settings)
    log.info("Loaded runtime context using the '%s' backend", settings.backend)
    return RuntimeContext(settings=settings, gateway=gateway)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate spreadsheet compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Spreadsheet schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Spreadsheet schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def authenticate(context: RuntimeContext, name: str, password: str) -> RuntimeContext:
    """Check credentials against the ``Users`` tab and attach a session.

    Names match case-insensitively, passwords exactly.

    Raises:
        AuthenticationError: If no user matches.
    """
    wanted = name.strip().lower()
    for user in data_manager.iter_users(context.gateway):
        if not user.password:
            continue
        if user.name.lower() == wanted and hmac.compare_digest(
            user.password.encode("utf-8"), password.encode("utf-8")
        ):
            log.info("User '%s' signed in", user.name)
            return replace(context, session=Session(user=user.name, role=user.role))

    log.error("Rejected sign-in for '%s'", name)
    raise AuthenticationError("Invalid user name or password")


def require_session(context: RuntimeContext) -> Session:
    if context.session is None:
        raise AuthenticationError("This operation requires a signed-in user")
    return context.session


# ---------------------------------------------------------------------------
# Ledger views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CustomerListing:
    """Customer analysis plus the account status flags from the directory."""

    analysis: reconciliation.CustomerAnalysis
    is_closed: bool
    is_semi_closed: bool


def load_invoices(context: RuntimeContext) -> List[InvoiceRow]:
    """Read every invoice row from the configured invoice tab."""
    rows = list(data_manager.iter_invoices(context.gateway, context.settings.invoice_sheet))
    log.debug("Loaded %d invoice rows from '%s'", len(rows), context.settings.invoice_sheet)
    return rows


def _rows_for_customer(rows: Iterable[InvoiceRow], customer_name: str) -> List[InvoiceRow]:
    return [row for row in rows if row.customer_name == customer_name]


def list_customers(context: RuntimeContext, *, include_closed: bool = False) -> List[CustomerListing]:
    """Summarise every customer, hiding closed accounts unless asked.

    Customers listed in ``SEMI-CLOSED`` stay visible but are flagged.
    """
    closed = get_closed_customers(context)
    semi_closed = get_semi_closed_customers(context)
    listings = []
    for analysis in reconciliation.customer_analysis(load_invoices(context), context.today()):
        key = normalize_customer_key(analysis.customer_name)
        is_closed = key in closed
        if is_closed and not include_closed:
            continue
        listings.append(
            CustomerListing(analysis=analysis, is_closed=is_closed, is_semi_closed=key in semi_closed)
        )
    return listings


def customer_ledger(
    context: RuntimeContext,
    customer_name: str,
    *,
    net_only: bool = False,
) -> List[reconciliation.LedgerEntry]:
    """Return a customer's annotated ledger, optionally as the net-only view.

    Raises:
        MissingReferenceError: If the customer has no invoice rows.
    """
    rows = _rows_for_customer(load_invoices(context), customer_name)
    if not rows:
        raise MissingReferenceError(f"Customer '{customer_name}' has no ledger rows")
    entries = reconciliation.annotate_ledger(rows)
    return reconciliation.net_only_view(entries) if net_only else entries


def customer_open_items(context: RuntimeContext, customer_name: str) -> List[reconciliation.OpenItem]:
    entries = customer_ledger(context, customer_name)
    return reconciliation.open_items(entries, context.today())


def customer_aging(context: RuntimeContext, customer_name: str) -> reconciliation.AgingSummary:
    entries = customer_ledger(context, customer_name)
    return reconciliation.aging_summary(entries, context.today())


def aging_report(context: RuntimeContext, *, include_closed: bool = False) -> List[reconciliation.CustomerAging]:
    """Allocate each customer's balance into aging buckets."""
    rows = load_invoices(context)
    if not include_closed:
        closed = get_closed_customers(context)
        rows = [row for row in rows if normalize_customer_key(row.customer_name) not in closed]
    return reconciliation.allocate_customer_aging(rows, context.today())


def open_matches_report(context: RuntimeContext) -> List[reconciliation.OpenMatch]:
    return reconciliation.open_matches(load_invoices(context), context.today())


def customer_monthly_debt(context: RuntimeContext, customer_name: str) -> List[reconciliation.MonthlyDebt]:
    return reconciliation.monthly_debt(customer_ledger(context, customer_name))


# ---------------------------------------------------------------------------
# Customer directory
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmailTargets:
    customers: List[str]
    emails: List[str]


def normalize_customer_key(name: str) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return re.sub(r"\s+", " ", (name or "").strip().lower())


def _split_group(name: str) -> List[str]:
    return [part.strip() for part in name.split("&") if part.strip()]


def get_customer_email(context: RuntimeContext, customer_name: str) -> Optional[str]:
    """Return the email on file for ``customer_name``, or ``None``.

    Lookup failures are logged and reported as ``None``.
    """
    wanted = customer_name.strip().lower()
    try:
        for row in data_manager.iter_customer_emails(context.gateway):
            if row.customer_name.lower() == wanted:
                return row.email or None
    except GatewayError as exc:
        log.warning("Customer email lookup failed for '%s': %s", customer_name, exc)
    return None


def resolve_customer_email_targets(context: RuntimeContext, customer_name: str) -> EmailTargets:
    """Resolve which customers and addresses a statement should be sent to.

    A name containing ``&`` is a group of customers. A single name that
    belongs to a group row in ``EMAILS`` expands to that whole group. Emails
    are collected per member; when none are found, the addresses written on
    the group row itself are used.
    """
    try:
        rows = list(data_manager.iter_customer_emails(context.gateway))
    except GatewayError as exc:
        log.warning("Email target resolution failed for '%s': %s", customer_name, exc)
        return EmailTargets(customers=[], emails=[])

    email_by_customer = {
        normalize_customer_key(row.customer_name): row.email for row in rows if row.email
    }
    requested = normalize_customer_key(customer_name)
    group_email: Optional[str] = None

    if "&" in customer_name:
        customers = _split_group(customer_name)
        exact = next((row for row in rows if normalize_customer_key(row.customer_name) == requested), None)
        group_email = exact.email if exact else None
    else:
        group_row = next(
            (
                row
                for row in rows
                if "&" in row.customer_name
                and requested in [normalize_customer_key(part) for part in _split_group(row.customer_name)]
            ),
            None,
        )
        if group_row is not None:
            customers = _split_group(group_row.customer_name)
            group_email = group_row.email or None
        else:
            customers = [customer_name.strip()]

    emails: List[str] = []
    for customer in customers:
        email = email_by_customer.get(normalize_customer_key(customer))
        if email and email not in emails:
            emails.append(email)

    if not emails and group_email:
        for part in re.split(r"[,&;]+", group_email):
            part = part.strip()
            if part and part not in emails:
                emails.append(part)

    return EmailTargets(customers=customers, emails=emails)


def _customer_set(context: RuntimeContext, sheet: SheetName) -> Set[str]:
    try:
        return {
            normalize_customer_key(ref.customer_name)
            for ref in data_manager.iter_customer_refs(context.gateway, sheet)
        }
    except GatewayError as exc:
        log.warning("Unable to read '%s' customers: %s", sheet.value, exc)
        return set()


def get_closed_customers(context: RuntimeContext) -> Set[str]:
    """Normalized names from ``CLOSED``; empty when the tab is unavailable."""
    return _customer_set(context, SheetName.CLOSED)


def get_semi_closed_customers(context: RuntimeContext) -> Set[str]:
    return _customer_set(context, SheetName.SEMI_CLOSED)


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


def _note_timestamp(context: RuntimeContext) -> str:
    return context.clock().strftime("%m/%d/%Y, %I:%M:%S %p")


def list_notes(context: RuntimeContext, customer_name: Optional[str] = None) -> List[NoteRow]:
    notes = list(data_manager.iter_notes(context.gateway))
    if customer_name:
        notes = [note for note in notes if note.customer_name == customer_name]
    return notes


def _require_row(rows: Iterable[object], row_index: int, label: str) -> None:
    if not any(getattr(row, "row_index", None) == row_index for row in rows):
        log.error("No %s at row %d", label, row_index)
        raise MissingReferenceError(f"No {label} at row {row_index}")


def add_note(
    context: RuntimeContext,
    customer_name: str,
    content: str,
    *,
    is_solved: bool = False,
) -> NoteRow:
    """Append a note authored by the signed-in user."""
    session = require_session(context)
    if not content.strip():
        raise BusinessRuleViolation("Note content cannot be empty")
    note = NoteRow(
        user=session.user,
        customer_name=customer_name.strip(),
        content=content,
        timestamp=_note_timestamp(context),
        is_solved=is_solved,
    )
    data_manager.append_record(context.gateway, SheetName.NOTES, data_manager.serialize_note(note))
    log.info("Note added for '%s' by '%s'", note.customer_name, session.user)
    return note


def update_note(
    context: RuntimeContext,
    row_index: int,
    content: str,
    *,
    is_solved: Optional[bool] = None,
) -> None:
    """Rewrite a note's content, timestamp and solved flag.

    An omitted ``is_solved`` is written as not solved.
    """
    require_session(context)
    _require_row(list_notes(context), row_index, "note")
    values = [content, _note_timestamp(context), "TRUE" if is_solved else "FALSE"]
    data_manager.update_cells(context.gateway, SheetName.NOTES, row_index, "C", values)
    log.info("Note at row %d updated", row_index)


def delete_note(context: RuntimeContext, row_index: int) -> None:
    require_session(context)
    _require_row(list_notes(context), row_index, "note")
    data_manager.delete_record(context.gateway, SheetName.NOTES, row_index)
    log.info("Note at row %d deleted", row_index)


# ---------------------------------------------------------------------------
# Discount reconciliation
# ---------------------------------------------------------------------------


def list_discount_entries(context: RuntimeContext) -> List[DiscountEntry]:
    return list(data_manager.iter_discounts(context.gateway, fallback_year=context.today().year))


def _find_discount_entry(context: RuntimeContext, customer_name: str) -> DiscountEntry:
    wanted = customer_name.strip().lower()
    for entry in list_discount_entries(context):
        if entry.customer_name.lower() == wanted:
            return entry
    log.error("Customer '%s' not found in DISCOUNTS", customer_name)
    raise MissingReferenceError(f"Customer '{customer_name}' not found in DISCOUNTS")


def _write_reconciliation(context: RuntimeContext, entry: DiscountEntry, keys: Set[MonthKey]) -> List[str]:
    if entry.row_index is None:
        raise MissingReferenceError(f"Customer '{entry.customer_name}' has no DISCOUNTS row")
    data_manager.update_cells(
        context.gateway,
        SheetName.DISCOUNTS,
        entry.row_index,
        "C",
        [format_month_tokens(keys)],
    )
    return [key.key for key in sorted(keys)]


def mark_reconciliation_month(context: RuntimeContext, customer_name: str, month: str) -> List[str]:
    """Add ``month`` to a customer's reconciled months.

    Returns:
        list[str]: The updated ``YYYY-MM`` keys in ascending order.

    Raises:
        MonthTokenError: If ``month`` cannot be parsed.
        MissingReferenceError: If the customer is not in ``DISCOUNTS``.
    """
    key = parse_month_token(month, fallback_year=context.today().year)
    entry = _find_discount_entry(context, customer_name)
    keys = set(entry.reconciliation_months)
    keys.add(key)
    result = _write_reconciliation(context, entry, keys)
    log.info("Marked %s as reconciled for '%s'", key, entry.customer_name)
    return result


def unmark_reconciliation_month(context: RuntimeContext, customer_name: str, month: str) -> List[str]:
    key = parse_month_token(month, fallback_year=context.today().year)
    entry = _find_discount_entry(context, customer_name)
    keys = set(entry.reconciliation_months)
    keys.discard(key)
    result = _write_reconciliation(context, entry, keys)
    log.info("Unmarked %s for '%s'", key, entry.customer_name)
    return result


# ---------------------------------------------------------------------------
# Accounts payable
# ---------------------------------------------------------------------------


def supplier_report(
    context: RuntimeContext,
    *,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> List[reconciliation.SupplierSummary]:
    """Purchase, refund and net totals per supplier for an optional period."""
    try:
        return reconciliation.supplier_summaries(
            data_manager.iter_supplier_transactions(context.gateway), year=year, month=month
        )
    except ValueError as exc:
        raise BusinessRuleViolation(str(exc)) from exc


def list_supplier_matching(context: RuntimeContext) -> List[SupplierMatchingEntry]:
    return list(data_manager.iter_supplier_matching(context.gateway, fallback_year=context.today().year))


def _supplier_matching_row(context: RuntimeContext, supplier_name: str) -> SupplierMatchingEntry:
    """Return the supplier's matching row, adding one for a known supplier."""
    wanted = supplier_name.strip().lower()
    for entry in list_supplier_matching(context):
        if entry.supplier_name.lower() == wanted:
            return entry

    for transaction in data_manager.iter_supplier_transactions(context.gateway):
        if transaction.supplier_name.lower() == wanted:
            data_manager.append_record(
                context.gateway, SheetName.SUPPLIERS_MATCHING, ["", transaction.supplier_name, ""]
            )
            log.info("Added SUPPLIERS MATCHING row for '%s'", transaction.supplier_name)
            return _find_supplier_matching(context, supplier_name)

    log.error("Supplier '%s' has no purchase or refund invoices", supplier_name)
    raise MissingReferenceError(f"Supplier '{supplier_name}' not found")


def _find_supplier_matching(context: RuntimeContext, supplier_name: str) -> SupplierMatchingEntry:
    wanted = supplier_name.strip().lower()
    for entry in list_supplier_matching(context):
        if entry.supplier_name.lower() == wanted:
            return entry
    log.error("Supplier '%s' not found in SUPPLIERS MATCHING", supplier_name)
    raise MissingReferenceError(f"Supplier '{supplier_name}' not found in SUPPLIERS MATCHING")


def _write_supplier_matching(
    context: RuntimeContext, entry: SupplierMatchingEntry, keys: Set[MonthKey]
) -> List[str]:
    if entry.row_index is None:
        raise MissingReferenceError(f"Supplier '{entry.supplier_name}' has no SUPPLIERS MATCHING row")
    data_manager.update_cells(
        context.gateway,
        SheetName.SUPPLIERS_MATCHING,
        entry.row_index,
        "C",
        [format_month_tokens(keys)],
    )
    return [key.key for key in sorted(keys)]


def mark_supplier_month(context: RuntimeContext, supplier_name: str, month: str) -> List[str]:
    """Record ``month`` as matched against the supplier's statement.

    A supplier that appears on the purchase or refund tabs but not yet on
    ``SUPPLIERS MATCHING`` gets a row there first.

    Raises:
        MonthTokenError: If ``month`` cannot be parsed.
        MissingReferenceError: If the supplier has no invoices at all.
    """
    key = parse_month_token(month, fallback_year=context.today().year)
    entry = _supplier_matching_row(context, supplier_name)
    keys = set(entry.matched_months)
    keys.add(key)
    result = _write_supplier_matching(context, entry, keys)
    log.info("Marked %s as matched for supplier '%s'", key, entry.supplier_name)
    return result


def unmark_supplier_month(context: RuntimeContext, supplier_name: str, month: str) -> List[str]:
    key = parse_month_token(month, fallback_year=context.today().year)
    entry = _find_supplier_matching(context, supplier_name)
    keys = set(entry.matched_months)
    keys.discard(key)
    result = _write_supplier_matching(context, entry, keys)
    log.info("Unmarked %s for supplier '%s'", key, entry.supplier_name)
    return result


# ---------------------------------------------------------------------------
# Inventory and purchase orders
# ---------------------------------------------------------------------------


def list_inventory(context: RuntimeContext) -> List[InventoryItem]:
    return [item for item in data_manager.iter_inventory(context.gateway) if item.product_name]


def update_inventory_item(context: RuntimeContext, row_index: int, item: InventoryItem) -> None:
    _require_row(list_inventory(context), row_index, "inventory item")
    data_manager.update_record(
        context.gateway,
        SheetName.INVENTORY,
        row_index,
        data_manager.serialize_inventory_item(item),
    )
    log.info("Inventory item at row %d updated", row_index)


def next_po_number(context: RuntimeContext) -> str:
    """Return the next ``PO-<year>-NNN`` number for the current year.

    Falls back to the first number of the year when the orders tab cannot be
    read.
    """
    year = context.today().year
    pattern = re.compile(rf"PO-{year}-(\d{{3}})")
    try:
        lines = list(data_manager.iter_purchase_order_lines(context.gateway))
    except GatewayError as exc:
        log.warning("Unable to read purchase orders, restarting numbering: %s", exc)
        return f"PO-{year}-001"

    highest = 0
    for line in lines:
        match = pattern.search(line.po_number)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"PO-{year}-{highest + 1:03d}"


def save_purchase_order(context: RuntimeContext, lines: Sequence[PurchaseOrderLine]) -> None:
    """Replace every stored line of the purchase order with ``lines``.

    Raises:
        BusinessRuleViolation: If ``lines`` mixes purchase order numbers.
    """
    if not lines:
        return
    po_number = lines[0].po_number
    if any(line.po_number != po_number for line in lines):
        raise BusinessRuleViolation("All lines of a purchase order must share one PO number")

    raw = data_manager.read_sheet(context.gateway, SheetName.PURCHASE_ORDERS)
    stale = [
        row_index
        for row_index, row in data_manager.iter_data_rows(raw)
        if data_manager.parse_text(row[0] if row else None) == po_number
    ]
    if stale:
        context.gateway.delete_rows(SheetName.PURCHASE_ORDERS.value, stale)
    data_manager.append_records(
        context.gateway,
        SheetName.PURCHASE_ORDERS,
        [data_manager.serialize_purchase_order_line(line) for line in lines],
    )
    log.info("Saved purchase order %s with %d lines (%d replaced)", po_number, len(lines), len(stale))


def get_purchase_order(context: RuntimeContext, po_number: str) -> List[PurchaseOrderLine]:
    wanted = po_number.strip()
    return [line for line in data_manager.iter_purchase_order_lines(context.gateway) if line.po_number == wanted]


# ---------------------------------------------------------------------------
# Payroll overtime
# ---------------------------------------------------------------------------


MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class ClockTime:
    """A wall-clock time as stored in the sheet: ``h:mm`` plus ``AM``/``PM``."""

    time: str
    ampm: str


@dataclass(frozen=True)
class ShiftSplit:
    standard_start: ClockTime
    standard_end: ClockTime
    overtime_start: Optional[ClockTime]
    overtime_end: Optional[ClockTime]

    @property
    def has_overtime(self) -> bool:
        return self.overtime_start is not None


@dataclass(frozen=True)
class OvertimeCommand:
    """User intent for logging or correcting one shift."""

    date: str
    employee_name: str
    description: str
    shift_start: str
    shift_end: str
    shift_hours: Optional[Decimal] = None


@dataclass(frozen=True)
class OvertimeSummary:
    record: OvertimeRecord
    overtime_hours: Decimal


def parse_clock(value: str) -> tuple[int, int]:
    """Parse ``"4:30"`` or ``"4.30"`` into hours and minutes.

    A single digit after the dot is read as tens of minutes (``4.3`` is
    ``4:30``). Unreadable parts count as zero.
    """
    text = (value or "").strip()
    if not text:
        return 0, 0
    if ":" in text:
        hours_text, _, minutes_text = text.partition(":")
    else:
        hours_text, _, minutes_text = text.partition(".")
        minutes_text = minutes_text or "0"
        if len(minutes_text) == 1:
            minutes_text += "0"
        minutes_text = minutes_text[:2]
    return _leading_int(hours_text), _leading_int(minutes_text)


def _leading_int(text: str) -> int:
    match = re.match(r"\s*(\d+)", text)
    return int(match.group(1)) if match else 0


def to_minutes(value: str, ampm: str) -> int:
    hours, minutes = parse_clock(value)
    marker = ampm.strip().upper()
    if marker == "PM" and hours < 12:
        hours += 12
    if marker == "AM" and hours == 12:
        hours = 0
    return hours * 60 + minutes


def format_minutes(total: int) -> ClockTime:
    minutes = total % MINUTES_PER_DAY
    hours24, minute = divmod(minutes, 60)
    ampm = "PM" if hours24 >= 12 else "AM"
    hours12 = hours24 - 12 if hours24 > 12 else hours24
    if hours24 == 0:
        hours12 = 12
    return ClockTime(time=f"{hours12}:{minute:02d}", ampm=ampm)


def _split_combined(value: str) -> tuple[str, str]:
    parts = (value or "").strip().split()
    time_text = parts[0] if parts else ""
    ampm = parts[1] if len(parts) > 1 else "AM"
    return time_text, ampm


def split_shift(shift_start: str, shift_end: str, standard_hours: Decimal) -> ShiftSplit:
    """Split a worked shift into standard duty and overtime.

    ``shift_start`` and ``shift_end`` are combined values such as
    ``"8:00 AM"``; a missing marker means ``AM``. A shift ending before it
    starts runs past midnight. Anything beyond ``standard_hours`` is
    overtime.
    """
    start = to_minutes(*_split_combined(shift_start))
    end = to_minutes(*_split_combined(shift_end))
    if end < start:
        end += MINUTES_PER_DAY

    standard = int(Decimal(standard_hours) * 60)
    if standard > 0 and end - start > standard:
        standard_end = start + standard
        return ShiftSplit(
            standard_start=format_minutes(start),
            standard_end=format_minutes(standard_end),
            overtime_start=format_minutes(standard_end),
            overtime_end=format_minutes(end),
        )
    return ShiftSplit(
        standard_start=format_minutes(start),
        standard_end=format_minutes(end),
        overtime_start=None,
        overtime_end=None,
    )


def _overtime_record(context: RuntimeContext, command: OvertimeCommand) -> OvertimeRecord:
    if not command.date.strip() or not command.employee_name.strip():
        raise BusinessRuleViolation("Overtime entries require a date and an employee name")
    hours = command.shift_hours if command.shift_hours is not None else context.settings.standard_shift_hours
    split = split_shift(command.shift_start, command.shift_end, hours)
    return OvertimeRecord(
        date=command.date.strip(),
        employee_id="",
        employee_name_ar="",
        employee_name=command.employee_name.strip(),
        particulars=(command.description or "").strip(),
        sd_ampm=split.standard_start.ampm,
        sd_from=split.standard_start.time,
        ed_ampm=split.standard_end.ampm,
        ed_time=split.standard_end.time,
        ovs_ampm=split.overtime_start.ampm if split.overtime_start else "",
        ovs_time=split.overtime_start.time if split.overtime_start else "",
        ove_ampm=split.overtime_end.ampm if split.overtime_end else "",
        ove_time=split.overtime_end.time if split.overtime_end else "",
    )


def record_overtime(context: RuntimeContext, command: OvertimeCommand) -> OvertimeRecord:
    record = _overtime_record(context, command)
    data_manager.append_record(
        context.gateway, SheetName.EMPLOYEE_OVERTIME, data_manager.serialize_overtime(record)
    )
    log.info("Overtime recorded for '%s' on %s", record.employee_name, record.date)
    return record


def overtime_hours(record: OvertimeRecord) -> Decimal:
    """Hours between the overtime start and end cells, to two decimals."""
    if not record.ovs_time or not record.ove_time:
        return Decimal("0")
    start = to_minutes(record.ovs_time, record.ovs_ampm)
    end = to_minutes(record.ove_time, record.ove_ampm)
    if end < start:
        end += MINUTES_PER_DAY
    hours = Decimal(end - start) / Decimal(60)
    return hours.quantize(Decimal("0.01")) if hours > 0 else Decimal("0")


def list_overtime(context: RuntimeContext) -> List[OvertimeSummary]:
    return [
        OvertimeSummary(record=record, overtime_hours=overtime_hours(record))
        for record in data_manager.iter_overtime(context.gateway)
    ]


def update_overtime(context: RuntimeContext, row_index: int, command: OvertimeCommand) -> OvertimeRecord:
    _require_row([summary.record for summary in list_overtime(context)], row_index, "overtime entry")
    record = _overtime_record(context, command)
    data_manager.update_record(
        context.gateway, SheetName.EMPLOYEE_OVERTIME, row_index, data_manager.serialize_overtime(record)
    )
    log.info("Overtime entry at row %d updated", row_index)
    return replace(record, row_index=row_index)


def delete_overtime(context: RuntimeContext, row_index: int) -> None:
    _require_row([summary.record for summary in list_overtime(context)], row_index, "overtime entry")
    data_manager.delete_record(context.gateway, SheetName.EMPLOYEE_OVERTIME, row_index)
    log.info("Overtime entry at row %d deleted", row_index)


# ---------------------------------------------------------------------------
# Petty cash
# ---------------------------------------------------------------------------


def _validate_petty_cash(record: PettyCashRecord) -> None:
    if not record.date.strip() or not record.name.strip():
        raise BusinessRuleViolation("Petty cash entries require a date and a name")
    if record.amount < 0:
        raise BusinessRuleViolation("Petty cash amounts cannot be negative")


def record_petty_cash(context: RuntimeContext, record: PettyCashRecord) -> int:
    """Append a petty cash movement and return its sheet row number."""
    _validate_petty_cash(record)
    data_manager.append_record(context.gateway, SheetName.PETTY_CASH, data_manager.serialize_petty_cash(record))
    row_index = len(data_manager.read_sheet(context.gateway, SheetName.PETTY_CASH))
    log.info("Petty cash %s of %s recorded for '%s'", record.entry_type.value, record.amount, record.name)
    return row_index


def list_petty_cash(context: RuntimeContext) -> List[PettyCashRecord]:
    return list(data_manager.iter_petty_cash(context.gateway))


def update_petty_cash(context: RuntimeContext, row_index: int, record: PettyCashRecord) -> None:
    _validate_petty_cash(record)
    _require_row(list_petty_cash(context), row_index, "petty cash entry")
    data_manager.update_record(
        context.gateway, SheetName.PETTY_CASH, row_index, data_manager.serialize_petty_cash(record)
    )
    log.info("Petty cash entry at row %d updated", row_index)


def delete_petty_cash(context: RuntimeContext, row_index: int) -> None:
    _require_row(list_petty_cash(context), row_index, "petty cash entry")
    data_manager.delete_record(context.gateway, SheetName.PETTY_CASH, row_index)
    log.info("Petty cash entry at row %d deleted", row_index)


def petty_cash_balance(records: Iterable[PettyCashRecord]) -> Decimal:
    """Receipts minus expenses."""
    balance = Decimal("0")
    for record in records:
        if record.entry_type == PettyCashType.EXPENSE:
            balance -= record.amount
        else:
            balance += record.amount
    return balance


# ---------------------------------------------------------------------------
# Cash receipts
# ---------------------------------------------------------------------------


def last_receipt_number(context: RuntimeContext) -> str:
    """Return the last receipt number in column B, ``CAH-000`` when none."""
    try:
        column = context.gateway.read_column(SheetName.CASH_RECEIPT.value, "B")
    except GatewayError as exc:
        log.warning("Unable to read last receipt number: %s", exc)
        return DEFAULT_RECEIPT_NUMBER

    numbers = [data_manager.parse_text(value) for value in column[1:]]
    numbers = [number for number in numbers if "-" in number]
    return numbers[-1] if numbers else DEFAULT_RECEIPT_NUMBER


def next_receipt_number(last_number: str) -> str:
    """Increment the numeric suffix of ``last_number`` keeping its width.

    >>> next_receipt_number("CAH-041")
    'CAH-042'
    """
    match = re.match(r"^(.*?)(\d+)$", last_number.strip())
    if match is None:
        return f"{last_number.strip()}-001"
    prefix, digits = match.groups()
    return f"{prefix}{int(digits) + 1:0{len(digits)}d}"


def record_cash_receipt(context: RuntimeContext, receipt: CashReceiptRow) -> CashReceiptRow:
    """Append a receipt, numbering it when ``receipt_number`` is blank.

    Raises:
        BusinessRuleViolation: If the amount is not positive or the number is
            already used.
    """
    if receipt.amount <= 0:
        raise BusinessRuleViolation("Receipt amount must be positive")
    if not receipt.receipt_number:
        receipt = replace(receipt, receipt_number=next_receipt_number(last_receipt_number(context)))
    elif any(existing.receipt_number == receipt.receipt_number for existing in list_cash_receipts(context)):
        log.error("Receipt number %s already exists", receipt.receipt_number)
        raise BusinessRuleViolation(f"Receipt number {receipt.receipt_number} already exists")

    data_manager.append_record(
        context.gateway, SheetName.CASH_RECEIPT, data_manager.serialize_cash_receipt(receipt)
    )
    log.info("Cash receipt %s recorded for '%s'", receipt.receipt_number, receipt.received_from)
    return receipt


def list_cash_receipts(context: RuntimeContext) -> List[CashReceiptRow]:
    return list(data_manager.iter_cash_receipts(context.gateway))


__all__ = [
    "BusinessRuleViolation",
    "MissingReferenceError",
    "AuthenticationError",
    "Session",
    "RuntimeContext",
    "load_runtime_context",
    "ensure_schema_version",
    "authenticate",
    "load_invoices",
    "list_customers",
    "customer_ledger",
    "customer_aging",
    "aging_report",
    "open_matches_report",
    "customer_monthly_debt",
    "get_customer_email",
    "resolve_customer_email_targets",
    "get_closed_customers",
    "get_semi_closed_customers",
    "list_notes",
    "add_note",
    "update_note",
    "delete_note",
    "list_discount_entries",
    "mark_reconciliation_month",
    "unmark_reconciliation_month",
    "supplier_report",
    "list_supplier_matching",
    "mark_supplier_month",
    "unmark_supplier_month",
    "list_inventory",
    "update_inventory_item",
    "next_po_number",
    "save_purchase_order",
    "get_purchase_order",
    "split_shift",
    "record_overtime",
    "list_overtime",
    "update_overtime",
    "delete_overtime",
    "record_petty_cash",
    "list_petty_cash",
    "update_petty_cash",
    "delete_petty_cash",
    "petty_cash_balance",
    "last_receipt_number",
    "next_receipt_number",
    "record_cash_receipt",
    "list_cash_receipts",
]
