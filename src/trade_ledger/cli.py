"""Command-line entry points for Trade Ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into handler calls and printing the results. The
handlers themselves live in :mod:`trade_ledger.core_logic`.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, exporters, log, set_console_level
from .constants import AgingBucket, PettyCashType
from .data_manager import CashReceiptRow, PettyCashRecord
from .gateway import GatewayError
from .tokens import MonthTokenError


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="trade-ledger",
        description="Command-line tools for the Trade Ledger spreadsheet.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to an upward search from the CWD).",
    )
    parser.add_argument("--user", default=None, help="Sign in as this user before running the command.")
    parser.add_argument("--password", default=None, help="Password for --user.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Echo informational log messages to stderr.")
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as notes and receipts."""
    specs = {
        "note-add": register_note_add_command(subparsers),
        "note-solve": register_note_solve_command(subparsers),
        "note-delete": register_note_delete_command(subparsers),
        "reconcile": register_reconcile_command(subparsers),
        "supplier-match": register_supplier_match_command(subparsers),
        "overtime-add": register_overtime_add_command(subparsers),
        "petty-cash-add": register_petty_cash_add_command(subparsers),
        "receipt-add": register_receipt_add_command(subparsers),
        "export": register_export_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "customers": register_customers_command(subparsers),
        "ledger": register_ledger_command(subparsers),
        "aging": register_aging_command(subparsers),
        "open-matches": register_open_matches_command(subparsers),
        "monthly": register_monthly_command(subparsers),
        "notes": register_notes_command(subparsers),
        "overtime": register_overtime_command(subparsers),
        "petty-cash": register_petty_cash_command(subparsers),
        "receipts": register_receipts_command(subparsers),
        "next-po": register_next_po_command(subparsers),
        "suppliers": register_suppliers_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Write commands
# ---------------------------------------------------------------------------


def register_note_add_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``note-add``."""
    name = "note-add"
    help_text = "Attach a note to a customer (requires --user)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--customer", required=True)
        parser.add_argument("--content", required=True)
        parser.add_argument("--solved", action="store_true")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_note_add)


def register_note_solve_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``note-solve``."""
    name = "note-solve"
    help_text = "Rewrite a note and mark it solved or open (requires --user)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--row", type=int, required=True)
        parser.add_argument("--content", required=True)
        parser.add_argument("--reopen", action="store_true", help="Mark the note as not solved.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_note_solve)


def register_note_delete_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``note-delete``."""
    name = "note-delete"
    help_text = "Delete a note by sheet row (requires --user)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--row", type=int, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_note_delete)


def register_reconcile_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``reconcile``."""
    name = "reconcile"
    help_text = "Mark (or unmark) a month as reconciled for a customer."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--customer", required=True)
        parser.add_argument("--month", required=True, help="JAN25, JAN-2025 or 2025-01.")
        parser.add_argument("--unmark", action="store_true")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_reconcile)


def register_supplier_match_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``supplier-match``."""
    name = "supplier-match"
    help_text = "Mark (or unmark) a month as matched against a supplier statement."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--supplier", required=True)
        parser.add_argument("--month", required=True, help="JAN25, JAN-2025 or 2025-01.")
        parser.add_argument("--unmark", action="store_true")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_supplier_match)


def register_overtime_add_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``overtime-add``."""
    name = "overtime-add"
    help_text = "Log a worked shift, splitting standard duty from overtime."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", required=True)
        parser.add_argument("--employee", required=True)
        parser.add_argument("--start", required=True, help='Shift start such as "8:00 AM".')
        parser.add_argument("--end", required=True, help='Shift end such as "8:00 PM".')
        parser.add_argument("--hours", default=None, help="Standard hours (defaults to StandardShiftHours).")
        parser.add_argument("--description", default="")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_overtime_add)


def register_petty_cash_add_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``petty-cash-add``."""
    name = "petty-cash-add"
    help_text = "Record a petty cash receipt or expense."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", required=True)
        parser.add_argument(
            "--type",
            dest="entry_type",
            choices=[member.value for member in PettyCashType],
            required=True,
        )
        parser.add_argument("--amount", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--description", default="")
        parser.add_argument("--paid", default="")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_petty_cash_add)


def register_receipt_add_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``receipt-add``."""
    name = "receipt-add"
    help_text = "Record a cash receipt, numbering it automatically."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", required=True)
        parser.add_argument("--received-from", required=True)
        parser.add_argument("--send-by", default="")
        parser.add_argument("--amount", required=True)
        parser.add_argument("--amount-in-words", default="")
        parser.add_argument("--reason", default="")
        parser.add_argument("--number", default="", help="Explicit receipt number.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_receipt_add)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    name = "export"
    help_text = "Export the aging report or a customer statement to .xlsx or .pdf."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--report", choices=["aging", "ledger"], required=True)
        parser.add_argument("--customer", default=None, help="Customer for the ledger report.")
        parser.add_argument("--net-only", action="store_true")
        parser.add_argument("--output", type=Path, required=True, help="Target file; suffix picks the format.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export)


# ---------------------------------------------------------------------------
# Read commands
# ---------------------------------------------------------------------------


def _simple_command(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    configure: Optional[Callable[[argparse.ArgumentParser], None]] = None,
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        if configure is not None:
            configure(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_customers_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``customers``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--include-closed", action="store_true")
        parser.add_argument("--open-only", action="store_true", help="Only customers with open matchings.")

    return _simple_command("customers", "List customers with balances.", run_customers_report, configure)


def register_ledger_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``ledger``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("customer")
        parser.add_argument("--net-only", action="store_true")

    return _simple_command("ledger", "Display a customer's annotated ledger.", run_ledger_report, configure)


def register_aging_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``aging``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer", default=None, help="Show one customer's open-item aging.")
        parser.add_argument("--include-closed", action="store_true")

    return _simple_command("aging", "Display aging buckets.", run_aging_report, configure)


def register_open_matches_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``open-matches``."""
    return _simple_command("open-matches", "List open items across customers.", run_open_matches_report)


def register_monthly_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``monthly``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("customer")

    return _simple_command("monthly", "Net sales against payments per month.", run_monthly_report, configure)


def register_notes_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``notes``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer", default=None)

    return _simple_command("notes", "List customer notes.", run_notes_report, configure)


def register_overtime_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``overtime``."""
    return _simple_command("overtime", "List logged overtime.", run_overtime_report)


def register_petty_cash_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``petty-cash``."""
    return _simple_command("petty-cash", "List petty cash movements and the balance.", run_petty_cash_report)


def register_receipts_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``receipts``."""
    return _simple_command("receipts", "List cash receipts.", run_receipts_report)


def register_next_po_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``next-po``."""
    return _simple_command("next-po", "Show the next purchase order number.", run_next_po_report)


def register_suppliers_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``suppliers``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--year", type=int, default=None, help="2025, or 25 for the last two digits.")
        parser.add_argument("--month", type=int, default=None, help="Calendar month, 1-12.")

    return _simple_command("suppliers", "Purchases, refunds and net per supplier.", run_suppliers_report, configure)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translators
# ---------------------------------------------------------------------------


def parse_decimal(raw: str, *, field_name: str) -> Decimal:
    """Parse a user-supplied amount, rejecting non-numeric input."""
    try:
        value = Decimal(str(raw).replace(",", "").strip())
    except InvalidOperation as exc:
        raise core_logic.BusinessRuleViolation(f"{field_name} must be a number: {raw!r}") from exc
    if not value.is_finite():
        raise core_logic.BusinessRuleViolation(f"{field_name} must be a number: {raw!r}")
    return value


def translate_overtime(args: argparse.Namespace) -> core_logic.OvertimeCommand:
    """Translate CLI args into an overtime command object."""
    return core_logic.OvertimeCommand(
        date=args.date,
        employee_name=args.employee,
        description=args.description,
        shift_start=args.start,
        shift_end=args.end,
        shift_hours=parse_decimal(args.hours, field_name="hours") if args.hours is not None else None,
    )


def translate_petty_cash(args: argparse.Namespace) -> PettyCashRecord:
    """Translate CLI args into a petty cash record."""
    return PettyCashRecord(
        date=args.date,
        entry_type=PettyCashType(args.entry_type),
        amount=parse_decimal(args.amount, field_name="amount"),
        name=args.name,
        description=args.description,
        paid=args.paid,
    )


def translate_receipt(args: argparse.Namespace) -> CashReceiptRow:
    """Translate CLI args into a cash receipt row."""
    return CashReceiptRow(
        date=args.date,
        receipt_number=args.number.strip(),
        received_from=args.received_from,
        send_by=args.send_by,
        amount=parse_decimal(args.amount, field_name="amount"),
        amount_in_words=args.amount_in_words,
        reason=args.reason,
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


_money = exporters.format_currency


def run_note_add(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-note workflow in the BLL."""
    note = core_logic.add_note(context, args.customer, args.content, is_solved=args.solved)
    print(f"Note added for {note.customer_name} at {note.timestamp}")
    return 0


def run_note_solve(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.update_note(context, args.row, args.content, is_solved=not args.reopen)
    return 0


def run_note_delete(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_note(context, args.row)
    return 0


def run_reconcile(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the mark/unmark reconciliation workflow."""
    handler = core_logic.unmark_reconciliation_month if args.unmark else core_logic.mark_reconciliation_month
    months = handler(context, args.customer, args.month)
    print(", ".join(months) if months else "(no reconciled months)")
    return 0


def run_supplier_match(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    handler = core_logic.unmark_supplier_month if args.unmark else core_logic.mark_supplier_month
    months = handler(context, args.supplier, args.month)
    print(", ".join(months) if months else "(no matched months)")
    return 0


def run_overtime_add(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    record = core_logic.record_overtime(context, translate_overtime(args))
    print(f"Duty {record.sd_from} {record.sd_ampm} - {record.ed_time} {record.ed_ampm}")
    if record.ovs_time:
        print(f"Overtime {record.ovs_time} {record.ovs_ampm} - {record.ove_time} {record.ove_ampm}")
    return 0


def run_petty_cash_add(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    row_index = core_logic.record_petty_cash(context, translate_petty_cash(args))
    print(f"Recorded at row {row_index}")
    return 0


def run_receipt_add(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    receipt = core_logic.record_cash_receipt(context, translate_receipt(args))
    print(f"Receipt {receipt.receipt_number} recorded")
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the export workflow; the output suffix selects PDF or Excel."""
    as_pdf = args.output.suffix.lower() == ".pdf"
    if args.report == "aging":
        report = core_logic.aging_report(context)
        if as_pdf:
            path = exporters.export_aging_pdf(report, args.output, generated_on=context.today())
        else:
            path = exporters.export_aging_workbook(report, args.output)
    else:
        if not args.customer:
            raise core_logic.BusinessRuleViolation("--customer is required for the ledger report")
        entries = core_logic.customer_ledger(context, args.customer, net_only=args.net_only)
        if as_pdf:
            path = exporters.export_ledger_pdf(
                args.customer, entries, args.output, net_only=args.net_only, generated_on=context.today()
            )
        else:
            path = exporters.export_ledger_workbook(args.customer, entries, args.output, net_only=args.net_only)
    print(f"Exported to {path}")
    return 0


def run_customers_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print one line per customer with totals and status flags."""
    listings = core_logic.list_customers(context, include_closed=args.include_closed)
    if args.open_only:
        listings = [listing for listing in listings if listing.analysis.has_open_matchings]
    for listing in listings:
        analysis = listing.analysis
        flags = "".join(
            flag
            for flag, enabled in (
                (" [open]", analysis.has_open_matchings),
                (" [semi-closed]", listing.is_semi_closed),
                (" [closed]", listing.is_closed),
            )
            if enabled
        )
        print(
            f"{analysis.customer_name}{flags}\t{_money(analysis.total_debit)}\t"
            f"{_money(analysis.total_credit)}\t{_money(analysis.net_debt)}\t{analysis.transaction_count}"
        )
    return 0


def run_ledger_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    entries = core_logic.customer_ledger(context, args.customer, net_only=args.net_only)
    for values in exporters.ledger_table_rows(entries, net_only=args.net_only):
        print("\t".join(_money(value) if isinstance(value, Decimal) else str(value) for value in values))
    return 0


def run_aging_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print aging buckets for one customer or for everyone."""
    if args.customer:
        summary = core_logic.customer_aging(context, args.customer)
        for bucket in AgingBucket:
            print(f"{bucket.value}\t{_money(summary.buckets[bucket])}")
        print(f"TOTAL\t{_money(summary.total)}")
        return 0

    report = core_logic.aging_report(context, include_closed=args.include_closed)
    print("\t".join(exporters.AGING_HEADERS))
    for values in exporters.aging_table_rows(report):
        print("\t".join(_money(value) if isinstance(value, Decimal) else str(value) for value in values))
    return 0


def run_open_matches_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for match in core_logic.open_matches_report(context):
        print(
            f"{match.date.isoformat()}\t{match.customer_name}\t{match.number}\t"
            f"{match.category.value}\t{_money(match.remaining_amount)}\t{match.matching or ''}"
        )
    return 0


def run_monthly_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for month in core_logic.customer_monthly_debt(context, args.customer):
        print(f"{month.year}-{month.month:02d}\t{_money(month.debit)}\t{_money(month.credit)}\t{_money(month.net)}")
    return 0


def run_notes_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for note in core_logic.list_notes(context, args.customer):
        status = "solved" if note.is_solved else "open"
        print(f"{note.row_index}\t{note.customer_name}\t{note.user}\t{status}\t{note.content}")
    return 0


def run_overtime_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for summary in core_logic.list_overtime(context):
        record = summary.record
        print(f"{record.row_index}\t{record.date}\t{record.employee_name}\t{summary.overtime_hours}")
    return 0


def run_petty_cash_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    records = core_logic.list_petty_cash(context)
    for record in records:
        print(f"{record.row_index}\t{record.date}\t{record.entry_type.value}\t{_money(record.amount)}\t{record.name}")
    print(f"BALANCE\t{_money(core_logic.petty_cash_balance(records))}")
    return 0


def run_receipts_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for receipt in core_logic.list_cash_receipts(context):
        print(f"{receipt.receipt_number}\t{receipt.date}\t{receipt.received_from}\t{_money(receipt.amount)}")
    return 0


def run_next_po_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    print(core_logic.next_po_number(context))
    return 0


def run_suppliers_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print one line per supplier, largest net balance first."""
    for summary in core_logic.supplier_report(context, year=args.year, month=args.month):
        print(
            f"{summary.supplier_name}\t{_money(summary.total_purchase)}\t"
            f"{_money(summary.total_refund)}\t{_money(summary.net_amount)}\t{len(summary.transactions)}"
        )
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, (core_logic.BusinessRuleViolation, MonthTokenError)):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, GatewayError):
        log.error("Spreadsheet error: %s", error)
        return 4
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    if args.verbose:
        set_console_level(logging.INFO)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        if args.user:
            context = core_logic.authenticate(context, args.user, args.password or "")
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
