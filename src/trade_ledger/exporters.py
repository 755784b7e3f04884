"""Excel and PDF renderings of already-computed ledger figures.

Nothing here reads the spreadsheet or recomputes balances: callers pass the
output of :mod:`trade_ledger.reconciliation` and receive files.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

import openpyxl
from openpyxl.styles import Font
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from . import log
from .constants import AgingBucket
from .data_manager import parse_amount, parse_text
from .gateway import open_workbook, save_workbook
from .reconciliation import CustomerAging, LedgerEntry, classify_invoice, open_amount

CENT = Decimal("0.01")
AGING_SHEET_TITLE = "Aging"
LEDGER_SHEET_TITLE = "Ledger"
TOTAL_LABEL = "TOTAL"

AGING_HEADERS: Tuple[str, ...] = ("CUSTOMER NAME", *(bucket.value for bucket in AgingBucket), "TOTAL")
LEDGER_HEADERS: Tuple[str, ...] = (
    "DATE",
    "DUE DATE",
    "NUMBER",
    "TYPE",
    "DEBIT",
    "CREDIT",
    "MATCHING",
    "BALANCE",
)


def format_currency(value: Decimal) -> str:
    """Render an amount with thousands separators and two decimals."""
    return f"{Decimal(value).quantize(CENT):,.2f}"


def _cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT)


def _format_date(value: Optional[date]) -> str:
    return value.strftime("%d/%m/%Y") if value is not None else ""


# ---------------------------------------------------------------------------
# Table builders
# ---------------------------------------------------------------------------


def aging_table_rows(report: Sequence[CustomerAging]) -> List[List[object]]:
    """One row per customer followed by a ``TOTAL`` row, amounts in cents."""
    rows: List[List[object]] = []
    totals = {bucket: Decimal("0") for bucket in AgingBucket}
    grand_total = Decimal("0")
    for line in report:
        rows.append(
            [line.customer_name, *(_cents(line.buckets[bucket]) for bucket in AgingBucket), _cents(line.total)]
        )
        for bucket in AgingBucket:
            totals[bucket] += line.buckets[bucket]
        grand_total += line.total
    rows.append([TOTAL_LABEL, *(_cents(totals[bucket]) for bucket in AgingBucket), _cents(grand_total)])
    return rows


def ledger_table_rows(entries: Iterable[LedgerEntry], *, net_only: bool = False) -> List[List[object]]:
    """Rows of a customer statement.

    In the net-only layout the credit column shows what was applied against
    the debit, so debit minus credit equals the open balance.
    """
    rows: List[List[object]] = []
    for entry in entries:
        row = entry.row
        balance = open_amount(entry) if net_only else entry.net
        credit = row.debit - balance if net_only else row.credit
        rows.append(
            [
                _format_date(row.date),
                _format_date(row.due_date),
                row.number,
                classify_invoice(row.number, row.credit).value,
                _cents(row.debit),
                _cents(credit),
                row.matching or "",
                _cents(balance),
            ]
        )
    return rows


# ---------------------------------------------------------------------------
# Workbooks
# ---------------------------------------------------------------------------


def _write_sheet(worksheet, headers: Sequence[str], rows: Iterable[Sequence[object]]) -> None:
    worksheet.append(list(headers))
    bold_font = Font(bold=True)
    for cell in worksheet[1]:
        cell.font = bold_font
    for values in rows:
        worksheet.append([float(value) if isinstance(value, Decimal) else value for value in values])


def export_aging_workbook(report: Sequence[CustomerAging], destination: Path) -> Path:
    """Write the aging report to ``destination`` and return the resolved path."""
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    worksheet.title = AGING_SHEET_TITLE
    rows = aging_table_rows(report)
    _write_sheet(worksheet, AGING_HEADERS, rows)
    for cell in worksheet[worksheet.max_row]:
        cell.font = Font(bold=True)

    dest = Path(destination).expanduser().resolve()
    save_workbook(workbook, dest)
    log.info("Aging workbook with %d customers written to '%s'", len(report), dest)
    return dest


def read_aging_workbook(source: Path) -> Tuple[List[CustomerAging], CustomerAging]:
    """Load an exported aging workbook back into report lines and totals.

    Returns:
        tuple[list[CustomerAging], CustomerAging]: The customer lines and the
        ``TOTAL`` line.

    Raises:
        ValueError: If the workbook has no ``TOTAL`` row.
    """
    workbook = open_workbook(source)
    worksheet = workbook[AGING_SHEET_TITLE]
    lines: List[CustomerAging] = []
    total_line: Optional[CustomerAging] = None
    for values in worksheet.iter_rows(min_row=2, values_only=True):
        name = parse_text(values[0])
        if not name:
            continue
        amounts = [parse_amount(value).quantize(CENT) for value in values[1 : 2 + len(AgingBucket)]]
        line = CustomerAging(
            customer_name=name,
            buckets=dict(zip(AgingBucket, amounts[:-1])),
            total=amounts[-1],
        )
        if name == TOTAL_LABEL:
            total_line = line
        else:
            lines.append(line)

    if total_line is None:
        raise ValueError(f"No {TOTAL_LABEL} row in aging workbook: {source}")
    return lines, total_line


def export_ledger_workbook(
    customer_name: str,
    entries: Sequence[LedgerEntry],
    destination: Path,
    *,
    net_only: bool = False,
) -> Path:
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    worksheet.title = LEDGER_SHEET_TITLE
    _write_sheet(worksheet, LEDGER_HEADERS, ledger_table_rows(entries, net_only=net_only))
    dest = Path(destination).expanduser().resolve()
    save_workbook(workbook, dest)
    log.info("Ledger workbook for '%s' written to '%s'", customer_name, dest)
    return dest


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------


def _table_style(*, total_row: bool) -> TableStyle:
    style = TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.whitesmoke, colors.white]),
    ])
    if total_row:
        style.add("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold")
        style.add("BACKGROUND", (0, -1), (-1, -1), colors.whitesmoke)
    return style


def _document(destination: Path, *, wide: bool) -> Tuple[SimpleDocTemplate, Path]:
    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    doc = SimpleDocTemplate(
        str(dest),
        pagesize=landscape(A4) if wide else A4,
        leftMargin=0.5 * inch,
        rightMargin=0.5 * inch,
        topMargin=0.6 * inch,
        bottomMargin=0.6 * inch,
    )
    return doc, dest


def _as_text(rows: Iterable[Sequence[object]]) -> List[List[str]]:
    return [
        [format_currency(value) if isinstance(value, Decimal) else str(value) for value in row]
        for row in rows
    ]


def export_ledger_pdf(
    customer_name: str,
    entries: Sequence[LedgerEntry],
    destination: Path,
    *,
    net_only: bool = False,
    generated_on: Optional[date] = None,
) -> Path:
    """Render a customer statement as a PDF table with a closing balance."""
    doc, dest = _document(destination, wide=True)
    styles = getSampleStyleSheet()
    rows = ledger_table_rows(entries, net_only=net_only)
    balance = sum((row[-1] for row in rows), Decimal("0"))

    story = [
        Paragraph(f"Statement of Account: {escape(customer_name)}", styles["Title"]),
        Paragraph("Open items only" if net_only else "All transactions", styles["Normal"]),
    ]
    if generated_on is not None:
        story.append(Paragraph(f"Generated {generated_on.isoformat()}", styles["Normal"]))
    story.append(Spacer(1, 0.15 * inch))

    table_data = [list(LEDGER_HEADERS), *_as_text(rows), ["", "", "", "", "", "", TOTAL_LABEL, format_currency(balance)]]
    table = Table(table_data, repeatRows=1)
    style = _table_style(total_row=True)
    style.add("ALIGN", (4, 1), (5, -1), "RIGHT")
    style.add("ALIGN", (-1, 1), (-1, -1), "RIGHT")
    table.setStyle(style)
    story.append(table)
    doc.build(story)

    log.info("Ledger PDF for '%s' written to '%s'", customer_name, dest)
    return dest


def export_aging_pdf(
    report: Sequence[CustomerAging],
    destination: Path,
    *,
    generated_on: Optional[date] = None,
) -> Path:
    doc, dest = _document(destination, wide=True)
    styles = getSampleStyleSheet()
    story = [Paragraph("Customer Aging", styles["Title"])]
    if generated_on is not None:
        story.append(Paragraph(f"As of {generated_on.isoformat()}", styles["Normal"]))
    story.append(Spacer(1, 0.15 * inch))

    table = Table([list(AGING_HEADERS), *_as_text(aging_table_rows(report))], repeatRows=1)
    style = _table_style(total_row=True)
    style.add("ALIGN", (1, 1), (-1, -1), "RIGHT")
    table.setStyle(style)
    story.append(table)
    doc.build(story)

    log.info("Aging PDF with %d customers written to '%s'", len(report), dest)
    return dest


__all__ = [
    "AGING_HEADERS",
    "LEDGER_HEADERS",
    "format_currency",
    "aging_table_rows",
    "ledger_table_rows",
    "export_aging_workbook",
    "read_aging_workbook",
    "export_ledger_workbook",
    "export_ledger_pdf",
    "export_aging_pdf",
]
