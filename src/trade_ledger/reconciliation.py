"""Customer-ledger reconciliation engine.

Pure functions over :class:`~trade_ledger.data_manager.InvoiceRow` sequences.
Nothing here touches the gateway; callers pass the rows and the reference
``today`` explicitly so every figure is reproducible.

Rows sharing a non-empty ``matching`` key form a matching group. The net of
a group (sum of debit minus credit) is its residual, and it is shown on one
row only: the row carrying the largest debit, first one wins on ties.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import log
from .constants import EPSILON, AgingBucket, InvoiceType, OpenMatchCategory, SupplierTransactionType
from .data_manager import InvoiceRow, SupplierTransaction

ZERO = Decimal("0")


@dataclass(frozen=True)
class LedgerEntry:
    """An invoice row annotated with its net and, for holders, the residual."""

    row: InvoiceRow
    index: int
    net: Decimal
    residual: Optional[Decimal] = None
    is_holder: bool = False

    @property
    def matching(self) -> Optional[str]:
        return self.row.matching


@dataclass(frozen=True)
class OpenItem:
    """An open ledger row as shown in the overdue table."""

    entry: LedgerEntry
    difference: Decimal
    adjusted_credit: Decimal
    days_overdue: int
    bucket: AgingBucket


def _empty_buckets() -> Dict[AgingBucket, Decimal]:
    return {bucket: ZERO for bucket in AgingBucket}


@dataclass(frozen=True)
class AgingSummary:
    buckets: Mapping[AgingBucket, Decimal] = field(default_factory=_empty_buckets)
    total: Decimal = ZERO

    @property
    def overdue(self) -> Decimal:
        return self.total - self.buckets[AgingBucket.AT_DATE]


@dataclass(frozen=True)
class CustomerAging:
    """One line of the per-customer aging report."""

    customer_name: str
    buckets: Mapping[AgingBucket, Decimal]
    total: Decimal


@dataclass(frozen=True)
class CustomerAnalysis:
    customer_name: str
    total_debit: Decimal
    total_credit: Decimal
    net_debt: Decimal
    net_sales: Decimal
    transaction_count: int
    has_open_matchings: bool
    last_payment_date: Optional[date]
    last_payment_amount: Decimal
    last_payment_matching: Optional[str]
    last_sale_date: Optional[date]
    last_sale_amount: Decimal
    overdue_amount: Decimal
    open_opening_balance: Decimal
    aging: AgingSummary


@dataclass(frozen=True)
class MonthlyDebt:
    year: int
    month: int
    debit: Decimal
    credit: Decimal

    @property
    def net(self) -> Decimal:
        return self.debit - self.credit


@dataclass(frozen=True)
class SupplierSummary:
    """Purchases against refunds for one supplier."""

    supplier_name: str
    total_purchase: Decimal
    total_refund: Decimal
    net_amount: Decimal
    transactions: Tuple[SupplierTransaction, ...]


@dataclass(frozen=True)
class OpenMatch:
    """Cross-customer open item with its remaining (signed) amount."""

    customer_name: str
    date: date
    number: str
    debit: Decimal
    credit: Decimal
    remaining_amount: Decimal
    category: OpenMatchCategory
    matching: Optional[str]


# ---------------------------------------------------------------------------
# Matching groups
# ---------------------------------------------------------------------------


def matching_totals(rows: Sequence[InvoiceRow]) -> Dict[str, Decimal]:
    """Sum ``debit - credit`` per matching key."""

    totals: Dict[str, Decimal] = {}
    for row in rows:
        if row.matching:
            totals[row.matching] = totals.get(row.matching, ZERO) + row.net
    return totals


def residual_holders(rows: Sequence[InvoiceRow]) -> Dict[str, int]:
    """Map each matching key to the index of the row holding its residual.

    The holder is the row with the largest debit; a later row replaces the
    current holder only when its debit is strictly greater.
    """

    holders: Dict[str, int] = {}
    max_debits: Dict[str, Decimal] = {}
    for index, row in enumerate(rows):
        key = row.matching
        if not key:
            continue
        if key not in holders or row.debit > max_debits[key]:
            holders[key] = index
            max_debits[key] = row.debit
    return holders


def annotate_ledger(rows: Sequence[InvoiceRow]) -> List[LedgerEntry]:
    """Return one :class:`LedgerEntry` per row, in input order."""

    totals = matching_totals(rows)
    holders = residual_holders(rows)
    entries = []
    for index, row in enumerate(rows):
        residual = None
        is_holder = bool(row.matching) and holders.get(row.matching) == index
        if is_holder:
            total = totals.get(row.matching, ZERO)
            if abs(total) > EPSILON:
                residual = total
        entries.append(
            LedgerEntry(row=row, index=index, net=row.net, residual=residual, is_holder=is_holder)
        )
    return entries


def is_open(entry: LedgerEntry) -> bool:
    if not entry.matching:
        return abs(entry.net) > EPSILON
    return entry.residual is not None and abs(entry.residual) > EPSILON


def open_amount(entry: LedgerEntry) -> Decimal:
    """Amount still outstanding on ``entry``: its residual, else its net."""

    if entry.matching and entry.residual is not None:
        return entry.residual
    return entry.net


def net_only_view(entries: Iterable[LedgerEntry]) -> List[LedgerEntry]:
    """Keep unmatched rows and holders of a non-zero residual."""

    return [
        entry
        for entry in entries
        if not entry.matching or (entry.residual is not None and abs(entry.residual) > EPSILON)
    ]


def matchings_with_residual(entries: Iterable[LedgerEntry]) -> List[str]:
    keys = {entry.matching for entry in entries if entry.matching and entry.residual is not None}
    return sorted(keys)


# ---------------------------------------------------------------------------
# Aging
# ---------------------------------------------------------------------------


def reference_date(row: InvoiceRow) -> Optional[date]:
    return row.due_date or row.date


def days_overdue(row: InvoiceRow, today: date) -> int:
    """Days between ``today`` and the due date (or date); ``0`` when neither parses."""

    anchor = reference_date(row)
    if anchor is None:
        return 0
    return (today - anchor).days


def bucket_for_days(days: int) -> AgingBucket:
    if days <= 0:
        return AgingBucket.AT_DATE
    if days <= 30:
        return AgingBucket.DAYS_1_30
    if days <= 60:
        return AgingBucket.DAYS_31_60
    if days <= 90:
        return AgingBucket.DAYS_61_90
    if days <= 120:
        return AgingBucket.DAYS_91_120
    return AgingBucket.OLDER


def open_items(entries: Iterable[LedgerEntry], today: date) -> List[OpenItem]:
    """Return the open rows with their outstanding difference and age."""

    items = []
    for entry in entries:
        if not is_open(entry):
            continue
        difference = open_amount(entry)
        overdue = days_overdue(entry.row, today)
        items.append(
            OpenItem(
                entry=entry,
                difference=difference,
                adjusted_credit=entry.row.debit - difference,
                days_overdue=overdue,
                bucket=bucket_for_days(overdue),
            )
        )
    return items


def aging_summary(entries: Iterable[LedgerEntry], today: date) -> AgingSummary:
    """Accumulate open amounts per aging bucket."""

    buckets = _empty_buckets()
    total = ZERO
    for item in open_items(entries, today):
        buckets[item.bucket] += item.difference
        total += item.difference
    return AgingSummary(buckets=buckets, total=total)


def group_by_customer(rows: Iterable[InvoiceRow]) -> "OrderedDict[str, List[InvoiceRow]]":
    """Group rows per customer, keeping first-seen customer order."""

    groups: "OrderedDict[str, List[InvoiceRow]]" = OrderedDict()
    for row in rows:
        groups.setdefault(row.customer_name, []).append(row)
    return groups


def _allocation_sort_key(row: InvoiceRow) -> date:
    return reference_date(row) or date.min


def allocate_customer_aging(rows: Iterable[InvoiceRow], today: date) -> List[CustomerAging]:
    """Build the per-customer aging report by allocating each net balance.

    A customer's positive net is spread over their debit rows, newest due
    date first, each row absorbing at most its own debit. Customers whose net
    does not exceed the epsilon keep empty buckets and report the net as
    their total. Results are ordered by total, largest first.
    """

    report = []
    for customer, customer_rows in group_by_customer(rows).items():
        net = sum((row.net for row in customer_rows), ZERO)
        buckets = _empty_buckets()
        if net > EPSILON:
            remaining = net
            debits = sorted(
                (row for row in customer_rows if row.debit > 0),
                key=_allocation_sort_key,
                reverse=True,
            )
            for row in debits:
                if remaining <= 0:
                    break
                portion = min(row.debit, remaining)
                buckets[bucket_for_days(days_overdue(row, today))] += portion
                remaining -= portion
        report.append(CustomerAging(customer_name=customer, buckets=buckets, total=net))

    report.sort(key=lambda line: line.total, reverse=True)
    log.debug("Allocated aging for %d customers", len(report))
    return report


# ---------------------------------------------------------------------------
# Classification and analysis
# ---------------------------------------------------------------------------


def classify_invoice(number: str, credit: Decimal) -> InvoiceType:
    """Derive the transaction type from the document number prefix."""

    upper = (number or "").strip().upper()
    if upper.startswith("SAL"):
        return InvoiceType.SALE
    if upper.startswith("RSAL"):
        return InvoiceType.RETURN
    if upper.startswith("OB"):
        return InvoiceType.OPENING_BALANCE
    if upper.startswith("BIL") or upper.startswith("JV"):
        return InvoiceType.DISCOUNT
    if credit > EPSILON:
        return InvoiceType.PAYMENT
    return InvoiceType.OTHER


def _is_payment(row: InvoiceRow) -> bool:
    return classify_invoice(row.number, row.credit) == InvoiceType.PAYMENT


def customer_analysis(rows: Iterable[InvoiceRow], today: date) -> List[CustomerAnalysis]:
    """Summarise every customer's account, largest net debt first."""

    results = []
    for customer, customer_rows in group_by_customer(rows).items():
        total_debit = sum((row.debit for row in customer_rows), ZERO)
        total_credit = sum((row.credit for row in customer_rows), ZERO)
        net_sales = ZERO
        for row in customer_rows:
            kind = classify_invoice(row.number, row.credit)
            if kind == InvoiceType.SALE:
                net_sales += row.debit
            elif kind == InvoiceType.RETURN:
                net_sales -= row.credit

        payments = [row for row in customer_rows if _is_payment(row) and row.date is not None]
        last_payment = max(payments, key=lambda row: row.date, default=None)
        sales = [
            row
            for row in customer_rows
            if classify_invoice(row.number, row.credit) == InvoiceType.SALE and row.date is not None
        ]
        last_sale = max(sales, key=lambda row: row.date, default=None)

        entries = annotate_ledger(customer_rows)
        aging = aging_summary(entries, today)
        open_ob = sum(
            (
                open_amount(entry)
                for entry in entries
                if is_open(entry)
                and classify_invoice(entry.row.number, entry.row.credit) == InvoiceType.OPENING_BALANCE
            ),
            ZERO,
        )

        results.append(
            CustomerAnalysis(
                customer_name=customer,
                total_debit=total_debit,
                total_credit=total_credit,
                net_debt=total_debit - total_credit,
                net_sales=net_sales,
                transaction_count=len(customer_rows),
                has_open_matchings=any(
                    abs(total) > EPSILON for total in matching_totals(customer_rows).values()
                ),
                last_payment_date=last_payment.date if last_payment else None,
                last_payment_amount=last_payment.credit if last_payment else ZERO,
                last_payment_matching=last_payment.matching if last_payment else None,
                last_sale_date=last_sale.date if last_sale else None,
                last_sale_amount=last_sale.debit if last_sale else ZERO,
                overdue_amount=aging.overdue,
                open_opening_balance=open_ob,
                aging=aging,
            )
        )

    results.sort(key=lambda item: item.net_debt, reverse=True)
    return results


def _open_match_category(item: OpenItem) -> Optional[OpenMatchCategory]:
    row = item.entry.row
    upper = row.number.strip().upper()
    if upper.startswith("OB"):
        return OpenMatchCategory.OPENING_BALANCE
    if upper.startswith("SAL"):
        # Fully open sales invoices are not listed, only partially settled ones.
        if item.entry.matching and item.entry.residual is not None:
            return OpenMatchCategory.SALES
        return None
    if upper.startswith("RSAL"):
        return OpenMatchCategory.RETURN
    if upper.startswith("JV") or upper.startswith("BIL"):
        return OpenMatchCategory.DISCOUNT
    if item.adjusted_credit > EPSILON:
        return OpenMatchCategory.PAYMENT
    return None


def open_matches(rows: Iterable[InvoiceRow], today: date) -> List[OpenMatch]:
    """List categorised open items across all customers, newest first.

    Rows without a parseable date are skipped.
    """

    matches = []
    for customer, customer_rows in group_by_customer(rows).items():
        for item in open_items(annotate_ledger(customer_rows), today):
            row = item.entry.row
            if row.date is None:
                continue
            category = _open_match_category(item)
            if category is None or abs(item.difference) <= EPSILON:
                continue
            matches.append(
                OpenMatch(
                    customer_name=customer,
                    date=row.date,
                    number=row.number,
                    debit=row.debit,
                    credit=item.adjusted_credit,
                    remaining_amount=item.difference,
                    category=category,
                    matching=row.matching,
                )
            )
    matches.sort(key=lambda match: match.date, reverse=True)
    return matches


_NON_PAYMENT_PREFIXES = ("SAL", "RSAL", "BIL", "JV")


def monthly_debt(entries: Iterable[LedgerEntry]) -> List[MonthlyDebt]:
    """Net sales against payments per calendar month.

    Debit is sales minus returns; credit counts only payments, so credits on
    sales, returns and discount documents are left out. Years are listed
    newest first and months in calendar order within a year.
    """

    months: Dict[Tuple[int, int], List[Decimal]] = {}
    for entry in entries:
        row = entry.row
        if row.date is None:
            continue
        bucket = months.setdefault((row.date.year, row.date.month), [ZERO, ZERO])
        upper = row.number.strip().upper()
        if upper.startswith("SAL"):
            bucket[0] += row.debit
        elif upper.startswith("RSAL"):
            bucket[0] -= row.credit
        if row.credit > EPSILON and not upper.startswith(_NON_PAYMENT_PREFIXES):
            bucket[1] += row.credit

    ordered = sorted(months.items(), key=lambda item: (-item[0][0], item[0][1]))
    return [
        MonthlyDebt(year=year, month=month, debit=debit, credit=credit)
        for (year, month), (debit, credit) in ordered
    ]



# ---------------------------------------------------------------------------
# Accounts payable
# ---------------------------------------------------------------------------


def _in_period(transaction: SupplierTransaction, year: Optional[int], month: Optional[int]) -> bool:
    if year is None and month is None:
        return True
    if transaction.date is None:
        return False
    if year is not None:
        # Two-digit years match the last two digits of the invoice year.
        candidate = transaction.date.year % 100 if year < 100 else transaction.date.year
        if candidate != year:
            return False
    return month is None or transaction.date.month == month


def supplier_summaries(
    rows: Iterable[SupplierTransaction],
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> List[SupplierSummary]:
    """Total purchases and refunds per supplier, largest net balance first.

    ``year`` and ``month`` restrict the transactions before aggregation;
    undated rows drop out as soon as either filter is given. Suppliers with
    equal net balances keep their first-seen order.
    """

    if month is not None and not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")

    grouped: "OrderedDict[str, List[SupplierTransaction]]" = OrderedDict()
    for row in rows:
        if _in_period(row, year, month):
            grouped.setdefault(row.supplier_name, []).append(row)

    summaries = []
    for name, transactions in grouped.items():
        purchase = sum((tx.amount for tx in transactions if tx.kind is SupplierTransactionType.PURCHASE), ZERO)
        refund = sum((tx.amount for tx in transactions if tx.kind is SupplierTransactionType.REFUND), ZERO)
        summaries.append(
            SupplierSummary(
                supplier_name=name,
                total_purchase=purchase,
                total_refund=refund,
                net_amount=purchase - refund,
                transactions=tuple(transactions),
            )
        )
    summaries.sort(key=lambda summary: summary.net_amount, reverse=True)
    return summaries


__all__ = [
    "LedgerEntry",
    "OpenItem",
    "AgingSummary",
    "CustomerAging",
    "CustomerAnalysis",
    "MonthlyDebt",
    "OpenMatch",
    "SupplierSummary",
    "matching_totals",
    "residual_holders",
    "annotate_ledger",
    "is_open",
    "open_amount",
    "net_only_view",
    "matchings_with_residual",
    "days_overdue",
    "bucket_for_days",
    "open_items",
    "aging_summary",
    "allocate_customer_aging",
    "classify_invoice",
    "customer_analysis",
    "open_matches",
    "monthly_debt",
    "supplier_summaries",
]
