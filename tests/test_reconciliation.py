"""Unit tests for the reconciliation engine."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

import pytest

from trade_ledger import reconciliation
from trade_ledger.constants import AgingBucket, InvoiceType, OpenMatchCategory, SupplierTransactionType
from trade_ledger.data_manager import InvoiceRow, SupplierTransaction

TODAY = date(2025, 3, 1)


def _row(
    number: str = "SAL-1",
    *,
    debit: str = "0",
    credit: str = "0",
    matching: Optional[str] = None,
    customer: str = "ACME",
    on: Optional[date] = date(2025, 1, 1),
    due: Optional[date] = None,
) -> InvoiceRow:
    return InvoiceRow(
        date=on,
        due_date=due,
        number=number,
        customer_name=customer,
        sales_rep="",
        debit=Decimal(debit),
        credit=Decimal(credit),
        matching=matching,
    )


# ---------------------------------------------------------------------------
# Matching groups
# ---------------------------------------------------------------------------


def test_open_amount_prefers_residual_over_row_net():
    sale, payment, loose = reconciliation.annotate_ledger(
        [
            _row("SAL-1", debit="100", matching="M1"),
            _row("PAY-1", credit="40", matching="M1"),
            _row("SAL-2", debit="25"),
        ]
    )
    assert reconciliation.open_amount(sale) == Decimal("60")
    assert reconciliation.open_amount(payment) == Decimal("-40")
    assert reconciliation.open_amount(loose) == Decimal("25")
    assert [reconciliation.is_open(entry) for entry in (sale, payment, loose)] == [True, False, True]


def test_residual_lands_on_largest_debit_row():
    """A 100 debit and a 40 credit leave 60 on the debit row."""

    entries = reconciliation.annotate_ledger(
        [_row("SAL-1", debit="100", matching="A"), _row("PAY-1", credit="40", matching="A")]
    )
    assert entries[0].is_holder
    assert entries[0].residual == Decimal("60")
    assert entries[1].residual is None
    assert not entries[1].is_holder


def test_residual_equals_group_net():
    rows = [
        _row("SAL-1", debit="120.50", matching="G"),
        _row("SAL-2", debit="80", matching="G"),
        _row("PAY-1", credit="150", matching="G"),
        _row("RSAL-1", credit="10.25", matching="G"),
    ]
    entries = reconciliation.annotate_ledger(rows)
    holder = next(entry for entry in entries if entry.is_holder)
    expected = sum(row.debit for row in rows) - sum(row.credit for row in rows)
    assert holder.residual == expected == Decimal("40.25")
    assert holder.row.number == "SAL-1"


def test_holder_ties_keep_first_row():
    rows = [
        _row("SAL-1", debit="50", matching="T"),
        _row("SAL-2", debit="50", matching="T"),
        _row("PAY-1", credit="20", matching="T"),
    ]
    assert reconciliation.residual_holders(rows) == {"T": 0}


def test_holder_defaults_to_first_row_when_group_has_no_debit():
    rows = [_row("PAY-1", credit="20", matching="C"), _row("PAY-2", credit="30", matching="C")]
    entries = reconciliation.annotate_ledger(rows)
    assert entries[0].is_holder
    assert entries[0].residual == Decimal("-50")


def test_settled_group_has_no_residual():
    entries = reconciliation.annotate_ledger(
        [_row("SAL-1", debit="100", matching="S"), _row("PAY-1", credit="99.995", matching="S")]
    )
    assert entries[0].is_holder
    assert entries[0].residual is None
    assert not reconciliation.is_open(entries[0])


def test_matching_totals_ignores_unmatched_rows():
    rows = [_row(debit="10", matching="A"), _row(debit="5"), _row(credit="3", matching="A")]
    assert reconciliation.matching_totals(rows) == {"A": Decimal("7")}


def test_net_only_view_keeps_unmatched_and_open_holders():
    rows = [
        _row("SAL-1", debit="100", matching="A"),
        _row("PAY-1", credit="40", matching="A"),
        _row("SAL-2", debit="30", matching="B"),
        _row("PAY-2", credit="30", matching="B"),
        _row("SAL-3", debit="15"),
        _row("SAL-4", debit="0"),
    ]
    view = reconciliation.net_only_view(reconciliation.annotate_ledger(rows))
    assert [entry.row.number for entry in view] == ["SAL-1", "SAL-3", "SAL-4"]
    assert reconciliation.matchings_with_residual(reconciliation.annotate_ledger(rows)) == ["A"]


# ---------------------------------------------------------------------------
# Aging
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("days", "bucket"),
    [
        (-5, AgingBucket.AT_DATE),
        (0, AgingBucket.AT_DATE),
        (1, AgingBucket.DAYS_1_30),
        (30, AgingBucket.DAYS_1_30),
        (31, AgingBucket.DAYS_31_60),
        (60, AgingBucket.DAYS_31_60),
        (61, AgingBucket.DAYS_61_90),
        (90, AgingBucket.DAYS_61_90),
        (91, AgingBucket.DAYS_91_120),
        (120, AgingBucket.DAYS_91_120),
        (121, AgingBucket.OLDER),
    ],
)
def test_bucket_bounds_are_inclusive(days, bucket):
    assert reconciliation.bucket_for_days(days) == bucket


def test_days_overdue_prefers_due_date_then_date():
    assert reconciliation.days_overdue(_row(on=date(2025, 1, 1), due=date(2025, 2, 1)), TODAY) == 28
    assert reconciliation.days_overdue(_row(on=date(2025, 2, 1)), TODAY) == 28
    assert reconciliation.days_overdue(_row(on=None), TODAY) == 0


def test_open_items_skip_zero_net_unmatched_rows():
    rows = [_row("SAL-1", debit="25", credit="25"), _row("SAL-2", debit="10", on=TODAY)]
    items = reconciliation.open_items(reconciliation.annotate_ledger(rows), TODAY)
    assert [item.entry.row.number for item in items] == ["SAL-2"]
    assert items[0].bucket == AgingBucket.AT_DATE


def test_open_item_difference_and_adjusted_credit():
    rows = [
        _row("SAL-1", debit="100", matching="A", due=TODAY - timedelta(days=45)),
        _row("PAY-1", credit="40", matching="A"),
    ]
    (item,) = reconciliation.open_items(reconciliation.annotate_ledger(rows), TODAY)
    assert item.difference == Decimal("60")
    assert item.adjusted_credit == Decimal("40")
    assert item.days_overdue == 45
    assert item.bucket == AgingBucket.DAYS_31_60


def test_aging_summary_totals_and_overdue():
    rows = [
        _row("SAL-1", debit="100", due=TODAY - timedelta(days=10)),
        _row("SAL-2", debit="50", due=TODAY + timedelta(days=5)),
        _row("PAY-1", credit="30", on=TODAY - timedelta(days=200)),
    ]
    summary = reconciliation.aging_summary(reconciliation.annotate_ledger(rows), TODAY)
    assert summary.buckets[AgingBucket.DAYS_1_30] == Decimal("100")
    assert summary.buckets[AgingBucket.AT_DATE] == Decimal("50")
    assert summary.buckets[AgingBucket.OLDER] == Decimal("-30")
    assert summary.total == Decimal("120")
    assert summary.overdue == Decimal("70")


def test_allocate_customer_aging_newest_first_and_sorted_by_total():
    rows = [
        _row("SAL-1", debit="100", due=TODAY - timedelta(days=100)),
        _row("SAL-2", debit="50", due=TODAY - timedelta(days=10)),
        _row("PAY-1", credit="70", on=TODAY - timedelta(days=5)),
        _row("SAL-9", debit="500", customer="BIG", due=TODAY),
        _row("SAL-7", debit="20", customer="SETTLED"),
        _row("PAY-7", credit="20", customer="SETTLED"),
    ]
    report = reconciliation.allocate_customer_aging(rows, TODAY)

    assert [line.customer_name for line in report] == ["BIG", "ACME", "SETTLED"]
    acme = report[1]
    assert acme.total == Decimal("80")
    assert acme.buckets[AgingBucket.DAYS_1_30] == Decimal("50")
    assert acme.buckets[AgingBucket.DAYS_91_120] == Decimal("30")
    assert sum(report[2].buckets.values()) == Decimal("0")


def test_allocate_customer_aging_keeps_negative_net_as_total():
    rows = [_row("SAL-1", debit="10"), _row("PAY-1", credit="25")]
    (line,) = reconciliation.allocate_customer_aging(rows, TODAY)
    assert line.total == Decimal("-15")
    assert all(value == 0 for value in line.buckets.values())


# ---------------------------------------------------------------------------
# Classification and analysis
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("number", "credit", "expected"),
    [
        ("SAL-1", "0", InvoiceType.SALE),
        ("rsal-1", "5", InvoiceType.RETURN),
        ("OB-2024", "0", InvoiceType.OPENING_BALANCE),
        ("JV-3", "5", InvoiceType.DISCOUNT),
        ("BIL-3", "5", InvoiceType.DISCOUNT),
        ("CHQ-88", "5", InvoiceType.PAYMENT),
        ("MISC", "0", InvoiceType.OTHER),
    ],
)
def test_classify_invoice(number, credit, expected):
    assert reconciliation.classify_invoice(number, Decimal(credit)) == expected


def test_customer_analysis_summary_fields():
    rows = [
        _row("OB-1", debit="20", on=date(2024, 1, 1)),
        _row("SAL-1", debit="100", matching="A", on=date(2025, 1, 10)),
        _row("CHQ-1", credit="40", matching="A", on=date(2025, 1, 20)),
        _row("SAL-2", debit="50", on=date(2025, 2, 1)),
        _row("RSAL-1", credit="10", on=date(2025, 2, 5)),
        _row("SAL-5", debit="5", customer="SMALL"),
    ]
    results = reconciliation.customer_analysis(rows, TODAY)
    assert [result.customer_name for result in results] == ["ACME", "SMALL"]

    acme = results[0]
    assert acme.total_debit == Decimal("170")
    assert acme.total_credit == Decimal("50")
    assert acme.net_debt == Decimal("120")
    assert acme.net_sales == Decimal("140")
    assert acme.transaction_count == 5
    assert acme.has_open_matchings
    assert acme.last_payment_date == date(2025, 1, 20)
    assert acme.last_payment_amount == Decimal("40")
    assert acme.last_payment_matching == "A"
    assert acme.last_sale_date == date(2025, 2, 1)
    assert acme.last_sale_amount == Decimal("50")
    assert acme.open_opening_balance == Decimal("20")
    assert acme.aging.total == Decimal("120")


def test_open_matches_categories_and_order():
    rows = [
        _row("OB-1", debit="20", on=date(2024, 6, 1)),
        _row("SAL-1", debit="100", matching="A", on=date(2025, 1, 10)),
        _row("CHQ-1", credit="40", matching="A", on=date(2025, 1, 20)),
        _row("SAL-2", debit="50", on=date(2025, 2, 1)),
        _row("RSAL-1", credit="10", on=date(2025, 2, 5)),
        _row("JV-1", credit="5", on=date(2025, 2, 6)),
        _row("CHQ-2", credit="15", customer="BETA", on=date(2025, 2, 10)),
        _row("CHQ-3", credit="9", on=None),
    ]
    matches = reconciliation.open_matches(rows, TODAY)

    summary = [(match.number, match.category) for match in matches]
    assert summary == [
        ("CHQ-2", OpenMatchCategory.PAYMENT),
        ("JV-1", OpenMatchCategory.DISCOUNT),
        ("RSAL-1", OpenMatchCategory.RETURN),
        ("SAL-1", OpenMatchCategory.SALES),
        ("OB-1", OpenMatchCategory.OPENING_BALANCE),
    ]
    sale = next(match for match in matches if match.number == "SAL-1")
    assert sale.remaining_amount == Decimal("60")
    assert sale.credit == Decimal("40")
    payment = matches[0]
    assert payment.remaining_amount == Decimal("-15")
    assert payment.credit == Decimal("15")


def test_monthly_debt_orders_years_desc_months_asc():
    rows = [
        _row("SAL-1", debit="100", on=date(2024, 11, 3)),
        _row("SAL-2", debit="40", on=date(2025, 2, 1)),
        _row("RSAL-1", credit="10", on=date(2025, 2, 9)),
        _row("CHQ-1", credit="25", on=date(2025, 2, 20)),
        _row("JV-1", credit="3", on=date(2025, 2, 21)),
        _row("SAL-3", debit="70", on=date(2025, 1, 5)),
        _row("SAL-4", debit="1", on=None),
    ]
    months = reconciliation.monthly_debt(reconciliation.annotate_ledger(rows))

    assert [(month.year, month.month) for month in months] == [(2025, 1), (2025, 2), (2024, 11)]
    february = months[1]
    assert february.debit == Decimal("30")
    assert february.credit == Decimal("25")
    assert february.net == Decimal("5")


# ---------------------------------------------------------------------------
# Accounts payable
# ---------------------------------------------------------------------------


def _supplier_tx(
    supplier: str,
    amount: str,
    *,
    kind: SupplierTransactionType = SupplierTransactionType.PURCHASE,
    on: Optional[date] = date(2025, 1, 5),
) -> SupplierTransaction:
    return SupplierTransaction(date=on, number="", supplier_name=supplier, amount=Decimal(amount), kind=kind)


SUPPLIER_ROWS = [
    _supplier_tx("Tea Co", "1000"),
    _supplier_tx("Tea Co", "500", on=date(2025, 2, 10)),
    _supplier_tx("Cup Ltd", "300", on=date(2024, 12, 20)),
    _supplier_tx("Cup Ltd", "50", on=None),
    _supplier_tx("Tea Co", "200", kind=SupplierTransactionType.REFUND, on=date(2025, 1, 20)),
    _supplier_tx("Box Inc", "40", kind=SupplierTransactionType.REFUND, on=date(2025, 2, 11)),
]


def test_supplier_summaries_net_purchases_against_refunds():
    summaries = reconciliation.supplier_summaries(SUPPLIER_ROWS)

    assert [(s.supplier_name, s.total_purchase, s.total_refund, s.net_amount) for s in summaries] == [
        ("Tea Co", Decimal("1500"), Decimal("200"), Decimal("1300")),
        ("Cup Ltd", Decimal("350"), Decimal("0"), Decimal("350")),
        ("Box Inc", Decimal("0"), Decimal("40"), Decimal("-40")),
    ]
    assert len(summaries[0].transactions) == 3


@pytest.mark.parametrize(("year", "month"), [(2025, None), (25, None)])
def test_supplier_summaries_filter_by_year_drops_undated(year, month):
    summaries = reconciliation.supplier_summaries(SUPPLIER_ROWS, year=year, month=month)
    assert [(s.supplier_name, s.net_amount) for s in summaries] == [
        ("Tea Co", Decimal("1300")),
        ("Box Inc", Decimal("-40")),
    ]


def test_supplier_summaries_filter_by_month():
    (january,) = reconciliation.supplier_summaries(SUPPLIER_ROWS, year=2025, month=1)
    assert (january.total_purchase, january.total_refund) == (Decimal("1000"), Decimal("200"))

    february = reconciliation.supplier_summaries(SUPPLIER_ROWS, month=2)
    assert [s.supplier_name for s in february] == ["Tea Co", "Box Inc"]


def test_supplier_summaries_keep_first_seen_order_on_ties():
    rows = [_supplier_tx("Zed", "10"), _supplier_tx("Amy", "10")]
    assert [s.supplier_name for s in reconciliation.supplier_summaries(rows)] == ["Zed", "Amy"]


def test_supplier_summaries_reject_out_of_range_month():
    with pytest.raises(ValueError):
        reconciliation.supplier_summaries(SUPPLIER_ROWS, month=13)
