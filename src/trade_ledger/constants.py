"""Enumerations and schema constants shared across Trade Ledger modules.

Centralises domain constants so that the gateway, the row parsers, the
reconciliation engine, and the front-ends rely on a single source of truth
for tab names, positional column layouts, and classification labels.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Mapping, Sequence


# Central schema version expected by all layers when validating spreadsheets.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Balances whose magnitude does not exceed this value count as settled.
EPSILON = Decimal("0.01")


class SheetName(str, Enum):
    """Enumerate the spreadsheet tabs managed by the data layer."""

    INVOICES = "Invoices"
    NOTES = "Notes"
    EMAILS = "EMAILS"
    CLOSED = "CLOSED"
    SEMI_CLOSED = "SEMI-CLOSED"
    DISCOUNTS = "DISCOUNTS"
    USERS = "Users"
    INVENTORY = "Inventory"
    PURCHASE_ORDERS = "Inventory - Orders - Make"
    EMPLOYEE_OVERTIME = "Employee Overtime"
    PETTY_CASH = "Petty Cash"
    CASH_RECEIPT = "Cash Receipt"
    SUPPLIER_PURCHASES = "S-Invoices - Purchase"
    SUPPLIER_REFUNDS = "S-Invoices - Refund"
    SUPPLIERS_MATCHING = "SUPPLIERS MATCHING"


class InvoiceType(str, Enum):
    """Classification of a ledger row derived from its document number."""

    SALE = "Sale"
    RETURN = "Return"
    OPENING_BALANCE = "Opening Balance"
    DISCOUNT = "Discount"
    PAYMENT = "Payment"
    OTHER = "Invoice/Txn"


class AgingBucket(str, Enum):
    """Day ranges used to classify overdue balances."""

    AT_DATE = "AT DATE"
    DAYS_1_30 = "1 - 30"
    DAYS_31_60 = "31 - 60"
    DAYS_61_90 = "61 - 90"
    DAYS_91_120 = "91 - 120"
    OLDER = "OLDER"


class OpenMatchCategory(str, Enum):
    """Kind of open item shown in the cross-customer open matches list."""

    PAYMENT = "Payment"
    DISCOUNT = "Discount"
    RETURN = "Return"
    SALES = "Sales"
    OPENING_BALANCE = "OB"


class PettyCashType(str, Enum):
    """Direction of a petty cash movement."""

    RECEIPT = "Receipt"
    EXPENSE = "Expense"


class SupplierTransactionType(str, Enum):
    PURCHASE = "Purchase"
    REFUND = "Refund"


# Positional layout of every tab. Column order is the storage contract.
SHEET_COLUMNS: Mapping[SheetName, Sequence[str]] = {
    SheetName.INVOICES: (
        "DATE",
        "DUE DATE",
        "NUMBER",
        "CUSTOMER NAME",
        "SALESREP",
        "DEBIT",
        "CREDIT",
        "MATCHING",
    ),
    SheetName.NOTES: ("USER", "CUSTOMER NAME", "NOTES", "TIMING", "SOLVED"),
    SheetName.EMAILS: ("CUSTOMER ID", "CUSTOMER NAME", "EMAIL"),
    SheetName.CLOSED: ("CUSTOMER ID", "CUSTOMER NAME"),
    SheetName.SEMI_CLOSED: ("CUSTOMER ID", "CUSTOMER NAME"),
    SheetName.DISCOUNTS: ("CUSTOMER ID", "CUSTOMER NAME", "RECONCILIATION"),
    SheetName.USERS: ("NAME", "ROLE", "PASSWORD"),
    SheetName.INVENTORY: (
        "BARCODE",
        "ITEM CODE",
        "PRODUCT NAME",
        "TAGS",
        "TYPE",
        "QTY IN BOX",
        "WEIGHT",
        "SIZE",
    ),
    SheetName.PURCHASE_ORDERS: (
        "PONO",
        "PRODUCT ID",
        "BARCODE",
        "PRODUCT NAME",
        "QTY ORDER",
        "STATUS",
    ),
    SheetName.EMPLOYEE_OVERTIME: (
        "DATE",
        "ID",
        "NAME (AR)",
        "NAME (EN)",
        "PARTICULARS",
        "SD-AMPM",
        "SD-FROM",
        "ED-AMPM",
        "ED-TIME",
        "OVS-AMPM",
        "OVS-TIME",
        "OVE-AMPM",
        "OVE-TIME",
    ),
    SheetName.PETTY_CASH: ("DATE", "TYPE", "AMOUNT", "NAME", "DESCRIPTION", "PAID?"),
    SheetName.CASH_RECEIPT: (
        "DATE",
        "RECEIPT NUMBER",
        "RECEIVED FROM",
        "SEND BY",
        "AMOUNT",
        "AMOUNT IN WORDS",
        "PAYMENT REASON",
    ),
    SheetName.SUPPLIER_PURCHASES: ("DATE", "NUMBER", "SUPPLIER NAME", "AMOUNT"),
    SheetName.SUPPLIER_REFUNDS: ("DATE", "NUMBER", "SUPPLIER NAME", "AMOUNT"),
    SheetName.SUPPLIERS_MATCHING: ("SUPPLIER ID", "SUPPLIER NAME", "MATCHING"),
}

DEFAULT_RECEIPT_NUMBER = "CAH-000"
DEFAULT_STANDARD_SHIFT_HOURS = 9


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "EPSILON",
    "SheetName",
    "InvoiceType",
    "AgingBucket",
    "OpenMatchCategory",
    "PettyCashType",
    "SupplierTransactionType",
    "SHEET_COLUMNS",
    "DEFAULT_RECEIPT_NUMBER",
    "DEFAULT_STANDARD_SHIFT_HOURS",
]
