"""JSON HTTP handlers for Trade Ledger.

A thin Flask layer over :mod:`trade_ledger.core_logic`: one resource per
entity, every response wrapped as ``{"ok": true, ...}`` or
``{"ok": false, "error": "..."}``. The signed-in user lives in the Flask
session cookie and is re-attached to the runtime context on every request.
"""

from __future__ import annotations

import dataclasses
import os
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from flask import Flask, g, jsonify, request, session

from . import core_logic, log
from .constants import PettyCashType
from .data_manager import CashReceiptRow, InventoryItem, PettyCashRecord, PurchaseOrderLine, parse_amount
from .gateway import GatewayError
from .tokens import MonthKey, MonthTokenError

SECRET_KEY_ENV = "TRADE_LEDGER_SECRET_KEY"


def to_json(value: Any) -> Any:
    """Convert handler results into JSON-friendly structures.

    Decimals become strings so amounts keep their exact value.
    """
    if isinstance(value, MonthKey):
        return value.key
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {item.name: to_json(getattr(value, item.name)) for item in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {to_json(key): to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json(item) for item in value]
    return value


def _ok(**payload: Any):
    return jsonify({"ok": True, **{key: to_json(value) for key, value in payload.items()}})


def _error(message: str, status: int):
    return jsonify({"ok": False, "error": message}), status


def _payload() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _required(payload: Mapping[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise core_logic.BusinessRuleViolation(f"Missing required field: {key}")
    return value


def _flag(name: str) -> bool:
    return request.args.get(name, "").strip().lower() in ("1", "true", "yes")


def _int_arg(name: str) -> Optional[int]:
    raw = request.args.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise core_logic.BusinessRuleViolation(f"{name} must be a whole number: {raw!r}") from exc


def _petty_cash_from(payload: Mapping[str, Any]) -> PettyCashRecord:
    kind = str(payload.get("type", "")).strip()
    return PettyCashRecord(
        date=str(_required(payload, "date")).strip(),
        entry_type=PettyCashType.EXPENSE if kind == PettyCashType.EXPENSE.value else PettyCashType.RECEIPT,
        amount=parse_amount(_required(payload, "amount")),
        name=str(_required(payload, "name")).strip(),
        description=str(payload.get("description", "")).strip(),
        paid=str(payload.get("paid", "")).strip(),
    )


def _overtime_from(payload: Mapping[str, Any]) -> core_logic.OvertimeCommand:
    hours = payload.get("shift_hours")
    return core_logic.OvertimeCommand(
        date=str(_required(payload, "date")),
        employee_name=str(_required(payload, "employee_name")),
        description=str(payload.get("description", "")),
        shift_start=str(_required(payload, "shift_start")),
        shift_end=str(_required(payload, "shift_end")),
        shift_hours=parse_amount(hours) if hours not in (None, "") else None,
    )


def create_app(
    context_factory: Callable[[], core_logic.RuntimeContext],
    *,
    secret_key: Optional[str] = None,
) -> Flask:
    """Build the Flask application.

    Args:
        context_factory: Returns the runtime context to serve; called once
            per request, so it may hand out a shared context.
        secret_key: Session signing key, defaulting to
            ``TRADE_LEDGER_SECRET_KEY`` from the environment.
    """
    app = Flask(__name__)
    app.secret_key = secret_key or os.environ.get(SECRET_KEY_ENV) or os.urandom(24).hex()

    def context() -> core_logic.RuntimeContext:
        if "ledger_context" not in g:
            ctx = context_factory()
            user = session.get("user")
            if user:
                ctx = dataclasses.replace(ctx, session=core_logic.Session(user=user, role=session.get("role", "")))
            g.ledger_context = ctx
        return g.ledger_context

    # Errors

    @app.errorhandler(GatewayError)
    def handle_gateway_error(error: GatewayError):
        log.error("Spreadsheet error while serving %s: %s", request.path, error)
        return _error(str(error), 502)

    @app.errorhandler(core_logic.AuthenticationError)
    def handle_auth_error(error: core_logic.AuthenticationError):
        return _error(str(error), 401)

    @app.errorhandler(core_logic.MissingReferenceError)
    def handle_missing(error: core_logic.MissingReferenceError):
        return _error(str(error), 404)

    @app.errorhandler(core_logic.BusinessRuleViolation)
    def handle_rule(error: core_logic.BusinessRuleViolation):
        return _error(str(error), 400)

    @app.errorhandler(MonthTokenError)
    def handle_month(error: MonthTokenError):
        return _error(str(error), 400)

    # Session

    @app.route("/api/login", methods=["POST"])
    def api_login():
        payload = _payload()
        ctx = core_logic.authenticate(
            context(), str(_required(payload, "name")), str(payload.get("password", ""))
        )
        session["user"] = ctx.session.user
        session["role"] = ctx.session.role
        return _ok(user=ctx.session.user, role=ctx.session.role)

    @app.route("/api/logout", methods=["POST"])
    def api_logout():
        session.clear()
        return _ok()

    # Ledger

    @app.route("/api/customers")
    def api_customers():
        listings = core_logic.list_customers(context(), include_closed=_flag("include_closed"))
        return _ok(customers=listings)

    @app.route("/api/customers/<path:name>/ledger")
    def api_customer_ledger(name: str):
        net_only = _flag("net_only")
        entries = core_logic.customer_ledger(context(), name, net_only=net_only)
        return _ok(customer=name, net_only=net_only, entries=entries)

    @app.route("/api/customers/<path:name>/aging")
    def api_customer_aging(name: str):
        return _ok(customer=name, aging=core_logic.customer_aging(context(), name))

    @app.route("/api/customers/<path:name>/open-items")
    def api_customer_open_items(name: str):
        return _ok(customer=name, items=core_logic.customer_open_items(context(), name))

    @app.route("/api/customers/<path:name>/monthly")
    def api_customer_monthly(name: str):
        return _ok(customer=name, months=core_logic.customer_monthly_debt(context(), name))

    @app.route("/api/customers/<path:name>/email")
    def api_customer_email(name: str):
        ctx = context()
        targets = core_logic.resolve_customer_email_targets(ctx, name)
        return _ok(
            email=core_logic.get_customer_email(ctx, name),
            customers=targets.customers,
            emails=targets.emails,
        )

    @app.route("/api/aging")
    def api_aging():
        return _ok(report=core_logic.aging_report(context(), include_closed=_flag("include_closed")))

    @app.route("/api/open-matches")
    def api_open_matches():
        return _ok(items=core_logic.open_matches_report(context()))

    @app.route("/api/closed-customers")
    def api_closed_customers():
        ctx = context()
        return _ok(
            closed=sorted(core_logic.get_closed_customers(ctx)),
            semi_closed=sorted(core_logic.get_semi_closed_customers(ctx)),
        )

    # Notes

    @app.route("/api/notes", methods=["GET"])
    def api_notes():
        return _ok(notes=core_logic.list_notes(context(), request.args.get("customer") or None))

    @app.route("/api/notes", methods=["POST"])
    def api_add_note():
        payload = _payload()
        note = core_logic.add_note(
            context(),
            str(_required(payload, "customer_name")),
            str(_required(payload, "content")),
            is_solved=bool(payload.get("is_solved", False)),
        )
        return _ok(note=note)

    @app.route("/api/notes/<int:row_index>", methods=["PUT"])
    def api_update_note(row_index: int):
        payload = _payload()
        solved = payload.get("is_solved")
        core_logic.update_note(
            context(),
            row_index,
            str(_required(payload, "content")),
            is_solved=None if solved is None else bool(solved),
        )
        return _ok()

    @app.route("/api/notes/<int:row_index>", methods=["DELETE"])
    def api_delete_note(row_index: int):
        core_logic.delete_note(context(), row_index)
        return _ok()

    # Discount reconciliation

    @app.route("/api/discounts")
    def api_discounts():
        return _ok(entries=core_logic.list_discount_entries(context()))

    @app.route("/api/discounts/reconcile", methods=["POST", "DELETE"])
    def api_reconcile():
        payload = _payload()
        handler = (
            core_logic.unmark_reconciliation_month
            if request.method == "DELETE"
            else core_logic.mark_reconciliation_month
        )
        months = handler(context(), str(_required(payload, "customer_name")), str(_required(payload, "month")))
        return _ok(reconciliation_months=months)

    # Accounts payable

    @app.route("/api/suppliers")
    def api_suppliers():
        summaries = core_logic.supplier_report(context(), year=_int_arg("year"), month=_int_arg("month"))
        return _ok(suppliers=summaries)

    @app.route("/api/suppliers/matching", methods=["GET"])
    def api_supplier_matching():
        return _ok(entries=core_logic.list_supplier_matching(context()))

    @app.route("/api/suppliers/matching", methods=["POST", "DELETE"])
    def api_mark_supplier_month():
        payload = _payload()
        handler = (
            core_logic.unmark_supplier_month if request.method == "DELETE" else core_logic.mark_supplier_month
        )
        months = handler(context(), str(_required(payload, "supplier_name")), str(_required(payload, "month")))
        return _ok(matched_months=months)

    # Inventory

    @app.route("/api/inventory")
    def api_inventory():
        return _ok(items=core_logic.list_inventory(context()))

    @app.route("/api/inventory/<int:row_index>", methods=["PUT"])
    def api_update_inventory(row_index: int):
        payload = _payload()
        item = InventoryItem(
            barcode=str(payload.get("barcode", "")),
            item_code=str(payload.get("item_code", "")),
            product_name=str(_required(payload, "product_name")),
            tags=str(payload.get("tags", "")),
            item_type=str(payload.get("item_type", "")),
            qty_in_box=str(payload.get("qty_in_box", "")),
            weight=str(payload.get("weight", "")),
            size=str(payload.get("size", "")),
        )
        core_logic.update_inventory_item(context(), row_index, item)
        return _ok()

    @app.route("/api/inventory/next-po")
    def api_next_po():
        return _ok(po_number=core_logic.next_po_number(context()))

    @app.route("/api/inventory/orders", methods=["POST"])
    def api_save_order():
        items = _payload().get("items") or []
        if not isinstance(items, list) or not all(isinstance(item, Mapping) for item in items):
            raise core_logic.BusinessRuleViolation("Order items must be a list of objects")
        lines = [
            PurchaseOrderLine(
                po_number=str(_required(item, "po_number")).strip(),
                product_id=str(item.get("product_id", "")),
                barcode=str(item.get("barcode", "")),
                product_name=str(item.get("product_name", "")),
                qty_order=int(parse_amount(item.get("qty_order"))),
                status=str(item.get("status") or "Pending"),
            )
            for item in items
        ]
        core_logic.save_purchase_order(context(), lines)
        return _ok(saved=len(lines))

    @app.route("/api/inventory/orders/<po_number>")
    def api_get_order(po_number: str):
        return _ok(po_number=po_number, items=core_logic.get_purchase_order(context(), po_number))

    # Payroll

    @app.route("/api/overtime", methods=["GET"])
    def api_overtime():
        return _ok(records=core_logic.list_overtime(context()))

    @app.route("/api/overtime", methods=["POST"])
    def api_add_overtime():
        return _ok(record=core_logic.record_overtime(context(), _overtime_from(_payload())))

    @app.route("/api/overtime/<int:row_index>", methods=["PUT"])
    def api_update_overtime(row_index: int):
        return _ok(record=core_logic.update_overtime(context(), row_index, _overtime_from(_payload())))

    @app.route("/api/overtime/<int:row_index>", methods=["DELETE"])
    def api_delete_overtime(row_index: int):
        core_logic.delete_overtime(context(), row_index)
        return _ok()

    # Petty cash

    @app.route("/api/petty-cash", methods=["GET"])
    def api_petty_cash():
        records = core_logic.list_petty_cash(context())
        return _ok(records=records, balance=core_logic.petty_cash_balance(records))

    @app.route("/api/petty-cash", methods=["POST"])
    def api_add_petty_cash():
        row_index = core_logic.record_petty_cash(context(), _petty_cash_from(_payload()))
        return _ok(row_index=row_index)

    @app.route("/api/petty-cash/<int:row_index>", methods=["PUT"])
    def api_update_petty_cash(row_index: int):
        core_logic.update_petty_cash(context(), row_index, _petty_cash_from(_payload()))
        return _ok()

    @app.route("/api/petty-cash/<int:row_index>", methods=["DELETE"])
    def api_delete_petty_cash(row_index: int):
        core_logic.delete_petty_cash(context(), row_index)
        return _ok()

    # Cash receipts

    @app.route("/api/cash-receipts", methods=["GET"])
    def api_cash_receipts():
        return _ok(receipts=core_logic.list_cash_receipts(context()))

    @app.route("/api/cash-receipts/last-number")
    def api_last_receipt():
        last = core_logic.last_receipt_number(context())
        return _ok(last=last, next=core_logic.next_receipt_number(last))

    @app.route("/api/cash-receipts", methods=["POST"])
    def api_add_cash_receipt():
        payload = _payload()
        receipt = CashReceiptRow(
            date=str(_required(payload, "date")),
            receipt_number=str(payload.get("receipt_number", "")).strip(),
            received_from=str(_required(payload, "received_from")),
            send_by=str(payload.get("send_by", "")),
            amount=parse_amount(_required(payload, "amount")),
            amount_in_words=str(payload.get("amount_in_words", "")),
            reason=str(payload.get("reason", "")),
        )
        return _ok(receipt=core_logic.record_cash_receipt(context(), receipt))

    return app


def create_app_from_config(config_path: Optional[str] = None) -> Flask:
    """Load ``config.ini`` once and serve the resulting context."""
    context = core_logic.load_runtime_context(Path(config_path) if config_path else None)
    core_logic.ensure_schema_version(context)
    return create_app(lambda: context)


__all__ = ["create_app", "create_app_from_config", "to_json"]
