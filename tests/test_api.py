"""Tests for the JSON HTTP layer."""

from __future__ import annotations

import dataclasses
from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from trade_ledger import api, core_logic
from trade_ledger.constants import AgingBucket, SheetName
from trade_ledger.gateway import GatewayError
from trade_ledger.tokens import Month, MonthKey


@pytest.fixture
def client(context):
    app = api.create_app(lambda: context, secret_key="test")
    app.config.update(TESTING=True)
    return app.test_client()


def _login(client, name="alice", password="s3cret"):
    return client.post("/api/login", json={"name": name, "password": password})


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def test_to_json_converts_domain_values():
    listing = core_logic.EmailTargets(customers=["ACME"], emails=["a@example.com"])
    converted = api.to_json(
        {
            "amount": Decimal("1.50"),
            "when": date(2025, 1, 2),
            AgingBucket.OLDER: (Decimal("2"),),
            "targets": listing,
            "months": [MonthKey(2025, Month.JAN)],
        }
    )
    assert converted == {
        "amount": "1.50",
        "when": "2025-01-02",
        "OLDER": ["2"],
        "targets": {"customers": ["ACME"], "emails": ["a@example.com"]},
        "months": ["2025-01"],
    }


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def test_login_and_logout(client):
    response = _login(client)
    assert response.status_code == 200
    assert response.get_json() == {"ok": True, "user": "alice", "role": "admin"}
    assert client.post("/api/logout").get_json() == {"ok": True}


def test_login_rejects_bad_password(client):
    response = _login(client, password="wrong")
    assert response.status_code == 401
    assert response.get_json()["ok"] is False


def test_login_requires_name(client):
    response = client.post("/api/login", json={"password": "s3cret"})
    assert response.status_code == 400
    assert "name" in response.get_json()["error"]


def test_login_rejects_non_ascii_password(client):
    response = _login(client, password="كلمة")
    assert response.status_code == 401
    assert response.get_json() == {"ok": False, "error": "Invalid user name or password"}


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


def test_customers_hide_closed_accounts(client, seeded_ledger):
    payload = client.get("/api/customers").get_json()
    assert payload["ok"] is True
    names = [listing["analysis"]["customer_name"] for listing in payload["customers"]]
    assert names == ["ACME"]
    assert Decimal(payload["customers"][0]["analysis"]["net_debt"]) == Decimal("110")

    everyone = client.get("/api/customers?include_closed=1").get_json()["customers"]
    assert {listing["analysis"]["customer_name"]: listing["is_closed"] for listing in everyone} == {
        "ACME": False,
        "BETA": True,
    }


def test_customer_ledger_net_only(client, seeded_ledger):
    payload = client.get("/api/customers/ACME/ledger?net_only=1").get_json()
    assert payload["net_only"] is True
    assert [entry["row"]["number"] for entry in payload["entries"]] == ["SAL-001", "SAL-002"]
    assert Decimal(payload["entries"][0]["residual"]) == Decimal("60")


def test_unknown_customer_is_not_found(client, seeded_ledger):
    response = client.get("/api/customers/NOBODY/ledger")
    assert response.status_code == 404
    assert response.get_json() == {"ok": False, "error": "Customer 'NOBODY' has no ledger rows"}


def test_aging_report_excludes_closed(client, seeded_ledger):
    report = client.get("/api/aging").get_json()["report"]
    assert [line["customer_name"] for line in report] == ["ACME"]
    assert Decimal(report[0]["total"]) == Decimal("110")


def test_open_matches_and_closed_customers(client, seeded_ledger):
    assert client.get("/api/open-matches").get_json()["ok"] is True
    payload = client.get("/api/closed-customers").get_json()
    assert payload["closed"] == ["BETA"]
    assert payload["semi_closed"] == []


def test_gateway_failures_map_to_bad_gateway(context):
    broken = Mock(name="gateway")
    broken.read_rows.side_effect = GatewayError("sheet down")
    app = api.create_app(lambda: dataclasses.replace(context, gateway=broken), secret_key="test")

    response = app.test_client().get("/api/customers/ACME/ledger")

    assert response.status_code == 502
    assert response.get_json() == {"ok": False, "error": "sheet down"}


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


def test_notes_require_sign_in(client):
    response = client.post("/api/notes", json={"customer_name": "ACME", "content": "Call"})
    assert response.status_code == 401


def test_signed_in_user_authors_notes(client):
    _login(client)
    created = client.post("/api/notes", json={"customer_name": "ACME", "content": "Call back"})
    assert created.status_code == 200
    assert created.get_json()["note"]["user"] == "alice"

    notes = client.get("/api/notes?customer=ACME").get_json()["notes"]
    assert [(note["content"], note["row_index"]) for note in notes] == [("Call back", 2)]

    assert client.put("/api/notes/2", json={"content": "Done", "is_solved": True}).get_json()["ok"]
    assert client.get("/api/notes").get_json()["notes"][0]["is_solved"] is True

    assert client.delete("/api/notes/2").get_json()["ok"]
    assert client.get("/api/notes").get_json()["notes"] == []


def test_missing_note_row_is_not_found(client):
    _login(client)
    response = client.delete("/api/notes/9")
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Discounts
# ---------------------------------------------------------------------------


def test_reconcile_marks_and_unmarks_months(client, seed):
    seed(SheetName.DISCOUNTS, [["C-1", "ACME", ""]])

    marked = client.post("/api/discounts/reconcile", json={"customer_name": "acme", "month": "JAN25"})
    assert marked.get_json()["reconciliation_months"] == ["2025-01"]

    unmarked = client.delete("/api/discounts/reconcile", json={"customer_name": "ACME", "month": "JAN-25"})
    assert unmarked.get_json()["reconciliation_months"] == []


def test_reconcile_rejects_unparseable_month(client, seed):
    seed(SheetName.DISCOUNTS, [["C-1", "ACME", ""]])
    response = client.post("/api/discounts/reconcile", json={"customer_name": "ACME", "month": "huh"})
    assert response.status_code == 400
    assert response.get_json()["ok"] is False


def test_reconcile_unknown_customer(client):
    response = client.post("/api/discounts/reconcile", json={"customer_name": "GHOST", "month": "JAN25"})
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Accounts payable
# ---------------------------------------------------------------------------


def test_suppliers_report_with_period_filter(client, seeded_suppliers):
    payload = client.get("/api/suppliers?year=2025").get_json()
    assert payload["ok"] is True
    assert [(s["supplier_name"], Decimal(s["net_amount"])) for s in payload["suppliers"]] == [
        ("Tea Co", Decimal("1300")),
        ("Box Inc", Decimal("-40")),
    ]
    refund = payload["suppliers"][1]["transactions"][0]
    assert (refund["kind"], refund["date"]) == ("Refund", "2025-02-11")


def test_suppliers_report_rejects_bad_filters(client, seeded_suppliers):
    assert client.get("/api/suppliers?year=soon").status_code == 400
    assert client.get("/api/suppliers?month=13").status_code == 400


def test_supplier_matching_marks_and_unmarks_months(client, seeded_suppliers):
    marked = client.post("/api/suppliers/matching", json={"supplier_name": "box inc", "month": "FEB25"})
    assert marked.get_json() == {"ok": True, "matched_months": ["2025-02"]}

    (entry,) = client.get("/api/suppliers/matching").get_json()["entries"]
    assert (entry["supplier_name"], entry["matched_months"]) == ("Box Inc", ["2025-02"])

    unmarked = client.delete("/api/suppliers/matching", json={"supplier_name": "Box Inc", "month": "2025-02"})
    assert unmarked.get_json()["matched_months"] == []


def test_supplier_matching_unknown_supplier(client, seeded_suppliers):
    response = client.post("/api/suppliers/matching", json={"supplier_name": "Ghost", "month": "JAN25"})
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


def test_save_order_rejects_non_object_items(client):
    response = client.post("/api/inventory/orders", json={"items": ["PO-2025-001"]})
    assert response.status_code == 400
    assert response.get_json() == {"ok": False, "error": "Order items must be a list of objects"}


# ---------------------------------------------------------------------------
# Petty cash and receipts
# ---------------------------------------------------------------------------


def test_petty_cash_balance(client):
    for entry in (
        {"date": "2025-02-01", "type": "Receipt", "amount": "100", "name": "Float"},
        {"date": "2025-02-02", "type": "Expense", "amount": "30.5", "name": "Taxi"},
    ):
        assert client.post("/api/petty-cash", json=entry).get_json()["ok"]

    payload = client.get("/api/petty-cash").get_json()

    assert [record["entry_type"] for record in payload["records"]] == ["Receipt", "Expense"]
    assert Decimal(payload["balance"]) == Decimal("69.5")


def test_petty_cash_rejects_negative_amount(client):
    response = client.post(
        "/api/petty-cash", json={"date": "2025-02-01", "type": "Expense", "amount": "-1", "name": "Oops"}
    )
    assert response.status_code == 400


def test_cash_receipts_are_numbered(client):
    first = client.get("/api/cash-receipts/last-number").get_json()
    assert (first["last"], first["next"]) == ("CAH-000", "CAH-001")

    created = client.post(
        "/api/cash-receipts",
        json={"date": "2025-02-01", "received_from": "ACME", "amount": "100", "reason": "SAL-001"},
    ).get_json()
    assert created["receipt"]["receipt_number"] == "CAH-001"

    after = client.get("/api/cash-receipts/last-number").get_json()
    assert (after["last"], after["next"]) == ("CAH-001", "CAH-002")
    assert len(client.get("/api/cash-receipts").get_json()["receipts"]) == 1


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def test_create_app_from_config_serves_requests(config_file):
    app = api.create_app_from_config(str(config_file))
    payload = app.test_client().get("/api/inventory/next-po").get_json()
    assert payload["ok"] is True
    assert payload["po_number"].startswith("PO-")
