"""Shared pytest fixtures and utilities for Trade Ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, Iterator, Sequence

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from trade_ledger import cli, constants, core_logic, data_manager  # noqa: E402
from trade_ledger.gateway import WorkbookGateway  # noqa: E402
from trade_ledger.setup_excel import create_ledger_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
FIXED_NOW = datetime(2025, 3, 1, 9, 30, tzinfo=UTC)
ADMIN_USER = ("alice", "admin", "s3cret")
_CONFIG_TEMPLATE = (
    "[Spreadsheet]\n"
    "Backend = workbook\n"
    "DataFile = {data_file}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Ledger]\n"
    "InvoiceSheet = {invoice_sheet}\n"
    "StandardShiftHours = 9\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    invoice_sheet: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized ledger workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        invoice_sheet: str = constants.SheetName.INVOICES.value,
        filename: str = "ledger.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_ledger_workbook(
            workbook_path,
            invoice_sheet=invoice_sheet,
            admin_user=ADMIN_USER,
            overwrite=True,
        )
        return workbook_path

    return _create_workbook


@pytest.fixture
def ledger_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh ledger workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        invoice_sheet: str = constants.SheetName.INVOICES.value,
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}", invoice_sheet=invoice_sheet)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                schema_version=schema_version,
                invoice_sheet=invoice_sheet,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            invoice_sheet=invoice_sheet,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file, environ={})
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(ledger_workbook_path: Path) -> data_manager.ConfigSettings:
    """Provide workbook-backed configuration settings."""

    return data_manager.ConfigSettings(
        backend=data_manager.BACKEND_WORKBOOK,
        spreadsheet_id=None,
        credentials_file=None,
        data_file=ledger_workbook_path,
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def gateway(ledger_workbook_path: Path) -> WorkbookGateway:
    return WorkbookGateway(ledger_workbook_path)


@pytest.fixture
def context(settings: data_manager.ConfigSettings, gateway: WorkbookGateway) -> core_logic.RuntimeContext:
    """Assemble a runtime context on a real workbook with a frozen clock."""

    return core_logic.RuntimeContext(settings=settings, gateway=gateway, clock=lambda: FIXED_NOW)


@pytest.fixture
def signed_in_context(context: core_logic.RuntimeContext) -> core_logic.RuntimeContext:
    """Context with the seeded administrator signed in."""

    return replace(context, session=core_logic.Session(user=ADMIN_USER[0], role=ADMIN_USER[1]))


@pytest.fixture
def seed(gateway: WorkbookGateway) -> Callable[[constants.SheetName, Sequence[Sequence[object]]], None]:
    """Append raw rows to a tab of the test workbook."""

    def _seed(sheet: constants.SheetName, rows: Sequence[Sequence[object]]) -> None:
        data_manager.append_records(gateway, sheet, rows)

    return _seed


@pytest.fixture
def seeded_ledger(seed) -> None:
    """Populate the invoice and directory tabs with two customers.

    ACME has one partially paid sale (residual 60), one open sale and a
    settled pair; BETA is fully settled and listed as closed.
    """

    seed(
        constants.SheetName.INVOICES,
        [
            ["2025-01-10", "2025-01-20", "SAL-001", "ACME", "Rep", 100, 0, "M1"],
            ["2025-01-25", "", "PAY-001", "ACME", "Rep", 0, 40, "M1"],
            ["2025-02-15", "2025-02-25", "SAL-002", "ACME", "Rep", 50, 0, ""],
            ["2024-12-01", "2024-12-01", "SAL-000", "ACME", "Rep", 30, 0, "M0"],
            ["2024-12-05", "", "PAY-000", "ACME", "Rep", 0, 30, "M0"],
            ["2025-01-05", "2025-01-05", "SAL-100", "BETA", "Rep", 70, 0, "B1"],
            ["2025-01-06", "", "PAY-100", "BETA", "Rep", 0, 70, "B1"],
        ],
    )
    seed(constants.SheetName.CLOSED, [["C-2", "BETA"]])


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="trade-ledger", description="Trade Ledger")


@pytest.fixture
def command_table_entry() -> tuple[str, cli.CommandSpec]:
    """Provide a placeholder command table entry for dispatch tests."""

    def execute(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
        execute.__dict__["called"] = True
        return 0

    def register(
        subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    ) -> argparse.ArgumentParser:
        return subparsers.add_parser("ledger-test")

    spec = cli.CommandSpec(
        name="ledger-test",
        help_text="help",
        register=register,
        execute=execute,
    )
    return "ledger-test", spec


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


@pytest.fixture
def seeded_suppliers(seed) -> None:
    """Populate the supplier purchase and refund tabs.

    Tea Co nets 1,300 (one refund), Cup Ltd 350 with one undated invoice,
    and Box Inc only has a refund.
    """

    seed(
        constants.SheetName.SUPPLIER_PURCHASES,
        [
            ["2025-01-05", "PI-1", "Tea Co", "1,000"],
            ["2025-02-10", "PI-2", "Tea Co", 500],
            ["2024-12-20", "PI-3", "Cup Ltd", 300],
            ["", "PI-4", "Cup Ltd", 50],
            ["2025-02-12", "PI-5", "", 999],
        ],
    )
    seed(
        constants.SheetName.SUPPLIER_REFUNDS,
        [
            ["2025-01-20", "PR-1", "Tea Co", 200],
            ["2025-02-11", "PR-2", "Box Inc", 40],
        ],
    )
