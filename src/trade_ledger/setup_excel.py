"""Utility for initializing an offline Trade Ledger workbook.

The module doubles as a script (``trade-ledger-setup``) and as a library
used by tests or migration tooling. The workbook it creates has every tab
the application reads, each with its header row in the stored column order,
so a :class:`~trade_ledger.gateway.WorkbookGateway` can serve it directly.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Mapping, Optional, Sequence

import openpyxl
from openpyxl.styles import Font

from . import data_manager, log
from .constants import SHEET_COLUMNS, SheetName

CONFIG_FILE = "config.ini"


def create_ledger_workbook(
    destination: Path,
    *,
    invoice_sheet: str = SheetName.INVOICES.value,
    sheet_columns: Mapping[SheetName, Sequence[str]] = SHEET_COLUMNS,
    admin_user: Optional[Sequence[str]] = None,
    overwrite: bool = False,
) -> Path:
    """Create the ledger workbook at ``destination``.

    ``invoice_sheet`` renames the invoice tab to match the ``InvoiceSheet``
    setting. ``admin_user`` is an optional ``(name, role, password)`` row
    seeded into ``Users``. When ``overwrite`` is ``False`` (the default)
    this function raises ``FileExistsError`` if the target already exists.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing ledger workbook: {destination}"
        )

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet, columns in sheet_columns.items():
        title = invoice_sheet if sheet == SheetName.INVOICES else sheet.value
        worksheet = workbook.create_sheet(title=title)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    if admin_user:
        workbook[SheetName.USERS.value].append(list(admin_user))

    workbook.save(destination)
    log.info("Created ledger workbook at '%s'", destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``Spreadsheet.DataFile`` in ``config_path``.

    Raises:
        KeyError: If the configuration does not select the workbook backend.
    """

    config_path = config_path.expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    if settings.backend != data_manager.BACKEND_WORKBOOK or settings.data_file is None:
        raise KeyError("Spreadsheet.Backend must be 'workbook' to create a local ledger")
    return create_ledger_workbook(
        settings.data_file,
        invoice_sheet=settings.invoice_sheet,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize an offline Trade Ledger workbook")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Trade Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created ledger workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
