"""Trade Ledger: receivables, aging and back-office records on a spreadsheet."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR_ENV = "TRADE_LEDGER_LOG_DIR"
LOG_DIR = Path(os.environ.get(LOG_DIR_ENV) or PROJECT_ROOT / ".logs")
LOG_FILE = LOG_DIR / "trade_ledger.log"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def _configure_logging() -> logging.Logger:
    """Attach a rotating file handler and a stderr handler to the package logger."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        ledger_file = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    except OSError as exc:
        print(f"Warning: unable to open ledger log '{LOG_FILE}': {exc}", file=sys.stderr)
    else:
        ledger_file.setLevel(logging.INFO)
        ledger_file.setFormatter(formatter)
        logger.addHandler(ledger_file)

    console = logging.StreamHandler(sys.stderr)
    console.set_name("console")
    console.setLevel(logging.WARNING)
    console.setFormatter(formatter)
    logger.addHandler(console)

    return logger


def set_console_level(level: int) -> None:
    """Change how much of the package log reaches stderr."""

    for handler in log.handlers:
        if handler.get_name() == "console":
            handler.setLevel(level)


log = _configure_logging()
log.debug("Logger ready for '%s' (file: %s)", __name__, LOG_FILE)
