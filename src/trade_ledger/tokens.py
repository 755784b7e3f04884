"""Parsers for the short text tokens stored in spreadsheet cells.

Two kinds of free-text identifiers live in the ledger tabs:

* Month tokens such as ``JAN25`` in the ``DISCOUNTS`` reconciliation column.
  They are parsed into :class:`MonthKey` values or rejected with
  :class:`MonthTokenError`.
* Matching keys in the ``MATCHING`` column of the invoice tab, which link a
  payment to the invoices it settles.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional, Tuple


class MonthTokenError(ValueError):
    """Raised when a month token cannot be interpreted."""


class Month(int, Enum):
    """Calendar months keyed by their three-letter abbreviation."""

    JAN = 1
    FEB = 2
    MAR = 3
    APR = 4
    MAY = 5
    JUN = 6
    JUL = 7
    AUG = 8
    SEP = 9
    OCT = 10
    NOV = 11
    DEC = 12


@dataclass(frozen=True, order=True)
class MonthKey:
    """A calendar month, ordered chronologically."""

    year: int
    month: Month

    @property
    def key(self) -> str:
        """Return the ``YYYY-MM`` form used by handlers and filters."""
        return f"{self.year:04d}-{self.month.value:02d}"

    @property
    def token(self) -> str:
        """Return the ``MONYY`` form written back to the sheet."""
        return f"{self.month.name}{self.year % 100:02d}"

    def __str__(self) -> str:
        return self.key


_TOKEN_PATTERN = re.compile(r"^([A-Z]{3})[-/]?(\d{2}|\d{4})$")
_KEY_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
_SEPARATORS = re.compile(r"[,;\s]+")


def _month_from_number(number: int, original: str) -> Month:
    try:
        return Month(number)
    except ValueError as exc:
        raise MonthTokenError(f"Month out of range in {original!r}") from exc


def parse_month_token(token: str, *, fallback_year: Optional[int] = None) -> MonthKey:
    """Parse a month token into a :class:`MonthKey`.

    Accepted forms are ``JAN25``, ``JAN2025``, ``JAN-25``, ``JAN/25`` (any
    case) and the canonical ``2025-01``. Two-digit years are read as 20YY.
    When ``fallback_year`` is given a bare month name (``JAN``) resolves to
    that year.

    Raises:
        MonthTokenError: If the token matches none of the accepted forms.
    """

    cleaned = (token or "").strip().upper()
    if not cleaned:
        raise MonthTokenError("Empty month token")

    key_match = _KEY_PATTERN.match(cleaned)
    if key_match:
        year, month = int(key_match.group(1)), int(key_match.group(2))
        return MonthKey(year=year, month=_month_from_number(month, token))

    if fallback_year is not None and cleaned in Month.__members__:
        return MonthKey(year=fallback_year, month=Month[cleaned])

    match = _TOKEN_PATTERN.match(cleaned)
    if match is None:
        raise MonthTokenError(f"Unrecognised month token: {token!r}")

    month_text, year_text = match.groups()
    if month_text not in Month.__members__:
        raise MonthTokenError(f"Unknown month abbreviation in {token!r}")

    year = int(year_text)
    if year < 100:
        year += 2000
    return MonthKey(year=year, month=Month[month_text])


def parse_month_tokens(
    text: str,
    *,
    fallback_year: Optional[int] = None,
) -> Tuple[List[MonthKey], List[str]]:
    """Split a cell into month keys, reporting the tokens that were rejected.

    Returns:
        tuple[list[MonthKey], list[str]]: Unique keys in chronological order and
        the raw tokens that failed to parse, in the order they appeared.
    """

    keys: set[MonthKey] = set()
    rejected: List[str] = []
    for raw in _SEPARATORS.split(text or ""):
        if not raw:
            continue
        try:
            keys.add(parse_month_token(raw, fallback_year=fallback_year))
        except MonthTokenError:
            rejected.append(raw)
    return sorted(keys), rejected


def format_month_tokens(keys: Iterable[MonthKey]) -> str:
    """Render keys as the comma separated ``MONYY`` list stored in the sheet."""

    return ", ".join(key.token for key in sorted(set(keys)))


def month_key_for(value: date) -> MonthKey:
    return MonthKey(year=value.year, month=Month(value.month))


def parse_matching_key(value: object) -> Optional[str]:
    """Normalise a ``MATCHING`` cell into a group key.

    Blank cells yield ``None``. Whole-number floats, which a workbook returns
    for numeric keys, are rendered without the trailing ``.0`` so they match
    the text the remote sheet returns for the same cell.
    """

    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


__all__ = [
    "Month",
    "MonthKey",
    "MonthTokenError",
    "parse_month_token",
    "parse_month_tokens",
    "format_month_tokens",
    "month_key_for",
    "parse_matching_key",
]
