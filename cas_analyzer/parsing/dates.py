"""Date handling for statement rows."""

from __future__ import annotations

import re
from datetime import date, datetime, time

from cas_analyzer.errors import InvalidDateFormat

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_NUMERIC_DATE = re.compile(r"^(\d{1,2})([-/])(\d{1,2})\2(\d{4})$")
_TEXTUAL_DATE = re.compile(r"^(\d{1,2})[-/]?([A-Za-z]{3})[-/]?(\d{4}|\d{2})$")


def parse_statement_date(token: str) -> date:
    """Parse ``DD-MM-YYYY``, ``DD/MM/YYYY`` or ``DD-MMM-YY[YY]`` into a date.

    Two-digit years are read as 2000+YY. Anything else, including impossible
    calendar dates, raises :class:`InvalidDateFormat`.
    """

    raw = token.strip()
    numeric = _NUMERIC_DATE.match(raw)
    if numeric:
        day, month, year = int(numeric.group(1)), int(numeric.group(3)), int(numeric.group(4))
        return _build(raw, year, month, day)

    textual = _TEXTUAL_DATE.match(raw)
    if textual:
        month = MONTHS.get(textual.group(2).lower())
        if month is None:
            raise InvalidDateFormat(f"Invalid month in date: {raw}")
        year_str = textual.group(3)
        year = int(year_str)
        if len(year_str) == 2:
            year += 2000
        return _build(raw, year, month, int(textual.group(1)))

    raise InvalidDateFormat(f"Invalid date format: {raw}")


def _build(raw: str, year: int, month: int, day: int) -> date:
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise InvalidDateFormat(f"Invalid date: {raw}") from exc


def one_year_before(moment: datetime | date) -> date:
    """Return the same calendar day one year earlier (Feb 29 maps to Feb 28)."""

    day = moment.date() if isinstance(moment, datetime) else moment
    try:
        return day.replace(year=day.year - 1)
    except ValueError:
        return day.replace(year=day.year - 1, day=28)


def is_long_term(transaction_date: date, as_of: datetime | date) -> bool:
    """True when the transaction happened more than one calendar year before ``as_of``.

    The transaction is taken to start at midnight, so a lot dated exactly one
    year earlier turns long-term once ``as_of`` is past midnight. A plain
    ``date`` for ``as_of`` is treated as midnight.
    """

    if not isinstance(as_of, datetime):
        return transaction_date < one_year_before(as_of)
    cutoff = datetime.combine(one_year_before(as_of), as_of.timetz())
    return datetime.combine(transaction_date, time(), tzinfo=as_of.tzinfo) < cutoff


__all__ = ["MONTHS", "parse_statement_date", "one_year_before", "is_long_term"]
