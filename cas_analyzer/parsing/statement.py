"""Heuristic extraction of transaction lots from statement text.

Statement layouts differ between registrars and export pipelines, so rows
are recovered with a small line-oriented state machine rather than a
grammar. The fund and folio seen most recently are carried forward to the
transaction rows that follow them; a blank line or a dashed separator closes
the section. Each row is matched against three patterns in turn:

* ``01-01-2024 BUY 100 12.34 1,234`` (numeric date, type, three numbers)
* ``05-Apr-24 Equity Buy 5 980 4,900`` (textual month and an asset name)
* any row of five or more tokens whose first token looks like a date

Recall is best-effort: every row matching one of the shapes is kept, noise
is ignored.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterator, List, Optional, Sequence

from cas_analyzer.domain import Lot
from cas_analyzer.errors import InvalidDateFormat, NoTransactionsFound, ParseError

from .dates import is_long_term, parse_statement_date

logger = logging.getLogger(__name__)

UNKNOWN_FUND = "UNKNOWN FUND"

FUND_KEYWORDS = ("FUND", "GROWTH", "EQUITY", "DEBT", "LIQUID", "BALANCED", "DIRECT", "PLAN", "DIVIDEND")
FUND_NAME_MIN_LENGTH = 6
FUND_NAME_MAX_LENGTH = 200

_NOISE = re.compile(r"[\u00a0\u2022\u25aa\u25a0\u25cf\u2023\u2043\t]|â– ")
_WHITESPACE = re.compile(r"\s+")
_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_SEPARATOR = re.compile(r"^[-=_]{3,}$")

_BOILERPLATE = (
    re.compile(r"\bstatement\b", re.IGNORECASE),
    re.compile(r"^date\b.*\b(units?|nav|amount)\b", re.IGNORECASE),
    re.compile(r"^page \d+( of \d+)?$", re.IGNORECASE),
    re.compile(r"^(opening|closing) unit balance\b", re.IGNORECASE),
    re.compile(r"^(transaction|txn)s? (date|details|summary)\b", re.IGNORECASE),
)

_FUND_KEYWORD = re.compile(r"\b(" + "|".join(FUND_KEYWORDS) + r")\b", re.IGNORECASE)
_LEADING_DATE = re.compile(r"^\d{1,2}(?:[-/.](?:\d{1,2}|[A-Za-z]{3})|[A-Za-z]{3}\d{2,4})\b")
_DATE_TOKEN = re.compile(r"^(?:\d{1,2}([-/.])\d{1,2}\1\d{2,4}|\d{1,2}[-/]?[A-Za-z]{3}[-/]?\d{2,4})$")
_FOLIO = re.compile(
    r"\bFolio(?:\s*(?:Number|No)\b\.?)?[\s:#]*([A-Za-z0-9/\-]*\d[A-Za-z0-9/\-]*)",
    re.IGNORECASE,
)

_NUMBER = r"\(?-?[\d,]*\.?\d+\)?"
_NUMERIC_ROW = re.compile(
    r"\b(?P<date>\d{1,2}[-/]\d{1,2}[-/]\d{4})\s+"
    r"(?P<type>[A-Za-z][A-Za-z/_-]*)\s+"
    rf"(?P<units>{_NUMBER})\s+(?P<nav>{_NUMBER})\s+(?P<amount>{_NUMBER})"
)
_TEXTUAL_ROW = re.compile(
    r"\b(?P<date>\d{1,2}[-/]?[A-Za-z]{3}[-/]?\d{2,4})\s+"
    r"(?P<asset>[A-Za-z][A-Za-z&.'()\- ]*?)\s+"
    r"(?P<type>[A-Za-z]+)\s+"
    rf"(?P<units>{_NUMBER})\s+(?P<nav>{_NUMBER})\s+(?P<amount>{_NUMBER})"
)


@dataclass
class _ParseState:
    """Section context carried from one line to the next."""

    current_fund: Optional[str] = None
    current_folio: Optional[str] = None

    def reset(self) -> None:
        self.current_fund = None
        self.current_folio = None


@dataclass(frozen=True)
class _Row:
    date_token: str
    transaction_type: str
    units: Decimal
    nav: Decimal
    amount: Decimal
    asset_name: Optional[str] = None
    strict: bool = True


class _RowRejected(ValueError):
    """A matched row whose numeric content could not be read."""


def normalize_lines(raw_text: str) -> List[str]:
    """Collapse glyph noise and whitespace runs, one entry per source line."""

    lines = []
    for raw_line in _LINE_BREAK.split(raw_text):
        line = _NOISE.sub(" ", raw_line)
        lines.append(_WHITESPACE.sub(" ", line).strip())
    return lines


def parse_amount(raw: str) -> Decimal:
    """Read a statement number: thousands separators dropped, ``(x)`` is negative."""

    text = raw.replace(",", "").strip()
    negative = text.startswith("(") and text.endswith(")")
    text = text.strip("()")
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise _RowRejected(f"not a number: {raw}") from exc
    if not value.is_finite():
        raise _RowRejected(f"not a number: {raw}")
    return -value if negative else value


def is_section_boundary(line: str) -> bool:
    return not line or bool(_SEPARATOR.match(line))


def is_boilerplate(line: str) -> bool:
    return any(pattern.search(line) for pattern in _BOILERPLATE)


def looks_like_fund_name(line: str) -> bool:
    if not FUND_NAME_MIN_LENGTH <= len(line) <= FUND_NAME_MAX_LENGTH:
        return False
    if _LEADING_DATE.match(line):
        return False
    return bool(_FUND_KEYWORD.search(line))


def match_folio(line: str) -> Optional[str]:
    match = _FOLIO.search(line)
    return match.group(1) if match else None


class StatementParser:
    """Turn extracted statement text into an ordered list of :class:`Lot`.

    ``as_of`` fixes the reference time used for long-term classification;
    when omitted the time at the start of each :meth:`parse` call is used.
    """

    def __init__(self, as_of: datetime | None = None) -> None:
        self._as_of = as_of

    def parse(self, raw_text: str, user_id: str, job_id: str) -> List[Lot]:
        as_of = self._as_of or datetime.now(timezone.utc)
        lines = normalize_lines(raw_text)
        state = _ParseState()
        lots: List[Lot] = []

        index = 0
        while index < len(lines):
            line = lines[index]
            index += 1

            if is_section_boundary(line):
                state.reset()
                continue
            if is_boilerplate(line):
                continue

            if state.current_fund is None and looks_like_fund_name(line):
                state.current_fund = line
                if index < len(lines):
                    folio = match_folio(lines[index])
                    if folio:
                        state.current_folio = folio
                        index += 1
                continue

            folio = match_folio(line)
            if folio:
                state.current_folio = folio
                continue

            row = self._match_row(line, line_number=index)
            if row is None:
                continue
            lot = self._build_lot(row, state, user_id, job_id, as_of, line, index)
            if lot is not None:
                lots.append(lot)

        if not lots:
            raise NoTransactionsFound()
        logger.info("Extracted %d lots from %d lines for job %s", len(lots), len(lines), job_id)
        return lots

    def _match_row(self, line: str, *, line_number: int) -> Optional[_Row]:
        for candidate in self._candidates(line):
            try:
                return candidate()
            except _RowRejected as exc:
                logger.debug("Line %d: %s", line_number, exc)
        return None

    def _candidates(self, line: str) -> Iterator[Callable[[], _Row]]:
        numeric = _NUMERIC_ROW.search(line)
        if numeric:
            yield lambda: self._row_from_match(numeric)
        textual = _TEXTUAL_ROW.search(line)
        if textual:
            yield lambda: self._row_from_match(textual, asset=textual.group("asset").strip())
        tokens = line.split(" ")
        if len(tokens) >= 5 and _DATE_TOKEN.match(tokens[0]):
            yield lambda: self._row_from_columns(tokens)

    @staticmethod
    def _row_from_match(match: re.Match, asset: Optional[str] = None) -> _Row:
        return _Row(
            date_token=match.group("date"),
            transaction_type=match.group("type"),
            units=parse_amount(match.group("units")),
            nav=parse_amount(match.group("nav")),
            amount=parse_amount(match.group("amount")),
            asset_name=asset or None,
        )

    @staticmethod
    def _row_from_columns(tokens: Sequence[str]) -> _Row:
        return _Row(
            date_token=tokens[0],
            transaction_type=tokens[1],
            units=parse_amount(tokens[-3]),
            nav=parse_amount(tokens[-2]),
            amount=parse_amount(tokens[-1]),
            strict=False,
        )

    @staticmethod
    def _build_lot(
        row: _Row,
        state: _ParseState,
        user_id: str,
        job_id: str,
        as_of: datetime,
        line: str,
        line_number: int,
    ) -> Optional[Lot]:
        try:
            transaction_date = parse_statement_date(row.date_token)
        except InvalidDateFormat as exc:
            if row.strict:
                raise ParseError(line_number, line, str(exc)) from exc
            logger.debug("Line %d: skipping row with unreadable date %r", line_number, row.date_token)
            return None

        fund_name = state.current_fund or row.asset_name or UNKNOWN_FUND
        return Lot(
            user_id=user_id,
            job_id=job_id,
            fund_name=fund_name,
            folio_number=state.current_folio,
            transaction_date=transaction_date,
            transaction_type=row.transaction_type.upper(),
            units=abs(row.units),
            nav=abs(row.nav),
            amount=row.amount,
            is_long_term=is_long_term(transaction_date, as_of),
        )


def parse_statement(
    raw_text: str,
    user_id: str,
    job_id: str,
    *,
    as_of: datetime | None = None,
) -> List[Lot]:
    """Parse ``raw_text`` with a fresh :class:`StatementParser`."""

    return StatementParser(as_of=as_of).parse(raw_text, user_id, job_id)


__all__ = [
    "StatementParser",
    "parse_statement",
    "normalize_lines",
    "parse_amount",
    "looks_like_fund_name",
    "match_folio",
    "UNKNOWN_FUND",
    "FUND_KEYWORDS",
]
