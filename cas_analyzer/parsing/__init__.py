"""Statement text extraction and lot parsing."""

from .dates import is_long_term, parse_statement_date
from .extraction import extract_text
from .statement import UNKNOWN_FUND, StatementParser, parse_statement

__all__ = [
    "StatementParser",
    "parse_statement",
    "parse_statement_date",
    "is_long_term",
    "extract_text",
    "UNKNOWN_FUND",
]
