"""Error taxonomy for the CAS processing pipeline."""

from __future__ import annotations


class CasAnalyzerError(RuntimeError):
    """Base class for pipeline errors."""


class ParseFailure(CasAnalyzerError):
    """Raised when a statement cannot be turned into lots. Fatal for the job."""


class NoTransactionsFound(ParseFailure):
    """Raised when a statement yields zero transaction lots."""

    def __init__(self, message: str = "No transaction lots found in CAS file") -> None:
        super().__init__(message)


class ParseError(ParseFailure):
    """Raised when a transaction-shaped row carries a malformed date."""

    def __init__(self, line_number: int, line: str, reason: str) -> None:
        self.line_number = line_number
        self.line = line
        super().__init__(f"Line {line_number}: {reason} in row '{line}'")


class InvalidDateFormat(ValueError):
    """Raised when a statement date token is not in a supported shape."""


class NavDataUnavailable(CasAnalyzerError):
    """Raised when the NAV data source cannot serve a request."""


class DownloadFailure(CasAnalyzerError):
    """Raised when a document cannot be fetched from the object store."""


class PersistenceFailure(CasAnalyzerError):
    """Raised when lots, reports or job status cannot be written."""


__all__ = [
    "CasAnalyzerError",
    "ParseFailure",
    "NoTransactionsFound",
    "ParseError",
    "InvalidDateFormat",
    "NavDataUnavailable",
    "DownloadFailure",
    "PersistenceFailure",
]
