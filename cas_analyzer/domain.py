"""Domain values shared by the parser, analytics and worker."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class Lot:
    """One parsed transaction row from a statement."""

    user_id: str
    job_id: str
    fund_name: str
    transaction_date: date
    transaction_type: str
    units: Decimal
    nav: Decimal
    amount: Decimal
    is_long_term: bool
    folio_number: Optional[str] = None

    @property
    def market_value(self) -> Decimal:
        """Units valued at the transaction NAV."""

        return self.units * self.nav


@dataclass(frozen=True)
class SchemeCatalogEntry:
    """A mutual fund scheme listed by the NAV data source."""

    scheme_code: str
    scheme_name: str


@dataclass(frozen=True)
class NavPoint:
    """A published NAV for a scheme on a given day."""

    date: date
    nav: float
