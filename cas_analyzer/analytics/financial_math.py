"""Return, volatility and risk-adjusted return helpers.

All functions work on plain floats at full precision; rounding is left to
the presentation layer.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

TRADING_DAYS_PER_YEAR = 252
DEFAULT_RISK_FREE_RATE = 6.0


def calculate_cagr(start_value: float, end_value: float, years: float) -> float:
    """Compound annual growth rate in percent; 0 for a non-positive start or span."""

    if start_value <= 0 or years <= 0:
        return 0.0
    if end_value <= 0:
        return -100.0
    return ((end_value / start_value) ** (1.0 / years) - 1.0) * 100.0


def daily_returns(navs: Sequence[float]) -> pd.Series:
    """Day-over-day fractional change, skipping days whose previous NAV is not positive."""

    series = pd.Series(list(navs), dtype="float64")
    previous = series.shift(1)
    changes = (series - previous) / previous
    return changes[previous > 0]


def calculate_volatility(navs: Sequence[float]) -> float:
    """Annualised volatility in percent from an ascending NAV sequence."""

    if len(navs) < 2:
        return 0.0
    returns = daily_returns(navs)
    if len(returns) < 2:
        return 0.0
    daily_std = float(returns.std(ddof=1))
    if np.isnan(daily_std):
        return 0.0
    return daily_std * float(np.sqrt(TRADING_DAYS_PER_YEAR)) * 100.0


def calculate_sharpe_ratio(
    return_rate: float,
    volatility: float,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> float:
    if volatility == 0:
        return 0.0
    return (return_rate - risk_free_rate) / volatility


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


__all__ = [
    "TRADING_DAYS_PER_YEAR",
    "DEFAULT_RISK_FREE_RATE",
    "calculate_cagr",
    "daily_returns",
    "calculate_volatility",
    "calculate_sharpe_ratio",
    "clamp",
]
