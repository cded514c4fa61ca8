"""Per-fund Power Score calculation."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Literal, Sequence

from cas_analyzer.domain import Lot
from cas_analyzer.schemas import PowerScore, PowerScoreMetrics, Rating
from cas_analyzer.services.nav import NavService

from .financial_math import (
    DEFAULT_RISK_FREE_RATE,
    TRADING_DAYS_PER_YEAR,
    calculate_cagr,
    calculate_sharpe_ratio,
    calculate_volatility,
    clamp,
)

logger = logging.getLogger(__name__)

BENCHMARK_RETURN = 12.0
LOT_SHARPE_DIVISOR = 15.0
BASE_SCORE = 50.0
GREEN_THRESHOLD = 70
YELLOW_THRESHOLD = 40

RECOMMENDATIONS = {
    Rating.GREEN: "Hold - fund is performing well.",
    Rating.YELLOW: "Review - moderate performance; consider rebalancing.",
    Rating.RED: "Consider reducing exposure or switching to a better-performing fund.",
}


@dataclass(frozen=True)
class FundMetrics:
    rolling_return: float
    sharpe_ratio: float
    benchmark_comparison: float
    volatility: float = 0.0
    source: Literal["nav_history", "lots"] = "lots"
    scheme_code: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.rolling_return == 0 and self.sharpe_ratio == 0


def group_by_fund(lots: Sequence[Lot]) -> Dict[str, List[Lot]]:
    """Group lots by fund name, keeping first-appearance order."""

    grouped: Dict[str, List[Lot]] = {}
    for lot in lots:
        grouped.setdefault(lot.fund_name, []).append(lot)
    return grouped


def composite_score(rolling_return: float, sharpe_ratio: float, benchmark_comparison: float) -> int:
    score = BASE_SCORE
    score += clamp(rolling_return * 2, -30, 30)
    score += clamp(sharpe_ratio * 10, -10, 10)
    score += clamp(benchmark_comparison, -10, 10)
    score = clamp(score, 0, 100)
    return int(math.floor(score + 0.5))


def rating_for(score: int) -> Rating:
    if score >= GREEN_THRESHOLD:
        return Rating.GREEN
    if score >= YELLOW_THRESHOLD:
        return Rating.YELLOW
    return Rating.RED


class PowerScoreCalculator:
    """Score each fund from its NAV history, falling back to lot data.

    Without a ``nav_service`` every fund is scored from its lots alone.
    """

    def __init__(
        self,
        nav_service: NavService | None = None,
        *,
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
        benchmark_return: float = BENCHMARK_RETURN,
    ) -> None:
        self._nav_service = nav_service
        self._risk_free_rate = risk_free_rate
        self._benchmark_return = benchmark_return

    async def score(self, user_id: str, lots: Sequence[Lot]) -> List[PowerScore]:
        scores: List[PowerScore] = []
        for fund_name, fund_lots in group_by_fund(lots).items():
            metrics = await self.market_metrics(fund_name)
            if metrics is None or metrics.is_empty:
                metrics = self.lot_metrics(fund_lots)
            scores.append(self._build(fund_name, metrics))
        logger.info("Calculated %d power scores for user %s", len(scores), user_id)
        return scores

    async def market_metrics(self, fund_name: str) -> FundMetrics | None:
        """Metrics from the fund's published NAVs, or ``None`` when unavailable."""

        if self._nav_service is None:
            return None
        scheme_code = await self._nav_service.resolve_scheme_code(fund_name)
        if scheme_code is None:
            return None
        history = await self._nav_service.get_nav_history(scheme_code)
        if not history:
            return None

        navs = [point.nav for point in reversed(history)]
        if len(navs) >= TRADING_DAYS_PER_YEAR:
            rolling_return = calculate_cagr(navs[-TRADING_DAYS_PER_YEAR], navs[-1], 1)
        else:
            rolling_return = calculate_cagr(navs[0], navs[-1], len(navs) / TRADING_DAYS_PER_YEAR)
        volatility = calculate_volatility(navs[-TRADING_DAYS_PER_YEAR:])
        sharpe_ratio = calculate_sharpe_ratio(rolling_return, volatility, self._risk_free_rate)
        return FundMetrics(
            rolling_return=rolling_return,
            sharpe_ratio=sharpe_ratio,
            benchmark_comparison=rolling_return - self._benchmark_return,
            volatility=volatility,
            source="nav_history",
            scheme_code=scheme_code,
        )

    def lot_metrics(self, lots: Sequence[Lot]) -> FundMetrics:
        """Simple return of the lots valued at their own NAVs."""

        invested = sum(float(lot.amount) for lot in lots)
        current_value = sum(float(lot.market_value) for lot in lots)
        simple_return = 0.0 if invested == 0 else (current_value - invested) / invested * 100
        return FundMetrics(
            rolling_return=simple_return,
            sharpe_ratio=simple_return / LOT_SHARPE_DIVISOR,
            benchmark_comparison=simple_return - self._benchmark_return,
        )

    @staticmethod
    def _build(fund_name: str, metrics: FundMetrics) -> PowerScore:
        score = composite_score(
            metrics.rolling_return, metrics.sharpe_ratio, metrics.benchmark_comparison
        )
        rating = rating_for(score)
        return PowerScore(
            fund_name=fund_name,
            score=score,
            rating=rating,
            recommendation=RECOMMENDATIONS[rating],
            metrics=PowerScoreMetrics(
                rolling_return=round(metrics.rolling_return, 2),
                sharpe_ratio=round(metrics.sharpe_ratio, 2),
                benchmark_comparison=round(metrics.benchmark_comparison, 2),
            ),
            scheme_code=metrics.scheme_code,
            source=metrics.source,
        )


__all__ = [
    "PowerScoreCalculator",
    "FundMetrics",
    "composite_score",
    "rating_for",
    "group_by_fund",
    "RECOMMENDATIONS",
    "BENCHMARK_RETURN",
]
