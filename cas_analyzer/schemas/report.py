"""Pydantic schemas for power scores, rebalance plans and reports."""

from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Literal

from pydantic import Field

from .base import CamelModel

AssetClass = Literal["equity", "debt", "hybrid"]


class Rating(str, enum.Enum):
    RED = "RED"
    YELLOW = "YELLOW"
    GREEN = "GREEN"


class PowerScoreMetrics(CamelModel):
    rolling_return: float
    sharpe_ratio: float
    benchmark_comparison: float


class PowerScore(CamelModel):
    fund_name: str
    score: int = Field(..., ge=0, le=100)
    rating: Rating
    recommendation: str
    metrics: PowerScoreMetrics
    scheme_code: str | None = None
    source: Literal["nav_history", "lots"] = "lots"


class Allocation(CamelModel):
    equity: float = 0.0
    debt: float = 0.0
    hybrid: float = 0.0

    def total(self) -> float:
        return self.equity + self.debt + self.hybrid


class RebalanceAction(CamelModel):
    action: Literal["BUY", "SELL"]
    asset_class: AssetClass
    amount: float = Field(..., ge=0)


class RebalancePlan(CamelModel):
    target_allocation: Allocation
    current_allocation: Allocation
    actions: list[RebalanceAction] = Field(default_factory=list)


class LotView(CamelModel):
    fund_name: str
    folio_number: str | None = None
    transaction_date: date
    transaction_type: str
    units: float
    nav: float
    amount: float
    is_long_term: bool


class ReportSummary(CamelModel):
    total_lots: int
    total_investment: float
    funds_analyzed: int


class Report(CamelModel):
    summary: ReportSummary
    power_scores: list[PowerScore]
    lots: list[LotView]
    rebalance: RebalancePlan
    generated_at: datetime


class PowerScoreSummaryItem(CamelModel):
    fund_name: str
    score: int
    rating: Rating


class PowerScoreSummary(CamelModel):
    scores: list[PowerScoreSummaryItem] = Field(default_factory=list)


__all__ = [
    "AssetClass",
    "Rating",
    "PowerScoreMetrics",
    "PowerScore",
    "Allocation",
    "RebalanceAction",
    "RebalancePlan",
    "LotView",
    "ReportSummary",
    "Report",
    "PowerScoreSummaryItem",
    "PowerScoreSummary",
]
