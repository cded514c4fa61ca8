"""Assemble the stored portfolio report from lots, scores and a rebalance plan."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Sequence

from cas_analyzer.domain import Lot
from cas_analyzer.schemas import (
    LotView,
    PowerScore,
    PowerScoreSummary,
    PowerScoreSummaryItem,
    RebalancePlan,
    Report,
    ReportSummary,
)


def total_investment(lots: Sequence[Lot]) -> Decimal:
    return sum((lot.amount for lot in lots), Decimal("0"))


def lot_view(lot: Lot) -> LotView:
    return LotView(
        fund_name=lot.fund_name,
        folio_number=lot.folio_number,
        transaction_date=lot.transaction_date,
        transaction_type=lot.transaction_type,
        units=float(lot.units),
        nav=float(lot.nav),
        amount=float(lot.amount),
        is_long_term=lot.is_long_term,
    )


def build_report(
    lots: Sequence[Lot],
    scores: Sequence[PowerScore],
    plan: RebalancePlan,
    generated_at: datetime | None = None,
) -> Report:
    """Combine the job's analytics into the report document."""

    summary = ReportSummary(
        total_lots=len(lots),
        total_investment=float(total_investment(lots)),
        funds_analyzed=len(scores),
    )
    return Report(
        summary=summary,
        power_scores=list(scores),
        lots=[lot_view(lot) for lot in lots],
        rebalance=plan,
        generated_at=generated_at or datetime.now(timezone.utc),
    )


def build_power_score_summary(scores: Sequence[PowerScore]) -> PowerScoreSummary:
    return PowerScoreSummary(
        scores=[
            PowerScoreSummaryItem(fund_name=score.fund_name, score=score.score, rating=score.rating)
            for score in scores
        ]
    )


__all__ = ["build_report", "build_power_score_summary", "lot_view", "total_investment"]
