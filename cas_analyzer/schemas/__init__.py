"""Pydantic schema exports."""

from .base import CamelModel
from .jobs import JobStatusView
from .messages import JobMessage
from .report import (
    Allocation,
    AssetClass,
    LotView,
    PowerScore,
    PowerScoreMetrics,
    PowerScoreSummary,
    PowerScoreSummaryItem,
    Rating,
    RebalanceAction,
    RebalancePlan,
    Report,
    ReportSummary,
)

__all__ = [
    "CamelModel",
    "JobMessage",
    "JobStatusView",
    "Allocation",
    "AssetClass",
    "LotView",
    "PowerScore",
    "PowerScoreMetrics",
    "PowerScoreSummary",
    "PowerScoreSummaryItem",
    "Rating",
    "RebalanceAction",
    "RebalancePlan",
    "Report",
    "ReportSummary",
]
