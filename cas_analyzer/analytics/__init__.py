"""Fund scoring and portfolio rebalancing."""

from .power_score import PowerScoreCalculator
from .rebalance import calculate_rebalance, classify_fund

__all__ = ["PowerScoreCalculator", "calculate_rebalance", "classify_fund"]
