"""Asset-class rebalancing against a fixed target allocation."""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Sequence

from cas_analyzer.domain import Lot
from cas_analyzer.schemas import Allocation, AssetClass, RebalanceAction, RebalancePlan

TARGET_ALLOCATION: Dict[AssetClass, float] = {
    "equity": 0.70,
    "debt": 0.30,
    "hybrid": 0.0,
}
ASSET_CLASSES: tuple[AssetClass, ...] = ("equity", "debt", "hybrid")
MIN_ACTION_AMOUNT = 1.0

EQUITY_KEYWORDS = ("equity", "bluechip", "small cap", "mid cap", "large cap", "index", "growth")
DEBT_KEYWORDS = ("debt", "liquid", "income", "bond", "gilt")


def classify_fund(fund_name: str) -> AssetClass:
    """Map a fund name onto equity, debt or hybrid by keyword."""

    name = fund_name.lower()
    if any(keyword in name for keyword in EQUITY_KEYWORDS):
        return "equity"
    if any(keyword in name for keyword in DEBT_KEYWORDS):
        return "debt"
    return "hybrid"


def calculate_rebalance(lots: Sequence[Lot]) -> RebalancePlan:
    totals: Dict[AssetClass, Decimal] = {asset_class: Decimal("0") for asset_class in ASSET_CLASSES}
    for lot in lots:
        totals[classify_fund(lot.fund_name)] += lot.amount

    target = Allocation(**TARGET_ALLOCATION)
    portfolio_value = float(sum(totals.values()))
    if portfolio_value == 0:
        return RebalancePlan(target_allocation=target, current_allocation=Allocation(), actions=[])

    current = Allocation(
        **{asset_class: float(totals[asset_class]) / portfolio_value for asset_class in ASSET_CLASSES}
    )

    actions: List[RebalanceAction] = []
    for asset_class in ASSET_CLASSES:
        diff = TARGET_ALLOCATION[asset_class] * portfolio_value - float(totals[asset_class])
        if abs(diff) < MIN_ACTION_AMOUNT:
            continue
        actions.append(
            RebalanceAction(
                action="BUY" if diff > 0 else "SELL",
                asset_class=asset_class,
                amount=round(abs(diff), 2),
            )
        )
    return RebalancePlan(target_allocation=target, current_allocation=current, actions=actions)


__all__ = [
    "TARGET_ALLOCATION",
    "ASSET_CLASSES",
    "EQUITY_KEYWORDS",
    "DEBT_KEYWORDS",
    "classify_fund",
    "calculate_rebalance",
]
