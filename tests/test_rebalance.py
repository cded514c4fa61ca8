import pytest

from conftest import make_lot
from cas_analyzer.analytics import calculate_rebalance, classify_fund


@pytest.mark.parametrize(
    ("name", "asset_class"),
    [
        ("Axis Bluechip Fund", "equity"),
        ("Nippon India Small Cap Fund", "equity"),
        ("UTI Nifty 50 Index Fund", "equity"),
        ("HDFC Equity Fund - Growth", "equity"),
        ("SBI Liquid Fund", "debt"),
        ("ICICI Prudential Gilt Fund", "debt"),
        ("Aditya Birla Corporate Bond Fund", "debt"),
        ("HDFC Balanced Advantage Fund", "hybrid"),
        ("", "hybrid"),
    ],
)
def test_classify_fund(name, asset_class):
    assert classify_fund(name) == asset_class


def test_equity_keywords_take_precedence():
    assert classify_fund("Equity Savings Debt Plan") == "equity"


def test_empty_portfolio_has_no_actions():
    plan = calculate_rebalance([])
    assert plan.current_allocation.total() == 0
    assert (plan.current_allocation.equity, plan.current_allocation.debt, plan.current_allocation.hybrid) == (0, 0, 0)
    assert plan.actions == []
    assert plan.target_allocation.equity == 0.70
    assert plan.target_allocation.debt == 0.30


def test_all_equity_portfolio_sells_equity_buys_debt():
    plan = calculate_rebalance([make_lot("HDFC Equity Fund", amount="1250")])

    assert plan.current_allocation.equity == 1.0
    assert plan.current_allocation.total() == pytest.approx(1.0)
    assert [(a.action, a.asset_class, a.amount) for a in plan.actions] == [
        ("SELL", "equity", 375.0),
        ("BUY", "debt", 375.0),
    ]


def test_mixed_portfolio_emits_actions_in_class_order():
    lots = [
        make_lot("Axis Bluechip Fund", amount="500"),
        make_lot("SBI Liquid Fund", amount="300"),
        make_lot("HDFC Balanced Advantage Fund", amount="200"),
    ]
    plan = calculate_rebalance(lots)

    assert plan.current_allocation.total() == pytest.approx(1.0)
    assert plan.current_allocation.hybrid == pytest.approx(0.2)
    assert [(a.action, a.asset_class, a.amount) for a in plan.actions] == [
        ("BUY", "equity", 200.0),
        ("SELL", "hybrid", 200.0),
    ]


def test_small_differences_are_suppressed():
    lots = [make_lot("Axis Bluechip Fund", amount="70"), make_lot("SBI Liquid Fund", amount="30.5")]
    plan = calculate_rebalance(lots)
    assert plan.actions == []
