"""Tests for the signal-event portfolio replay."""

import numpy as np
import pytest

from config.schema import BacktestConfig
from engine.account import AccountState, PortfolioInvariantError
from engine.backtest_engine import PortfolioBacktestEngine, run_per_security
from engine.events import build_execution_events
from engine.models import BUY, SELL, EntryInfo, ExecutionEvent, Position, SecuritySeries

D1, D2, D3 = 20240102, 20240103, 20240104


def make_config(**overrides):
    params = dict(start_date=20240101, end_date=20241231, initial_capital=1000.0, lot=100)
    params.update(overrides)
    return BacktestConfig(**params)


def series(security_id, close, dates=(D1, D2, D3)):
    return SecuritySeries(security_id, list(dates), list(close))


def event(date, kind, security_id, price, exec_index, reason=None):
    if reason is None:
        reason = "signal_entry" if kind == BUY else "signal_exit"
    return ExecutionEvent(date, kind, security_id, price, exec_index, reason)


def test_single_round_trip():
    """Buy one lot, mark it between fills, sell it."""
    universe = {"A": series("A", [10.0, 10.5, 11.0])}
    engine = PortfolioBacktestEngine(universe, make_config())
    result = engine.run([
        event(D3, SELL, "A", 11.0, 2),
        event(D1, BUY, "A", 10.0, 0),
    ])

    assert len(result.trades) == 1
    trade = result.trades[0]
    assert trade.shares == 100
    assert trade.pnl == pytest.approx(100.0)
    assert trade.trade_return == pytest.approx(0.10)
    assert [(p.date, p.equity) for p in result.equity_curve] == [
        (D1, 1000.0), (D2, 1050.0), (D3, 1100.0), (20241231, 1100.0),
    ]
    assert result.summary["final_equity"] == pytest.approx(1100.0)
    assert result.summary["total_return"] == pytest.approx(0.10)
    assert result.summary["win_rate"] == 1.0
    assert result.mode == "signal"


def test_commission_and_stamp_tax():
    universe = {"A": series("A", [10.0, 10.0, 10.0])}
    config = make_config(initial_capital=1001.0, fee_bps=10.0, stamp_bps=10.0)
    result = PortfolioBacktestEngine(universe, config).run([
        event(D1, BUY, "A", 10.0, 0),
        event(D3, SELL, "A", 10.0, 2),
    ])

    trade = result.trades[0]
    assert trade.pnl == pytest.approx(-3.0)
    assert trade.fees == pytest.approx(3.0)
    assert result.summary["final_equity"] == pytest.approx(998.0)
    assert result.summary["commission_paid"] == pytest.approx(2.0)
    assert result.summary["stamp_tax_paid"] == pytest.approx(1.0)
    assert result.summary["win_rate"] == 0.0


def test_sell_settles_before_buy_on_the_same_date():
    universe = {"A": series("A", [10.0, 10.0, 10.0])}
    result = PortfolioBacktestEngine(universe, make_config()).run([
        event(D2, BUY, "A", 10.0, 1),
        event(D1, BUY, "A", 10.0, 0),
        event(D2, SELL, "A", 10.0, 1),
        event(D3, SELL, "A", 10.0, 2),
    ])

    assert [(t.entry_date, t.exit_date) for t in result.trades] == [(D1, D2), (D2, D3)]
    assert result.open_positions == {}


def test_freed_cash_funds_same_day_entry():
    universe = {
        "A": series("A", [10.0, 10.0, 10.0]),
        "B": series("B", [5.0, 5.0, 5.0]),
    }
    result = PortfolioBacktestEngine(universe, make_config()).run([
        event(D1, BUY, "A", 10.0, 0),
        event(D2, BUY, "B", 5.0, 1),
        event(D2, SELL, "A", 10.0, 1),
    ])

    assert len(result.trades) == 1
    assert result.open_positions["B"].shares == 200
    assert result.summary["final_equity"] == pytest.approx(1000.0)


def test_sell_without_position_is_ignored():
    universe = {"A": series("A", [10.0, 10.0, 10.0])}
    result = PortfolioBacktestEngine(universe, make_config()).run([
        event(D1, SELL, "A", 10.0, 0),
    ])
    assert result.trades == []
    assert result.summary["final_equity"] == 1000.0


def test_no_events():
    result = PortfolioBacktestEngine({}, make_config()).run([])
    assert result.equity_curve == []
    assert result.final_equity == 1000.0
    assert result.summary["win_rate"] is None
    assert result.summary["max_drawdown"] == 0.0


def test_events_outside_window_are_ignored():
    universe = {"A": series("A", [10.0, 10.0, 10.0])}
    config = make_config(start_date=20240103)
    result = PortfolioBacktestEngine(universe, config).run([event(D1, BUY, "A", 10.0, 0)])
    assert result.open_positions == {}
    assert result.equity_curve == []


def liquidation_universe():
    return {
        "A": SecuritySeries("A", [20240102, 20240103, 20240104, 20240105, 20240108],
                            [10.0, 11.0, 12.0, 11.0, 13.0]),
        "B": SecuritySeries("B", [20240102, 20240103, 20240108], [5.0, 5.0, 6.0]),
    }


def liquidation_events(universe, config):
    events = []
    for s in universe.values():
        entry = np.zeros(len(s), dtype=bool)
        entry[0] = True
        events.extend(build_execution_events(
            s, entry, np.zeros(len(s), dtype=bool), config.start_date, config.end_date, "next_close"
        ))
    return events


def test_every_position_is_liquidated_at_window_end():
    """Entries without exit signals are force-closed on the last in-window bar."""
    universe = liquidation_universe()
    config = make_config(initial_capital=10_000.0)
    result = PortfolioBacktestEngine(universe, config, validate_accounting=True).run(
        liquidation_events(universe, config)
    )

    assert result.open_positions == {}
    assert [t.reason for t in result.trades] == ["force_exit_eof", "force_exit_eof"]
    assert {t.security_id: t.shares for t in result.trades} == {"A": 400, "B": 1100}
    assert result.summary["final_equity"] == pytest.approx(11_900.0)
    assert [p.date for p in result.equity_curve] == [20240103, 20240104, 20240105, 20240108, 20241231]
    assert [p.equity for p in result.equity_curve[:3]] == pytest.approx([10_000.0, 10_400.0, 10_000.0])


def test_final_equity_equals_capital_plus_pnl():
    universe = liquidation_universe()
    config = make_config(initial_capital=10_000.0, fee_bps=3.0, stamp_bps=10.0)
    result = PortfolioBacktestEngine(universe, config, validate_accounting=True).run(
        liquidation_events(universe, config)
    )
    total_pnl = sum(t.pnl for t in result.trades)
    assert result.summary["final_equity"] == pytest.approx(10_000.0 + total_pnl)


def test_same_inputs_same_result():
    universe = liquidation_universe()
    config = make_config(initial_capital=10_000.0)
    events = liquidation_events(universe, config)
    first = PortfolioBacktestEngine(universe, config).run(events)
    second = PortfolioBacktestEngine(universe, config).run(list(reversed(events)))
    assert first.trades == second.trades
    assert first.equity_curve == second.equity_curve


def test_run_per_security_uses_full_capital_each():
    universe = liquidation_universe()
    config = make_config(initial_capital=10_000.0)
    events_by_id = {
        "A": liquidation_events({"A": universe["A"]}, config),
        "Z": [event(D1, BUY, "Z", 1.0, 0)],
    }
    results = run_per_security(universe, events_by_id, config)

    assert list(results) == ["A"]
    assert results["A"].trades[0].shares == 900
    assert results["A"].summary["final_equity"] == pytest.approx(11_800.0)


def test_account_rejects_duplicate_open_and_missing_close():
    account = AccountState(cash=1000.0)
    position = Position("A", 10, 10.0, 1, EntryInfo(date=D1, price=10.0, cost_basis=100.0))
    account.open_position(position, 100.0)

    with pytest.raises(PortfolioInvariantError):
        account.open_position(Position("A", 10, 10.0, 1, EntryInfo(date=D1, price=10.0, cost_basis=100.0)), 100.0)
    with pytest.raises(PortfolioInvariantError):
        account.close_position("B", 0.0)


def test_account_rejects_overspending():
    account = AccountState(cash=50.0)
    position = Position("A", 10, 10.0, 1, EntryInfo(date=D1, price=10.0, cost_basis=100.0))
    with pytest.raises(PortfolioInvariantError):
        account.open_position(position, 100.0)


def test_equity_curve_keeps_one_point_per_date():
    account = AccountState(cash=1000.0)
    account.record_equity(D1)
    account.cash = 900.0
    account.record_equity(D1)
    account.record_equity(D2)
    assert [(p.date, p.equity) for p in account.equity_curve] == [(D1, 900.0), (D2, 900.0)]


@pytest.mark.parametrize("timing, signal_index", [("next_close", 1), ("same_close", 2)])
def test_entry_on_final_tradable_bar_leaves_no_open_position(timing, signal_index):
    """Entries reaching the last in-window bar are never opened, so the book ends flat."""
    universe = {
        "A": series("A", [10.0, 10.0, 10.0]),
        "B": series("B", [5.0, 5.0, 6.0]),
    }
    config = make_config(initial_capital=2000.0)
    events = []
    for security_id, index in (("A", signal_index), ("B", 0)):
        entry = np.zeros(3, dtype=bool)
        entry[index] = True
        events.extend(build_execution_events(
            universe[security_id], entry, np.zeros(3, dtype=bool), config.start_date, config.end_date, timing
        ))

    result = PortfolioBacktestEngine(universe, config, validate_accounting=True).run(events)

    assert result.open_positions == {}
    assert [(t.security_id, t.reason) for t in result.trades] == [("B", "force_exit_eof")]
    assert result.summary["final_equity"] == pytest.approx(2000.0 + result.trades[0].pnl)
