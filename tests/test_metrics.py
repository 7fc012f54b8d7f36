"""Tests for performance metrics."""

import math

import numpy as np
import pytest

from engine.models import EquityPoint, Trade
from metrics.metrics import (
    calculate_avg_trade_return,
    calculate_cagr,
    calculate_calmar_ratio,
    calculate_enhanced_metrics,
    calculate_ulcer_index,
    calculate_win_rate,
    compute_max_drawdown,
    summarize,
    years_between,
)


def curve(*equities, start=20240101):
    return [EquityPoint(start + i, float(e)) for i, e in enumerate(equities)]


def trade(pnl, trade_return):
    return Trade("A", 20240101, 20240102, 10.0, 10.0, 100, pnl, trade_return, "signal_exit")


def test_max_drawdown_reports_peak_and_trough():
    dd, peak, trough = compute_max_drawdown(curve(100, 120, 90, 110))
    assert dd == pytest.approx(0.25)
    assert peak == 20240102
    assert trough == 20240103


def test_max_drawdown_keeps_first_trough():
    dd, peak, trough = compute_max_drawdown(curve(100, 80, 100, 80))
    assert dd == pytest.approx(0.2)
    assert (peak, trough) == (20240101, 20240102)


def test_no_drawdown():
    assert compute_max_drawdown(curve(100, 100, 110, 120)) == (0.0, None, None)
    assert compute_max_drawdown([]) == (0.0, None, None)


def test_summarize_empty_run():
    summary = summarize([], [], 1000.0)
    assert summary["final_equity"] == 1000.0
    assert summary["total_return"] == 0.0
    assert summary["trade_count"] == 0
    assert summary["win_rate"] is None
    assert summary["avg_trade_return"] is None


def test_summarize_with_trades():
    trades = [trade(10.0, 0.1), trade(-5.0, -0.05), trade(0.0, 0.0)]
    summary = summarize(curve(1000, 1010, 1005), trades, 1000.0)
    assert summary["final_equity"] == 1005.0
    assert summary["total_return"] == pytest.approx(0.005)
    assert summary["trade_count"] == 3
    assert summary["win_rate"] == pytest.approx(1 / 3)
    assert summary["avg_trade_return"] == pytest.approx(0.05 / 3)


def test_undefined_trade_returns_count_as_zero():
    trades = [trade(10.0, 0.1), trade(0.0, float("nan"))]
    assert calculate_avg_trade_return(trades) == pytest.approx(0.05)
    assert calculate_win_rate(trades) == 0.5


def test_cagr_and_calmar():
    years = years_between(20230101, 20240101)
    assert years == pytest.approx(1.0, abs=0.01)
    cagr = calculate_cagr(100.0, 110.0, years)
    assert cagr == pytest.approx(10.0, abs=0.05)
    assert calculate_calmar_ratio(cagr, 5.0) == pytest.approx(cagr / 5.0)
    assert calculate_cagr(100.0, 0.0, 1.0) == -100.0
    assert calculate_cagr(100.0, 110.0, 0.0) == 0.0


def test_enhanced_metrics_keys():
    points = [EquityPoint(20230101, 100.0), EquityPoint(20230601, 90.0), EquityPoint(20240101, 110.0)]
    trades = [trade(20.0, 0.2), trade(-10.0, -0.1)]
    metrics = calculate_enhanced_metrics(points, trades, 100.0)

    assert set(metrics) == {
        "cagr", "calmar_ratio", "sortino_ratio", "ulcer_index", "expectancy", "avg_win", "avg_loss",
    }
    assert metrics["expectancy"] == pytest.approx(5.0)
    assert metrics["avg_win"] == 20.0
    assert metrics["avg_loss"] == 10.0
    assert metrics["ulcer_index"] > 0
    assert math.isfinite(metrics["calmar_ratio"])


def test_enhanced_metrics_empty_curve():
    metrics = calculate_enhanced_metrics([], [], 100.0)
    assert metrics["cagr"] == 0.0
    assert metrics["expectancy"] == 0.0


def test_max_drawdown_skips_non_finite_points():
    points = curve(100, float("nan"), 120, 90)
    dd, peak, trough = compute_max_drawdown(points)
    assert dd == pytest.approx(0.25)
    assert (peak, trough) == (20240103, 20240104)


def test_ulcer_index_with_zero_starting_equity():
    value = calculate_ulcer_index(np.array([0.0, 0.0, 100.0, 50.0]))
    assert math.isfinite(value)
    assert value == pytest.approx(np.sqrt(50.0 ** 2 / 4))
