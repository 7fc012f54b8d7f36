"""Drawdown, return and enhanced performance metrics."""

from typing import Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING
import warnings

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from engine.models import EquityPoint, Trade


def compute_max_drawdown(curve: Sequence['EquityPoint']) -> Tuple[float, Optional[int], Optional[int]]:
    """
    Single left-to-right scan for the maximum peak-to-trough decline.

    Args:
        curve: Equity points in ascending date order

    Returns:
        (max_drawdown, peak_date, trough_date). The drawdown is a fraction in
        [0, 1]; the trough date is the first point reaching the maximum. Dates are
        None when the curve never draws down. Non-finite points are skipped.
    """
    max_dd = 0.0
    peak = None
    peak_date = None
    dd_peak_date = None
    dd_trough_date = None

    for point in curve:
        if not np.isfinite(point.equity):
            continue
        if peak is None or point.equity > peak:
            peak = point.equity
            peak_date = point.date
            continue
        if peak > 0:
            dd = (peak - point.equity) / peak
            if dd > max_dd:
                max_dd = dd
                dd_peak_date = peak_date
                dd_trough_date = point.date

    return float(max_dd), dd_peak_date, dd_trough_date


def calculate_win_rate(trades: Sequence['Trade']) -> Optional[float]:
    """Share of trades with positive pnl; None (no data) without trades."""
    if not trades:
        return None
    wins = sum(1 for t in trades if np.isfinite(t.pnl) and t.pnl > 0)
    return wins / len(trades)


def calculate_avg_trade_return(trades: Sequence['Trade']) -> Optional[float]:
    """Mean trade return; undefined returns count as zero."""
    if not trades:
        return None
    total = sum(t.trade_return for t in trades if np.isfinite(t.trade_return))
    return total / len(trades)


def summarize(curve: Sequence['EquityPoint'], trades: Sequence['Trade'], initial_capital: float) -> Dict:
    """
    Summarize a finished run.

    Args:
        curve: Equity curve of the run
        trades: Closed trades of the run
        initial_capital: Starting capital

    Returns:
        Dict with final_equity, total_return, max_drawdown (+ peak/trough dates),
        trade_count, win_rate and avg_trade_return
    """
    final_equity = curve[-1].equity if curve else float(initial_capital)
    max_dd, peak_date, trough_date = compute_max_drawdown(curve)
    return {
        'final_equity': float(final_equity),
        'total_return': float(final_equity / initial_capital - 1.0),
        'max_drawdown': max_dd,
        'max_drawdown_peak_date': peak_date,
        'max_drawdown_trough_date': trough_date,
        'trade_count': len(trades),
        'win_rate': calculate_win_rate(trades),
        'avg_trade_return': calculate_avg_trade_return(trades),
    }


def calculate_sortino_ratio(
    returns: np.ndarray,
    risk_free_rate: float = 0.0,
    periods_per_year: int = 252
) -> float:
    """
    Calculate Sortino ratio (downside deviation only).

    Args:
        returns: Array of returns
        risk_free_rate: Risk-free rate (default 0.0)
        periods_per_year: Number of periods per year for annualization

    Returns:
        Sortino ratio, capped at 20.0
    """
    if len(returns) == 0:
        return 0.0

    excess_returns = returns - risk_free_rate / periods_per_year
    downside_returns = excess_returns[excess_returns < 0]

    # Need at least 2 values for std with ddof=1
    if len(downside_returns) < 2:
        if np.mean(excess_returns) > 0:
            warnings.warn(f"Sortino ratio calculation: only {len(downside_returns)} downside return(s) "
                          f"in {len(returns)} returns. Returning capped value of 20.0.")
            return 20.0
        return 0.0

    downside_std = np.std(downside_returns, ddof=1)
    if downside_std < 1e-10:
        return 20.0 if np.mean(excess_returns) > 0 else 0.0

    sortino = np.mean(excess_returns) / downside_std * np.sqrt(periods_per_year)
    if sortino > 20.0:
        warnings.warn(f"Sortino ratio capped at 20.0 (calculated value: {sortino:.2f}).")
        return 20.0
    return float(sortino)


def calculate_cagr(
    initial_capital: float,
    final_capital: float,
    years: float
) -> float:
    """
    Calculate Compound Annual Growth Rate (CAGR).

    Returns:
        CAGR as a percentage
    """
    if initial_capital <= 0 or years <= 0:
        return 0.0
    if final_capital <= 0:
        return -100.0
    cagr = ((final_capital / initial_capital) ** (1.0 / years) - 1.0) * 100.0
    return float(cagr)


def calculate_calmar_ratio(cagr: float, max_drawdown_pct: float) -> float:
    """Calmar ratio (CAGR % / max drawdown %)."""
    if max_drawdown_pct == 0:
        return np.inf if cagr > 0 else 0.0
    return float(cagr / abs(max_drawdown_pct))


def calculate_expectancy(trades: Sequence['Trade']) -> float:
    """Average pnl per trade."""
    if not trades:
        return 0.0
    return float(sum(t.pnl for t in trades) / len(trades))


def calculate_ulcer_index(equity_curve: np.ndarray) -> float:
    """
    Calculate Ulcer Index (measure of drawdown severity).

    Args:
        equity_curve: Array of equity values

    Returns:
        Ulcer Index
    """
    if len(equity_curve) < 2:
        return 0.0
    running_max = np.maximum.accumulate(equity_curve)
    # No drawdown is defined while the running peak is not positive
    with np.errstate(divide='ignore', invalid='ignore'):
        drawdown_pct = np.where(
            running_max > 0, (equity_curve - running_max) / running_max * 100.0, 0.0
        )
    return float(np.sqrt(np.mean(drawdown_pct ** 2)))


def calculate_equity_returns(equity_curve: pd.Series) -> np.ndarray:
    """Period returns of the equity curve (pct_change, NaN dropped)."""
    if len(equity_curve) < 2:
        return np.array([])
    return equity_curve.pct_change().dropna().values


def years_between(start_date: int, end_date: int) -> float:
    """Calendar years between two YYYYMMDD dates."""
    start = pd.to_datetime(str(start_date), format='%Y%m%d')
    end = pd.to_datetime(str(end_date), format='%Y%m%d')
    return (end - start).days / 365.25


def calculate_enhanced_metrics(
    curve: List['EquityPoint'],
    trades: List['Trade'],
    initial_capital: float,
    risk_free_rate: float = 0.0,
    periods_per_year: int = 252,
) -> dict:
    """
    Reporting metrics on top of the summary.

    The curve holds one point per date the replay visited; periods_per_year
    assumes that cadence is roughly daily.

    Returns:
        Dict with cagr, calmar_ratio, sortino_ratio, ulcer_index, expectancy,
        avg_win and avg_loss
    """
    if curve:
        equity = pd.Series([p.equity for p in curve], index=[p.date for p in curve], dtype=float)
        final_equity = float(equity.iloc[-1])
        years = years_between(curve[0].date, curve[-1].date)
    else:
        equity = pd.Series(dtype=float)
        final_equity = float(initial_capital)
        years = 0.0

    max_dd, _, _ = compute_max_drawdown(curve)
    cagr = calculate_cagr(initial_capital, final_equity, years)
    returns = calculate_equity_returns(equity)

    wins = [t.pnl for t in trades if t.pnl > 0]
    losses = [abs(t.pnl) for t in trades if t.pnl < 0]

    return {
        'cagr': cagr,
        'calmar_ratio': calculate_calmar_ratio(cagr, max_dd * 100.0),
        'sortino_ratio': calculate_sortino_ratio(returns, risk_free_rate, periods_per_year),
        'ulcer_index': calculate_ulcer_index(equity.values),
        'expectancy': calculate_expectancy(trades),
        'avg_win': float(np.mean(wins)) if wins else 0.0,
        'avg_loss': float(np.mean(losses)) if losses else 0.0,
    }
