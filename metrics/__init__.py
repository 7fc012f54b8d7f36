"""Performance metrics calculation."""

from metrics.metrics import (
    compute_max_drawdown,
    summarize,
    calculate_win_rate,
    calculate_avg_trade_return,
    calculate_sortino_ratio,
    calculate_cagr,
    calculate_calmar_ratio,
    calculate_expectancy,
    calculate_ulcer_index,
    calculate_equity_returns,
    calculate_enhanced_metrics,
)
from metrics.signal_stats import forward_return_stats, pooled_forward_return_stats

__all__ = [
    'compute_max_drawdown',
    'summarize',
    'calculate_win_rate',
    'calculate_avg_trade_return',
    'calculate_sortino_ratio',
    'calculate_cagr',
    'calculate_calmar_ratio',
    'calculate_expectancy',
    'calculate_ulcer_index',
    'calculate_equity_returns',
    'calculate_enhanced_metrics',
    'forward_return_stats',
    'pooled_forward_return_stats',
]
