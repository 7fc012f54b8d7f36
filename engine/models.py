"""Data models shared by the portfolio simulation engines.

All dates are integer YYYYMMDD keys. Prices are floats and a missing quote is
represented by NaN.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import math

import numpy as np
import pandas as pd


# Event types
BUY = 'buy'
SELL = 'sell'

# Event reasons (diagnostic only, never used for ordering)
REASON_SIGNAL_ENTRY = 'signal_entry'
REASON_SIGNAL_EXIT = 'signal_exit'
REASON_FORCE_EXIT_EOF = 'force_exit_eof'
REASON_PERIOD_EXIT = 'period_exit'


def is_valid_price(price: Optional[float]) -> bool:
    """Return True for a finite, strictly positive quote."""
    if price is None:
        return False
    try:
        price = float(price)
    except (TypeError, ValueError):
        return False
    return math.isfinite(price) and price > 0


# ============================================================================
# Inputs
# ============================================================================

@dataclass(frozen=True)
class SecuritySeries:
    """Immutable daily price series for one security.

    Attributes:
        security_id: Identifier (e.g. the source file name)
        dates: Ascending integer YYYYMMDD dates
        close: Closing prices co-indexed with dates (NaN = no quote)
        open: Optional opening prices
        high: Optional high prices
        low: Optional low prices
        volume: Optional volumes
        name: Optional display name of the security
    """
    security_id: str
    dates: np.ndarray
    close: np.ndarray
    open: Optional[np.ndarray] = None
    high: Optional[np.ndarray] = None
    low: Optional[np.ndarray] = None
    volume: Optional[np.ndarray] = None
    name: Optional[str] = None

    def __post_init__(self):
        dates = np.asarray(self.dates, dtype=np.int64)
        close = np.asarray(self.close, dtype=float)
        if len(dates) != len(close):
            raise ValueError(
                f"{self.security_id}: dates ({len(dates)}) and close ({len(close)}) lengths differ"
            )
        object.__setattr__(self, 'dates', dates)
        object.__setattr__(self, 'close', close)
        for attr in ('open', 'high', 'low', 'volume'):
            values = getattr(self, attr)
            if values is None:
                continue
            values = np.asarray(values, dtype=float)
            if len(values) != len(dates):
                raise ValueError(f"{self.security_id}: {attr} length does not match dates")
            object.__setattr__(self, attr, values)

    def __len__(self) -> int:
        return len(self.dates)

    def index_of(self, date: int) -> int:
        """Binary search for an exact date. Returns -1 when absent."""
        i = int(np.searchsorted(self.dates, date, side='right')) - 1
        if 0 <= i < len(self.dates) and self.dates[i] == date:
            return i
        return -1

    def price_at(self, date: int) -> float:
        """Closing price on an exact date, NaN when the date is not observed."""
        i = self.index_of(date)
        if i < 0:
            return float('nan')
        return float(self.close[i])


@dataclass(frozen=True)
class ExecutionEvent:
    """Dated buy/sell intent with a resolved execution price."""
    date: int
    type: str
    security_id: str
    price: float
    exec_index: int
    reason: str

    @property
    def sort_key(self) -> tuple:
        # Sells settle before buys on the same date so freed cash is available.
        return (self.date, 0 if self.type == SELL else 1, self.security_id)


@dataclass
class PeriodPlan:
    """One rotation period: buy picks on buy_date, sell everything on sell_date."""
    period_key: str
    buy_date: int
    sell_date: int
    picks: List[str] = field(default_factory=list)


# ============================================================================
# Engine state
# ============================================================================

@dataclass
class EntryInfo:
    """Entry details of an open position."""
    date: int
    price: float
    cost_basis: float
    fee: float = 0.0
    period_key: Optional[str] = None


@dataclass
class Position:
    """Open position model.

    Attributes:
        security_id: Security held
        shares: Quantity (lot-aligned integer in signal mode, continuous in periodic mode)
        last_mark_price: Last price the position was marked at
        next_index: Next unseen index in the security's series
        entry: Entry details
        pending_token: Token of the scheduler entry currently pending for this position
    """
    security_id: str
    shares: float
    last_mark_price: float
    next_index: int
    entry: EntryInfo
    pending_token: Optional[int] = None

    @property
    def market_value(self) -> float:
        return self.shares * self.last_mark_price


@dataclass(frozen=True)
class Trade:
    """Completed trade record (immutable)."""
    security_id: str
    entry_date: int
    exit_date: int
    entry_price: float
    exit_price: float
    shares: float
    pnl: float
    trade_return: float
    reason: str
    fees: float = 0.0
    period_key: Optional[str] = None

    @property
    def is_win(self) -> bool:
        return math.isfinite(self.pnl) and self.pnl > 0


@dataclass(frozen=True)
class EquityPoint:
    date: int
    equity: float


# ============================================================================
# Results
# ============================================================================

@dataclass
class BacktestResult:
    """Backtest results container.

    Attributes:
        initial_capital: Starting capital
        equity_curve: One point per distinct date visited, ascending
        trades: Completed trades in settlement order
        summary: Output of metrics.summarize()
        open_positions: Positions still open at the end (always empty in signal mode)
        mode: 'signal' or 'periodic'
    """
    initial_capital: float
    equity_curve: List[EquityPoint] = field(default_factory=list)
    trades: List[Trade] = field(default_factory=list)
    summary: Dict = field(default_factory=dict)
    open_positions: Dict[str, Position] = field(default_factory=dict)
    mode: str = 'signal'

    @property
    def final_equity(self) -> float:
        return float(self.summary.get('final_equity', self.initial_capital))

    def equity_series(self) -> pd.Series:
        """Equity curve as a Series indexed by integer date."""
        if not self.equity_curve:
            return pd.Series(dtype=float, name='equity')
        return pd.Series(
            [p.equity for p in self.equity_curve],
            index=pd.Index([p.date for p in self.equity_curve], name='date'),
            name='equity',
        )

    def trades_frame(self) -> pd.DataFrame:
        """Trade ledger as a DataFrame (one row per trade)."""
        columns = [
            'security_id', 'entry_date', 'exit_date', 'entry_price', 'exit_price',
            'shares', 'pnl', 'trade_return', 'reason', 'fees', 'period_key',
        ]
        rows = [{c: getattr(t, c) for c in columns} for t in self.trades]
        return pd.DataFrame(rows, columns=columns)
