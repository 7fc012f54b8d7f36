"""Base strategy interfaces that all strategies must implement.

Two shapes exist:
- SignalStrategy: per-security boolean entry/exit arrays, replayed by the
  signal-event engine
- PeriodPicker: ranked picks for a rotation period, computed as of the
  trading date before the period's buy date
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from engine.models import SecuritySeries


class SignalStrategy(ABC):
    """Abstract base class for long-only signal strategies."""

    name: str = "signal"

    @abstractmethod
    def get_indicators(self, series: SecuritySeries) -> pd.DataFrame:
        """
        Compute indicator columns for a series.

        Args:
            series: Security price series

        Returns:
            DataFrame indexed like series.dates with one column per indicator
        """

    @abstractmethod
    def generate_signals(self, series: SecuritySeries) -> Tuple[np.ndarray, np.ndarray]:
        """
        Generate entry and exit flags.

        Args:
            series: Security price series

        Returns:
            (entry, exit) boolean arrays co-indexed with series.dates. A flag at
            index i may only use data up to and including bar i.
        """

    def _require(self, series: SecuritySeries, *fields: str) -> None:
        missing = [f for f in fields if getattr(series, f) is None]
        if missing:
            raise ValueError(f"{self.name} needs {missing} prices for {series.security_id}")


class PeriodPicker(ABC):
    """Abstract base class for rotation pickers."""

    def __init__(self, series_by_id: Dict[str, SecuritySeries]):
        self.series_by_id = series_by_id
        self._cache: Dict[Tuple, pd.Series] = {}

    @abstractmethod
    def pick(self, as_of_date: int, universe: Sequence[str]) -> List[str]:
        """
        Rank the universe as of a date.

        Args:
            as_of_date: Last trading date whose data may be used (YYYYMMDD)
            universe: Candidate security ids

        Returns:
            Security ids, best first
        """

    def __call__(self, as_of_date: int, universe: Sequence[str]) -> List[str]:
        return self.pick(as_of_date, universe)

    def cached(self, key: Tuple, compute) -> pd.Series:
        """Memoize a full-series indicator across periods."""
        if key not in self._cache:
            self._cache[key] = compute()
        return self._cache[key]


def crosses_above(values: pd.Series, level: float = 0.0) -> np.ndarray:
    """prev <= level < now, False where either side is NaN."""
    prev = values.shift(1)
    return ((prev <= level) & (values > level)).to_numpy(dtype=bool)


def crosses_below(values: pd.Series, level: float = 0.0) -> np.ndarray:
    """prev >= level > now, False where either side is NaN."""
    prev = values.shift(1)
    return ((prev >= level) & (values < level)).to_numpy(dtype=bool)


def rolling_ma(close: Sequence[float], period: int) -> pd.Series:
    """Simple moving average; NaN until a full window of finite values."""
    return pd.Series(np.asarray(close, dtype=float)).rolling(int(period), min_periods=int(period)).mean()


def ema(values: Sequence[float], span: int) -> pd.Series:
    """Recursive EMA (adjust=False); NaN gaps decay the old weight."""
    return pd.Series(np.asarray(values, dtype=float)).ewm(span=span, adjust=False, ignore_na=False).mean()
