"""KD oscillator golden/death cross.

RSV = (CLOSE - LLV(LOW, W)) / (HHV(HIGH, W) - LLV(LOW, W)) * 100
K = EMA(RSV, span), D = EMA(K, span), both recursive (adjust=False).
Golden cross (K crosses above D) is the bullish signal, death cross the bearish one.
"""

from typing import Tuple

import numpy as np
import pandas as pd

from engine.models import SecuritySeries
from strategies.base.strategy_base import SignalStrategy, ema


class KDCrossStrategy(SignalStrategy):
    name = "kd_cross"

    def __init__(self, window: int = 40, span: int = 2, safe_rsv: bool = False):
        self.window = int(window)
        self.span = int(span)
        # Flat windows (high == low) yield no RSV instead of inf/NaN
        self.safe_rsv = safe_rsv

    def get_indicators(self, series: SecuritySeries) -> pd.DataFrame:
        self._require(series, 'high', 'low')
        low_n = pd.Series(series.low).rolling(self.window, min_periods=self.window).min()
        high_n = pd.Series(series.high).rolling(self.window, min_periods=self.window).max()
        denom = high_n - low_n
        with np.errstate(divide='ignore', invalid='ignore'):
            rsv = (pd.Series(series.close) - low_n) / denom * 100.0
        if self.safe_rsv:
            rsv = rsv.where(denom > 0)
        # Non-finite RSV counts as a missing observation for the EMA
        rsv = rsv.replace([np.inf, -np.inf], np.nan)
        k = ema(rsv, self.span)
        d = ema(k, self.span)
        return pd.DataFrame(
            {'rsv': rsv.to_numpy(), 'k': k.to_numpy(), 'd': d.to_numpy()},
            index=pd.Index(series.dates, name='date'),
        )

    def cross_masks(self, series: SecuritySeries) -> Tuple[np.ndarray, np.ndarray]:
        """(golden, death) cross flags."""
        df = self.get_indicators(series).reset_index(drop=True)
        k, d = df['k'], df['d']
        k_prev, d_prev = k.shift(1), d.shift(1)
        golden = (k_prev <= d_prev) & (k > d)
        death = (k_prev >= d_prev) & (k < d)
        return golden.to_numpy(dtype=bool), death.to_numpy(dtype=bool)

    def generate_signals(self, series: SecuritySeries) -> Tuple[np.ndarray, np.ndarray]:
        return self.cross_masks(series)
