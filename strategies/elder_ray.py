"""Elder Ray long-only strategy.

BullPower = HIGH - EMA(CLOSE, N), BearPower = LOW - EMA(CLOSE, N).
Entry when BearPower crosses above zero, exit when BullPower crosses below zero.
"""

from typing import Tuple
import logging

import numpy as np
import pandas as pd

from engine.models import SecuritySeries
from strategies.base.strategy_base import SignalStrategy, crosses_above, crosses_below, ema

logger = logging.getLogger(__name__)


class ElderRayStrategy(SignalStrategy):
    name = "elder_ray"

    def __init__(self, span: int = 20):
        if span <= 0:
            raise ValueError(f"span must be positive: {span}")
        self.span = int(span)

    def get_indicators(self, series: SecuritySeries) -> pd.DataFrame:
        self._require(series, 'high', 'low')
        ema_close = ema(series.close, self.span)
        df = pd.DataFrame(index=pd.Index(series.dates, name='date'))
        df['ema_close'] = ema_close.to_numpy()
        df['bull_power'] = series.high - df['ema_close'].to_numpy()
        df['bear_power'] = series.low - df['ema_close'].to_numpy()
        return df

    def generate_signals(self, series: SecuritySeries) -> Tuple[np.ndarray, np.ndarray]:
        df = self.get_indicators(series).reset_index(drop=True)
        entry = crosses_above(df['bear_power'])
        exit_ = crosses_below(df['bull_power'])
        logger.debug(f"{series.security_id}: {int(entry.sum())} entries, {int(exit_.sum())} exits")
        return entry, exit_
