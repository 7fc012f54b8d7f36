"""Strategy base classes."""

from strategies.base.strategy_base import (
    PeriodPicker,
    SignalStrategy,
    crosses_above,
    crosses_below,
    ema,
    rolling_ma,
)

__all__ = ['SignalStrategy', 'PeriodPicker', 'crosses_above', 'crosses_below', 'ema', 'rolling_ma']
