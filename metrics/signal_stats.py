"""Forward-return statistics conditioned on a signal.

For every row where the signal fires, the N-day forward return
close[i + N] / close[i] - 1 is collected per horizon. Rows near the end of the
series have no forward return; they are left out of describe() but still count
in the hit-rate denominator, so hit_rate = hits / signal_rows.
"""

from typing import Dict, Sequence
import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_HORIZONS = (1, 2, 3, 5, 10, 20)


def forward_returns(close: Sequence[float], horizon: int) -> np.ndarray:
    """close[i + horizon] / close[i] - 1, NaN where either side is unusable."""
    if horizon <= 0:
        raise ValueError(f"horizon must be positive: {horizon}")
    close = np.asarray(close, dtype=float)
    out = np.full(len(close), np.nan)
    if len(close) <= horizon:
        return out
    base = close[:-horizon]
    fut = close[horizon:]
    with np.errstate(divide='ignore', invalid='ignore'):
        ret = fut / base - 1.0
    ok = np.isfinite(base) & np.isfinite(fut) & (base != 0)
    out[:-horizon] = np.where(ok, ret, np.nan)
    return out


def _describe_horizons(samples: Dict[int, np.ndarray], signal_rows: int, bullish: bool) -> pd.DataFrame:
    rows = {}
    for horizon in sorted(samples):
        ret = samples[horizon]
        stats = pd.Series(ret[np.isfinite(ret)], dtype=float).describe()
        hits = int(np.sum(ret > 0)) if bullish else int(np.sum(ret < 0))
        stats['hit_count'] = hits
        stats['signal_rows'] = signal_rows
        stats['hit_rate'] = hits / signal_rows if signal_rows else np.nan
        rows[horizon] = stats
    frame = pd.DataFrame.from_dict(rows, orient='index')
    frame.index.name = 'horizon'
    return frame


def signal_forward_returns(
    close: Sequence[float],
    signal_mask: Sequence[bool],
    horizons: Sequence[int] = DEFAULT_HORIZONS,
) -> Dict[int, np.ndarray]:
    """Forward returns on the signal rows, per horizon (NaN kept)."""
    mask = np.asarray(signal_mask, dtype=bool)
    if len(mask) != len(close):
        raise ValueError(f"signal length {len(mask)} does not match close length {len(close)}")
    return {int(h): forward_returns(close, h)[mask] for h in horizons}


def forward_return_stats(
    close: Sequence[float],
    signal_mask: Sequence[bool],
    horizons: Sequence[int] = DEFAULT_HORIZONS,
    bullish: bool = True,
) -> pd.DataFrame:
    """
    Describe forward returns after signal rows.

    Args:
        close: Close prices
        signal_mask: True on signal rows, co-indexed with close
        horizons: Forward horizons in bars
        bullish: A hit is ret > 0 when True, ret < 0 otherwise

    Returns:
        DataFrame indexed by horizon with the describe() columns plus
        hit_count, signal_rows and hit_rate
    """
    samples = signal_forward_returns(close, signal_mask, horizons)
    signal_rows = int(np.asarray(signal_mask, dtype=bool).sum())
    return _describe_horizons(samples, signal_rows, bullish)


def pooled_forward_return_stats(
    samples_by_id: Dict[str, Dict[int, np.ndarray]],
    bullish: bool = True,
) -> pd.DataFrame:
    """
    Pool signal_forward_returns() output of many securities into one table.

    Every security must carry the same horizons.
    """
    if not samples_by_id:
        return _describe_horizons({}, 0, bullish)
    horizons = next(iter(samples_by_id.values())).keys()
    pooled = {
        h: np.concatenate([per_h[h] for per_h in samples_by_id.values()])
        for h in horizons
    }
    signal_rows = len(next(iter(pooled.values()))) if pooled else 0
    logger.debug(f"Pooled forward returns over {len(samples_by_id)} securities, {signal_rows} signal rows")
    return _describe_horizons(pooled, signal_rows, bullish)
