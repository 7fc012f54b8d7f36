"""Moving-average alignment picker for period rotation.

Picks securities whose MA(fast) > MA(mid) > MA(slow) on the as-of date,
ranked by fast / slow - 1.
"""

from typing import Dict, List, Optional, Sequence
import math
import re

from engine.models import SecuritySeries
from strategies.base.strategy_base import PeriodPicker, rolling_ma

ST_PATTERN = re.compile(r'st', re.IGNORECASE)


def is_st_name(name: Optional[str]) -> bool:
    """Special-treatment names (ST, *ST) are flagged by the 'ST' marker."""
    return bool(name) and bool(ST_PATTERN.search(str(name)))


class MAAlignmentPicker(PeriodPicker):
    def __init__(
        self,
        series_by_id: Dict[str, SecuritySeries],
        ma_periods: Sequence[int] = (5, 10, 20),
        exclude_st: bool = True,
        pick_limit: Optional[int] = None,
    ):
        super().__init__(series_by_id)
        if len(ma_periods) != 3:
            raise ValueError(f"ma_periods needs (fast, mid, slow): {ma_periods}")
        self.fast, self.mid, self.slow = (int(p) for p in ma_periods)
        self.exclude_st = exclude_st
        self.pick_limit = pick_limit

    def _ma(self, series: SecuritySeries, period: int):
        return self.cached(('MA', series.security_id, period), lambda: rolling_ma(series.close, period))

    def pick(self, as_of_date: int, universe: Sequence[str]) -> List[str]:
        scored = []
        for security_id in universe:
            series = self.series_by_id.get(security_id)
            if series is None:
                continue
            if self.exclude_st and is_st_name(series.name):
                continue
            idx = series.index_of(as_of_date)
            if idx < 0:
                continue
            f = self._ma(series, self.fast).iloc[idx]
            m = self._ma(series, self.mid).iloc[idx]
            s = self._ma(series, self.slow).iloc[idx]
            if not (math.isfinite(f) and math.isfinite(m) and math.isfinite(s)):
                continue
            if not (f > m > s):
                continue
            score = f / s - 1.0 if s != 0 else f - s
            scored.append((score, security_id))

        scored.sort(key=lambda x: x[0], reverse=True)
        picks = [security_id for _, security_id in scored]
        if self.pick_limit:
            picks = picks[:self.pick_limit]
        return picks
