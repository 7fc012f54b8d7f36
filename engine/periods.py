"""Calendar period plans for rotation strategies.

A plan buys on the first trading date of a calendar period and sells on its
last. Picks are chosen as of the trading date before the buy date so a picker
never sees the buy-date bar.
"""

from datetime import date, timedelta
from typing import Callable, Dict, List, Optional, Sequence
import logging

from engine.models import PeriodPlan

logger = logging.getLogger(__name__)

PERIOD_FREQUENCIES = ('D', 'W', 'M', 'Q')

# picker(as_of_date, universe) -> ranked security ids
Picker = Callable[[int, Sequence[str]], List[str]]


def ymd_to_date(ymd: int) -> date:
    s = str(int(ymd))
    if len(s) != 8:
        raise ValueError(f"Expected YYYYMMDD date, got {ymd}")
    return date(int(s[:4]), int(s[4:6]), int(s[6:]))


def date_to_ymd(d: date) -> int:
    return d.year * 10000 + d.month * 100 + d.day


def week_key(ymd: int) -> str:
    """YYYYMMDD of the Monday starting the date's week."""
    d = ymd_to_date(ymd)
    return str(date_to_ymd(d - timedelta(days=d.weekday())))


def month_key(ymd: int) -> str:
    return str(int(ymd))[:6]


def quarter_key(ymd: int) -> str:
    s = str(int(ymd))
    return f"{s[:4]}Q{(int(s[4:6]) - 1) // 3 + 1}"


_KEY_FUNCS = {'W': week_key, 'M': month_key, 'Q': quarter_key}


def build_period_plans(trading_dates: Sequence[int], freq: str) -> List[PeriodPlan]:
    """
    Group the trading calendar into period plans.

    Args:
        trading_dates: Ascending trading dates (YYYYMMDD)
        freq: 'D', 'W', 'M' or 'Q'

    Returns:
        Plans sorted by buy date. Daily plans pair each date with the next one;
        periods with a single trading date are dropped since buy must precede sell.
    """
    f = str(freq or '').upper()
    if f not in PERIOD_FREQUENCIES:
        raise ValueError(f"Unsupported period frequency: {freq}. Supported: {list(PERIOD_FREQUENCIES)}")
    dates = [int(d) for d in trading_dates]
    if not dates:
        return []

    if f == 'D':
        return [
            PeriodPlan(period_key=str(buy), buy_date=buy, sell_date=sell)
            for buy, sell in zip(dates[:-1], dates[1:])
        ]

    key_of = _KEY_FUNCS[f]
    groups: Dict[str, List[int]] = {}
    for d in dates:
        bounds = groups.setdefault(key_of(d), [d, d])
        bounds[0] = min(bounds[0], d)
        bounds[1] = max(bounds[1], d)

    plans = [
        PeriodPlan(period_key=key, buy_date=buy, sell_date=sell)
        for key, (buy, sell) in groups.items()
        if buy < sell
    ]
    dropped = len(groups) - len(plans)
    if dropped:
        logger.debug(f"Dropped {dropped} single-day {f} periods")
    return sorted(plans, key=lambda p: p.buy_date)


def previous_trading_date(trading_dates: Sequence[int], ymd: int) -> Optional[int]:
    """Last trading date strictly before ymd, or None."""
    prev = None
    for d in trading_dates:
        if d >= ymd:
            break
        prev = d
    return prev


def attach_picks(
    plans: List[PeriodPlan],
    picker: Picker,
    universe: Sequence[str],
    trading_dates: Sequence[int],
    pick_limit: Optional[int] = None,
) -> List[PeriodPlan]:
    """
    Fill plan.picks from the picker, as of the trading date before each buy date.

    Plans without a previous trading date get no picks.
    """
    dates = sorted(int(d) for d in trading_dates)
    for plan in plans:
        as_of = previous_trading_date(dates, plan.buy_date)
        if as_of is None:
            plan.picks = []
            continue
        picks = list(picker(as_of, universe))
        if pick_limit:
            picks = picks[:pick_limit]
        plan.picks = picks
    return plans
