"""Execution event builder.

Turns one security's boolean entry/exit signal arrays into dated buy/sell
intents with a resolved execution price, plus a forced end-of-window
liquidation so every position opened inside the window is also closed in it.
"""

from typing import List, Sequence
import logging

import numpy as np

from engine.models import (
    BUY,
    SELL,
    REASON_FORCE_EXIT_EOF,
    REASON_SIGNAL_ENTRY,
    REASON_SIGNAL_EXIT,
    ExecutionEvent,
    SecuritySeries,
    is_valid_price,
)

logger = logging.getLogger(__name__)

EXECUTION_TIMINGS = ('same_close', 'next_close')


def execution_offset(execution_timing: str) -> int:
    """Bars between the signal and its fill."""
    if execution_timing == 'same_close':
        return 0
    if execution_timing == 'next_close':
        return 1
    raise ValueError(f"Unsupported execution timing: {execution_timing}. Supported: {list(EXECUTION_TIMINGS)}")


def build_execution_events(
    series: SecuritySeries,
    entry_signal: Sequence[bool],
    exit_signal: Sequence[bool],
    start_date: int,
    end_date: int,
    execution_timing: str = 'next_close',
) -> List[ExecutionEvent]:
    """
    Build execution events for one security.

    For every in-window index with an exit (then entry) signal, the fill index is
    the same bar (same_close) or the next bar (next_close). The event is emitted
    only when the fill bar exists, lies in the window and has a valid close.
    Entries filling on or after the forced-liquidation bar are dropped, so no
    position can outlive the window.

    Args:
        series: Price series of the security
        entry_signal: Boolean entry flags co-indexed with series.dates
        exit_signal: Boolean exit flags co-indexed with series.dates
        start_date: Inclusive window start (YYYYMMDD)
        end_date: Inclusive window end (YYYYMMDD)
        execution_timing: 'same_close' or 'next_close'

    Returns:
        Events in scan order, the forced liquidation last
    """
    entry = np.asarray(entry_signal, dtype=bool)
    exit_ = np.asarray(exit_signal, dtype=bool)
    n = len(series)
    if len(entry) != n or len(exit_) != n:
        raise ValueError(
            f"{series.security_id}: signal lengths ({len(entry)}, {len(exit_)}) do not match series length {n}"
        )
    offset = execution_offset(execution_timing)
    dates = series.dates
    close = series.close
    in_window = (dates >= start_date) & (dates <= end_date)

    # Force liquidation on the last in-window date with a usable quote
    tradable = in_window & np.isfinite(close) & (close > 0)
    last_idx = int(np.flatnonzero(tradable)[-1]) if tradable.any() else -1

    events: List[ExecutionEvent] = []

    def fill(i: int, event_type: str, reason: str) -> None:
        j = i + offset
        if j >= n or not in_window[j]:
            return
        if event_type == BUY and j >= last_idx:
            logger.debug(f"{series.security_id}: entry fill on {dates[j]} is at or after the liquidation bar, dropping")
            return
        price = close[j]
        if not is_valid_price(price):
            logger.debug(f"{series.security_id}: no valid quote on {dates[j]}, dropping {reason}")
            return
        events.append(ExecutionEvent(
            date=int(dates[j]),
            type=event_type,
            security_id=series.security_id,
            price=float(price),
            exec_index=j,
            reason=reason,
        ))

    for i in np.flatnonzero(in_window & (entry | exit_)):
        i = int(i)
        if exit_[i]:
            fill(i, SELL, REASON_SIGNAL_EXIT)
        if entry[i]:
            fill(i, BUY, REASON_SIGNAL_ENTRY)

    if last_idx >= 0:
        events.append(ExecutionEvent(
            date=int(dates[last_idx]),
            type=SELL,
            security_id=series.security_id,
            price=float(close[last_idx]),
            exec_index=last_idx,
            reason=REASON_FORCE_EXIT_EOF,
        ))

    return events
