"""Tests for execution event building."""

import numpy as np
import pytest

from engine.events import build_execution_events, execution_offset
from engine.models import BUY, SELL, SecuritySeries

DATES = [20240102, 20240103, 20240104, 20240105]


def make_series(close, dates=DATES, security_id="AAA"):
    return SecuritySeries(security_id=security_id, dates=dates, close=close)


def flags(n, *on):
    out = np.zeros(n, dtype=bool)
    out[list(on)] = True
    return out


def test_next_close_fills_on_following_bar():
    series = make_series([10.0, 11.0, 12.0, 13.0])
    events = build_execution_events(series, flags(4, 1), flags(4, 2), 20240101, 20241231, "next_close")

    assert [(e.date, e.type, e.price, e.reason) for e in events] == [
        (20240104, BUY, 12.0, "signal_entry"),
        (20240105, SELL, 13.0, "signal_exit"),
        (20240105, SELL, 13.0, "force_exit_eof"),
    ]
    assert events[0].exec_index == 2


def test_same_close_fills_on_signal_bar():
    series = make_series([10.0, 11.0, 12.0, 13.0])
    events = build_execution_events(series, flags(4, 1), flags(4), 20240101, 20241231, "same_close")
    assert (events[0].date, events[0].type, events[0].price) == (20240103, BUY, 11.0)


def test_exit_is_emitted_before_entry_on_the_same_bar():
    series = make_series([10.0, 11.0, 12.0, 13.0])
    events = build_execution_events(series, flags(4, 1), flags(4, 1), 20240101, 20241231, "next_close")
    assert [e.type for e in events[:2]] == [SELL, BUY]


def test_fill_past_series_end_is_dropped():
    series = make_series([10.0, 11.0, 12.0, 13.0])
    events = build_execution_events(series, flags(4, 3), flags(4), 20240101, 20241231, "next_close")
    assert [e.reason for e in events] == ["force_exit_eof"]


def test_fill_outside_window_is_dropped_and_liquidation_anchors_to_window():
    series = make_series([10.0, 11.0, 12.0, 13.0])
    events = build_execution_events(series, flags(4, 2), flags(4), 20240102, 20240104, "next_close")
    assert len(events) == 1
    assert (events[0].date, events[0].reason, events[0].price) == (20240104, "force_exit_eof", 12.0)


def test_invalid_prices_are_skipped():
    series = make_series([10.0, np.nan, 12.0, np.nan])
    events = build_execution_events(series, flags(4, 0), flags(4), 20240101, 20241231, "next_close")
    # Fill bar has no quote; liquidation uses the last valid in-window close
    assert len(events) == 1
    assert (events[0].date, events[0].price) == (20240104, 12.0)


def test_no_in_window_observation_means_no_events():
    series = make_series([10.0, 11.0, 12.0, 13.0])
    events = build_execution_events(series, flags(4, 0), flags(4), 20250101, 20251231, "next_close")
    assert events == []


def test_signal_length_mismatch_raises():
    series = make_series([10.0, 11.0, 12.0, 13.0])
    with pytest.raises(ValueError):
        build_execution_events(series, flags(3), flags(4), 20240101, 20241231)


def test_unknown_execution_timing_raises():
    with pytest.raises(ValueError):
        execution_offset("next_open")


def test_sort_key_puts_sells_first():
    series = make_series([10.0, 11.0, 12.0, 13.0])
    events = build_execution_events(series, flags(4, 2), flags(4, 2), 20240101, 20241231, "same_close")
    ordered = sorted(events, key=lambda e: e.sort_key)
    assert ordered[0].type == SELL
    assert ordered[1].type == BUY


def test_entry_on_liquidation_bar_is_dropped():
    """An entry filling on the forced-liquidation bar would never be closed."""
    series = make_series([10.0, 11.0, 12.0, 13.0])

    events = build_execution_events(series, flags(4, 2), flags(4), 20240101, 20241231, "next_close")
    assert [e.reason for e in events] == ["force_exit_eof"]

    events = build_execution_events(series, flags(4, 3), flags(4), 20240101, 20241231, "same_close")
    assert [e.reason for e in events] == ["force_exit_eof"]


def test_entry_before_trailing_missing_quotes_is_dropped():
    series = make_series([10.0, 11.0, 12.0, np.nan])
    events = build_execution_events(series, flags(4, 1), flags(4), 20240101, 20241231, "next_close")
    # Fill bar 2 is the last tradable bar
    assert [(e.date, e.reason) for e in events] == [(20240104, "force_exit_eof")]
