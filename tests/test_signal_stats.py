"""Tests for forward-return signal statistics."""

import numpy as np
import pytest

from metrics.signal_stats import (
    forward_return_stats,
    forward_returns,
    pooled_forward_return_stats,
    signal_forward_returns,
)

CLOSE = [10.0, 11.0, 12.0, 11.0, 10.0]
MASK = [True, False, True, False, True]


def test_forward_returns():
    ret = forward_returns(CLOSE, 2)
    assert ret[:3] == pytest.approx([0.2, 0.0, -1 / 6])
    assert np.isnan(ret[3:]).all()


def test_forward_returns_skip_unusable_base():
    ret = forward_returns([0.0, np.nan, 12.0], 1)
    assert np.isnan(ret).all()


def test_forward_returns_rejects_non_positive_horizon():
    with pytest.raises(ValueError):
        forward_returns(CLOSE, 0)


def test_tail_rows_count_in_hit_rate_denominator():
    """The last signal row has no forward return but still counts as a signal row."""
    stats = forward_return_stats(CLOSE, MASK, horizons=(1, 2))

    assert list(stats.index) == [1, 2]
    row = stats.loc[1]
    assert row["count"] == 2
    assert row["hit_count"] == 1
    assert row["signal_rows"] == 3
    assert row["hit_rate"] == pytest.approx(1 / 3)
    assert row["mean"] == pytest.approx((0.1 - 1 / 12) / 2)


def test_bearish_hits_are_negative_returns():
    stats = forward_return_stats(CLOSE, MASK, horizons=(2,), bullish=False)
    assert stats.loc[2, "hit_count"] == 1
    assert stats.loc[2, "hit_rate"] == pytest.approx(1 / 3)


def test_pooled_stats():
    samples = signal_forward_returns(CLOSE, MASK, horizons=(1, 2))
    pooled = pooled_forward_return_stats({"A": samples, "B": samples})
    assert pooled.loc[1, "signal_rows"] == 6
    assert pooled.loc[1, "count"] == 4
    assert pooled.loc[1, "hit_rate"] == pytest.approx(1 / 3)


def test_pooled_stats_empty():
    assert pooled_forward_return_stats({}).empty


def test_mask_length_mismatch_raises():
    with pytest.raises(ValueError):
        signal_forward_returns(CLOSE, [True, False], horizons=(1,))
