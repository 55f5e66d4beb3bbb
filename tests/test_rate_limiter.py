"""Tests for the telemetry interval throttle."""

import pytest

from tracker.rate_limiter import IntervalThrottle


class TestIntervalThrottle:
    def test_first_request_allowed(self):
        assert IntervalThrottle(5.0).allow(t=0.0)

    def test_interval_is_strict(self):
        th = IntervalThrottle(5.0)
        assert th.allow(t=0.0)
        assert not th.allow(t=5.0)
        assert th.allow(t=5.01)

    def test_reset_to_session_start(self):
        th = IntervalThrottle(5.0)
        th.reset(100.0)
        assert not th.allow(t=101.0)
        assert th.allow(t=106.0)

    def test_reset_without_time_allows_immediately(self):
        th = IntervalThrottle(5.0)
        th.allow(t=0.0)
        th.reset()
        assert th.allow(t=0.1)

    def test_one_per_interval(self):
        th = IntervalThrottle(5.0)
        th.reset(0.0)
        accepted = [t for t in range(1, 61) if th.allow(t=float(t))]
        assert accepted == [6, 12, 18, 24, 30, 36, 42, 48, 54, 60]

    def test_stats(self):
        th = IntervalThrottle(1.0)
        for t in (0.0, 0.5, 1.5, 1.6):
            th.allow(t=t)
        assert th.stats.total_requests == 4
        assert th.stats.accepted == 2
        assert th.stats.throttled == 2

    def test_time_until_next(self):
        th = IntervalThrottle(5.0)
        assert th.time_until_next(t=0.0) == 0.0
        th.allow(t=10.0)
        assert th.time_until_next(t=12.0) == pytest.approx(3.0)
        assert th.time_until_next(t=20.0) == 0.0

    def test_properties(self):
        th = IntervalThrottle(2.5)
        assert th.min_interval_s == 2.5
        assert th.last_accept_t is None
        th.allow(t=3.0)
        assert th.last_accept_t == 3.0

    def test_negative_interval_clamped(self):
        th = IntervalThrottle(-1.0)
        assert th.min_interval_s == 0.0
