"""Tests for the distance/bearing/speed estimator."""

import pytest

from tracker.kinematics import estimate
from tracker.samples import RawSample


def _sample(lat, lon, speed=None):
    return RawSample(latitude=lat, longitude=lon, accuracy_m=5.0, timestamp_ms=0.0, speed_mps=speed)


class TestEstimate:
    def test_computed_speed(self):
        prev = _sample(35.0, 135.0)
        curr = _sample(35.001, 135.0)
        kin = estimate(prev, curr, elapsed_s=10.0)
        # 111 m in 10 s ≈ 40 km/h
        assert kin.distance_km == pytest.approx(0.1112, rel=1e-3)
        assert kin.distance_m == pytest.approx(111.2, rel=1e-3)
        assert kin.speed_kmh == pytest.approx(40.03, rel=1e-3)
        assert kin.bearing_deg == pytest.approx(0.0, abs=1e-6)
        assert not kin.speed_from_sensor

    def test_sensor_speed_wins(self):
        kin = estimate(_sample(35.0, 135.0), _sample(35.001, 135.0, speed=2.0), elapsed_s=10.0)
        assert kin.speed_kmh == pytest.approx(7.2)
        assert kin.speed_from_sensor

    def test_zero_sensor_speed_is_used(self):
        kin = estimate(_sample(35.0, 135.0), _sample(35.001, 135.0, speed=0.0), elapsed_s=10.0)
        assert kin.speed_kmh == 0.0
        assert kin.speed_from_sensor

    def test_negative_sensor_speed_ignored(self):
        kin = estimate(_sample(35.0, 135.0), _sample(35.001, 135.0, speed=-1.0), elapsed_s=10.0)
        assert kin.speed_kmh == pytest.approx(40.03, rel=1e-3)

    @pytest.mark.parametrize("elapsed", [0.0, -1.0])
    def test_no_elapsed_time(self, elapsed):
        kin = estimate(_sample(35.0, 135.0), _sample(35.001, 135.0), elapsed_s=elapsed)
        assert kin.speed_kmh == 0.0

    def test_stationary(self):
        kin = estimate(_sample(35.0, 135.0), _sample(35.0, 135.0), elapsed_s=1.0)
        assert kin.distance_km == 0.0
        assert kin.speed_kmh == 0.0

    @pytest.mark.parametrize("speed", [float("inf"), float("nan")])
    def test_non_finite_sensor_speed_ignored(self, speed):
        kin = estimate(_sample(35.0, 135.0), _sample(35.001, 135.0, speed=speed), elapsed_s=10.0)
        assert kin.speed_kmh == pytest.approx(40.03, rel=1e-3)
        assert not kin.speed_from_sensor
