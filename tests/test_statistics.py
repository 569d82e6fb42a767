"""Tests for the offset statistics helpers."""

import math

import pytest

from playback_sync.estimator import statistics


class TestBasicHelpers:
    def test_clamp_and_lerp(self) -> None:
        assert statistics.clamp(1200, -500, 1000) == 1000
        assert statistics.clamp01(-0.2) == 0.0
        assert statistics.lerp(0, 100, 0.1) == pytest.approx(10)

    def test_temporal_weights_decay_with_age(self) -> None:
        weights = statistics.temporal_weights([0, 30_000, 60_000])
        assert weights[0] == pytest.approx(1.0)
        assert weights[1] == pytest.approx(math.exp(-1))
        assert weights[2] < weights[1]

    def test_weighted_mean_prefers_heavier_samples(self) -> None:
        assert statistics.weighted_mean([100, 200], [3, 1]) == pytest.approx(125)

    def test_weighted_mean_falls_back_when_weights_underflow(self) -> None:
        assert statistics.weighted_mean([100, 200], [0, 0]) == pytest.approx(150)

    def test_empty_sequences(self) -> None:
        assert statistics.weighted_mean([], []) == 0.0
        assert statistics.mean([]) == 0.0
        assert statistics.variance([]) == 0.0

    def test_results_are_plain_floats(self) -> None:
        assert type(statistics.mean([1, 2, 3])) is float
        assert type(statistics.variance([1, 2, 3])) is float


class TestTrendAndPeriodicity:
    def test_linear_trend_slope(self) -> None:
        assert statistics.linear_trend([0, 10, 20, 30]) == pytest.approx(10)

    def test_linear_trend_needs_three_values(self) -> None:
        assert statistics.linear_trend([0, 100]) == 0.0

    def test_autocorrelation_needs_five_values(self) -> None:
        assert statistics.autocorrelation_peak([1, 2, 3, 4]) == 0.0

    def test_autocorrelation_detects_alternation(self) -> None:
        peak = statistics.autocorrelation_peak([100, -100] * 5)
        assert peak > 0


class TestOutliers:
    def test_flags_single_spike(self) -> None:
        values = [100, 110, 90, 105, 95, 100, 102, 98, 101, 5000]
        flags = statistics.iqr_outliers(values)
        assert flags[-1] is True
        assert sum(flags) == 1

    def test_small_samples_have_no_outliers(self) -> None:
        assert statistics.iqr_outliers([0, 0, 10_000]) == [False, False, False]


class TestStability:
    def test_constant_series_is_fully_stable(self) -> None:
        assert statistics.stability([100, 100, 100]) == pytest.approx(1.0)

    def test_large_jumps_floor_at_zero(self) -> None:
        assert statistics.stability([0, 1000, 0]) == 0.0

    def test_consistency_damped_by_trend(self) -> None:
        values = [100, 100, 100, 100]
        assert statistics.consistency(values, 0) == pytest.approx(1.0)
        assert statistics.consistency(values, 50) == pytest.approx(0.5)
        assert statistics.consistency(values, 500) == 0.0
