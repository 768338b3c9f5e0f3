"""
Tests for the seasonal AdaptiveBaseline.
"""

import math
from datetime import timedelta

import pytest

from src.anomaly.methods.adaptive import AdaptiveBaseline, AdaptiveConfig, TemporalBucket
from src.anomaly.models import Direction, MetricSample


class TestTemporalBucket:
    """Tests for running mean / std buckets."""

    def test_empty_bucket(self):
        """An empty bucket reports zeros."""
        bucket = TemporalBucket()

        assert bucket.mean == 0.0
        assert bucket.std_dev == 0.0

    def test_mean_and_std(self, base_time):
        """Population statistics from sum and sum of squares."""
        bucket = TemporalBucket()
        for value in (48.0, 52.0, 48.0, 52.0):
            bucket.add(value, base_time)

        assert bucket.count == 4
        assert bucket.mean == pytest.approx(50.0)
        assert bucket.std_dev == pytest.approx(2.0)
        assert bucket.last_updated == base_time

    def test_constant_values_never_go_negative(self, base_time):
        """Float cancellation is clamped to zero variance."""
        bucket = TemporalBucket()
        for _ in range(3):
            bucket.add(0.1, base_time)

        assert bucket.std_dev == pytest.approx(0.0)
        assert not math.isnan(bucket.std_dev)


class TestAdaptiveConfig:
    """Tests for AdaptiveConfig validation."""

    def test_weights_must_fit_in_one(self):
        """Seasonal weights cannot exceed the whole."""
        with pytest.raises(ValueError):
            AdaptiveConfig(hourly_weight=0.8, daily_weight=0.4)


class TestAdaptiveBaseline:
    """Tests for learning and thresholding."""

    def test_unlearned_metric_is_neutral(self, base_time):
        """No data means no opinion."""
        baseline = AdaptiveBaseline()
        verdict = baseline.is_anomaly("cpu", 99.0, base_time)

        assert baseline.is_learned("cpu") is False
        assert verdict.is_anomaly is False
        assert verdict.direction == Direction.NORMAL
        assert verdict.confidence == 0.0

    def test_full_weight_buckets(self, base_time):
        """Ten samples in the same slot give full seasonal weight."""
        baseline = AdaptiveBaseline()
        baseline.learn("cpu", [MetricSample(base_time, 48.0 if i % 2 else 52.0) for i in range(10)])

        normal = baseline.is_anomaly("cpu", 53.0, base_time)
        high = baseline.is_anomaly("cpu", 55.0, base_time)
        low = baseline.is_anomaly("cpu", 45.0, base_time)

        assert normal.expected_mean == pytest.approx(50.0)
        assert normal.expected_std_dev == pytest.approx(2.0)
        assert normal.lower_bound == pytest.approx(46.0)
        assert normal.upper_bound == pytest.approx(54.0)
        assert normal.is_anomaly is False
        assert normal.confidence == pytest.approx(1.0)

        assert high.is_anomaly is True
        assert high.direction == Direction.HIGH
        assert high.deviation == pytest.approx(2.5)

        assert low.is_anomaly is True
        assert low.direction == Direction.LOW

    def test_empty_weekday_falls_back_to_overall(self, base_time):
        """Missing seasonal data shifts weight to the overall prior."""
        baseline = AdaptiveBaseline()
        monday_noon = [MetricSample(base_time, 50.0) for _ in range(10)]
        tuesday_night = [MetricSample(base_time + timedelta(hours=15), 10.0) for _ in range(10)]
        baseline.learn("cpu", monday_noon + tuesday_night)

        sunday_noon = base_time + timedelta(days=6)
        verdict = baseline.is_anomaly("cpu", 42.0, sunday_noon)

        # 0.6 * hourly(50) + 0.4 * overall(30)
        assert verdict.expected_mean == pytest.approx(42.0)
        # 0.6 * 0 + 0.4 * 20
        assert verdict.expected_std_dev == pytest.approx(8.0)
        assert verdict.confidence == pytest.approx(0.5)
        assert verdict.is_anomaly is False

    def test_std_floor(self, base_time):
        """Constant history still gets a minimum spread."""
        baseline = AdaptiveBaseline()
        baseline.learn("memory", [MetricSample(base_time, 70.0) for _ in range(20)])

        verdict = baseline.is_anomaly("memory", 70.9, base_time)

        assert verdict.expected_std_dev == pytest.approx(0.5)
        assert verdict.upper_bound == pytest.approx(71.0)
        assert verdict.is_anomaly is False
        assert baseline.is_anomaly("memory", 71.5, base_time).is_anomaly is True

    def test_learn_skips_non_finite(self, base_time):
        """NaN and infinity are never stored."""
        baseline = AdaptiveBaseline()
        learned = baseline.learn(
            "disk",
            [MetricSample(base_time, 1.0), MetricSample(base_time, math.nan), MetricSample(base_time, math.inf)],
        )

        assert learned == 1

    def test_observe_updates_incrementally(self, base_time):
        """Online observations make a metric learned."""
        baseline = AdaptiveBaseline()
        baseline.observe("network", 30.0, base_time)
        baseline.observe("network", math.nan, base_time)

        assert baseline.is_learned("network") is True
        assert baseline.status().metrics == ["network"]

    def test_reset(self, base_time):
        """reset() forgets every metric."""
        baseline = AdaptiveBaseline()
        baseline.observe("cpu", 30.0, base_time)
        baseline.reset()

        assert baseline.is_learned("cpu") is False
        assert baseline.status().metrics == []
