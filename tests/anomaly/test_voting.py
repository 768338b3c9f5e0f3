"""
Tests for weighted voting and verdict composition.
"""

import pytest

from src.anomaly.models import (
    AdaptiveVerdict,
    ConsensusLevel,
    DetectorWeights,
    Direction,
    EngineConfig,
    Metric,
    MultivariateVerdict,
    Severity,
    StatisticalVerdict,
)
from src.anomaly.voting import (
    DetectionInputs,
    adaptive_score,
    combine_results,
    consensus_for,
    find_dominant_metric,
    severity_for,
    statistical_score,
)


def stat_verdict(is_anomaly=False, severity=Severity.LOW, confidence=0.5, deviation=0.0):
    return StatisticalVerdict(
        is_anomaly=is_anomaly,
        severity=severity,
        confidence=confidence,
        deviation=deviation,
        mean=50.0,
        std_dev=1.0,
        upper_threshold=52.0,
        lower_threshold=48.0,
        current_value=50.0 + deviation,
        sample_count=30,
    )


def adaptive_verdict(is_anomaly=False, deviation=0.0, direction=Direction.NORMAL, confidence=1.0):
    return AdaptiveVerdict(
        is_anomaly=is_anomaly,
        direction=direction,
        deviation=deviation,
        expected_mean=50.0,
        expected_std_dev=1.0,
        lower_bound=48.0,
        upper_bound=52.0,
        confidence=confidence,
    )


def forest_verdict(score, contributions=None, confidence=1.0):
    return MultivariateVerdict(
        is_anomaly=score > 0.3,
        anomaly_score=score,
        confidence=confidence,
        metric_contributions=contributions or {m: 0.25 for m in Metric},
    )


@pytest.fixture
def inputs(base_time):
    return DetectionInputs(server_id="srv-001", server_name="web-1", timestamp=base_time)


class TestScores:
    """Tests for per-strategy score helpers."""

    def test_statistical_score_takes_highest_band(self):
        """Band scores 0.4 / 0.7 / 1.0 over anomalous metrics only."""
        results = {
            Metric.CPU: stat_verdict(True, Severity.MEDIUM),
            Metric.MEMORY: stat_verdict(True, Severity.LOW),
            Metric.DISK: stat_verdict(False, Severity.HIGH),
        }
        assert statistical_score(results) == pytest.approx(0.7)
        assert statistical_score({Metric.CPU: stat_verdict()}) == 0.0

    def test_adaptive_score_is_capped(self):
        """Deviation is capped at 4 sigma."""
        assert adaptive_score({Metric.CPU: adaptive_verdict(True, 2.0)}) == pytest.approx(0.5)
        assert adaptive_score({Metric.CPU: adaptive_verdict(True, 12.0)}) == pytest.approx(1.0)
        assert adaptive_score({Metric.CPU: adaptive_verdict(False, 12.0)}) == 0.0

    @pytest.mark.parametrize(
        "score,expected",
        [
            (0.0, Severity.LOW),
            (0.49, Severity.LOW),
            (0.5, Severity.MEDIUM),
            (0.7, Severity.HIGH),
            (0.85, Severity.CRITICAL),
            (1.0, Severity.CRITICAL),
        ],
    )
    def test_severity_tiers(self, score, expected):
        """Tier boundaries are inclusive."""
        assert severity_for(score) == expected

    @pytest.mark.parametrize(
        "votes,expected",
        [(0, ConsensusLevel.NONE), (1, ConsensusLevel.PARTIAL), (2, ConsensusLevel.PARTIAL), (3, ConsensusLevel.FULL)],
    )
    def test_consensus(self, votes, expected):
        """Consensus from the number of anomaly votes."""
        assert consensus_for(votes) == expected


class TestCombineResults:
    """Tests for combine_results."""

    def test_threshold_is_strict(self, inputs):
        """A weighted score exactly at the threshold is not anomalous."""
        config = EngineConfig(
            enable_statistical=False,
            enable_adaptive=False,
            weights=DetectorWeights(statistical=0, isolation_forest=1, adaptive=0),
        )
        inputs.isolation_forest = forest_verdict(0.5)

        verdict = combine_results(config, inputs)

        assert verdict.anomaly_score == pytest.approx(0.5)
        assert verdict.is_anomaly is False
        assert verdict.severity == Severity.MEDIUM

    def test_single_active_strategy_is_renormalized(self, inputs):
        """With default weights a lone strategy still spans [0, 1]."""
        inputs.isolation_forest = forest_verdict(0.9)

        verdict = combine_results(EngineConfig(), inputs)

        assert verdict.voting.weighted_score == pytest.approx(0.9)
        assert verdict.is_anomaly is True
        assert verdict.severity == Severity.CRITICAL

    def test_all_strategies_weighted(self, inputs):
        """Full weight is not renormalized."""
        inputs.statistical = {Metric.CPU: stat_verdict(True, Severity.HIGH, deviation=5.0)}
        inputs.isolation_forest = forest_verdict(0.5)
        inputs.adaptive = {Metric.CPU: adaptive_verdict(True, 2.0, Direction.HIGH)}

        verdict = combine_results(EngineConfig(), inputs)

        # 0.3 * 1.0 + 0.4 * 0.5 + 0.3 * 0.5
        assert verdict.voting.weighted_score == pytest.approx(0.65)
        assert verdict.is_anomaly is True
        assert verdict.voting.consensus_level == ConsensusLevel.FULL
        assert verdict.voting.votes == {"statistical": True, "isolation_forest": True, "adaptive": True}

    def test_no_results_scores_zero(self, inputs):
        """Nothing ran: score 0, no consensus, zero confidence."""
        verdict = combine_results(EngineConfig(), inputs)

        assert verdict.anomaly_score == 0.0
        assert verdict.is_anomaly is False
        assert verdict.confidence == 0.0
        assert verdict.voting.consensus_level == ConsensusLevel.NONE
        assert verdict.dominant_metric is None

    def test_disabled_strategy_output_is_ignored(self, inputs):
        """Results of disabled strategies do not contribute weight."""
        config = EngineConfig(enable_isolation_forest=False)
        inputs.statistical = {Metric.CPU: stat_verdict()}
        inputs.isolation_forest = forest_verdict(1.0)

        verdict = combine_results(config, inputs)

        assert verdict.voting.weighted_score == 0.0

    def test_breakdown_and_time_context(self, inputs):
        """Detector summaries and time context are filled in."""
        inputs.statistical = {
            Metric.CPU: stat_verdict(True, Severity.MEDIUM, confidence=0.8),
            Metric.MEMORY: stat_verdict(confidence=0.4),
        }
        inputs.adaptive = {Metric.CPU: adaptive_verdict(True, 3.0, Direction.LOW, confidence=0.5)}

        verdict = combine_results(EngineConfig(), inputs)
        detectors = verdict.detectors

        assert detectors.statistical.is_anomaly is True
        assert detectors.statistical.severity == Severity.MEDIUM
        assert detectors.statistical.confidence == pytest.approx(0.6)
        assert detectors.isolation_forest.anomaly_score == 0.0
        assert detectors.adaptive.direction == Direction.LOW
        assert detectors.adaptive.threshold_confidence == pytest.approx(0.5)
        assert verdict.confidence == pytest.approx(0.55)
        assert verdict.time_context.hour == 12
        assert verdict.time_context.day_of_week == "Monday"
        assert verdict.server_name == "web-1"


class TestDominantMetric:
    """Tests for find_dominant_metric priority."""

    def test_high_statistical_anomaly_wins(self, inputs):
        """A high-severity statistical anomaly takes precedence."""
        inputs.statistical = {Metric.MEMORY: stat_verdict(True, Severity.HIGH)}
        inputs.isolation_forest = forest_verdict(0.9, {Metric.CPU: 0.9, Metric.MEMORY: 0.1})

        assert find_dominant_metric(inputs) == Metric.MEMORY

    def test_forest_contribution_above_threshold(self, inputs):
        """Otherwise the largest contribution above 0.35."""
        inputs.statistical = {Metric.MEMORY: stat_verdict(True, Severity.MEDIUM)}
        inputs.isolation_forest = forest_verdict(0.9, {Metric.DISK: 0.6, Metric.CPU: 0.4})

        assert find_dominant_metric(inputs) == Metric.DISK

    def test_adaptive_largest_deviation(self, inputs):
        """Finally the adaptive anomaly with the largest deviation."""
        inputs.isolation_forest = forest_verdict(0.2)
        inputs.adaptive = {
            Metric.CPU: adaptive_verdict(True, 2.5),
            Metric.NETWORK: adaptive_verdict(True, 3.5),
            Metric.DISK: adaptive_verdict(False, 9.0),
        }

        assert find_dominant_metric(inputs) == Metric.NETWORK
