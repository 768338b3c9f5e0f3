"""
Weighted voting over the per-strategy verdicts.

Each enabled strategy that produced a result contributes a score in [0, 1]
scaled by its weight. When only part of the total weight is active the score
is renormalized by the active weight, so a lone strategy still speaks on the
full [0, 1] scale.
"""

from dataclasses import dataclass
from datetime import datetime

from .models import (
    METRICS,
    AdaptiveSummary,
    AdaptiveVerdict,
    ConsensusLevel,
    DetectorBreakdown,
    Direction,
    EngineConfig,
    IsolationForestSummary,
    Metric,
    MultivariateVerdict,
    Severity,
    StatisticalSummary,
    StatisticalVerdict,
    TimeContext,
    UnifiedVerdict,
    VotingResult,
)

SEVERITY_SCORES = {Severity.LOW: 0.4, Severity.MEDIUM: 0.7, Severity.HIGH: 1.0}
MAX_ADAPTIVE_DEVIATION = 4.0
DOMINANT_CONTRIBUTION_THRESHOLD = 0.35


@dataclass
class DetectionInputs:
    """Raw strategy outputs for one sample; None means the strategy did not run"""

    server_id: str
    server_name: str | None
    timestamp: datetime
    statistical: dict[Metric, StatisticalVerdict] | None = None
    isolation_forest: MultivariateVerdict | None = None
    adaptive: dict[Metric, AdaptiveVerdict] | None = None


def statistical_score(results: dict[Metric, StatisticalVerdict]) -> float:
    """Highest severity band among anomalous metrics"""
    scores = [SEVERITY_SCORES.get(r.severity, 0.0) for r in results.values() if r.is_anomaly]
    return max(scores, default=0.0)


def adaptive_score(results: dict[Metric, AdaptiveVerdict]) -> float:
    """Largest anomalous deviation, capped at 4 sigma and scaled to [0, 1]"""
    deviations = [min(r.deviation, MAX_ADAPTIVE_DEVIATION) for r in results.values() if r.is_anomaly]
    return max(deviations, default=0.0) / MAX_ADAPTIVE_DEVIATION


def severity_for(score: float) -> Severity:
    if score >= 0.85:
        return Severity.CRITICAL
    if score >= 0.7:
        return Severity.HIGH
    if score >= 0.5:
        return Severity.MEDIUM
    return Severity.LOW


def consensus_for(votes: int) -> ConsensusLevel:
    if votes == 0:
        return ConsensusLevel.NONE
    if votes == 3:
        return ConsensusLevel.FULL
    return ConsensusLevel.PARTIAL


def _max_severity(results: dict[Metric, StatisticalVerdict]) -> Severity:
    severities = {r.severity for r in results.values()}
    for severity in (Severity.HIGH, Severity.MEDIUM):
        if severity in severities:
            return severity
    return Severity.LOW


def _dominant_direction(results: dict[Metric, AdaptiveVerdict]) -> Direction:
    directions = {r.direction for r in results.values()}
    for direction in (Direction.HIGH, Direction.LOW):
        if direction in directions:
            return direction
    return Direction.NORMAL


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def overall_confidence(inputs: DetectionInputs) -> float:
    """Average confidence of the strategies that produced a result"""
    confidences = []
    if inputs.statistical is not None:
        confidences.append(_mean([r.confidence for r in inputs.statistical.values()]))
    if inputs.isolation_forest is not None:
        confidences.append(inputs.isolation_forest.confidence)
    if inputs.adaptive is not None:
        confidences.append(_mean([r.confidence for r in inputs.adaptive.values()]))
    return round(_mean(confidences), 2)


def find_dominant_metric(inputs: DetectionInputs) -> Metric | None:
    """Metric most responsible for the verdict

    Priority: a high-severity statistical anomaly, then the largest
    multivariate contribution above 0.35, then the adaptive anomaly with the
    largest deviation.
    """
    if inputs.statistical:
        for metric in METRICS:
            result = inputs.statistical.get(metric)
            if result is not None and result.is_anomaly and result.severity is Severity.HIGH:
                return metric

    if inputs.isolation_forest is not None:
        contributions = inputs.isolation_forest.metric_contributions
        if contributions:
            metric = max(contributions, key=contributions.get)
            if contributions[metric] > DOMINANT_CONTRIBUTION_THRESHOLD:
                return metric

    if inputs.adaptive:
        anomalies = [(r.deviation, m) for m, r in inputs.adaptive.items() if r.is_anomaly]
        if anomalies:
            return max(anomalies, key=lambda pair: pair[0])[1]

    return None


def combine_results(config: EngineConfig, inputs: DetectionInputs) -> UnifiedVerdict:
    """Fold the strategy outputs into one verdict"""
    weights = config.weights
    stat_vote = bool(inputs.statistical) and any(r.is_anomaly for r in inputs.statistical.values())
    forest_vote = inputs.isolation_forest is not None and inputs.isolation_forest.is_anomaly
    adaptive_vote = bool(inputs.adaptive) and any(r.is_anomaly for r in inputs.adaptive.values())

    weighted_score = 0.0
    active_weight = 0.0

    if config.enable_statistical and inputs.statistical is not None:
        weighted_score += statistical_score(inputs.statistical) * weights.statistical
        active_weight += weights.statistical

    if config.enable_isolation_forest and inputs.isolation_forest is not None:
        weighted_score += inputs.isolation_forest.anomaly_score * weights.isolation_forest
        active_weight += weights.isolation_forest

    if config.enable_adaptive and inputs.adaptive is not None:
        weighted_score += adaptive_score(inputs.adaptive) * weights.adaptive
        active_weight += weights.adaptive

    if 0.0 < active_weight < 1.0:
        weighted_score /= active_weight
    weighted_score = min(max(weighted_score, 0.0), 1.0)

    votes = sum((stat_vote, forest_vote, adaptive_vote))
    score = round(weighted_score, 2)

    return UnifiedVerdict(
        server_id=inputs.server_id,
        server_name=inputs.server_name,
        is_anomaly=weighted_score > config.voting_threshold,
        severity=severity_for(weighted_score),
        confidence=overall_confidence(inputs),
        anomaly_score=score,
        detectors=_breakdown(config, inputs, stat_vote, forest_vote, adaptive_vote),
        voting=VotingResult(
            votes={
                "statistical": stat_vote,
                "isolation_forest": forest_vote,
                "adaptive": adaptive_vote,
            },
            weighted_score=score,
            consensus_level=consensus_for(votes),
        ),
        dominant_metric=find_dominant_metric(inputs),
        time_context=TimeContext(
            timestamp=inputs.timestamp,
            hour=inputs.timestamp.hour,
            day_of_week=inputs.timestamp.strftime("%A"),
        ),
    )


def _breakdown(
    config: EngineConfig,
    inputs: DetectionInputs,
    stat_vote: bool,
    forest_vote: bool,
    adaptive_vote: bool,
) -> DetectorBreakdown:
    statistical = inputs.statistical or {}
    adaptive = inputs.adaptive or {}
    forest = inputs.isolation_forest

    return DetectorBreakdown(
        statistical=StatisticalSummary(
            enabled=config.enable_statistical,
            is_anomaly=stat_vote,
            severity=_max_severity(statistical),
            confidence=_mean([r.confidence for r in statistical.values()]),
            metrics=dict(statistical),
        ),
        isolation_forest=IsolationForestSummary(
            enabled=config.enable_isolation_forest,
            is_anomaly=forest_vote,
            anomaly_score=forest.anomaly_score if forest is not None else 0.0,
            metric_contributions=(
                dict(forest.metric_contributions) if forest is not None else {m: 0.0 for m in METRICS}
            ),
        ),
        adaptive=AdaptiveSummary(
            enabled=config.enable_adaptive,
            is_anomaly=adaptive_vote,
            direction=_dominant_direction(adaptive),
            expected_mean=_mean([r.expected_mean for r in adaptive.values()]),
            threshold_confidence=_mean([r.confidence for r in adaptive.values()]),
            metrics=dict(adaptive),
        ),
    )
