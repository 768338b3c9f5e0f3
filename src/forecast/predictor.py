"""
Least-squares trend forecaster for server metrics.

Fits a line to the most recent samples, projects it forward and, for the
percentage metrics, estimates when warning / critical levels will be crossed
or when a degraded metric will recover.
"""

import math
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta

import numpy as np
import structlog

from src.anomaly.models import MetricSample

from .models import (
    DEFAULT_THRESHOLDS,
    PERCENT_METRICS,
    ForecastConfig,
    ForecastResult,
    RegressionFit,
    Trend,
    TrendDetails,
    TrendResult,
)
from .thresholds import determine_status, predict_recovery, predict_threshold_breach

logger = structlog.get_logger(__name__)


def fit_linear_regression(history: Sequence[MetricSample]) -> RegressionFit:
    """Ordinary least squares of value on seconds since the first sample

    Degenerate inputs never raise: a zero time spread gives slope 0 and a
    constant series gives R² = 0.
    """
    n = len(history)
    if n == 0:
        return RegressionFit(slope=0.0, intercept=0.0, r_squared=0.0)

    base = history[0].timestamp
    x = np.array([(s.timestamp - base).total_seconds() for s in history], dtype=float)
    y = np.array([s.value for s in history], dtype=float)

    sum_x, sum_y = x.sum(), y.sum()
    denominator = n * (x * x).sum() - sum_x * sum_x
    if n < 2 or math.isclose(denominator, 0.0, abs_tol=1e-12):
        slope = 0.0
    else:
        slope = float((n * (x * y).sum() - sum_x * sum_y) / denominator)
    intercept = float((sum_y - slope * sum_x) / n)

    ss_total = float(((y - y.mean()) ** 2).sum())
    ss_residual = float(((y - (slope * x + intercept)) ** 2).sum())
    r_squared = 1.0 - ss_residual / ss_total if ss_total > 0 else 0.0

    return RegressionFit(slope=slope, intercept=intercept, r_squared=r_squared)


def _percent_change(change: float, current: float) -> float:
    return change / current * 100 if current != 0 else 0.0


class TrendForecaster:
    """Linear trend and threshold-breach forecaster

    Usage:
        forecaster = TrendForecaster()
        result = forecaster.predict_enhanced(engine.history("web-1", Metric.CPU), "cpu")
    """

    def __init__(self, config: ForecastConfig | None = None):
        self.config = config or ForecastConfig()

    def predict_trend(
        self,
        history: Sequence[MetricSample],
        horizon: float | None = None,
        now: datetime | None = None,
    ) -> TrendResult:
        """Project the metric to now + horizon

        Args:
            history: Samples oldest first
            horizon: Seconds ahead (defaults to config.default_horizon)
            now: Reference time (defaults to the last sample's timestamp)
        """
        horizon = self.config.default_horizon if horizon is None else horizon
        recent = [s for s in history if math.isfinite(s.value)][-self.config.regression_window :]

        if len(recent) < 2:
            value = recent[0].value if recent else 0.0
            return TrendResult(
                trend=Trend.STABLE,
                prediction=value,
                confidence=0.0,
                details=TrendDetails(
                    current_value=value,
                    slope=0.0,
                    intercept=0.0,
                    r_squared=0.0,
                    predicted_change=0.0,
                    predicted_change_percent=0.0,
                ),
                timestamp=now or (recent[0].timestamp if recent else datetime.now(UTC)),
            )

        now = now or recent[-1].timestamp
        current_value = recent[-1].value
        fit = fit_linear_regression(recent)

        elapsed = (now + timedelta(seconds=horizon) - recent[0].timestamp).total_seconds()
        prediction = fit.slope * elapsed + fit.intercept
        predicted_change = prediction - current_value

        # relative change per hour
        normalized_slope = fit.slope * 3600 / (current_value or 1.0)

        return TrendResult(
            trend=self._classify(normalized_slope),
            prediction=prediction,
            confidence=self._confidence(fit.r_squared, len(recent)),
            details=TrendDetails(
                current_value=current_value,
                slope=fit.slope,
                intercept=fit.intercept,
                r_squared=fit.r_squared,
                predicted_change=predicted_change,
                predicted_change_percent=_percent_change(predicted_change, current_value),
            ),
            timestamp=now,
        )

    def predict_trends(
        self,
        metrics_data: Mapping[str, Sequence[MetricSample]],
        horizon: float | None = None,
    ) -> dict[str, TrendResult]:
        return {name: self.predict_trend(history, horizon) for name, history in metrics_data.items()}

    def predict_enhanced(
        self,
        history: Sequence[MetricSample],
        metric_name: str = "cpu",
        now: datetime | None = None,
    ) -> ForecastResult:
        """Trend projection plus threshold breach / recovery estimates"""
        base = self.predict_trend(history, now=now)
        details = base.details
        thresholds = self.config.thresholds.get(metric_name) or DEFAULT_THRESHOLDS["cpu"]

        prediction = base.prediction
        if metric_name in PERCENT_METRICS:
            prediction = self._saturate(prediction, details.current_value, thresholds.critical)
            if prediction != base.prediction:
                details.predicted_change = prediction - details.current_value
                details.predicted_change_percent = _percent_change(details.predicted_change, details.current_value)

        if base.confidence > 0 and details.r_squared < self.config.min_r_squared:
            logger.debug("Weak trend fit", metric=metric_name, r_squared=round(details.r_squared, 3))

        status = determine_status(details.current_value, thresholds)
        horizon = self.config.max_prediction_horizon

        return ForecastResult(
            trend=base.trend,
            predicted_value=prediction,
            confidence=base.confidence,
            details=details,
            timestamp=base.timestamp,
            current_status=status,
            breach=predict_threshold_breach(details.current_value, details.slope, thresholds, status, horizon),
            recovery=predict_recovery(details.current_value, details.slope, thresholds, status, horizon),
        )

    def predict_enhanced_batch(self, metrics_data: Mapping[str, Sequence[MetricSample]]) -> dict[str, ForecastResult]:
        return {name: self.predict_enhanced(history, name) for name, history in metrics_data.items()}

    @staticmethod
    def _saturate(prediction: float, current_value: float, critical: float) -> float:
        """Damp projections past critical so percentages approach but never exceed 100"""
        headroom = 100.0 - critical
        if prediction > critical and current_value < critical and headroom > 0:
            overshoot = prediction - critical
            return critical + headroom * (1 - math.exp(-overshoot / headroom))
        return min(max(prediction, 0.0), 100.0)

    def _classify(self, normalized_slope: float) -> Trend:
        if normalized_slope > self.config.slope_threshold:
            return Trend.INCREASING
        if normalized_slope < -self.config.slope_threshold:
            return Trend.DECREASING
        return Trend.STABLE

    def _confidence(self, r_squared: float, points: int) -> float:
        window = self.config.regression_window
        if points < 2:
            sufficiency = 0.0
        elif points >= window:
            sufficiency = 1.0
        else:
            sufficiency = (points - 2) / (window - 2)
        return 0.7 * max(0.0, r_squared) + 0.3 * sufficiency
