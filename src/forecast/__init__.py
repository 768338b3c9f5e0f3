"""
Metric trend forecasting with threshold breach and recovery estimates.

Usage:
    python -m src.forecast.predict --input metrics.csv --server-id web-1
"""

from .models import (
    DEFAULT_THRESHOLDS,
    ForecastConfig,
    ForecastResult,
    HealthStatus,
    MetricThresholds,
    Trend,
    TrendResult,
)
from .predictor import TrendForecaster, fit_linear_regression

__all__ = [
    "DEFAULT_THRESHOLDS",
    "ForecastConfig",
    "ForecastResult",
    "HealthStatus",
    "MetricThresholds",
    "Trend",
    "TrendForecaster",
    "TrendResult",
    "fit_linear_regression",
]
