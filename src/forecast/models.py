"""
Data models and configuration for metric trend forecasting.
"""

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

MAX_PREDICTION_HORIZON = 24 * 3600.0  # seconds
MAX_REGRESSION_WINDOW = 1_000
PERCENT_METRICS = frozenset({"cpu", "memory", "disk", "network"})


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class HealthStatus(str, Enum):
    ONLINE = "online"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class MetricThresholds:
    """Warning / critical / recovery levels of one metric"""

    warning: float
    critical: float
    recovery: float | None = None  # defaults to warning - 5

    def __post_init__(self):
        if self.recovery is None:
            object.__setattr__(self, "recovery", self.warning - 5.0)
        if not all(math.isfinite(v) for v in (self.warning, self.critical, self.recovery)):
            raise ValueError(f"Thresholds must be finite: {self}")
        if self.warning >= self.critical:
            raise ValueError(f"warning ({self.warning}) must be below critical ({self.critical})")
        if self.recovery > self.warning:
            raise ValueError(f"recovery ({self.recovery}) must not exceed warning ({self.warning})")


DEFAULT_THRESHOLDS: MappingProxyType = MappingProxyType(
    {
        "cpu": MetricThresholds(warning=80.0, critical=90.0),
        "memory": MetricThresholds(warning=80.0, critical=90.0),
        "disk": MetricThresholds(warning=80.0, critical=90.0),
        "network": MetricThresholds(warning=70.0, critical=85.0),
    }
)


@dataclass
class RegressionFit:
    slope: float
    intercept: float
    r_squared: float


@dataclass
class TrendDetails:
    current_value: float
    slope: float  # units per second
    intercept: float
    r_squared: float
    predicted_change: float
    predicted_change_percent: float


@dataclass
class TrendResult:
    """Linear projection of a metric"""

    trend: Trend
    prediction: float
    confidence: float
    details: TrendDetails
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class BreachPrediction:
    """Times are seconds from now, None when no crossing is expected"""

    will_breach_warning: bool
    time_to_warning: float | None
    will_breach_critical: bool
    time_to_critical: float | None
    human_readable: str


@dataclass
class RecoveryPrediction:
    will_recover: bool
    time_to_recovery: float | None
    human_readable: str | None


@dataclass
class ForecastResult:
    """Trend projection enriched with threshold breach and recovery estimates"""

    trend: Trend
    predicted_value: float
    confidence: float
    details: TrendDetails
    timestamp: datetime
    current_status: HealthStatus
    breach: BreachPrediction
    recovery: RecoveryPrediction

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass
class ForecastConfig:
    """Configuration for the trend forecaster"""

    regression_window: int = 12  # ~1 hour at 5-minute sampling
    slope_threshold: float = 0.1  # relative change per hour separating stable from trending
    min_r_squared: float = 0.7  # fits below this are reported as unreliable
    max_prediction_horizon: float = MAX_PREDICTION_HORIZON
    default_horizon: float = 3600.0
    thresholds: dict[str, MetricThresholds] = field(default_factory=lambda: dict(DEFAULT_THRESHOLDS))

    def __post_init__(self):
        if self.regression_window < 2:
            raise ValueError("regression_window must be at least 2")
        self.regression_window = min(self.regression_window, MAX_REGRESSION_WINDOW)
        if self.slope_threshold < 0:
            raise ValueError("slope_threshold must be non-negative")
        if self.max_prediction_horizon <= 0 or self.default_horizon < 0:
            raise ValueError("Prediction horizons must be positive")
