"""
Data models and configuration for the anomaly detection engine.
"""

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

MAX_STREAM_BUFFER_SIZE = 10_000


class Metric(str, Enum):
    """Infrastructure metrics tracked per server"""

    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"
    NETWORK = "network"


METRICS: tuple[Metric, ...] = tuple(Metric)


class Severity(str, Enum):
    """Severity tiers shared by detectors and the combined verdict"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Direction(str, Enum):
    """Which adaptive bound a value crossed"""

    HIGH = "high"
    LOW = "low"
    NORMAL = "normal"


class ConsensusLevel(str, Enum):
    """How many strategies independently voted anomaly"""

    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"


@dataclass(frozen=True)
class MetricSample:
    """Single point of a single-metric window"""

    timestamp: datetime
    value: float


@dataclass(frozen=True)
class MultiMetricSample:
    """Single point of the joint cpu/memory/disk/network window"""

    timestamp: datetime
    cpu: float
    memory: float
    disk: float
    network: float

    def value(self, metric: Metric) -> float:
        return getattr(self, metric.value)

    def vector(self) -> list[float]:
        """Feature vector in METRICS order"""
        return [self.value(metric) for metric in METRICS]

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self.vector())


@dataclass
class ServerMetricInput:
    """One joint observation of a server, as fed to the engine"""

    server_id: str
    cpu: float
    memory: float
    disk: float
    network: float
    server_name: str | None = None
    timestamp: datetime | None = None

    def value(self, metric: Metric) -> float:
        return getattr(self, metric.value)


@dataclass
class MetricReading:
    """One observation of a single metric of a server"""

    server_id: str
    metric: Metric
    value: float
    server_name: str | None = None
    timestamp: datetime | None = None


# ---------------------------------------------------------------------------
# Per-strategy verdicts
# ---------------------------------------------------------------------------


@dataclass
class StatisticalVerdict:
    """Result of the z-score detector for one metric"""

    is_anomaly: bool
    severity: Severity
    confidence: float
    deviation: float
    mean: float
    std_dev: float
    upper_threshold: float
    lower_threshold: float
    current_value: float
    sample_count: int


@dataclass
class MultivariateVerdict:
    """Result of the isolation forest for a joint sample"""

    is_anomaly: bool
    anomaly_score: float
    confidence: float
    metric_contributions: dict[Metric, float]


@dataclass
class AdaptiveVerdict:
    """Result of the temporal baseline for one metric"""

    is_anomaly: bool
    direction: Direction
    deviation: float
    expected_mean: float
    expected_std_dev: float
    lower_bound: float
    upper_bound: float
    confidence: float


# ---------------------------------------------------------------------------
# Combined verdict
# ---------------------------------------------------------------------------


@dataclass
class StatisticalSummary:
    enabled: bool
    is_anomaly: bool
    severity: Severity
    confidence: float
    metrics: dict[Metric, StatisticalVerdict] = field(default_factory=dict)


@dataclass
class IsolationForestSummary:
    enabled: bool
    is_anomaly: bool
    anomaly_score: float
    metric_contributions: dict[Metric, float] = field(default_factory=dict)


@dataclass
class AdaptiveSummary:
    enabled: bool
    is_anomaly: bool
    direction: Direction
    expected_mean: float
    threshold_confidence: float
    metrics: dict[Metric, AdaptiveVerdict] = field(default_factory=dict)


@dataclass
class DetectorBreakdown:
    statistical: StatisticalSummary
    isolation_forest: IsolationForestSummary
    adaptive: AdaptiveSummary


@dataclass
class VotingResult:
    votes: dict[str, bool]
    weighted_score: float
    consensus_level: ConsensusLevel


@dataclass
class TimeContext:
    timestamp: datetime
    hour: int
    day_of_week: str


@dataclass
class UnifiedVerdict:
    """Combined result of all enabled strategies for one sample"""

    server_id: str
    server_name: str | None
    is_anomaly: bool
    severity: Severity
    confidence: float
    anomaly_score: float
    detectors: DetectorBreakdown
    voting: VotingResult
    dominant_metric: Metric | None
    time_context: TimeContext
    latency_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary"""
        return _jsonable(asdict(self))


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {_jsonable(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# ---------------------------------------------------------------------------
# Streaming statistics
# ---------------------------------------------------------------------------


@dataclass
class ModelsStatus:
    statistical_ready: bool = True
    isolation_forest_trained: bool = False
    adaptive_learned_metrics: list[str] = field(default_factory=list)


@dataclass
class StreamingStats:
    total_processed: int = 0
    anomalies_detected: int = 0
    average_latency_ms: float = 0.0
    last_processed_at: datetime | None = None
    buffer_size: int = 0
    models_status: ModelsStatus = field(default_factory=ModelsStatus)

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class DetectorWeights:
    """Voting weight of each strategy (normalized to sum 1 by EngineConfig)"""

    statistical: float = 0.3
    isolation_forest: float = 0.4
    adaptive: float = 0.3

    def total(self) -> float:
        return self.statistical + self.isolation_forest + self.adaptive

    def normalized(self) -> "DetectorWeights":
        total = self.total()
        return DetectorWeights(
            statistical=self.statistical / total,
            isolation_forest=self.isolation_forest / total,
            adaptive=self.adaptive / total,
        )


@dataclass
class EngineConfig:
    """Configuration for the unified anomaly engine"""

    enable_statistical: bool = True
    enable_isolation_forest: bool = True
    enable_adaptive: bool = True

    weights: DetectorWeights = field(default_factory=DetectorWeights)
    voting_threshold: float = 0.5

    emit_events: bool = True
    auto_train: bool = True
    auto_train_every: int = 50  # joint samples between isolation forest refits
    adaptive_online_learning: bool = True

    stream_buffer_size: int = 100

    def __post_init__(self):
        weights = (self.weights.statistical, self.weights.isolation_forest, self.weights.adaptive)
        if any(not math.isfinite(w) or w < 0 for w in weights):
            raise ValueError(f"Detector weights must be finite and non-negative: {self.weights}")
        if self.weights.total() <= 0:
            raise ValueError("Detector weights must sum to a positive value")
        self.weights = self.weights.normalized()

        if not 0.0 <= self.voting_threshold <= 1.0:
            raise ValueError(f"voting_threshold must be within [0, 1], got {self.voting_threshold}")

        if self.stream_buffer_size <= 0:
            raise ValueError(f"stream_buffer_size must be positive, got {self.stream_buffer_size}")
        if self.stream_buffer_size > MAX_STREAM_BUFFER_SIZE:
            logger.warning(
                "Capping stream buffer size",
                requested=self.stream_buffer_size,
                cap=MAX_STREAM_BUFFER_SIZE,
            )
            self.stream_buffer_size = MAX_STREAM_BUFFER_SIZE

        if self.auto_train_every <= 0:
            raise ValueError(f"auto_train_every must be positive, got {self.auto_train_every}")
