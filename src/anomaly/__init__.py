"""
Streaming anomaly detection ensemble for server metrics.

Three strategies score every sample:
- Statistical: z-score against the server's trailing window per metric
- Isolation forest: joint cpu/memory/disk/network outlier score
- Adaptive: hour-of-day / day-of-week seasonal baseline

Their scores are combined by weighted voting into a single verdict.

Usage:
    # Replay an exported metrics file through the engine
    python -m src.anomaly.replay --input metrics.csv
"""

from .engine import UnifiedAnomalyEngine
from .models import (
    ConsensusLevel,
    DetectorWeights,
    EngineConfig,
    Metric,
    MetricReading,
    MetricSample,
    MultiMetricSample,
    ServerMetricInput,
    Severity,
    StreamingStats,
    UnifiedVerdict,
)

__all__ = [
    "ConsensusLevel",
    "DetectorWeights",
    "EngineConfig",
    "Metric",
    "MetricReading",
    "MetricSample",
    "MultiMetricSample",
    "ServerMetricInput",
    "Severity",
    "StreamingStats",
    "UnifiedAnomalyEngine",
    "UnifiedVerdict",
]
