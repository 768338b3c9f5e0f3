"""
Anomaly detection strategies combined by the unified engine.
"""

from .adaptive import AdaptiveBaseline, AdaptiveConfig, TemporalBucket
from .isolation_forest import (
    IsolationForestConfig,
    MultivariateOutlierDetector,
    path_contributions,
)
from .statistical import StatisticalConfig, StatisticalDetector

__all__ = [
    "AdaptiveBaseline",
    "AdaptiveConfig",
    "IsolationForestConfig",
    "MultivariateOutlierDetector",
    "StatisticalConfig",
    "StatisticalDetector",
    "TemporalBucket",
    "path_contributions",
]
