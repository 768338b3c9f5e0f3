"""
Z-score detector over a trailing single-metric window.

Fast, stateless baseline: the current value is compared with the mean and
standard deviation of the samples that preceded it.
"""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from ..models import MetricSample, Severity, StatisticalVerdict

MAX_WINDOW = 1_000


@dataclass
class StatisticalConfig:
    """Configuration for the z-score detector"""

    z_threshold: float = 2.0  # |z| above this is anomalous
    medium_multiplier: float = 1.5  # |z| > 1.5k -> medium
    high_multiplier: float = 2.0  # |z| > 2k -> high
    min_points: int = 2
    sufficient_points: int = 30  # window size at which sample-size trust saturates
    max_window: int = 100
    epsilon: float = 1e-6

    def __post_init__(self):
        if self.z_threshold <= 0:
            raise ValueError("z_threshold must be positive")
        if not 1.0 <= self.medium_multiplier <= self.high_multiplier:
            raise ValueError("Severity multipliers must satisfy 1 <= medium <= high")
        if self.min_points < 2:
            raise ValueError("min_points must be at least 2")
        self.max_window = max(self.min_points, min(self.max_window, MAX_WINDOW))


class StatisticalDetector:
    """Flags values more than k standard deviations away from the window mean"""

    def __init__(self, config: StatisticalConfig | None = None):
        self.config = config or StatisticalConfig()

    def detect(self, current_value: float, window: Sequence[MetricSample]) -> StatisticalVerdict:
        """Score current_value against the trailing window

        Args:
            current_value: The observed value
            window: Preceding samples, oldest first

        Returns:
            StatisticalVerdict; neutral with zero confidence below min_points
        """
        recent = window[-self.config.max_window :]
        if len(recent) < self.config.min_points:
            return self._neutral(current_value, recent)

        values = np.fromiter((s.value for s in recent), dtype=float, count=len(recent))
        mean = float(values.mean())
        std_dev = float(values.std())

        k = self.config.z_threshold
        deviation = (current_value - mean) / max(std_dev, self.config.epsilon)
        magnitude = abs(deviation)

        return StatisticalVerdict(
            is_anomaly=magnitude > k,
            severity=self._severity(magnitude),
            confidence=self._confidence(magnitude, len(recent)),
            deviation=deviation,
            mean=mean,
            std_dev=std_dev,
            upper_threshold=mean + k * std_dev,
            lower_threshold=mean - k * std_dev,
            current_value=current_value,
            sample_count=len(recent),
        )

    def _severity(self, magnitude: float) -> Severity:
        k = self.config.z_threshold
        if magnitude > k * self.config.high_multiplier:
            return Severity.HIGH
        if magnitude > k * self.config.medium_multiplier:
            return Severity.MEDIUM
        return Severity.LOW

    def _confidence(self, magnitude: float, n: int) -> float:
        # Deviation strength saturates at the "high" band, sample trust at sufficient_points
        deviation_component = min(1.0, magnitude / (self.config.z_threshold * self.config.high_multiplier))
        sample_component = min(1.0, n / self.config.sufficient_points)
        return min(1.0, 0.6 * deviation_component + 0.4 * sample_component)

    def _neutral(self, current_value: float, window: Sequence[MetricSample]) -> StatisticalVerdict:
        mean = window[0].value if window else current_value
        return StatisticalVerdict(
            is_anomaly=False,
            severity=Severity.LOW,
            confidence=0.0,
            deviation=0.0,
            mean=mean,
            std_dev=0.0,
            upper_threshold=mean,
            lower_threshold=mean,
            current_value=current_value,
            sample_count=len(window),
        )
