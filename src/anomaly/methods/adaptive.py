"""
Adaptive baseline with hour-of-day and day-of-week seasonality.

Every metric keeps 24 hourly buckets, 7 weekday buckets and one overall
bucket of running sums. The expected value for a timestamp blends the
matching hourly and weekday buckets with the overall prior, each seasonal
bucket's weight growing with the number of samples it holds.
"""

import math
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from ..models import AdaptiveVerdict, Direction, MetricSample

logger = structlog.get_logger(__name__)

HOURS_PER_DAY = 24
DAYS_PER_WEEK = 7


@dataclass
class TemporalBucket:
    """Running sum / sum of squares for one time slot"""

    sum: float = 0.0
    sum_of_squares: float = 0.0
    count: int = 0
    last_updated: datetime | None = None

    def add(self, value: float, timestamp: datetime) -> None:
        self.sum += value
        self.sum_of_squares += value * value
        self.count += 1
        self.last_updated = timestamp

    @property
    def mean(self) -> float:
        return self.sum / self.count if self.count else 0.0

    @property
    def std_dev(self) -> float:
        if not self.count:
            return 0.0
        variance = self.sum_of_squares / self.count - self.mean**2
        return math.sqrt(max(variance, 0.0))  # float cancellation can go slightly negative


@dataclass
class MetricProfile:
    hourly: list[TemporalBucket] = field(default_factory=lambda: [TemporalBucket() for _ in range(HOURS_PER_DAY)])
    daily: list[TemporalBucket] = field(default_factory=lambda: [TemporalBucket() for _ in range(DAYS_PER_WEEK)])
    overall: TemporalBucket = field(default_factory=TemporalBucket)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def add(self, value: float, timestamp: datetime) -> None:
        self.hourly[timestamp.hour].add(value, timestamp)
        self.daily[timestamp.weekday()].add(value, timestamp)
        self.overall.add(value, timestamp)


@dataclass
class AdaptiveConfig:
    """Configuration for the seasonal baseline"""

    hourly_weight: float = 0.6
    daily_weight: float = 0.4
    min_samples_per_bucket: int = 10  # bucket reaches full weight at this count
    base_sigma: float = 2.0
    min_std_dev: float = 0.5

    def __post_init__(self):
        if self.hourly_weight < 0 or self.daily_weight < 0 or self.hourly_weight + self.daily_weight > 1:
            raise ValueError("hourly_weight and daily_weight must be non-negative and sum to at most 1")
        if self.min_samples_per_bucket <= 0:
            raise ValueError("min_samples_per_bucket must be positive")
        if self.base_sigma <= 0 or self.min_std_dev <= 0:
            raise ValueError("base_sigma and min_std_dev must be positive")


@dataclass
class BaselineStatus:
    metrics: list[str]


class AdaptiveBaseline:
    """Seasonal mean/std model producing dynamic per-metric thresholds"""

    def __init__(self, config: AdaptiveConfig | None = None):
        self.config = config or AdaptiveConfig()
        self._profiles: dict[str, MetricProfile] = {}
        self._registry_lock = threading.Lock()

    def _profile(self, metric: str) -> MetricProfile:
        profile = self._profiles.get(metric)
        if profile is None:
            with self._registry_lock:
                profile = self._profiles.setdefault(metric, MetricProfile())
        return profile

    def learn(self, metric: str, history: Iterable[MetricSample]) -> int:
        """Bulk-load historical samples into the buckets of a metric

        Returns:
            Number of samples learned (non-finite values are skipped)
        """
        profile = self._profile(metric)
        learned = 0
        with profile.lock:
            for sample in history:
                if not math.isfinite(sample.value):
                    continue
                profile.add(sample.value, sample.timestamp)
                learned += 1
        logger.info("Adaptive baseline learned", metric=metric, samples=learned)
        return learned

    def observe(self, metric: str, value: float, timestamp: datetime) -> None:
        if not math.isfinite(value):
            return
        profile = self._profile(metric)
        with profile.lock:
            profile.add(value, timestamp)

    def is_learned(self, metric: str) -> bool:
        profile = self._profiles.get(metric)
        return profile is not None and profile.overall.count > 0

    def is_anomaly(self, metric: str, value: float, timestamp: datetime) -> AdaptiveVerdict:
        profile = self._profiles.get(metric)
        if profile is None or not math.isfinite(value):
            return self._neutral(value)

        with profile.lock:
            hourly = profile.hourly[timestamp.hour]
            daily = profile.daily[timestamp.weekday()]
            overall = profile.overall
            if overall.count == 0:
                return self._neutral(value)
            n_h, n_d = hourly.count, daily.count
            buckets = [
                (hourly, self.config.hourly_weight * min(1.0, n_h / self.config.min_samples_per_bucket)),
                (daily, self.config.daily_weight * min(1.0, n_d / self.config.min_samples_per_bucket)),
            ]
            buckets.append((overall, 1.0 - buckets[0][1] - buckets[1][1]))
            expected_mean = sum(weight * bucket.mean for bucket, weight in buckets)
            blended_std = sum(weight * bucket.std_dev for bucket, weight in buckets)

        std_dev = max(blended_std, self.config.min_std_dev)
        spread = self.config.base_sigma * std_dev
        lower_bound = expected_mean - spread
        upper_bound = expected_mean + spread

        if value > upper_bound:
            direction = Direction.HIGH
        elif value < lower_bound:
            direction = Direction.LOW
        else:
            direction = Direction.NORMAL

        return AdaptiveVerdict(
            is_anomaly=direction is not Direction.NORMAL,
            direction=direction,
            deviation=abs(value - expected_mean) / std_dev,
            expected_mean=expected_mean,
            expected_std_dev=std_dev,
            lower_bound=lower_bound,
            upper_bound=upper_bound,
            confidence=min(1.0, (n_h + n_d) / (2 * self.config.min_samples_per_bucket)),
        )

    def _neutral(self, value: float) -> AdaptiveVerdict:
        return AdaptiveVerdict(
            is_anomaly=False,
            direction=Direction.NORMAL,
            deviation=0.0,
            expected_mean=value,
            expected_std_dev=0.0,
            lower_bound=value,
            upper_bound=value,
            confidence=0.0,
        )

    def reset(self) -> None:
        with self._registry_lock:
            self._profiles.clear()
        logger.debug("Adaptive baseline reset")

    def status(self) -> BaselineStatus:
        with self._registry_lock:
            metrics = list(self._profiles)
        return BaselineStatus(metrics=sorted(m for m in metrics if self.is_learned(m)))
