"""
Unified anomaly engine: runs every enabled strategy on each sample and
combines them by weighted voting.

One engine instance is meant to be shared by all producers. Buffers lock per
key, the adaptive baseline locks per metric and the counters use their own
lock, so samples of different servers only contend on the stats update.
"""

import copy
import math
import threading
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import UTC, datetime

import structlog

from .buffers import MetricBufferStore
from .methods.adaptive import AdaptiveBaseline
from .methods.isolation_forest import MultivariateOutlierDetector
from .methods.statistical import StatisticalDetector
from .models import (
    METRICS,
    AdaptiveVerdict,
    EngineConfig,
    Metric,
    MetricReading,
    MetricSample,
    ModelsStatus,
    MultiMetricSample,
    ServerMetricInput,
    StatisticalVerdict,
    StreamingStats,
    UnifiedVerdict,
)
from .voting import DetectionInputs, combine_results

logger = structlog.get_logger(__name__)

AnomalyCallback = Callable[[UnifiedVerdict], None]


class UnifiedAnomalyEngine:
    """Streaming ensemble of statistical, isolation forest and adaptive detectors

    Usage:
        engine = UnifiedAnomalyEngine(EngineConfig(voting_threshold=0.6))
        verdict = engine.process(ServerMetricInput("web-1", cpu=91, memory=40, disk=50, network=20))
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        statistical: StatisticalDetector | None = None,
        isolation_forest: MultivariateOutlierDetector | None = None,
        adaptive: AdaptiveBaseline | None = None,
        on_anomaly: AnomalyCallback | None = None,
    ):
        self.config = config or EngineConfig()
        self.statistical = statistical or StatisticalDetector()
        self.isolation_forest = isolation_forest or MultivariateOutlierDetector()
        self.adaptive = adaptive or AdaptiveBaseline()
        self.on_anomaly = on_anomaly

        self._buffers = MetricBufferStore(self.config.stream_buffer_size)
        self._stats_lock = threading.Lock()
        self._training_lock = threading.Lock()
        self._reset_counters()

        logger.info(
            "Anomaly engine initialized",
            statistical=self.config.enable_statistical,
            isolation_forest=self.config.enable_isolation_forest,
            adaptive=self.config.enable_adaptive,
            voting_threshold=self.config.voting_threshold,
            buffer_size=self.config.stream_buffer_size,
        )

    def _reset_counters(self) -> None:
        self._total_processed = 0
        self._anomalies_detected = 0
        self._average_latency_ms = 0.0
        self._last_processed_at: datetime | None = None
        self._joint_samples_seen = 0

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def process(self, sample: ServerMetricInput | MetricReading) -> UnifiedVerdict:
        """Score one sample and fold it into the engine state

        A MetricReading only touches its own metric; the multivariate
        detector needs a full ServerMetricInput.
        """
        started = time.perf_counter()
        timestamp = sample.timestamp or datetime.now(UTC)

        if isinstance(sample, MetricReading):
            values = {Metric(sample.metric): sample.value}
        else:
            values = {metric: sample.value(metric) for metric in METRICS}

        finite = {}
        for metric, value in values.items():
            if value is None or not math.isfinite(value):
                logger.warning(
                    "Dropping non-finite metric value",
                    server_id=sample.server_id,
                    metric=metric.value,
                    value=value,
                )
                continue
            finite[metric] = float(value)

        statistical = self._run_statistical(sample.server_id, finite, timestamp)
        joint, forest = self._run_isolation_forest(sample, timestamp)
        adaptive = self._run_adaptive(finite, timestamp)

        verdict = combine_results(
            self.config,
            DetectionInputs(
                server_id=sample.server_id,
                server_name=sample.server_name,
                timestamp=timestamp,
                statistical=statistical,
                isolation_forest=forest,
                adaptive=adaptive,
            ),
        )

        if self.config.adaptive_online_learning:
            for metric, value in finite.items():
                self.adaptive.observe(metric.value, value, timestamp)

        latency_ms = (time.perf_counter() - started) * 1000
        verdict.latency_ms = round(latency_ms, 2)
        self._update_stats(verdict, latency_ms)

        if verdict.is_anomaly:
            logger.debug(
                "Anomaly detected",
                server_id=verdict.server_id,
                severity=verdict.severity.value,
                score=verdict.anomaly_score,
                dominant_metric=verdict.dominant_metric.value if verdict.dominant_metric else None,
            )
            if self.config.emit_events and self.on_anomaly is not None:
                self._notify(verdict)

        if joint is not None and self.config.auto_train:
            self._maybe_retrain()

        return verdict

    def process_batch(self, samples: Iterable[ServerMetricInput | MetricReading]) -> list[UnifiedVerdict]:
        return [self.process(sample) for sample in samples]

    def _run_statistical(
        self, server_id: str, values: dict[Metric, float], timestamp: datetime
    ) -> dict[Metric, StatisticalVerdict] | None:
        results = {}
        for metric, value in values.items():
            # window includes this sample
            window = self._buffers.series(server_id, metric).append_and_snapshot(MetricSample(timestamp, value))
            if self.config.enable_statistical:
                results[metric] = self.statistical.detect(value, window)
        return results or None

    def _run_isolation_forest(self, sample, timestamp: datetime):
        if not isinstance(sample, ServerMetricInput):
            return None, None

        joint = MultiMetricSample(
            timestamp=timestamp,
            cpu=sample.cpu,
            memory=sample.memory,
            disk=sample.disk,
            network=sample.network,
        )
        if not joint.is_finite():
            return None, None

        self._buffers.joint(sample.server_id).append(joint)
        if not self.config.enable_isolation_forest or not self.isolation_forest.is_trained:
            return joint, None
        return joint, self.isolation_forest.detect(joint)

    def _run_adaptive(self, values: dict[Metric, float], timestamp: datetime) -> dict[Metric, AdaptiveVerdict] | None:
        if not self.config.enable_adaptive:
            return None
        results = {
            metric: self.adaptive.is_anomaly(metric.value, value, timestamp)
            for metric, value in values.items()
            if self.adaptive.is_learned(metric.value)
        }
        return results or None

    def _update_stats(self, verdict: UnifiedVerdict, latency_ms: float) -> None:
        with self._stats_lock:
            self._total_processed += 1
            if verdict.is_anomaly:
                self._anomalies_detected += 1
            self._average_latency_ms += (latency_ms - self._average_latency_ms) / self._total_processed
            self._last_processed_at = datetime.now(UTC)

    def _notify(self, verdict: UnifiedVerdict) -> None:
        try:
            self.on_anomaly(verdict)
        except Exception as e:
            logger.error("Anomaly callback failed", server_id=verdict.server_id, error=str(e), exc_info=True)

    def _maybe_retrain(self) -> None:
        with self._stats_lock:
            self._joint_samples_seen += 1
            due = self._joint_samples_seen % self.config.auto_train_every == 0
        if not due:
            return

        if not self._training_lock.acquire(blocking=False):
            logger.debug("Retrain already running, skipping")
            return
        try:
            self.isolation_forest.fit(self._buffers.all_joint_samples())
        finally:
            self._training_lock.release()

    # ------------------------------------------------------------------
    # Warm-up and introspection
    # ------------------------------------------------------------------

    def initialize(
        self,
        multi_metric: Sequence[MultiMetricSample] | None = None,
        per_metric: Mapping[Metric | str, Sequence[MetricSample]] | None = None,
    ) -> None:
        """Warm up the models from historical data

        Args:
            multi_metric: Joint samples for the isolation forest (needs 50+)
            per_metric: Single-metric histories for the adaptive baseline
        """
        if multi_metric:
            self.isolation_forest.fit(multi_metric)

        if per_metric:
            for metric, history in per_metric.items():
                key = metric.value if isinstance(metric, Metric) else str(metric)
                self.adaptive.learn(key, history)
            logger.info(
                "Adaptive thresholds initialized",
                metrics=[m.value if isinstance(m, Metric) else str(m) for m in per_metric],
            )

    def get_stats(self) -> StreamingStats:
        with self._stats_lock:
            stats = StreamingStats(
                total_processed=self._total_processed,
                anomalies_detected=self._anomalies_detected,
                average_latency_ms=self._average_latency_ms,
                last_processed_at=self._last_processed_at,
            )
        stats.buffer_size = self._buffers.joint_size()
        stats.models_status = ModelsStatus(
            statistical_ready=True,
            isolation_forest_trained=self.isolation_forest.status().is_trained,
            adaptive_learned_metrics=self.adaptive.status().metrics,
        )
        return stats

    def get_config(self) -> EngineConfig:
        return copy.deepcopy(self.config)

    def history(self, server_id: str, metric: Metric) -> list[MetricSample]:
        """Buffered single-metric window, oldest first (forecaster input)"""
        return self._buffers.history(server_id, Metric(metric))

    def joint_history(self, server_id: str) -> list[MultiMetricSample]:
        return self._buffers.joint_history(server_id)

    def reset(self) -> None:
        self._buffers.clear()
        self.isolation_forest.reset()
        self.adaptive.reset()
        with self._stats_lock:
            self._reset_counters()
        logger.info("Anomaly engine reset")
