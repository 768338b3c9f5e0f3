"""
Real-time anomaly detection consumer.

Consumes server metrics from Kafka, scores them with the unified anomaly
engine and publishes anomalous verdicts to an alert topic.
"""

import json
import math
import time
from datetime import datetime
from typing import Any

import structlog
from kafka import KafkaConsumer, KafkaProducer

from src.anomaly.engine import UnifiedAnomalyEngine
from src.anomaly.models import METRICS, ServerMetricInput, UnifiedVerdict
from src.anomaly.replay import build_history, frame_to_inputs, load_metrics_frame

from .models import ConsumerConfig

logger = structlog.get_logger(__name__)


class AnomalyConsumer:
    """Kafka consumer feeding the unified anomaly engine"""

    def __init__(self, config: ConsumerConfig, engine: UnifiedAnomalyEngine | None = None):
        self.config = config
        self.engine = engine or UnifiedAnomalyEngine(config.engine, on_anomaly=self._publish_alert)
        if engine is not None and config.engine.emit_events:
            engine.on_anomaly = self._publish_alert

        if config.history_file:
            self._warm_up(config.history_file)

        # Initialize Kafka consumer
        try:
            self.consumer = KafkaConsumer(
                config.kafka_topic,
                bootstrap_servers=config.kafka_bootstrap_servers,
                group_id=config.kafka_group_id,
                auto_offset_reset=config.kafka_auto_offset_reset,
                enable_auto_commit=config.enable_auto_commit,
                max_poll_records=config.max_poll_records,
                value_deserializer=lambda m: json.loads(m.decode("utf-8")),
            )
            logger.info(
                "Kafka consumer initialized",
                bootstrap_servers=config.kafka_bootstrap_servers,
                topic=config.kafka_topic,
                group_id=config.kafka_group_id,
            )
        except Exception as e:
            logger.error("Failed to initialize Kafka consumer", error=str(e))
            raise

        self.producer = None
        if config.alert_topic:
            try:
                self.producer = KafkaProducer(
                    bootstrap_servers=config.kafka_bootstrap_servers,
                    value_serializer=lambda v: json.dumps(v).encode("utf-8"),
                    compression_type="gzip",
                )
                logger.info("Kafka alert producer initialized", topic=config.alert_topic)
            except Exception as e:
                logger.error("Failed to initialize Kafka producer", error=str(e))
                self.consumer.close()
                raise

        self.stats = {
            "total_consumed": 0,
            "total_analyzed": 0,
            "anomalies_detected": 0,
            "alerts_published": 0,
            "skipped_messages": 0,
            "parse_errors": 0,
        }
        self.last_commit_time = time.time()

    def _warm_up(self, history_file: str) -> None:
        try:
            multi_metric, per_metric = build_history(frame_to_inputs(load_metrics_frame(history_file)))
        except Exception as e:
            logger.error("Failed to load history file", path=history_file, error=str(e))
            raise
        self.engine.initialize(multi_metric=multi_metric, per_metric=per_metric)
        logger.info("Engine warmed up", path=history_file, joint_samples=len(multi_metric))

    def run(self, duration_seconds: int = None):
        """Run the consumer

        Args:
            duration_seconds: Optional duration in seconds. If None, runs indefinitely.
        """
        logger.info(
            "Starting anomaly detection consumer",
            topic=self.config.kafka_topic,
            alert_topic=self.config.alert_topic,
            duration=duration_seconds if duration_seconds else "indefinite",
        )

        start_time = time.time()
        last_log_time = start_time

        try:
            for message in self.consumer:
                self.stats["total_consumed"] += 1
                self._process_message(message.value)

                if self._should_commit():
                    self._commit()

                elapsed = time.time() - start_time
                if time.time() - last_log_time >= self.config.stats_interval_seconds:
                    self._log_stats(elapsed)
                    last_log_time = time.time()

                if duration_seconds and elapsed >= duration_seconds:
                    logger.info("Duration limit reached", duration_seconds=duration_seconds)
                    break

        except KeyboardInterrupt:
            logger.info("Received interrupt signal, stopping consumer")

        except Exception as e:
            logger.error("Consumer error", error=str(e), exc_info=True)
            raise

        finally:
            try:
                self._commit()
            except Exception as e:
                logger.error("Final offset commit failed", error=str(e), exc_info=True)
            self.consumer.close()
            if self.producer is not None:
                try:
                    self.producer.flush()
                finally:
                    self.producer.close()

            elapsed = time.time() - start_time
            rate = self.stats["total_consumed"] / elapsed if elapsed > 0 else 0
            logger.info(
                "Consumer stopped",
                total_consumed=self.stats["total_consumed"],
                total_analyzed=self.stats["total_analyzed"],
                anomalies_detected=self.stats["anomalies_detected"],
                alerts_published=self.stats["alerts_published"],
                elapsed_sec=round(elapsed, 1),
                avg_rate_per_sec=round(rate, 1),
            )

    def _should_commit(self) -> bool:
        return time.time() - self.last_commit_time >= self.config.commit_interval_seconds

    def _commit(self) -> None:
        if not self.config.enable_auto_commit:
            self.consumer.commit()
        self.last_commit_time = time.time()

    def _log_stats(self, elapsed: float) -> None:
        engine_stats = self.engine.get_stats()
        rate = self.stats["total_consumed"] / elapsed if elapsed > 0 else 0
        detection_rate = (
            self.stats["anomalies_detected"] / self.stats["total_analyzed"] * 100
            if self.stats["total_analyzed"] > 0
            else 0
        )
        logger.info(
            "Consumer stats",
            total_consumed=self.stats["total_consumed"],
            total_analyzed=self.stats["total_analyzed"],
            anomalies_detected=self.stats["anomalies_detected"],
            detection_rate_percent=round(detection_rate, 2),
            parse_errors=self.stats["parse_errors"],
            avg_latency_ms=round(engine_stats.average_latency_ms, 3),
            forest_trained=engine_stats.models_status.isolation_forest_trained,
            rate_per_sec=round(rate, 1),
            elapsed_sec=round(elapsed, 1),
        )

    def parse_message(self, message: dict[str, Any]) -> ServerMetricInput | None:
        """Map a server_metric message onto engine input

        Returns:
            None for other message types

        Raises:
            KeyError, ValueError: On a malformed server_metric message
        """
        if message.get("type") != "server_metric":
            return None

        values = {}
        for metric in METRICS:
            field_name = self.config.metric_fields.get(metric.value, metric.value)
            raw = message.get(field_name, message.get(metric.value))
            values[metric.value] = float(raw) if raw is not None else math.nan

        timestamp = message.get("timestamp")
        return ServerMetricInput(
            server_id=str(message["server_id"]),
            server_name=message.get("server_name") or message.get("hostname"),
            timestamp=datetime.fromisoformat(timestamp.replace("Z", "+00:00")) if timestamp else None,
            **values,
        )

    def _process_message(self, message: dict[str, Any]) -> UnifiedVerdict | None:
        """Process a single Kafka message"""
        try:
            sample = self.parse_message(message)
        except Exception as e:
            logger.error("Failed to process message", error=str(e), message=message)
            self.stats["parse_errors"] += 1
            return None

        if sample is None:
            self.stats["skipped_messages"] += 1
            return None

        verdict = self.engine.process(sample)
        self.stats["total_analyzed"] += 1
        if verdict.is_anomaly:
            self.stats["anomalies_detected"] += 1
            logger.info(
                "Anomaly detected",
                server_id=verdict.server_id,
                severity=verdict.severity.value,
                score=verdict.anomaly_score,
                consensus=verdict.voting.consensus_level.value,
                dominant_metric=verdict.dominant_metric.value if verdict.dominant_metric else None,
            )
        return verdict

    def _publish_alert(self, verdict: UnifiedVerdict) -> None:
        if self.producer is None:
            return
        self.producer.send(self.config.alert_topic, value=verdict.to_dict(), key=verdict.server_id.encode("utf-8"))
        self.stats["alerts_published"] += 1
