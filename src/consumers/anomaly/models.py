"""
Configuration for the streaming anomaly detection consumer.
"""

from dataclasses import dataclass, field

from src.anomaly.models import METRICS, EngineConfig


@dataclass
class ConsumerConfig:
    """Configuration for the Kafka anomaly consumer"""

    # Kafka settings
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_topic: str = "datacenter-metrics"
    kafka_group_id: str = "anomaly-engine-consumer-group"
    kafka_auto_offset_reset: str = "latest"  # only new messages by default
    alert_topic: str | None = "datacenter-anomalies"  # None disables publishing

    # Message field for each metric; plain metric names are accepted as a fallback
    metric_fields: dict[str, str] = field(
        default_factory=lambda: {
            "cpu": "cpu_usage_percent",
            "memory": "memory_usage_percent",
            "disk": "disk_usage_percent",
            "network": "network_usage_percent",
        }
    )

    # Consumer behavior
    commit_interval_seconds: float = 10.0
    stats_interval_seconds: float = 30.0
    max_poll_records: int = 500
    enable_auto_commit: bool = False

    engine: EngineConfig = field(default_factory=EngineConfig)
    history_file: str | None = None  # metrics export used to warm up the engine

    def __post_init__(self):
        if self.kafka_auto_offset_reset not in ("earliest", "latest"):
            raise ValueError(f"Invalid auto offset reset: {self.kafka_auto_offset_reset}")
        unknown = set(self.metric_fields) - {metric.value for metric in METRICS}
        if unknown:
            raise ValueError(f"Unknown metrics in metric_fields: {sorted(unknown)}")
        if self.commit_interval_seconds <= 0:
            raise ValueError("commit_interval_seconds must be positive")
