"""
Streaming anomaly detection over Kafka.

Consumes server metrics, scores every sample with the unified anomaly engine
and publishes anomalous verdicts to an alert topic.

Usage:
    # Run real-time detection
    python -m src.consumers.anomaly.detect

    # Warm the models up from an export first
    python -m src.consumers.anomaly.detect --history-file last_week.csv
"""

from .consumer import AnomalyConsumer
from .models import ConsumerConfig

__all__ = ["AnomalyConsumer", "ConsumerConfig"]
