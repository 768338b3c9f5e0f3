"""
Kafka consumers for datacenter metrics processing.
"""

# Anomaly consumer (Kafka → engine → alert topic)
from .anomaly import AnomalyConsumer, ConsumerConfig

__all__ = ["AnomalyConsumer", "ConsumerConfig"]
