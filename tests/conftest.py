"""
Pytest configuration and shared fixtures.
"""

from datetime import UTC, datetime, timedelta

import pytest

from src.anomaly.models import EngineConfig, MetricSample, MultiMetricSample, ServerMetricInput
from src.consumers.anomaly.models import ConsumerConfig


@pytest.fixture
def base_time():
    """Monday 2025-10-06 12:00 UTC."""
    return datetime(2025, 10, 6, 12, 0, tzinfo=UTC)


@pytest.fixture
def make_window(base_time):
    """Factory building a single-metric window, one sample per `step` seconds."""

    def _make(values, step=60.0, start=None):
        start = start or base_time
        return [MetricSample(start + timedelta(seconds=i * step), float(v)) for i, v in enumerate(values)]

    return _make


@pytest.fixture
def make_input(base_time):
    """Factory building a ServerMetricInput at base_time + offset seconds."""

    def _make(cpu=40.0, memory=50.0, disk=60.0, network=30.0, server_id="srv-001", offset=0.0, **kwargs):
        return ServerMetricInput(
            server_id=server_id,
            cpu=cpu,
            memory=memory,
            disk=disk,
            network=network,
            timestamp=base_time + timedelta(seconds=offset),
            **kwargs,
        )

    return _make


@pytest.fixture
def normal_joint_samples(base_time):
    """200 joint samples around cpu 40, memory 50, disk 60, network 30."""
    samples = []
    for i in range(200):
        wobble = (i % 10) - 4.5
        samples.append(
            MultiMetricSample(
                timestamp=base_time + timedelta(minutes=i),
                cpu=40.0 + wobble,
                memory=50.0 + wobble * 0.5,
                disk=60.0 + (i % 3),
                network=30.0 - wobble,
            )
        )
    return samples


# Engine fixtures
@pytest.fixture
def engine_config():
    """Engine configuration without retraining, for predictable tests."""
    return EngineConfig(auto_train=False, adaptive_online_learning=False)


# Consumer fixtures
@pytest.fixture
def consumer_config():
    """Basic consumer configuration for testing."""
    return ConsumerConfig(
        kafka_bootstrap_servers="localhost:9092",
        kafka_topic="test-topic",
        kafka_group_id="test-group",
        alert_topic="test-alerts",
        commit_interval_seconds=1.0,
    )
