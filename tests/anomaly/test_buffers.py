"""
Tests for RingBuffer and MetricBufferStore.
"""

import threading

import pytest

from src.anomaly.buffers import MetricBufferStore, RingBuffer
from src.anomaly.models import Metric, MetricSample, MultiMetricSample


class TestRingBuffer:
    """Tests for the fixed-capacity circular buffer."""

    def test_invalid_capacity(self):
        """Capacity must be positive."""
        with pytest.raises(ValueError):
            RingBuffer(0)

    def test_append_until_full(self):
        """Items are kept in insertion order until capacity."""
        buffer = RingBuffer(3)
        for i in range(3):
            assert buffer.append(i) is None

        assert buffer.snapshot() == [0, 1, 2]
        assert len(buffer) == 3

    def test_fifo_eviction(self):
        """Oldest item is evicted and returned once full."""
        buffer = RingBuffer(3)
        for i in range(3):
            buffer.append(i)

        assert buffer.append(3) == 0
        assert buffer.append(4) == 1
        assert buffer.snapshot() == [2, 3, 4]
        assert len(buffer) == 3

    def test_append_and_snapshot_includes_new_item(self):
        """The returned window ends with the appended item."""
        buffer = RingBuffer(2)
        assert buffer.append_and_snapshot("a") == ["a"]
        assert buffer.append_and_snapshot("b") == ["a", "b"]
        assert buffer.append_and_snapshot("c") == ["b", "c"]
        assert buffer.snapshot() == ["b", "c"]

    def test_clear(self):
        """clear() empties the buffer."""
        buffer = RingBuffer(2)
        buffer.append(1)
        buffer.clear()

        assert len(buffer) == 0
        assert buffer.snapshot() == []

    def test_concurrent_appends_never_exceed_capacity(self):
        """Length stays bounded under concurrent writers."""
        buffer = RingBuffer(50)

        def writer():
            for i in range(1000):
                buffer.append(i)

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(buffer) == 50
        assert len(buffer.snapshot()) == 50


class TestMetricBufferStore:
    """Tests for the buffer registry."""

    def test_series_is_created_once(self):
        """The same key always maps to the same buffer."""
        store = MetricBufferStore(5)

        assert store.series("srv-001", Metric.CPU) is store.series("srv-001", Metric.CPU)
        assert store.series("srv-001", Metric.CPU) is not store.series("srv-001", Metric.MEMORY)

    def test_history_of_unknown_key_is_empty(self):
        """Reading never creates buffers."""
        store = MetricBufferStore(5)

        assert store.history("missing", Metric.CPU) == []
        assert store.joint_history("missing") == []

    def test_joint_samples_across_servers(self, base_time):
        """Retraining set spans every server."""
        store = MetricBufferStore(5)
        for server in ("srv-001", "srv-002"):
            for _ in range(3):
                store.joint(server).append(MultiMetricSample(base_time, 1, 2, 3, 4))

        assert len(store.all_joint_samples()) == 6
        assert store.joint_size() == 6

    def test_clear(self, base_time):
        """clear() drops every buffer."""
        store = MetricBufferStore(5)
        store.series("srv-001", Metric.CPU).append(MetricSample(base_time, 1.0))
        store.clear()

        assert store.history("srv-001", Metric.CPU) == []
