"""
Bounded sliding windows of recent samples.

Every (server, metric) series and every server's joint series lives in its own
RingBuffer: a fixed slot array with a write cursor, guarded by its own lock so
that unrelated servers never serialize on each other.
"""

import threading
from typing import Generic, TypeVar

from .models import Metric, MetricSample, MultiMetricSample

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Fixed-capacity circular buffer, oldest item evicted first"""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._slots: list[T | None] = [None] * capacity
        self._cursor = 0  # next slot to write
        self._size = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return self._size

    def append(self, item: T) -> T | None:
        """Store an item; returns the evicted item when the buffer was full"""
        with self._lock:
            return self._write(item)

    def append_and_snapshot(self, item: T) -> list[T]:
        """Atomically store item, then read the window (oldest first) including it"""
        with self._lock:
            self._write(item)
            return self._ordered()

    def snapshot(self) -> list[T]:
        """Current contents, oldest first"""
        with self._lock:
            return self._ordered()

    def clear(self) -> None:
        with self._lock:
            self._slots = [None] * self._capacity
            self._cursor = 0
            self._size = 0

    def _write(self, item: T) -> T | None:
        evicted = self._slots[self._cursor] if self._size == self._capacity else None
        self._slots[self._cursor] = item
        self._cursor = (self._cursor + 1) % self._capacity
        self._size = min(self._size + 1, self._capacity)
        return evicted

    def _ordered(self) -> list[T]:
        if self._size < self._capacity:
            return list(self._slots[: self._size])
        return self._slots[self._cursor :] + self._slots[: self._cursor]


class MetricBufferStore:
    """Registry of per-(server, metric) and per-server joint ring buffers"""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._series: dict[tuple[str, Metric], RingBuffer[MetricSample]] = {}
        self._joint: dict[str, RingBuffer[MultiMetricSample]] = {}
        self._registry_lock = threading.Lock()

    def series(self, server_id: str, metric: Metric) -> RingBuffer[MetricSample]:
        key = (server_id, metric)
        buffer = self._series.get(key)
        if buffer is None:
            with self._registry_lock:
                buffer = self._series.setdefault(key, RingBuffer(self.capacity))
        return buffer

    def joint(self, server_id: str) -> RingBuffer[MultiMetricSample]:
        buffer = self._joint.get(server_id)
        if buffer is None:
            with self._registry_lock:
                buffer = self._joint.setdefault(server_id, RingBuffer(self.capacity))
        return buffer

    def history(self, server_id: str, metric: Metric) -> list[MetricSample]:
        buffer = self._series.get((server_id, metric))
        return buffer.snapshot() if buffer is not None else []

    def joint_history(self, server_id: str) -> list[MultiMetricSample]:
        buffer = self._joint.get(server_id)
        return buffer.snapshot() if buffer is not None else []

    def all_joint_samples(self) -> list[MultiMetricSample]:
        """Joint samples of every server, used as the retraining set"""
        with self._registry_lock:
            buffers = list(self._joint.values())
        samples: list[MultiMetricSample] = []
        for buffer in buffers:
            samples.extend(buffer.snapshot())
        return samples

    def joint_size(self) -> int:
        with self._registry_lock:
            buffers = list(self._joint.values())
        return sum(len(buffer) for buffer in buffers)

    def clear(self) -> None:
        with self._registry_lock:
            self._series.clear()
            self._joint.clear()
