"""
Rolling History Buffer.

Bounded FIFO ring of FusionContext entries, appended by the per-cycle
worker and read concurrently by the parameter advisor. Readers receive
an immutable tuple snapshot (copy-on-read), so iteration never races an
append and historical entries are never mutated in place.
"""

import threading
from collections import deque
from typing import Deque, Tuple

from ace_core.proto.pose_estimate import FusionContext, TrajectoryPoint


class HistoryBuffer:
    """
    Thread-safe bounded ring of fusion contexts.

    Usage:
        buffer = HistoryBuffer(capacity=500)
        buffer.append(context)

        recent = buffer.recent(5)      # last 5 contexts, oldest first
        everything = buffer.snapshot()

    Notes:
        - Oldest entry is evicted first once capacity is reached
        - len(buffer) never exceeds capacity
    """

    def __init__(self, capacity: int = 500):
        """
        Initialize history buffer.

        Args:
            capacity: Maximum number of contexts retained
        """
        if capacity <= 0:
            raise ValueError(f"Capacity must be positive: {capacity}")

        self._capacity = capacity
        self._lock = threading.Lock()
        self._entries: Deque[FusionContext] = deque(maxlen=capacity)
        self._appended_total = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def appended_total(self) -> int:
        """Number of contexts ever appended (including evicted ones)."""
        with self._lock:
            return self._appended_total

    def append(self, context: FusionContext):
        """Append a context, evicting the oldest when full."""
        with self._lock:
            self._entries.append(context)
            self._appended_total += 1

    def snapshot(self) -> Tuple[FusionContext, ...]:
        """Copy of all retained contexts, oldest first."""
        with self._lock:
            return tuple(self._entries)

    def recent(self, count: int) -> Tuple[FusionContext, ...]:
        """
        Copy of the most recent contexts, oldest first.

        Args:
            count: Maximum number of contexts to return
        """
        if count <= 0:
            return ()
        with self._lock:
            return tuple(self._entries)[-count:]

    def latest(self):
        """Most recent context, or None if empty."""
        with self._lock:
            return self._entries[-1] if self._entries else None

    def trajectory(self) -> Tuple[TrajectoryPoint, ...]:
        """Base positions of all retained contexts, oldest first."""
        return tuple(
            TrajectoryPoint(ctx.base_estimate.position, ctx.timestamp_ms)
            for ctx in self.snapshot()
        )

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
