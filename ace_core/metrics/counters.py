"""
Engine counters, degradation reasons and latency histograms.

Tracks:
- Cycle flow (submitted, processed, cancelled) and reading volume
- Degradation reasons (inference_failed, stage_degraded, ...)
- Event delivery (published, dropped on subscriber overflow)
- Latency histograms (whole cycle and per stage)

Every degraded stage or dropped event must record a reason code.
"""

import logging
import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterator, List, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class CounterSnapshot:
    """Copy of the collector state at one instant."""

    timestamp: float
    uptime_s: float
    counters: Dict[str, int]
    drop_reasons: Dict[str, int]
    histograms: Dict[str, List[float]] = field(default_factory=dict)

    def total_dropped(self) -> int:
        return sum(self.drop_reasons.values())

    def drop_rate(self, total: int) -> float:
        """Degradations per 100 units of `total` (e.g. cycles_in)."""
        if total <= 0:
            return 0.0
        return 100.0 * self.total_dropped() / total


class MetricsCollector:
    """
    Thread-safe engine diagnostics.

    One collector is owned by each engine and handed to its stages;
    there is no process-wide instance.

    Usage:
        metrics = MetricsCollector()
        metrics.increment('cycles_in')
        metrics.increment_drop('inference_failed')

        with metrics.timed('fusion_latency_ms'):
            corrector.correct(context)

        metrics.print_summary()
    """

    # Reason code -> meaning
    DROP_REASONS = {
        'inference_failed': 'Learned inference call raised or returned malformed output',
        'stage_degraded': 'Stage fell back to degraded output',
        'cycle_failed': 'Whole cycle replaced by degraded state',
        'cycle_cancelled': 'Queued cycle discarded at shutdown',
        'subscriber_overflow': 'Subscriber queue full, oldest event dropped',
        'landmark_below_threshold': 'Landmark classification confidence too low',
        'reading_gated': 'Reading failed validation gate',
    }

    # Reported even when still zero
    STANDARD_COUNTERS = (
        'cycles_in',
        'cycles_processed',
        'readings_in',
        'insights_emitted',
        'events_published',
        'advisor_runs',
        'models_loaded',
    )

    DEFAULT_MAX_SAMPLES = 10000

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = defaultdict(int)
        self._drop_reasons: Dict[str, int] = defaultdict(int)
        self._histograms: Dict[str, Deque[float]] = {}
        self._start_time = time.time()
        self._seed_standard_keys()

    def _seed_standard_keys(self):
        with self._lock:
            for name in self.STANDARD_COUNTERS:
                self._counters.setdefault(name, 0)
            for reason in self.DROP_REASONS:
                self._drop_reasons.setdefault(reason, 0)

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def increment(self, counter_name: str, value: int = 1):
        with self._lock:
            self._counters[counter_name] += value

    def increment_drop(self, reason: str, value: int = 1):
        """
        Count a degradation or drop.

        Args:
            reason: Reason code, normally one of DROP_REASONS
            value: Amount to add (default 1)

        Notes:
            - Also adds to the 'dropped_total' counter
            - Unknown codes are counted and logged as a warning
        """
        if reason not in self.DROP_REASONS:
            logger.warning(f"Unknown drop reason '{reason}'")

        with self._lock:
            self._drop_reasons[reason] += value
            self._counters['dropped_total'] += value

    def get_counter(self, counter_name: str) -> int:
        with self._lock:
            return self._counters.get(counter_name, 0)

    def get_drop_count(self, reason: str) -> int:
        with self._lock:
            return self._drop_reasons.get(reason, 0)

    # ------------------------------------------------------------------
    # Histograms
    # ------------------------------------------------------------------

    def record_histogram(
        self,
        histogram_name: str,
        value: float,
        max_samples: Optional[int] = None,
    ):
        """
        Add a sample to a histogram.

        Only the most recent `max_samples` values are kept; the bound is
        fixed by the first sample recorded under a name.
        """
        with self._lock:
            samples = self._histograms.get(histogram_name)
            if samples is None:
                samples = deque(maxlen=max_samples or self.DEFAULT_MAX_SAMPLES)
                self._histograms[histogram_name] = samples
            samples.append(float(value))

    @contextmanager
    def timed(self, histogram_name: str) -> Iterator[None]:
        """Record the wall time of the enclosed block in milliseconds."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_histogram(histogram_name, (time.perf_counter() - start) * 1000.0)

    def get_histogram_stats(self, histogram_name: str) -> Optional[Dict[str, float]]:
        """
        Summary statistics for a histogram.

        Returns:
            Dict with count, min, max, mean, median, p95, p99, or None
            if nothing was recorded
        """
        with self._lock:
            samples = self._histograms.get(histogram_name)
            values = np.array(samples, dtype=float) if samples else None

        if values is None:
            return None

        p50, p95, p99 = np.percentile(values, [50, 95, 99])
        return {
            'count': int(values.size),
            'min': float(values.min()),
            'max': float(values.max()),
            'mean': float(values.mean()),
            'median': float(p50),
            'p95': float(p95),
            'p99': float(p99),
        }

    # ------------------------------------------------------------------
    # Snapshot / reporting
    # ------------------------------------------------------------------

    def snapshot(self) -> CounterSnapshot:
        now = time.time()
        with self._lock:
            return CounterSnapshot(
                timestamp=now,
                uptime_s=now - self._start_time,
                counters=dict(self._counters),
                drop_reasons=dict(self._drop_reasons),
                histograms={name: list(s) for name, s in self._histograms.items()},
            )

    def reset(self):
        """Zero everything and restart the uptime clock."""
        with self._lock:
            self._counters.clear()
            self._drop_reasons.clear()
            self._histograms.clear()
            self._start_time = time.time()
        self._seed_standard_keys()

    def get_uptime(self) -> float:
        return time.time() - self._start_time

    def print_summary(self):
        """Print a human-readable report of the engine's run."""
        snap = self.snapshot()
        cycles_in = snap.counters.get('cycles_in', 0)

        print("\n" + "=" * 70)
        print(f"  ENGINE METRICS (uptime: {snap.uptime_s:.1f}s)")
        print("=" * 70)

        print("\nCOUNTERS:")
        for name in sorted(snap.counters):
            print(f"  {name:30s}: {snap.counters[name]:8d}")

        degraded = {r: c for r, c in snap.drop_reasons.items() if c > 0}
        if degraded:
            print(f"\nDEGRADATIONS ({snap.drop_rate(cycles_in):.1f} per 100 cycles):")
            for reason in sorted(degraded):
                print(f"  {reason:30s}: {degraded[reason]:8d}")

        if snap.histograms:
            print("\nLATENCY:")
            for name in sorted(snap.histograms):
                stats = self.get_histogram_stats(name)
                if stats:
                    print(f"  {name:30s}: n={stats['count']}, mean={stats['mean']:.3f}, "
                          f"p95={stats['p95']:.3f}, max={stats['max']:.3f}")

        print("=" * 70 + "\n")
