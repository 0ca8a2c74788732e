"""
Metrics Module: Diagnostics, counters, histograms.

- Counters: cycles_in, cycles_processed, insights_emitted, etc.
- Histograms: cycle latency and per-stage latency (timed blocks)
- Reason codes for every degraded stage or dropped event

Usage:
    from ace_core.metrics import MetricsCollector

    metrics = MetricsCollector()
    metrics.increment('cycles_in')
    metrics.increment_drop('inference_failed')
    metrics.record_histogram('cycle_latency_ms', 1.23)

    with metrics.timed('noise_latency_ms'):
        reducer.reduce(readings)
"""

from .counters import CounterSnapshot, MetricsCollector

__all__ = ['CounterSnapshot', 'MetricsCollector']
