"""
Reading Gate for Ranging Measurements.

Sanity checks on individual ranging readings: physical distance bounds,
minimum stated accuracy, and per-source rate of change against the
previous reading of the same source. The engine gates each cycle once
as it is processed (drops are counted there); the parameter advisor
scores the buffered history with the side-effect-free pass rate.
"""

from typing import Dict, Iterable, Optional
from dataclasses import dataclass

from ace_core.metrics import MetricsCollector
from ace_core.proto import RangingReading


@dataclass
class ReadingGateConfig:
    """
    Configuration for reading gating.

    Attributes:
        d_min_m: Minimum physically plausible distance (m)
        d_max_m: Maximum reasonable indoor distance (m)
        min_accuracy: Minimum stated accuracy score
        max_rate_m_s: Maximum distance change rate per source (m/s)
    """

    d_min_m: float = 0.1           # Below 10cm is noise
    d_max_m: float = 50.0          # Max reasonable indoor range
    min_accuracy: float = 0.3
    max_rate_m_s: float = 5.0

    def __post_init__(self):
        """Validate configuration."""
        assert self.d_min_m >= 0, "d_min must be non-negative"
        assert self.d_max_m > self.d_min_m, "d_max must be greater than d_min"
        assert 0 <= self.min_accuracy <= 1, "min_accuracy must be in [0,1]"
        assert self.max_rate_m_s > 0, "max_rate must be positive"


class ReadingGate:
    """
    Gate ranging readings for implausible values.

    Applies checks:
    1. Sanity bounds: d_min <= d <= d_max
    2. Accuracy threshold: accuracy >= min_accuracy
    3. Rate of change versus the previous reading of the same source

    Usage:
        gate = ReadingGate(config)

        if not gate.check_reading(reading, previous):
            reason = gate.get_rejection_reason(reading)
    """

    def __init__(
        self,
        config: Optional[ReadingGateConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or ReadingGateConfig()
        self.metrics = metrics or MetricsCollector()

        # Last rejection reason per source of the latest checked cycle
        self._last_rejection: Dict[str, str] = {}

    def evaluate(
        self,
        reading: RangingReading,
        previous: Optional[RangingReading] = None,
    ) -> Optional[str]:
        """
        Rejection reason for a reading, without recording anything.

        Args:
            reading: Reading to validate
            previous: Previous reading from the same source, if any

        Returns:
            Reason code, or None if the reading passes every check
        """
        distance = reading.distance_m

        if distance < self.config.d_min_m:
            return "too_close"

        if distance > self.config.d_max_m:
            return "too_far"

        if reading.accuracy < self.config.min_accuracy:
            return "poor_accuracy"

        if previous is not None:
            dt = (reading.timestamp_ms - previous.timestamp_ms) / 1000.0
            if dt > 0:
                rate = abs(distance - previous.distance_m) / dt
                if rate > self.config.max_rate_m_s:
                    return "rate_exceeded"

        return None

    def check_reading(
        self,
        reading: RangingReading,
        previous: Optional[RangingReading] = None,
    ) -> bool:
        """
        Check a reading and record the verdict.

        A rejection counts one 'reading_gated' drop plus a per-reason
        counter, and is remembered as the source's last rejection.

        Returns:
            True if the reading passes every check
        """
        reason = self.evaluate(reading, previous)
        if reason is not None:
            return self._reject(reading, reason)

        self._last_rejection.pop(reading.source_id, None)
        return True

    def check_cycle(
        self,
        readings: Iterable[RangingReading],
        previous_readings: Iterable[RangingReading] = (),
    ) -> int:
        """
        Gate one cycle's readings, each exactly once.

        Rate of change is checked against the previous cycle's reading of
        the same source. Rejection reasons are kept for this cycle's
        sources only.

        Returns:
            Number of readings that passed
        """
        previous_by_source = {r.source_id: r for r in previous_readings}
        self._last_rejection.clear()

        passed = 0
        for reading in readings:
            if self.check_reading(reading, previous_by_source.get(reading.source_id)):
                passed += 1
        return passed

    def pass_rate(self, readings: Iterable[RangingReading]) -> Optional[float]:
        """
        Fraction of readings passing the gate, in arrival order.

        Rate of change is checked against the previous reading of the
        same source within the sequence. Nothing is counted or
        remembered, so the same history can be scored repeatedly.

        Returns:
            Pass fraction, or None if there were no readings
        """
        last_by_source: Dict[str, RangingReading] = {}
        total = 0
        passed = 0

        for reading in readings:
            total += 1
            if self.evaluate(reading, last_by_source.get(reading.source_id)) is None:
                passed += 1
            last_by_source[reading.source_id] = reading

        if total == 0:
            return None
        return passed / total

    def get_rejection_reason(self, reading: RangingReading) -> Optional[str]:
        """Reason the reading's source was last rejected, if any."""
        return self._last_rejection.get(reading.source_id)

    def _reject(self, reading: RangingReading, reason: str) -> bool:
        self._last_rejection[reading.source_id] = reason
        self.metrics.increment_drop('reading_gated')
        self.metrics.increment(f'reading_gate_{reason}')
        return False
