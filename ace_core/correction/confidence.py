"""
Confidence Aggregator.

Combines per-stage confidences into a single ConfidenceReport. Keeps
the previous cycle's overall confidence to score temporal consistency.
"""

import threading
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ace_core.proto import (
    ConfidenceReport,
    EnhancedLandmark,
    EnhancedReading,
    PredictedWaypoint,
    clamp_unit,
)


@dataclass
class ConfidenceConfig:
    """
    Configuration for confidence aggregation.

    Attributes:
        empty_measurement_confidence: Used when a cycle has no readings
        empty_trajectory_confidence: Used when no waypoints were predicted
        empty_landmark_reliability: Used when no landmarks were emitted
    """

    empty_measurement_confidence: float = 0.0
    empty_trajectory_confidence: float = 0.5
    empty_landmark_reliability: float = 0.5


class ConfidenceAggregator:
    """
    Per-cycle confidence report.

    Indicators:
        measurement_quality: mean inference confidence
        prediction_quality: mean waypoint confidence
        temporal_consistency: 1 - |overall - previous overall|
        reading_quality: mean reading quality score
        landmark_reliability: mean landmark reliability
    """

    def __init__(self, config: Optional[ConfidenceConfig] = None):
        self.config = config or ConfidenceConfig()
        self._lock = threading.Lock()
        self._previous_overall: Optional[float] = None

    def aggregate(
        self,
        readings: Sequence[EnhancedReading],
        waypoints: Sequence[PredictedWaypoint],
        landmarks: Sequence[EnhancedLandmark] = (),
    ) -> ConfidenceReport:
        measurement = (
            clamp_unit(np.mean([r.inference_confidence for r in readings]))
            if readings else self.config.empty_measurement_confidence
        )
        trajectory = (
            clamp_unit(np.mean([w.confidence for w in waypoints]))
            if waypoints else self.config.empty_trajectory_confidence
        )
        overall = clamp_unit((measurement + trajectory) / 2.0)

        with self._lock:
            if self._previous_overall is None:
                consistency = 1.0
            else:
                consistency = clamp_unit(1.0 - abs(overall - self._previous_overall))
            self._previous_overall = overall

        reading_quality = (
            clamp_unit(np.mean([r.quality_score for r in readings])) if readings else 0.0
        )
        landmark_reliability = (
            clamp_unit(np.mean([l.reliability for l in landmarks]))
            if landmarks else self.config.empty_landmark_reliability
        )

        return ConfidenceReport(
            measurement_confidence=measurement,
            trajectory_confidence=trajectory,
            overall_confidence=overall,
            quality_indicators={
                'measurement_quality': measurement,
                'prediction_quality': trajectory,
                'temporal_consistency': consistency,
                'reading_quality': reading_quality,
                'landmark_reliability': landmark_reliability,
            },
        )

    def reset(self):
        with self._lock:
            self._previous_overall = None
