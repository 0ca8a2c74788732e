"""
Insight Generator.

Flat rule set evaluated once per completed cycle. Each rule fires
independently; there is no state carried between cycles.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ace_core.proto import (
    EnhancedReading,
    EnhancedState,
    Insight,
    InsightType,
    LandmarkCategory,
    clamp_unit,
)


@dataclass
class InsightConfig:
    """
    Rule thresholds.

    Attributes:
        improvement_threshold: Minimum improvement fraction to report
        poor_quality_threshold: Readings below this quality count as poor
        sensor_insight_confidence: Confidence of the sensor performance insight
        trajectory_threshold: Mean waypoint confidence to report predictions
    """

    improvement_threshold: float = 0.1
    poor_quality_threshold: float = 0.5
    sensor_insight_confidence: float = 0.8
    trajectory_threshold: float = 0.8


def _dispersion(groups) -> float:
    """Mean absolute deviation from each group's median."""
    deviations = []
    for values in groups.values():
        median = float(np.median(values))
        deviations.extend(abs(v - median) for v in values)
    return float(np.mean(deviations)) if deviations else 0.0


def estimate_improvement(readings: Sequence[EnhancedReading]) -> float:
    """
    Fractional dispersion reduction of corrected versus raw distances.

    Dispersion is the mean absolute deviation from each modality's
    median within the cycle. Returns 0 when the raw readings agree.
    """
    raw = defaultdict(list)
    corrected = defaultdict(list)
    for enhanced in readings:
        raw[enhanced.reading.modality].append(enhanced.reading.distance_m)
        corrected[enhanced.reading.modality].append(enhanced.corrected_distance_m)

    baseline = _dispersion(raw)
    if baseline <= 1e-9:
        return 0.0
    return clamp_unit((baseline - _dispersion(corrected)) / baseline)


class InsightGenerator:
    """
    Derives insights from an enhanced state.

    Usage:
        generator = InsightGenerator()
        for insight in generator.generate(state):
            stream.publish(insight)
    """

    def __init__(self, config: Optional[InsightConfig] = None):
        self.config = config or InsightConfig()

    def generate(self, state: EnhancedState) -> List[Insight]:
        insights = []
        now = state.timestamp_ms

        improvement = estimate_improvement(state.enhanced_readings)
        if improvement > self.config.improvement_threshold:
            insights.append(Insight(
                insight_type=InsightType.ACCURACY_IMPROVEMENT,
                message=f"Correction improved ranging consistency by {int(improvement * 100)}%",
                confidence=state.confidence.overall_confidence,
                value=improvement,
                timestamp_ms=now,
            ))

        poor = [
            r for r in state.enhanced_readings
            if r.quality_score < self.config.poor_quality_threshold
        ]
        if poor:
            sources = sorted({r.reading.source_id for r in poor})
            insights.append(Insight(
                insight_type=InsightType.SENSOR_PERFORMANCE,
                message=(
                    f"{len(poor)} readings showing poor quality "
                    f"({', '.join(sources)}) - consider recalibration"
                ),
                confidence=self.config.sensor_insight_confidence,
                value=float(len(poor)),
                timestamp_ms=now,
            ))

        if state.predicted_trajectory:
            mean_confidence = clamp_unit(np.mean([w.confidence for w in state.predicted_trajectory]))
            if mean_confidence > self.config.trajectory_threshold:
                insights.append(Insight(
                    insight_type=InsightType.TRAJECTORY_PREDICTION,
                    message="High confidence trajectory predictions available",
                    confidence=mean_confidence,
                    value=mean_confidence,
                    timestamp_ms=now,
                ))

        classified = [
            l for l in state.enhanced_landmarks if l.category != LandmarkCategory.UNKNOWN
        ]
        if classified:
            insights.append(Insight(
                insight_type=InsightType.LANDMARK_CLASSIFICATION,
                message=f"{len(classified)} landmarks classified",
                confidence=clamp_unit(np.mean([l.confidence for l in classified])),
                value=float(len(classified)),
                timestamp_ms=now,
            ))

        return insights
