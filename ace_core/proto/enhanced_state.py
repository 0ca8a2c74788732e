"""
Enhanced Output Schemas.

Defines the per-cycle outputs of the correction engine: corrected
readings, predicted waypoints, classified landmarks, the confidence
report, insights and parameter recommendations.

All score fields (confidence, accuracy, quality, reliability) are
validated to lie in [0, 1]; producing stages clamp before construction.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Optional, Tuple

from .pose_estimate import BasePoseEstimate
from .ranging import RangingReading, Vector3


def _check_unit(name: str, value: float):
    """Raise if a score is outside [0,1]."""
    if not 0 <= value <= 1:
        raise ValueError(f"{name} must be in [0,1]: {value}")


@dataclass(frozen=True)
class EnhancedReading:
    """
    Ranging reading after correction.

    Attributes:
        reading: The original reading (exactly one)
        corrected_distance_m: Corrected distance in meters
        corrected_accuracy: Corrected accuracy score (0-1)
        inference_confidence: Confidence of the path that produced it (0-1)
        quality_score: Reading quality (0-1)
    """

    reading: RangingReading
    corrected_distance_m: float
    corrected_accuracy: float
    inference_confidence: float
    quality_score: float

    def __post_init__(self):
        """Validate scores."""
        _check_unit("corrected_accuracy", self.corrected_accuracy)
        _check_unit("inference_confidence", self.inference_confidence)
        _check_unit("quality_score", self.quality_score)

    @classmethod
    def passthrough(
        cls,
        reading: RangingReading,
        confidence: float = 0.5,
        quality: float = 0.5,
    ) -> 'EnhancedReading':
        """Unmodified reading carrying fixed degraded scores."""
        return cls(
            reading=reading,
            corrected_distance_m=reading.distance_m,
            corrected_accuracy=reading.accuracy,
            inference_confidence=confidence,
            quality_score=quality,
        )


@dataclass(frozen=True)
class PredictedWaypoint:
    """
    Predicted future device position.

    Attributes:
        position: Predicted position (x, y, z) in meters
        confidence: Prediction confidence (0-1)
        steps_ahead: 1-based index into the prediction horizon
        timestamp_ms: Projected timestamp (milliseconds)
    """

    position: Vector3
    confidence: float
    steps_ahead: int
    timestamp_ms: int

    def __post_init__(self):
        _check_unit("confidence", self.confidence)
        if self.steps_ahead < 1:
            raise ValueError(f"steps_ahead must be >= 1: {self.steps_ahead}")


class LandmarkCategory(IntEnum):
    """Closed set of landmark classes (index = model output slot)."""

    WALL = 0
    CORNER = 1
    PILLAR = 2
    FURNITURE = 3
    DOOR = 4
    WINDOW = 5
    UNKNOWN = 6


@dataclass(frozen=True)
class EnhancedLandmark:
    """
    Classified landmark.

    Attributes:
        position: Landmark position from the base estimate
        category: Classified category
        confidence: Classification confidence (0-1)
        reliability: Reliability from ranging context (0-1)
        temporal_stability: Stability versus the previous cycle (0-1)
    """

    position: Vector3
    category: LandmarkCategory
    confidence: float
    reliability: float
    temporal_stability: float

    def __post_init__(self):
        _check_unit("confidence", self.confidence)
        _check_unit("reliability", self.reliability)
        _check_unit("temporal_stability", self.temporal_stability)


@dataclass(frozen=True)
class ConfidenceReport:
    """
    Aggregated per-cycle confidence.

    Attributes:
        measurement_confidence: Mean inference confidence of readings
        trajectory_confidence: Mean waypoint confidence
        overall_confidence: Mean of the two
        quality_indicators: Named 0-1 quality scores
    """

    measurement_confidence: float
    trajectory_confidence: float
    overall_confidence: float
    quality_indicators: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        _check_unit("measurement_confidence", self.measurement_confidence)
        _check_unit("trajectory_confidence", self.trajectory_confidence)
        _check_unit("overall_confidence", self.overall_confidence)
        for label, score in self.quality_indicators.items():
            _check_unit(label, score)


@dataclass(frozen=True)
class EnhancedState:
    """
    Full enhanced-state record for one completed cycle.

    Attributes:
        base_estimate: Base estimate snapshot the cycle enhanced
        enhanced_readings: Corrected readings (input order)
        predicted_trajectory: Waypoints ordered by steps_ahead
        enhanced_landmarks: Classified landmarks
        confidence: Confidence report
        processing_time_ms: Per-cycle processing latency
        timestamp_ms: Completion timestamp
        cycle_index: Arrival index of the cycle
    """

    base_estimate: BasePoseEstimate
    enhanced_readings: Tuple[EnhancedReading, ...]
    predicted_trajectory: Tuple[PredictedWaypoint, ...]
    enhanced_landmarks: Tuple[EnhancedLandmark, ...]
    confidence: ConfidenceReport
    processing_time_ms: float
    timestamp_ms: int
    cycle_index: int = 0

    @classmethod
    def degraded(
        cls,
        base_estimate: BasePoseEstimate,
        readings: Tuple[RangingReading, ...] = (),
        timestamp_ms: int = 0,
        cycle_index: int = 0,
        landmarks: Optional[Tuple[EnhancedLandmark, ...]] = None,
        processing_time_ms: float = 0.0,
    ) -> 'EnhancedState':
        """
        Fully degraded record used when a whole cycle failed.

        Readings are passed through unmodified, base landmarks are
        labelled UNKNOWN (0.5/0.6/0.7 unless `landmarks` is given) and
        confidences and quality indicators sit at the neutral 0.5
        (landmark_reliability follows the landmark labels).
        """
        if landmarks is None:
            landmarks = tuple(
                EnhancedLandmark(tuple(position), LandmarkCategory.UNKNOWN, 0.5, 0.6, 0.7)
                for position in base_estimate.landmarks
            )

        indicators = {
            'measurement_quality': 0.5,
            'prediction_quality': 0.5,
            'temporal_consistency': 0.5,
            'reading_quality': 0.5,
            'landmark_reliability': (
                sum(l.reliability for l in landmarks) / len(landmarks) if landmarks else 0.5
            ),
        }

        return cls(
            base_estimate=base_estimate,
            enhanced_readings=tuple(EnhancedReading.passthrough(r) for r in readings),
            predicted_trajectory=(),
            enhanced_landmarks=tuple(landmarks),
            confidence=ConfidenceReport(0.5, 0.5, 0.5, indicators),
            processing_time_ms=processing_time_ms,
            timestamp_ms=timestamp_ms,
            cycle_index=cycle_index,
        )


class InsightType(Enum):
    """Insight categories."""

    ACCURACY_IMPROVEMENT = "accuracy_improvement"
    SENSOR_PERFORMANCE = "sensor_performance"
    TRAJECTORY_PREDICTION = "trajectory_prediction"
    LANDMARK_CLASSIFICATION = "landmark_classification"


@dataclass(frozen=True)
class Insight:
    """Human-relevant statement derived from a cycle."""

    insight_type: InsightType
    message: str
    confidence: float
    value: float
    timestamp_ms: int

    def __post_init__(self):
        _check_unit("confidence", self.confidence)


@dataclass(frozen=True)
class ParameterRecommendations:
    """
    Tuning advice for the upstream estimator.

    Flags are independent; several may be raised at once.
    """

    tracking_stability: float = 1.0
    sensor_performance: float = 1.0
    environment_complexity: float = 0.0
    increase_process_noise: bool = False
    reduce_prediction_confidence: bool = False
    increase_measurement_noise: bool = False
    enable_robust_fusion: bool = False
    increase_particle_count: bool = False
    enable_advanced_landmark_detection: bool = False
    timestamp_ms: Optional[int] = None

    def __post_init__(self):
        _check_unit("tracking_stability", self.tracking_stability)
        _check_unit("sensor_performance", self.sensor_performance)
        _check_unit("environment_complexity", self.environment_complexity)

    @property
    def any_flag(self) -> bool:
        """True if any adjustment is recommended."""
        return any((
            self.increase_process_noise,
            self.reduce_prediction_confidence,
            self.increase_measurement_noise,
            self.enable_robust_fusion,
            self.increase_particle_count,
            self.enable_advanced_landmark_detection,
        ))


@dataclass(frozen=True)
class SensorPlacement:
    """
    Suggested ranging source position.

    Attributes:
        position: Suggested position (x, y, z) in meters
        expected_improvement: Coverage gain expected from a source there (0-1)
        reason: Short description of the coverage gap
    """

    position: Vector3
    expected_improvement: float
    reason: str

    def __post_init__(self):
        _check_unit("expected_improvement", self.expected_improvement)
