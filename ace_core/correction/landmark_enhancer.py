"""
Landmark Enhancer.

Classifies landmarks from the base estimate into a closed category set
using ranging context. The learned path keeps only confident
classifications; the fallback labels every landmark UNKNOWN with fixed
scores and drops nothing.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ace_core.inference.models import InferenceModel
from ace_core.inference.registry import Capability, CapabilityRegistry
from ace_core.metrics import MetricsCollector
from ace_core.proto import (
    EnhancedLandmark,
    LandmarkCategory,
    RangingReading,
    Vector3,
    clamp_unit,
)

logger = logging.getLogger(__name__)


@dataclass
class LandmarkConfig:
    """
    Configuration for landmark enhancement.

    Attributes:
        confidence_threshold: Learned classifications must exceed this
        context_readings: Readings used as classification context
        default_reliability: Learned-path reliability without readings
        default_stability: Learned-path stability without a previous estimate
        fallback_confidence: Fallback classification confidence
        fallback_reliability: Fallback reliability
        fallback_stability: Fallback temporal stability
    """

    confidence_threshold: float = 0.7
    context_readings: int = 4
    default_reliability: float = 0.7
    default_stability: float = 0.8
    fallback_confidence: float = 0.5
    fallback_reliability: float = 0.6
    fallback_stability: float = 0.7

    def __post_init__(self):
        assert 0 <= self.confidence_threshold <= 1, "confidence_threshold must be in [0,1]"
        assert self.context_readings >= 0, "context_readings must be non-negative"


class FixedLabelStrategy:
    """Every landmark as UNKNOWN with fixed scores."""

    learned = False

    def __init__(self, config: LandmarkConfig):
        self.config = config

    def enhance(
        self,
        landmarks: Sequence[Vector3],
        readings: Sequence[RangingReading],
        previous_landmarks: Sequence[Vector3],
    ) -> List[EnhancedLandmark]:
        return [
            EnhancedLandmark(
                position=tuple(landmark),
                category=LandmarkCategory.UNKNOWN,
                confidence=self.config.fallback_confidence,
                reliability=self.config.fallback_reliability,
                temporal_stability=self.config.fallback_stability,
            )
            for landmark in landmarks
        ]


class LearnedLandmarkStrategy:
    """
    Per-landmark learned classifier.

    Feature row: x, y, z, then the first context readings as
    (distance, accuracy, modality ordinal), zero-padded to 15 values.
    Output: 7 category probabilities followed by the confidence.
    """

    learned = True
    FEATURES = 15
    OUTPUTS = len(LandmarkCategory) + 1

    def __init__(self, model: InferenceModel, config: LandmarkConfig, metrics: MetricsCollector):
        self.model = model
        self.config = config
        self.metrics = metrics

    def build_features(
        self,
        landmark: Vector3,
        readings: Sequence[RangingReading],
    ) -> np.ndarray:
        row = [float(v) for v in landmark]
        for reading in list(readings)[:self.config.context_readings]:
            row.extend([reading.distance_m, reading.accuracy, float(reading.modality.ordinal)])
        row = row[:self.FEATURES]
        row.extend([0.0] * (self.FEATURES - len(row)))
        return np.array([row], dtype=float)

    def reliability(self, readings: Sequence[RangingReading]) -> float:
        context = list(readings)[:self.config.context_readings]
        if not context:
            return self.config.default_reliability
        return clamp_unit(np.mean([r.accuracy for r in context]))

    def temporal_stability(
        self,
        landmark: Vector3,
        previous_landmarks: Sequence[Vector3],
    ) -> float:
        """1 / (1 + distance to the nearest previous landmark)."""
        if not previous_landmarks:
            return self.config.default_stability
        previous = np.asarray(previous_landmarks, dtype=float)
        nearest = float(np.min(np.linalg.norm(previous - np.asarray(landmark, dtype=float), axis=1)))
        return clamp_unit(1.0 / (1.0 + nearest))

    def enhance(
        self,
        landmarks: Sequence[Vector3],
        readings: Sequence[RangingReading],
        previous_landmarks: Sequence[Vector3],
    ) -> List[EnhancedLandmark]:
        reliability = self.reliability(readings)
        enhanced = []

        for landmark in landmarks:
            output = np.asarray(self.model.run(self.build_features(landmark, readings)), dtype=float).ravel()
            if output.size != self.OUTPUTS or not np.all(np.isfinite(output)):
                raise ValueError(f"Landmark model returned malformed output of size {output.size}")

            probabilities = output[:len(LandmarkCategory)]
            confidence = clamp_unit(output[-1])

            if confidence <= self.config.confidence_threshold:
                self.metrics.increment_drop('landmark_below_threshold')
                continue

            enhanced.append(EnhancedLandmark(
                position=tuple(landmark),
                category=LandmarkCategory(int(np.argmax(probabilities))),
                confidence=confidence,
                reliability=reliability,
                temporal_stability=self.temporal_stability(landmark, previous_landmarks),
            ))

        return enhanced


class LandmarkEnhancer:
    """
    Landmark classification stage.

    Usage:
        enhancer = LandmarkEnhancer(registry)
        landmarks = enhancer.enhance(base.landmarks, context.readings, previous.landmarks)

    Notes:
        - Learned mode may return fewer landmarks than given
        - Fallback mode returns every landmark
        - Learned failure degrades to the fallback labelling
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        config: Optional[LandmarkConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or LandmarkConfig()
        self.metrics = metrics or MetricsCollector()
        self.fallback = FixedLabelStrategy(self.config)
        self.strategy = registry.resolve(
            Capability.LANDMARK_CLASSIFICATION,
            learned=lambda model: LearnedLandmarkStrategy(model, self.config, self.metrics),
            fallback=lambda: self.fallback,
        )

    @property
    def uses_learned_path(self) -> bool:
        return self.strategy.learned

    def enhance(
        self,
        landmarks: Sequence[Vector3],
        readings: Sequence[RangingReading],
        previous_landmarks: Sequence[Vector3] = (),
    ) -> List[EnhancedLandmark]:
        """
        Classify the base estimate's landmarks.

        Args:
            landmarks: Landmark positions from the base estimate
            readings: Current cycle's ranging readings
            previous_landmarks: Landmarks of the previous buffered estimate

        Returns:
            EnhancedLandmark list
        """
        if self.strategy.learned:
            try:
                return self.strategy.enhance(landmarks, readings, previous_landmarks)
            except Exception as e:
                logger.warning(f"Landmark model failed, labelling as unknown: {e}")
                self.metrics.increment_drop('inference_failed')

        try:
            return self.fallback.enhance(landmarks, readings, previous_landmarks)
        except Exception as e:
            logger.error(f"Landmark enhancement failed: {e}")
            self.metrics.increment_drop('stage_degraded')
            return []
