"""
Sensor Fusion Corrector.

Turns each ranging reading of a cycle into an EnhancedReading, using
either a learned fusion model (one batched call per cycle) or the
deterministic median-blend heuristic over recent history.

With no redundancy between modalities, a single wild reading would
otherwise drag the downstream estimate; the heuristic pulls readings
that deviate strongly from their modality's recent median toward it.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ace_core.inference.models import InferenceModel
from ace_core.inference.registry import Capability, CapabilityRegistry
from ace_core.io.history_buffer import HistoryBuffer
from ace_core.metrics import MetricsCollector
from ace_core.proto import (
    EnhancedReading,
    FusionContext,
    RangingModality,
    RangingReading,
    clamp_unit,
)

logger = logging.getLogger(__name__)


@dataclass
class FusionCorrectorConfig:
    """
    Configuration for the sensor fusion corrector.

    Attributes:
        history_window: Buffered contexts used for the modality median
        outlier_threshold: Relative deviation from the median that triggers blending
        blend_original: Weight of the original distance when blending
        heuristic_confidence: Inference confidence assigned by the heuristic
        accuracy_gain: Multiplier applied to accuracy by the heuristic
        error_confidence: Confidence assigned when correction failed
        error_quality: Quality assigned when correction failed
    """

    history_window: int = 5
    outlier_threshold: float = 0.3
    blend_original: float = 0.3      # 0.3 x original + 0.7 x median
    heuristic_confidence: float = 0.6
    accuracy_gain: float = 1.1
    error_confidence: float = 0.5
    error_quality: float = 0.5

    def __post_init__(self):
        """Validate configuration."""
        assert self.history_window > 0, "history_window must be positive"
        assert self.outlier_threshold >= 0, "outlier_threshold must be non-negative"
        assert 0 <= self.blend_original <= 1, "blend_original must be in [0,1]"
        assert 0 <= self.heuristic_confidence <= 1, "heuristic_confidence must be in [0,1]"
        assert self.accuracy_gain > 0, "accuracy_gain must be positive"


def recent_modality_distances(
    contexts: Sequence[FusionContext],
    modality: RangingModality,
) -> List[float]:
    """Distances of every same-modality reading in the given contexts."""
    return [
        reading.distance_m
        for context in contexts
        for reading in context.readings
        if reading.modality == modality
    ]


class HeuristicFusionStrategy:
    """Median-blend outlier correction over recent history."""

    learned = False

    def __init__(self, config: FusionCorrectorConfig, metrics: MetricsCollector):
        self.config = config
        self.metrics = metrics

    def correct(
        self,
        context: FusionContext,
        recent: Sequence[FusionContext],
    ) -> List[EnhancedReading]:
        """Correct each reading independently; one failure stays local."""
        enhanced = []
        for reading in context.readings:
            try:
                enhanced.append(self.correct_reading(reading, recent))
            except Exception as e:
                logger.warning(f"Heuristic correction failed for {reading.source_id}: {e}")
                self.metrics.increment_drop('stage_degraded')
                enhanced.append(EnhancedReading.passthrough(
                    reading, self.config.error_confidence, self.config.error_quality
                ))
        return enhanced

    def correct_reading(
        self,
        reading: RangingReading,
        recent: Sequence[FusionContext],
    ) -> EnhancedReading:
        distance = reading.distance_m
        similar = recent_modality_distances(recent, reading.modality)

        if similar:
            median = float(np.median(similar))
            if abs(distance - median) > median * self.config.outlier_threshold:
                w = self.config.blend_original
                distance = w * reading.distance_m + (1.0 - w) * median
                self.metrics.increment('fusion_outliers_blended')

        return EnhancedReading(
            reading=reading,
            corrected_distance_m=distance,
            corrected_accuracy=clamp_unit(reading.accuracy * self.config.accuracy_gain),
            inference_confidence=self.config.heuristic_confidence,
            quality_score=clamp_unit(reading.accuracy),
        )


class LearnedFusionStrategy:
    """
    Batched learned correction.

    Feature row per reading: distance, accuracy, modality ordinal,
    timestamp, base x, base y, then 9 inertial values (zero-filled).
    Output row per reading: distance, accuracy, confidence, quality.
    """

    learned = True
    OUTPUTS_PER_READING = 4

    def __init__(self, model: InferenceModel):
        self.model = model

    def build_features(self, context: FusionContext) -> np.ndarray:
        base_x, base_y = context.position[0], context.position[1]
        inertial = context.inertial.to_features() if context.inertial is not None else (0.0,) * 9

        rows = [
            [
                reading.distance_m,
                reading.accuracy,
                float(reading.modality.ordinal),
                float(reading.timestamp_ms),
                base_x,
                base_y,
                *inertial,
            ]
            for reading in context.readings
        ]
        return np.array(rows, dtype=float).reshape(len(rows), 15)

    def correct(
        self,
        context: FusionContext,
        recent: Sequence[FusionContext],
    ) -> List[EnhancedReading]:
        readings = context.readings
        if not readings:
            return []

        output = np.asarray(self.model.run(self.build_features(context)), dtype=float).ravel()
        expected = len(readings) * self.OUTPUTS_PER_READING
        if output.size != expected:
            raise ValueError(f"Fusion model returned {output.size} values, expected {expected}")
        if not np.all(np.isfinite(output)):
            raise ValueError("Fusion model returned non-finite values")

        enhanced = []
        for reading, row in zip(readings, output.reshape(-1, self.OUTPUTS_PER_READING)):
            enhanced.append(EnhancedReading(
                reading=reading,
                corrected_distance_m=max(0.0, float(row[0])),
                corrected_accuracy=clamp_unit(row[1]),
                inference_confidence=clamp_unit(row[2]),
                quality_score=clamp_unit(row[3]),
            ))
        return enhanced


class SensorFusionCorrector:
    """
    Per-cycle reading correction.

    Usage:
        corrector = SensorFusionCorrector(registry, history)
        enhanced = corrector.correct(context)
        assert len(enhanced) == len(context.readings)

    Notes:
        - Output always has the input's length and order
        - History lookups see buffered cycles only, not the current one
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        history: HistoryBuffer,
        config: Optional[FusionCorrectorConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or FusionCorrectorConfig()
        self.history = history
        self.metrics = metrics or MetricsCollector()
        self.strategy = registry.resolve(
            Capability.SENSOR_FUSION,
            learned=LearnedFusionStrategy,
            fallback=lambda: HeuristicFusionStrategy(self.config, self.metrics),
        )

    @property
    def uses_learned_path(self) -> bool:
        return self.strategy.learned

    def correct(self, context: FusionContext) -> List[EnhancedReading]:
        """
        Correct every reading of a cycle.

        Args:
            context: Current cycle

        Returns:
            EnhancedReading per input reading, same order
        """
        recent = self.history.recent(self.config.history_window)

        try:
            enhanced = self.strategy.correct(context, recent)
        except Exception as e:
            logger.warning(f"Sensor fusion failed, passing readings through: {e}")
            self.metrics.increment_drop('inference_failed')
            enhanced = [
                EnhancedReading.passthrough(r, self.config.error_confidence, self.config.error_quality)
                for r in context.readings
            ]

        self.metrics.increment('readings_corrected', len(enhanced))
        return enhanced
