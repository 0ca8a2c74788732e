"""
Noise Reduction Stage.

Smooths the fusion corrector's output using temporal context: a learned
denoiser producing (distance, noise level) per reading, or a moving
average against recent same-modality readings.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

import numpy as np

from ace_core.correction.fusion_corrector import recent_modality_distances
from ace_core.inference.models import InferenceModel
from ace_core.inference.registry import Capability, CapabilityRegistry
from ace_core.io.history_buffer import HistoryBuffer
from ace_core.metrics import MetricsCollector
from ace_core.proto import EnhancedReading, FusionContext, clamp_unit

logger = logging.getLogger(__name__)


@dataclass
class NoiseReductionConfig:
    """
    Configuration for noise reduction.

    Attributes:
        history_window: Buffered contexts used by the moving average
        model_history_window: Buffered contexts scanned for model features
        model_history_readings: Historical readings fed to the model
        quality_noise_weight: Fraction of the noise level removed from quality
    """

    history_window: int = 3
    model_history_window: int = 10
    model_history_readings: int = 4
    quality_noise_weight: float = 0.5

    def __post_init__(self):
        assert self.history_window > 0, "history_window must be positive"
        assert self.model_history_readings >= 0, "model_history_readings must be non-negative"
        assert 0 <= self.quality_noise_weight <= 1, "quality_noise_weight must be in [0,1]"


class MovingAverageStrategy:
    """Average each distance with the recent same-modality mean."""

    learned = False

    def __init__(self, config: NoiseReductionConfig):
        self.config = config

    def reduce(
        self,
        readings: Sequence[EnhancedReading],
        history: HistoryBuffer,
    ) -> List[EnhancedReading]:
        recent = history.recent(self.config.history_window)
        smoothed = []
        for enhanced in readings:
            similar = recent_modality_distances(recent, enhanced.reading.modality)
            if not similar:
                smoothed.append(enhanced)
                continue
            average = float(np.mean(similar))
            smoothed.append(replace(
                enhanced,
                corrected_distance_m=(enhanced.corrected_distance_m + average) / 2.0,
            ))
        return smoothed


class LearnedDenoiseStrategy:
    """
    Per-reading learned denoiser.

    Feature row: own distance, accuracy, confidence, quality, then up to
    4 recent same-modality readings as (distance, accuracy, 0.5, 0.5),
    zero-padded to 20 values. Output: (denoised distance, noise level).
    """

    learned = True
    FEATURES = 20

    def __init__(self, model: InferenceModel, config: NoiseReductionConfig):
        self.model = model
        self.config = config

    def build_features(
        self,
        enhanced: EnhancedReading,
        recent: Sequence[FusionContext],
    ) -> np.ndarray:
        limit = self.config.model_history_readings
        historical = [
            r for context in recent for r in context.readings
            if r.modality == enhanced.reading.modality
        ]
        historical = historical[-limit:] if limit else []

        row = [
            enhanced.corrected_distance_m,
            enhanced.corrected_accuracy,
            enhanced.inference_confidence,
            enhanced.quality_score,
        ]
        for reading in historical:
            row.extend([reading.distance_m, reading.accuracy, 0.5, 0.5])

        row = row[:self.FEATURES]
        row.extend([0.0] * (self.FEATURES - len(row)))
        return np.array([row], dtype=float)

    def reduce(
        self,
        readings: Sequence[EnhancedReading],
        history: HistoryBuffer,
    ) -> List[EnhancedReading]:
        recent = history.recent(self.config.model_history_window)
        denoised = []
        for enhanced in readings:
            output = np.asarray(self.model.run(self.build_features(enhanced, recent)), dtype=float).ravel()
            if output.size < 2 or not np.all(np.isfinite(output[:2])):
                raise ValueError(f"Noise model returned malformed output of size {output.size}")

            noise = clamp_unit(output[1])
            denoised.append(replace(
                enhanced,
                corrected_distance_m=max(0.0, float(output[0])),
                corrected_accuracy=clamp_unit(enhanced.corrected_accuracy * (1.0 - noise)),
                quality_score=clamp_unit(
                    enhanced.quality_score * (1.0 - noise * self.config.quality_noise_weight)
                ),
            ))
        return denoised


class NoiseReducer:
    """
    Temporal smoothing of corrected readings.

    Usage:
        reducer = NoiseReducer(registry, history)
        denoised = reducer.reduce(corrector.correct(context))

    Notes:
        - On any failure the input list is returned unchanged
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        history: HistoryBuffer,
        config: Optional[NoiseReductionConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or NoiseReductionConfig()
        self.history = history
        self.metrics = metrics or MetricsCollector()
        self.strategy = registry.resolve(
            Capability.NOISE_REDUCTION,
            learned=lambda model: LearnedDenoiseStrategy(model, self.config),
            fallback=lambda: MovingAverageStrategy(self.config),
        )

    @property
    def uses_learned_path(self) -> bool:
        return self.strategy.learned

    def reduce(self, readings: Sequence[EnhancedReading]) -> List[EnhancedReading]:
        """
        Smooth a cycle's corrected readings.

        Args:
            readings: Output of the sensor fusion corrector

        Returns:
            Smoothed readings, same length and order
        """
        try:
            return self.strategy.reduce(readings, self.history)
        except Exception as e:
            logger.warning(f"Noise reduction failed, keeping corrected readings: {e}")
            self.metrics.increment_drop(
                'inference_failed' if self.strategy.learned else 'stage_degraded'
            )
            return list(readings)
