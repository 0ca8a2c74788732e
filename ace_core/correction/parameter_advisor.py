"""
Parameter Advisor.

Rolling trend analysis over the buffered history, producing tuning
recommendations for the upstream estimator. Runs on its own slower
cadence (see AdaptiveCorrectionEngine); each call works on an immutable
snapshot of the history buffer.

Metrics (each in [0, 1]):
- tracking_stability: mean estimator confidence / (1 + std of step speeds)
- sensor_performance: mean reading accuracy x reading gate pass rate
- environment_complexity: landmark density and per-source distance spread

Sensor placement: landmarks around the device are binned into angular
sectors; sparsely covered sectors yield suggested source positions.
"""

import logging
import math
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ace_core.correction.reading_gate import ReadingGate
from ace_core.metrics import MetricsCollector
from ace_core.proto import (
    FusionContext,
    ParameterRecommendations,
    SensorPlacement,
    Vector3,
    clamp_unit,
)

logger = logging.getLogger(__name__)


@dataclass
class AdvisorConfig:
    """
    Configuration for the parameter advisor.

    Attributes:
        interval_s: Seconds between advisor runs
        stability_threshold: Below this, raise process noise
        sensor_threshold: Below this, raise measurement noise
        complexity_threshold: Above this, raise particle count
        landmark_saturation: Landmark count treated as maximally complex
        min_contexts: Contexts needed before stability is scored
        placement_sectors: Angular sectors around the device for placement
        placement_radius_m: Landmarks farther than this do not count
        sector_target_landmarks: Landmarks per sector considered covered
        min_placement_improvement: Suggestions at or below this are dropped
    """

    interval_s: float = 5.0
    stability_threshold: float = 0.6
    sensor_threshold: float = 0.7
    complexity_threshold: float = 0.8
    landmark_saturation: int = 50
    min_contexts: int = 3
    placement_sectors: int = 8
    placement_radius_m: float = 10.0
    sector_target_landmarks: int = 2
    min_placement_improvement: float = 0.2

    def __post_init__(self):
        assert self.interval_s > 0, "interval_s must be positive"
        assert self.landmark_saturation > 0, "landmark_saturation must be positive"
        assert self.min_contexts >= 2, "min_contexts must be at least 2"
        assert self.placement_sectors >= 1, "placement_sectors must be positive"
        assert self.placement_radius_m > 0, "placement_radius_m must be positive"
        assert self.sector_target_landmarks >= 1, "sector_target_landmarks must be positive"


class ParameterAdvisor:
    """
    Recommends estimator tuning from history trends.

    Usage:
        advisor = ParameterAdvisor(gate=ReadingGate())
        recommendations = advisor.advise(history.snapshot())
        if recommendations.increase_measurement_noise:
            ...
    """

    def __init__(
        self,
        config: Optional[AdvisorConfig] = None,
        gate: Optional[ReadingGate] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or AdvisorConfig()
        self.metrics = metrics or MetricsCollector()
        self.gate = gate or ReadingGate(metrics=self.metrics)

    def tracking_stability(self, contexts: Sequence[FusionContext]) -> float:
        if len(contexts) < self.config.min_contexts:
            return 1.0

        positions = np.array([c.base_estimate.position for c in contexts], dtype=float)
        times_s = np.array([c.timestamp_ms for c in contexts], dtype=float) / 1000.0

        dt = np.diff(times_s)
        valid = dt > 0
        if not np.any(valid):
            speed_std = 0.0
        else:
            steps = np.linalg.norm(np.diff(positions, axis=0), axis=1)
            speeds = steps[valid] / dt[valid]
            speed_std = float(np.std(speeds))

        mean_confidence = float(np.mean([c.base_estimate.confidence for c in contexts]))
        return clamp_unit(mean_confidence / (1.0 + speed_std))

    def sensor_performance(self, contexts: Sequence[FusionContext]) -> float:
        readings = [r for c in contexts for r in c.readings]
        if not readings:
            return 1.0

        pass_rate = self.gate.pass_rate(readings)
        mean_accuracy = float(np.mean([r.accuracy for r in readings]))
        return clamp_unit(mean_accuracy * (pass_rate if pass_rate is not None else 1.0))

    def environment_complexity(self, contexts: Sequence[FusionContext]) -> float:
        if not contexts:
            return 0.0

        mean_landmarks = float(np.mean([len(c.base_estimate.landmarks) for c in contexts]))
        density = min(1.0, mean_landmarks / self.config.landmark_saturation)

        by_source = defaultdict(list)
        for context in contexts:
            for reading in context.readings:
                by_source[reading.source_id].append(reading.distance_m)

        variations = []
        for distances in by_source.values():
            if len(distances) < 2:
                continue
            mean = float(np.mean(distances))
            if mean > 0:
                variations.append(float(np.std(distances)) / mean)
        spread = min(1.0, float(np.mean(variations))) if variations else 0.0

        return clamp_unit(0.5 * density + 0.5 * spread)

    def advise(self, contexts: Sequence[FusionContext]) -> ParameterRecommendations:
        """
        Analyse a history snapshot.

        Args:
            contexts: Buffered contexts, oldest first

        Returns:
            ParameterRecommendations (neutral on internal failure)
        """
        now_ms = int(time.time() * 1000)
        self.metrics.increment('advisor_runs')

        try:
            stability = self.tracking_stability(contexts)
            sensors = self.sensor_performance(contexts)
            complexity = self.environment_complexity(contexts)
        except Exception as e:
            logger.error(f"Parameter analysis failed: {e}")
            self.metrics.increment_drop('stage_degraded')
            return ParameterRecommendations(timestamp_ms=now_ms)

        unstable = stability < self.config.stability_threshold
        weak_sensors = sensors < self.config.sensor_threshold
        complex_scene = complexity > self.config.complexity_threshold

        recommendations = ParameterRecommendations(
            tracking_stability=stability,
            sensor_performance=sensors,
            environment_complexity=complexity,
            increase_process_noise=unstable,
            reduce_prediction_confidence=unstable,
            increase_measurement_noise=weak_sensors,
            enable_robust_fusion=weak_sensors,
            increase_particle_count=complex_scene,
            enable_advanced_landmark_detection=complex_scene,
            timestamp_ms=now_ms,
        )

        logger.debug(
            f"Advisor: stability={stability:.2f}, sensors={sensors:.2f}, "
            f"complexity={complexity:.2f}"
        )
        return recommendations

    def suggest_sensor_positions(
        self,
        landmarks: Sequence[Vector3],
        position: Vector3,
    ) -> List[SensorPlacement]:
        """
        Suggest ranging source positions where landmark coverage is sparse.

        Landmarks within placement_radius_m are binned by bearing into
        placement_sectors sectors. A sector holding k landmarks has
        expected improvement 1 - min(1, k / sector_target_landmarks); the
        suggestion sits halfway to the radius along the sector bisector,
        at the device height.

        Args:
            landmarks: Landmark positions from the base estimate
            position: Current device position

        Returns:
            Suggestions above min_placement_improvement, best first
            (empty on internal failure)
        """
        cfg = self.config
        try:
            origin = np.asarray(position, dtype=float)
            points = np.asarray(landmarks, dtype=float).reshape(-1, 3)

            offsets = points[:, :2] - origin[:2]
            in_range = np.linalg.norm(offsets, axis=1) <= cfg.placement_radius_m
            bearings = np.arctan2(offsets[in_range, 1], offsets[in_range, 0]) % (2 * math.pi)

            width = 2 * math.pi / cfg.placement_sectors
            sectors = np.minimum((bearings // width).astype(int), cfg.placement_sectors - 1)
            counts = np.bincount(sectors, minlength=cfg.placement_sectors)

            suggestions = []
            for sector, count in enumerate(counts):
                improvement = 1.0 - min(1.0, count / cfg.sector_target_landmarks)
                if improvement <= cfg.min_placement_improvement:
                    continue

                bisector = (sector + 0.5) * width
                reach = cfg.placement_radius_m / 2.0
                suggestions.append(SensorPlacement(
                    position=(
                        float(origin[0] + reach * math.cos(bisector)),
                        float(origin[1] + reach * math.sin(bisector)),
                        float(origin[2]),
                    ),
                    expected_improvement=clamp_unit(improvement),
                    reason=f"{int(count)} landmark(s) in sector {math.degrees(bisector):.0f} deg",
                ))
        except Exception as e:
            logger.error(f"Sensor placement analysis failed: {e}")
            self.metrics.increment_drop('stage_degraded')
            return []

        suggestions.sort(key=lambda s: s.expected_improvement, reverse=True)
        return suggestions
