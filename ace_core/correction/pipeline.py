"""
Correction Pipeline.

Runs every correction stage for one cycle and assembles the
EnhancedState record.

Usage:
    pipeline = CorrectionPipeline(registry, history, config, metrics)

    state, insights = pipeline.process(context, cycle_index)
    print(f"Overall confidence: {state.confidence.overall_confidence:.2f}")

    pipeline.close()
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ace_core.correction.confidence import ConfidenceAggregator, ConfidenceConfig
from ace_core.correction.fusion_corrector import FusionCorrectorConfig, SensorFusionCorrector
from ace_core.correction.insights import InsightConfig, InsightGenerator
from ace_core.correction.landmark_enhancer import LandmarkConfig, LandmarkEnhancer
from ace_core.correction.noise_reduction import NoiseReducer, NoiseReductionConfig
from ace_core.correction.trajectory_predictor import TrajectoryConfig, TrajectoryPredictor
from ace_core.inference.registry import CapabilityRegistry
from ace_core.io.history_buffer import HistoryBuffer
from ace_core.metrics import MetricsCollector
from ace_core.proto import EnhancedState, FusionContext, Insight, TrajectoryPoint

logger = logging.getLogger(__name__)


@dataclass
class CorrectionPipelineConfig:
    """
    Configuration for the correction pipeline.

    Attributes:
        fusion_config: SensorFusionCorrector configuration
        noise_config: NoiseReducer configuration
        trajectory_config: TrajectoryPredictor configuration
        landmark_config: LandmarkEnhancer configuration
        confidence_config: ConfidenceAggregator configuration
        insight_config: InsightGenerator configuration
    """

    fusion_config: FusionCorrectorConfig = None
    noise_config: NoiseReductionConfig = None
    trajectory_config: TrajectoryConfig = None
    landmark_config: LandmarkConfig = None
    confidence_config: ConfidenceConfig = None
    insight_config: InsightConfig = None


class CorrectionPipeline:
    """
    Per-cycle enhancement pipeline.

    Pipeline stages:
    1. Sensor fusion correction (per reading)
    2. Noise reduction
    3. Trajectory prediction and landmark enhancement (concurrent)
    4. Confidence aggregation
    5. Insight generation

    The cycle's context is appended to the history buffer after the
    stages run, so each cycle sees only the cycles before it.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        history: HistoryBuffer,
        config: Optional[CorrectionPipelineConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize correction pipeline.

        Args:
            registry: Probed capability registry
            history: Shared history buffer
            config: Pipeline configuration (uses defaults if None)
            metrics: Metrics collector
        """
        self.config = config or CorrectionPipelineConfig()
        self.history = history
        self.metrics = metrics or MetricsCollector()

        # Initialize components
        self.corrector = SensorFusionCorrector(
            registry, history, self.config.fusion_config, self.metrics
        )
        self.reducer = NoiseReducer(
            registry, history, self.config.noise_config, self.metrics
        )
        self.predictor = TrajectoryPredictor(
            registry, self.config.trajectory_config, self.metrics
        )
        self.enhancer = LandmarkEnhancer(
            registry, self.config.landmark_config, self.metrics
        )
        self.aggregator = ConfidenceAggregator(self.config.confidence_config)
        self.insights = InsightGenerator(self.config.insight_config)

        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="ace-stage")

    def process(
        self,
        context: FusionContext,
        cycle_index: int = 0,
    ) -> Tuple[EnhancedState, List[Insight]]:
        """
        Enhance one cycle.

        Args:
            context: Cycle input bundle
            cycle_index: Arrival index of the cycle

        Returns:
            (EnhancedState, insights). A whole-cycle failure yields a
            degraded state and no insights.
        """
        start = time.perf_counter()

        try:
            state = self._enhance(context, cycle_index, start)
        except Exception as e:
            logger.error(f"Cycle {cycle_index} failed, emitting degraded state: {e}")
            self.metrics.increment_drop('cycle_failed')
            state = EnhancedState.degraded(
                context.base_estimate.snapshot(),
                context.readings,
                timestamp_ms=context.timestamp_ms,
                cycle_index=cycle_index,
                landmarks=tuple(self.enhancer.fallback.enhance(
                    context.base_estimate.landmarks, context.readings, ()
                )),
                processing_time_ms=(time.perf_counter() - start) * 1000.0,
            )
        finally:
            self.history.append(context)

        try:
            insights = self.insights.generate(state)
        except Exception as e:
            logger.warning(f"Insight generation failed for cycle {cycle_index}: {e}")
            self.metrics.increment_drop('stage_degraded')
            insights = []

        self.metrics.increment('cycles_processed')
        self.metrics.record_histogram('cycle_latency_ms', state.processing_time_ms)

        logger.debug(
            f"Cycle {cycle_index}: {len(state.enhanced_readings)} readings, "
            f"{len(state.predicted_trajectory)} waypoints, "
            f"{len(state.enhanced_landmarks)} landmarks, "
            f"confidence={state.confidence.overall_confidence:.2f}"
        )
        return state, insights

    def _enhance(self, context: FusionContext, cycle_index: int, start: float) -> EnhancedState:
        with self.metrics.timed('fusion_latency_ms'):
            readings = self.corrector.correct(context)
        with self.metrics.timed('noise_latency_ms'):
            readings = self.reducer.reduce(readings)

        path = self.history.trajectory() + (TrajectoryPoint(context.position, context.timestamp_ms),)
        previous = self.history.latest()
        previous_landmarks = previous.base_estimate.landmarks if previous is not None else ()

        trajectory_future = self._executor.submit(
            self.predictor.predict, path, context.position, context.timestamp_ms
        )
        landmark_future = self._executor.submit(
            self.enhancer.enhance,
            context.base_estimate.landmarks,
            context.readings,
            previous_landmarks,
        )
        with self.metrics.timed('spatial_latency_ms'):
            waypoints = trajectory_future.result()
            landmarks = landmark_future.result()

        confidence = self.aggregator.aggregate(readings, waypoints, landmarks)

        return EnhancedState(
            base_estimate=context.base_estimate.snapshot(),
            enhanced_readings=tuple(readings),
            predicted_trajectory=tuple(waypoints),
            enhanced_landmarks=tuple(landmarks),
            confidence=confidence,
            processing_time_ms=(time.perf_counter() - start) * 1000.0,
            timestamp_ms=context.timestamp_ms,
            cycle_index=cycle_index,
        )

    def reset(self):
        """Clear cross-cycle state (history and temporal consistency)."""
        self.history.clear()
        self.aggregator.reset()

    def close(self):
        """Stop the stage executor."""
        self._executor.shutdown(wait=True)
