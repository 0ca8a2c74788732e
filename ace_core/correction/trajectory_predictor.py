"""
Trajectory Predictor.

Projects a short horizon of future device positions with per-step
confidence: a learned sequence model over the last 10 positions, or a
constant-velocity extrapolation from the two most recent positions.

State for the fallback: velocity v = Δposition / Δt from the last two
history points; waypoint k = current position + v * k * step.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ace_core.inference.models import InferenceModel
from ace_core.inference.registry import Capability, CapabilityRegistry
from ace_core.metrics import MetricsCollector
from ace_core.proto import PredictedWaypoint, TrajectoryPoint, Vector3, clamp_unit

logger = logging.getLogger(__name__)


@dataclass
class TrajectoryConfig:
    """
    Configuration for trajectory prediction.

    Attributes:
        horizon: Number of waypoints to predict
        step_ms: Time between waypoints (ms)
        model_history_points: Positions fed to the learned model
        initial_confidence: Fallback confidence at step 1
        confidence_decay: Fallback confidence lost per step
        min_confidence: Fallback confidence floor
    """

    horizon: int = 10
    step_ms: int = 1000
    model_history_points: int = 10
    initial_confidence: float = 0.8
    confidence_decay: float = 0.1
    min_confidence: float = 0.3

    def __post_init__(self):
        assert self.horizon > 0, "horizon must be positive"
        assert self.step_ms > 0, "step_ms must be positive"
        assert self.model_history_points > 0, "model_history_points must be positive"
        assert 0 <= self.min_confidence <= self.initial_confidence <= 1, \
            "confidences must satisfy 0 <= min <= initial <= 1"


class ConstantVelocityStrategy:
    """Linear extrapolation from the last two history points."""

    learned = False

    def __init__(self, config: TrajectoryConfig):
        self.config = config

    def step_confidence(self, step: int) -> float:
        """Confidence for a 1-based step."""
        c = self.config
        return max(c.min_confidence, c.initial_confidence - c.confidence_decay * (step - 1))

    def predict(
        self,
        history: Sequence[TrajectoryPoint],
        current_position: Vector3,
        now_ms: int,
    ) -> List[PredictedWaypoint]:
        if len(history) < 2:
            return []

        previous, latest = history[-2], history[-1]
        dt = (latest.timestamp_ms - previous.timestamp_ms) / 1000.0

        if dt > 0:
            velocity = (np.array(latest.position) - np.array(previous.position)) / dt
        else:
            velocity = np.zeros(3)

        origin = np.array(current_position, dtype=float)
        step_s = self.config.step_ms / 1000.0

        waypoints = []
        for step in range(1, self.config.horizon + 1):
            position = origin + velocity * step * step_s
            waypoints.append(PredictedWaypoint(
                position=(float(position[0]), float(position[1]), float(position[2])),
                confidence=clamp_unit(self.step_confidence(step)),
                steps_ahead=step,
                timestamp_ms=now_ms + step * self.config.step_ms,
            ))
        return waypoints


class LearnedTrajectoryStrategy:
    """
    Learned sequence prediction.

    Input: last N points as (x, y, z, t), padded with the current
    position at now_ms. Output: horizon x (x, y, z, confidence).
    """

    learned = True

    def __init__(self, model: InferenceModel, config: TrajectoryConfig):
        self.model = model
        self.config = config

    def build_features(
        self,
        history: Sequence[TrajectoryPoint],
        current_position: Vector3,
        now_ms: int,
    ) -> np.ndarray:
        n = self.config.model_history_points
        points = [(*p.position, float(p.timestamp_ms)) for p in list(history)[-n:]]
        while len(points) < n:
            points.append((*current_position, float(now_ms)))
        return np.array(points, dtype=float).reshape(1, n * 4)

    def predict(
        self,
        history: Sequence[TrajectoryPoint],
        current_position: Vector3,
        now_ms: int,
    ) -> List[PredictedWaypoint]:
        horizon = self.config.horizon
        output = np.asarray(
            self.model.run(self.build_features(history, current_position, now_ms)),
            dtype=float,
        ).ravel()

        if output.size != horizon * 4:
            raise ValueError(f"Trajectory model returned {output.size} values, expected {horizon * 4}")
        if not np.all(np.isfinite(output)):
            raise ValueError("Trajectory model returned non-finite values")

        waypoints = []
        for step, row in enumerate(output.reshape(horizon, 4), start=1):
            waypoints.append(PredictedWaypoint(
                position=(float(row[0]), float(row[1]), float(row[2])),
                confidence=clamp_unit(row[3]),
                steps_ahead=step,
                timestamp_ms=now_ms + step * self.config.step_ms,
            ))
        return waypoints


class TrajectoryPredictor:
    """
    Short-horizon trajectory prediction.

    Usage:
        predictor = TrajectoryPredictor(registry, TrajectoryConfig(horizon=5))
        waypoints = predictor.predict(history, current_position, now_ms)

    Notes:
        - Fewer than 2 history points on the fallback path -> empty list
        - Learned failure degrades to the constant-velocity fallback
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        config: Optional[TrajectoryConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or TrajectoryConfig()
        self.metrics = metrics or MetricsCollector()
        self.fallback = ConstantVelocityStrategy(self.config)
        self.strategy = registry.resolve(
            Capability.TRAJECTORY_PREDICTION,
            learned=lambda model: LearnedTrajectoryStrategy(model, self.config),
            fallback=lambda: self.fallback,
        )

    @property
    def uses_learned_path(self) -> bool:
        return self.strategy.learned

    def predict(
        self,
        history: Sequence[TrajectoryPoint],
        current_position: Vector3,
        now_ms: int,
    ) -> List[PredictedWaypoint]:
        """
        Predict the next `horizon` waypoints.

        Args:
            history: Past positions, oldest first
            current_position: Current base position
            now_ms: Current time (ms)

        Returns:
            Waypoints with steps_ahead 1..horizon, or empty
        """
        if self.strategy.learned:
            try:
                return self.strategy.predict(history, current_position, now_ms)
            except Exception as e:
                logger.warning(f"Trajectory model failed, using constant velocity: {e}")
                self.metrics.increment_drop('inference_failed')

        try:
            return self.fallback.predict(history, current_position, now_ms)
        except Exception as e:
            logger.error(f"Trajectory prediction failed: {e}")
            self.metrics.increment_drop('stage_degraded')
            return []
