"""
Simulated Sensor Feed.

Synthetic cycles for demos and tests: a device random-walking through a
room, ranged by fixed sources of every modality, with Gaussian distance
noise and occasional gross outliers. The base estimate is the true
position plus estimator noise.

Usage:
    feed = SimulatedSensorFeed(SimulationConfig(seed=7))
    for cycle in feed.take(100):
        engine.submit(cycle.readings, cycle.base_estimate, cycle.inertial, cycle.timestamp_ms)
"""

import math
from dataclasses import dataclass
from typing import Iterator, List, Tuple

import numpy as np

from ace_core.proto import (
    BasePoseEstimate,
    InertialReading,
    RangingModality,
    RangingReading,
    Vector3,
)

GRAVITY = (0.0, 0.0, 9.81)


@dataclass
class SimulationConfig:
    """
    Configuration for the simulated feed.

    Attributes:
        sources_per_modality: Ranging sources per modality
        speed_m_s: Device walking speed
        step_ms: Time between cycles (ms)
        distance_noise_m: Std of ranging noise
        outlier_probability: Probability of each reading being an outlier
        outlier_magnitude_m: Magnitude of outlier offset
        estimate_noise_m: Std of upstream position error
        landmark_count: Landmarks reported by the upstream estimator
        room_size_m: Side of the square room
        seed: Random seed for reproducibility
    """

    sources_per_modality: int = 3
    speed_m_s: float = 1.0
    step_ms: int = 100
    distance_noise_m: float = 0.05
    outlier_probability: float = 0.05
    outlier_magnitude_m: float = 5.0
    estimate_noise_m: float = 0.1
    landmark_count: int = 8
    room_size_m: float = 20.0
    seed: int = 42

    def __post_init__(self):
        assert self.sources_per_modality > 0, "sources_per_modality must be positive"
        assert self.step_ms > 0, "step_ms must be positive"
        assert 0 <= self.outlier_probability <= 1, "outlier_probability must be in [0,1]"
        assert self.room_size_m > 1.0, "room_size_m must exceed 1m"


@dataclass(frozen=True)
class SimulatedCycle:
    """One generated cycle plus its ground truth."""

    readings: Tuple[RangingReading, ...]
    base_estimate: BasePoseEstimate
    inertial: InertialReading
    timestamp_ms: int
    true_position: Vector3
    outlier_sources: Tuple[str, ...] = ()


def _vec(array: np.ndarray) -> Vector3:
    return (float(array[0]), float(array[1]), float(array[2]))


class SimulatedSensorFeed:
    """Random-walk device ranged by fixed sources."""

    def __init__(self, config: SimulationConfig = None, start_ms: int = 0):
        self.config = config or SimulationConfig()
        self.rng = np.random.default_rng(self.config.seed)

        size = self.config.room_size_m
        self.sources: List[Tuple[str, RangingModality, np.ndarray]] = []
        for modality in RangingModality:
            for i in range(self.config.sources_per_modality):
                position = np.array([
                    self.rng.uniform(0.0, size),
                    self.rng.uniform(0.0, size),
                    self.rng.uniform(0.5, 3.0),
                ])
                self.sources.append((f"{modality.value}_{i}", modality, position))

        self.landmarks = np.column_stack([
            self.rng.uniform(0.0, size, self.config.landmark_count),
            self.rng.uniform(0.0, size, self.config.landmark_count),
            self.rng.uniform(0.0, 3.0, self.config.landmark_count),
        ])

        self.position = np.array([size / 2.0, size / 2.0, 1.2])
        self.heading = self.rng.uniform(-math.pi, math.pi)
        self.velocity = np.zeros(3)
        self.acceleration = np.zeros(3)
        self.timestamp_ms = start_ms

    def _advance(self) -> float:
        """Move the device one step; returns the heading rate (rad/s)."""
        dt = self.config.step_ms / 1000.0
        size = self.config.room_size_m

        previous_heading = self.heading
        self.heading += self.rng.normal(0.0, 0.2)
        velocity = self.config.speed_m_s * np.array([math.cos(self.heading), math.sin(self.heading), 0.0])
        position = self.position + velocity * dt

        # Turn around at the walls
        if not (0.5 <= position[0] <= size - 0.5 and 0.5 <= position[1] <= size - 0.5):
            self.heading += math.pi
            velocity = -velocity
            position = self.position + velocity * dt
            position[:2] = np.clip(position[:2], 0.0, size)

        self.acceleration = (velocity - self.velocity) / dt
        self.velocity = velocity
        self.position = position
        self.timestamp_ms += self.config.step_ms
        return (self.heading - previous_heading) / dt

    def next_cycle(self) -> SimulatedCycle:
        """Generate the next cycle."""
        heading_rate = self._advance()
        cfg = self.config

        readings = []
        outliers = []
        for source_id, modality, source_position in self.sources:
            distance = float(np.linalg.norm(self.position - source_position))
            distance += self.rng.normal(0.0, cfg.distance_noise_m)
            accuracy = float(np.clip(self.rng.normal(0.85, 0.05), 0.3, 1.0))

            if self.rng.random() < cfg.outlier_probability:
                distance += self.rng.choice([-1.0, 1.0]) * cfg.outlier_magnitude_m
                accuracy = 0.4
                outliers.append(source_id)

            readings.append(RangingReading(
                source_id=source_id,
                distance_m=max(0.1, distance),
                accuracy=accuracy,
                modality=modality,
                timestamp_ms=self.timestamp_ms,
            ))

        estimated = self.position + self.rng.normal(0.0, cfg.estimate_noise_m, 3)
        landmarks = self.landmarks + self.rng.normal(0.0, 0.05, self.landmarks.shape)

        base_estimate = BasePoseEstimate(
            position=_vec(estimated),
            orientation=(math.cos(self.heading / 2.0), 0.0, 0.0, math.sin(self.heading / 2.0)),
            landmarks=tuple(_vec(l) for l in landmarks),
            covariance=np.eye(3) * cfg.estimate_noise_m ** 2,
            confidence=0.9,
            timestamp_ms=self.timestamp_ms,
        )

        inertial = InertialReading(
            acceleration=_vec(self.acceleration + np.array(GRAVITY)),
            angular_rate=(0.0, 0.0, float(heading_rate)),
            timestamp_ms=self.timestamp_ms,
        )

        return SimulatedCycle(
            readings=tuple(readings),
            base_estimate=base_estimate,
            inertial=inertial,
            timestamp_ms=self.timestamp_ms,
            true_position=_vec(self.position),
            outlier_sources=tuple(outliers),
        )

    def take(self, count: int) -> List[SimulatedCycle]:
        return [self.next_cycle() for _ in range(count)]

    def __iter__(self) -> Iterator[SimulatedCycle]:
        while True:
            yield self.next_cycle()
