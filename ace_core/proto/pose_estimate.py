"""
Base Pose Estimate and Fusion Context Schemas.

The base estimate is produced by the upstream localization/mapping
estimator and is consumed read-only. A FusionContext bundles one
processing cycle's inputs and is the unit stored in the history buffer.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

import numpy as np

from .ranging import InertialReading, RangingReading, Vector3


@dataclass(frozen=True)
class BasePoseEstimate:
    """
    Snapshot of the upstream estimator state.

    Attributes:
        position: Device position (x, y, z) in meters
        orientation: Attitude quaternion (w, x, y, z)
        landmarks: Landmark positions (x, y, z) in meters
        covariance: State covariance matrix
        confidence: Estimator confidence (0-1)
        timestamp_ms: Estimate timestamp (milliseconds)

    Notes:
        - Owned by the upstream estimator; this package never mutates it
    """

    position: Vector3
    orientation: Tuple[float, float, float, float] = (1.0, 0.0, 0.0, 0.0)
    landmarks: Tuple[Vector3, ...] = ()
    covariance: np.ndarray = field(default_factory=lambda: np.eye(3), compare=False)
    confidence: float = 1.0
    timestamp_ms: int = 0

    def __post_init__(self):
        """Validate estimate."""
        if not 0 <= self.confidence <= 1:
            raise ValueError(f"Confidence must be in [0,1]: {self.confidence}")

    def snapshot(self) -> 'BasePoseEstimate':
        """Shallow copy taken once per cycle."""
        return replace(self, landmarks=tuple(self.landmarks))

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'position': self.position,
            'orientation': self.orientation,
            'landmarks': list(self.landmarks),
            'covariance': np.asarray(self.covariance).tolist(),
            'confidence': self.confidence,
            'timestamp_ms': self.timestamp_ms,
        }


@dataclass(frozen=True)
class FusionContext:
    """
    One processing cycle's input bundle.

    Attributes:
        readings: Ranging readings for this cycle
        base_estimate: Base pose estimate snapshot
        timestamp_ms: Arrival timestamp (milliseconds)
        inertial: Optional inertial sample
    """

    readings: Tuple[RangingReading, ...]
    base_estimate: BasePoseEstimate
    timestamp_ms: int
    inertial: Optional[InertialReading] = None

    @property
    def position(self) -> Vector3:
        """Base position at this cycle."""
        return self.base_estimate.position


@dataclass(frozen=True)
class TrajectoryPoint:
    """Historical device position."""

    position: Vector3
    timestamp_ms: int
