"""
Protocol Module: Message schemas for readings, estimates and outputs.

- Raw inputs: RangingReading, InertialReading
- Upstream snapshot: BasePoseEstimate, bundled per cycle as FusionContext
- Outputs: EnhancedReading, PredictedWaypoint, EnhancedLandmark,
  ConfidenceReport, EnhancedState, Insight, ParameterRecommendations,
  SensorPlacement
"""

from .ranging import (
    RangingModality,
    RangingReading,
    InertialReading,
    Vector3,
    clamp_unit,
)
from .pose_estimate import (
    BasePoseEstimate,
    FusionContext,
    TrajectoryPoint,
)
from .enhanced_state import (
    EnhancedReading,
    PredictedWaypoint,
    LandmarkCategory,
    EnhancedLandmark,
    ConfidenceReport,
    EnhancedState,
    InsightType,
    Insight,
    ParameterRecommendations,
    SensorPlacement,
)

__all__ = [
    # Inputs
    'RangingModality',
    'RangingReading',
    'InertialReading',
    'Vector3',
    'clamp_unit',
    'BasePoseEstimate',
    'FusionContext',
    'TrajectoryPoint',
    # Outputs
    'EnhancedReading',
    'PredictedWaypoint',
    'LandmarkCategory',
    'EnhancedLandmark',
    'ConfidenceReport',
    'EnhancedState',
    'InsightType',
    'Insight',
    'ParameterRecommendations',
    'SensorPlacement',
]
