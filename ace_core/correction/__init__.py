"""
Correction Module: Per-cycle enhancement stages and trend analysis.

Key classes:
- SensorFusionCorrector: Per-reading distance/accuracy correction
- NoiseReducer: Temporal smoothing of corrected readings
- TrajectoryPredictor: Short-horizon waypoint prediction
- LandmarkEnhancer: Landmark classification
- ConfidenceAggregator: Per-cycle confidence report
- InsightGenerator: Rule-based insight events
- ReadingGate: Plausibility checks on raw readings
- ParameterAdvisor: Tuning recommendations from history trends
- CorrectionPipeline: All per-cycle stages in order
"""

from .fusion_corrector import (
    FusionCorrectorConfig,
    HeuristicFusionStrategy,
    LearnedFusionStrategy,
    SensorFusionCorrector,
)
from .noise_reduction import (
    LearnedDenoiseStrategy,
    MovingAverageStrategy,
    NoiseReducer,
    NoiseReductionConfig,
)
from .trajectory_predictor import (
    ConstantVelocityStrategy,
    LearnedTrajectoryStrategy,
    TrajectoryConfig,
    TrajectoryPredictor,
)
from .landmark_enhancer import (
    FixedLabelStrategy,
    LandmarkConfig,
    LandmarkEnhancer,
    LearnedLandmarkStrategy,
)
from .confidence import ConfidenceAggregator, ConfidenceConfig
from .insights import InsightConfig, InsightGenerator, estimate_improvement
from .reading_gate import ReadingGate, ReadingGateConfig
from .parameter_advisor import AdvisorConfig, ParameterAdvisor
from .pipeline import CorrectionPipeline, CorrectionPipelineConfig

__all__ = [
    'FusionCorrectorConfig',
    'HeuristicFusionStrategy',
    'LearnedFusionStrategy',
    'SensorFusionCorrector',
    'LearnedDenoiseStrategy',
    'MovingAverageStrategy',
    'NoiseReducer',
    'NoiseReductionConfig',
    'ConstantVelocityStrategy',
    'LearnedTrajectoryStrategy',
    'TrajectoryConfig',
    'TrajectoryPredictor',
    'FixedLabelStrategy',
    'LandmarkConfig',
    'LandmarkEnhancer',
    'LearnedLandmarkStrategy',
    'ConfidenceAggregator',
    'ConfidenceConfig',
    'InsightConfig',
    'InsightGenerator',
    'estimate_improvement',
    'ReadingGate',
    'ReadingGateConfig',
    'AdvisorConfig',
    'ParameterAdvisor',
    'CorrectionPipeline',
    'CorrectionPipelineConfig',
]
