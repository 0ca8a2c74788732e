"""
Adaptive Correction Engine (ACE) Core Package.

Enhancement layer on top of an upstream pose/landmark estimator: corrects
and denoises multi-modality ranging readings, predicts short-horizon
trajectory, classifies landmarks, reports confidence and emits insights.

Package structure:
- proto: Message schemas (readings, estimates, enhanced outputs)
- io: Rolling history buffer, publish/subscribe event streams
- inference: Learned-model contract and per-capability registry
- correction: Correction stages, insight rules, parameter advisor
- metrics: Diagnostics, counters, histograms
- engine: Threaded engine owning buffers, registry and streams
- simulation: Synthetic sensor feed for demos and tests
"""

__version__ = "0.1.0"
__author__ = "ACE Team"

from .engine import AdaptiveCorrectionEngine, EngineConfig, create_default_engine

__all__ = [
    'AdaptiveCorrectionEngine',
    'EngineConfig',
    'create_default_engine',
]
