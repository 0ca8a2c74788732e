"""
Inference Module: Learned-model contract and capability registry.

Key classes:
- InferenceModel: run()/close() contract for learned components
- LinearModel: bundled affine model loaded from ``.npz`` artifacts
- CapabilityRegistry: per-capability learned/fallback resolution
"""

from .models import (
    InferenceModel,
    LinearModel,
    ModelLoadError,
    load_model_file,
)
from .registry import (
    Capability,
    CapabilityRegistry,
)

__all__ = [
    'InferenceModel',
    'LinearModel',
    'ModelLoadError',
    'load_model_file',
    'Capability',
    'CapabilityRegistry',
]
