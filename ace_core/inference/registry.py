"""
Correction Policy Registry.

Probes, once at startup, which learned components are available and
resolves each correction stage to either its learned strategy or its
deterministic fallback. Capabilities are independent: a load failure
for one never disables another.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, TypeVar, Union

from ace_core.inference.models import InferenceModel, ModelLoadError, load_model_file
from ace_core.metrics import MetricsCollector

logger = logging.getLogger(__name__)

S = TypeVar('S')


class Capability(Enum):
    """Pluggable learned capabilities and their artifact file names."""

    SENSOR_FUSION = "sensor_fusion_model.npz"
    NOISE_REDUCTION = "noise_reduction_model.npz"
    TRAJECTORY_PREDICTION = "trajectory_prediction_model.npz"
    LANDMARK_CLASSIFICATION = "landmark_classification_model.npz"

    @property
    def artifact(self) -> str:
        return self.value


class CapabilityRegistry:
    """
    Per-capability switch between learned and fallback paths.

    Usage:
        registry = CapabilityRegistry(model_dir="models/")
        registry.probe()

        strategy = registry.resolve(
            Capability.SENSOR_FUSION,
            learned=lambda model: LearnedFusionStrategy(model),
            fallback=lambda: HeuristicFusionStrategy(config),
        )

    Notes:
        - probe() is idempotent and logs the load summary once
        - Load failures are logged and never raised
    """

    def __init__(
        self,
        model_dir: Optional[Union[str, Path]] = None,
        loader: Callable[[Path], InferenceModel] = load_model_file,
        enabled: Optional[Iterable[Capability]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize registry.

        Args:
            model_dir: Directory holding model artifacts (None = no models)
            loader: Callable turning an artifact path into a model
            enabled: Capabilities allowed to load (default: all)
            metrics: Metrics collector
        """
        self.model_dir = Path(model_dir) if model_dir is not None else None
        self.loader = loader
        self.enabled = set(enabled) if enabled is not None else set(Capability)
        self.metrics = metrics or MetricsCollector()

        self._models: Dict[Capability, InferenceModel] = {}
        self._probed = False

    @classmethod
    def fallback_only(cls, metrics: Optional[MetricsCollector] = None) -> 'CapabilityRegistry':
        """Registry with every capability on its deterministic fallback."""
        registry = cls(model_dir=None, enabled=(), metrics=metrics)
        registry.probe()
        return registry

    @property
    def probed(self) -> bool:
        return self._probed

    def probe(self) -> Dict[str, bool]:
        """
        Try to load every enabled capability.

        Returns:
            Capability name -> loaded flag
        """
        if self._probed:
            return self.status()

        for capability in Capability:
            if capability in self._models:
                continue
            if capability not in self.enabled or self.model_dir is None:
                continue

            path = self.model_dir / capability.artifact
            try:
                model = self.loader(path)
            except ModelLoadError as e:
                logger.warning(f"{capability.name}: {e}; using fallback")
                continue
            except Exception as e:
                logger.warning(f"{capability.name}: loader failed ({e!r}); using fallback")
                continue

            self._models[capability] = model
            self.metrics.increment('models_loaded')

        self._probed = True

        loaded = [c.name for c in Capability if c in self._models]
        fallback = [c.name for c in Capability if c not in self._models]
        logger.info(f"Learned capabilities loaded: {loaded or 'none'}; fallback: {fallback or 'none'}")

        return self.status()

    def register(self, capability: Capability, model: InferenceModel):
        """Install an already-built model for a capability."""
        previous = self._models.get(capability)
        if previous is not None and previous is not model:
            previous.close()
        self._models[capability] = model
        self.metrics.increment('models_loaded')
        logger.info(f"{capability.name}: learned model registered")

    def is_enabled(self, capability: Capability) -> bool:
        return capability in self._models

    def get_model(self, capability: Capability) -> Optional[InferenceModel]:
        return self._models.get(capability)

    def status(self) -> Dict[str, bool]:
        return {c.name: c in self._models for c in Capability}

    def resolve(
        self,
        capability: Capability,
        learned: Callable[[InferenceModel], S],
        fallback: Callable[[], S],
    ) -> S:
        """
        Build the strategy for a capability.

        Args:
            capability: Capability to resolve
            learned: Factory taking the loaded model
            fallback: Factory for the deterministic strategy

        Returns:
            learned(model) if the capability is loaded, else fallback()
        """
        model = self._models.get(capability)
        if model is None:
            return fallback()
        return learned(model)

    def close(self):
        """Release every loaded model."""
        for capability, model in list(self._models.items()):
            try:
                model.close()
            except Exception as e:
                logger.warning(f"{capability.name}: error while closing model: {e}")
        self._models.clear()
