"""
Pytest configuration and shared fixtures for Adaptive Correction Engine tests.

This module provides reusable fixtures for building ranging readings,
base estimates and cycle contexts, registries on the fallback path, and
fake learned models for exercising the learned path and its failures.
"""

import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import numpy as np
import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ace_core.inference import CapabilityRegistry, InferenceModel
from ace_core.io import HistoryBuffer
from ace_core.metrics import MetricsCollector
from ace_core.proto import (
    BasePoseEstimate,
    FusionContext,
    RangingModality,
    RangingReading,
    Vector3,
)


# =============================================================================
# Fake Learned Models
# =============================================================================


class FakeModel(InferenceModel):
    """
    Scriptable learned model.

    Calls ``fn(features)`` and records every feature matrix it was given.
    """

    def __init__(self, fn: Callable[[np.ndarray], np.ndarray]):
        self.fn = fn
        self.calls: List[np.ndarray] = []
        self.closed = False

    def run(self, features: np.ndarray) -> np.ndarray:
        self.calls.append(np.array(features, copy=True))
        return np.asarray(self.fn(features), dtype=float)

    def close(self):
        self.closed = True


class FailingModel(InferenceModel):
    """Learned model whose every call raises."""

    def __init__(self):
        self.calls = 0
        self.closed = False

    def run(self, features: np.ndarray) -> np.ndarray:
        self.calls += 1
        raise RuntimeError("inference backend unavailable")

    def close(self):
        self.closed = True


@pytest.fixture
def fake_model() -> Callable[[Callable[[np.ndarray], np.ndarray]], FakeModel]:
    """
    Factory for scriptable fake models.

    Returns:
        Callable taking ``fn(features) -> output`` and returning a FakeModel.
    """
    return FakeModel


@pytest.fixture
def failing_model() -> FailingModel:
    """Learned model that raises on every call."""
    return FailingModel()


# =============================================================================
# Reading and Estimate Fixtures
# =============================================================================


@pytest.fixture
def make_reading() -> Callable[..., RangingReading]:
    """
    Factory for ranging readings.

    Returns:
        Callable(distance_m, modality=WIFI_RTT, accuracy=0.8,
        source_id="ap1", timestamp_ms=0) -> RangingReading
    """
    def _make(
        distance_m: float,
        modality: RangingModality = RangingModality.WIFI_RTT,
        accuracy: float = 0.8,
        source_id: str = "ap1",
        timestamp_ms: int = 0,
    ) -> RangingReading:
        return RangingReading(
            source_id=source_id,
            distance_m=distance_m,
            accuracy=accuracy,
            modality=modality,
            timestamp_ms=timestamp_ms,
        )

    return _make


@pytest.fixture
def make_context(make_reading) -> Callable[..., FusionContext]:
    """
    Factory for cycle contexts.

    Returns:
        Callable(distances=(), position=(0,0,0), timestamp_ms=0,
        landmarks=(), confidence=0.9, modality=WIFI_RTT,
        readings=None) -> FusionContext
    """
    def _make(
        distances: Sequence[float] = (),
        position: Vector3 = (0.0, 0.0, 0.0),
        timestamp_ms: int = 0,
        landmarks: Sequence[Vector3] = (),
        confidence: float = 0.9,
        modality: RangingModality = RangingModality.WIFI_RTT,
        readings: Optional[Sequence[RangingReading]] = None,
    ) -> FusionContext:
        if readings is None:
            readings = [
                make_reading(d, modality=modality, source_id=f"src{i}", timestamp_ms=timestamp_ms)
                for i, d in enumerate(distances)
            ]
        estimate = BasePoseEstimate(
            position=position,
            landmarks=tuple(landmarks),
            confidence=confidence,
            timestamp_ms=timestamp_ms,
        )
        return FusionContext(
            readings=tuple(readings),
            base_estimate=estimate,
            timestamp_ms=timestamp_ms,
        )

    return _make


@pytest.fixture
def base_estimate() -> BasePoseEstimate:
    """Base estimate at the origin with two landmarks."""
    return BasePoseEstimate(
        position=(0.0, 0.0, 0.0),
        landmarks=((1.0, 0.0, 0.0), (0.0, 2.0, 0.0)),
        confidence=0.9,
    )


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def metrics() -> MetricsCollector:
    """Fresh metrics collector."""
    return MetricsCollector()


@pytest.fixture
def history() -> HistoryBuffer:
    """Empty history buffer with default capacity."""
    return HistoryBuffer()


@pytest.fixture
def fallback_registry(metrics) -> CapabilityRegistry:
    """Probed registry with every capability on its fallback."""
    return CapabilityRegistry.fallback_only(metrics)


@pytest.fixture
def learned_registry(metrics) -> Callable[..., CapabilityRegistry]:
    """
    Factory for registries with specific learned models installed.

    Returns:
        Callable taking {Capability: InferenceModel} and returning a
        probed registry with those models installed.
    """
    def _make(models) -> CapabilityRegistry:
        registry = CapabilityRegistry.fallback_only(metrics)
        for capability, model in models.items():
            registry.register(capability, model)
        return registry

    return _make
