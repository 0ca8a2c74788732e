"""
Unit tests for the landmark enhancer.

Tests cover:
- Fallback labelling (every landmark kept as UNKNOWN)
- Learned classification and confidence threshold filtering
- Reliability and temporal stability scores
- Failure handling
"""

import numpy as np
import pytest

from ace_core.correction import LandmarkConfig, LandmarkEnhancer
from ace_core.inference import Capability
from ace_core.proto import LandmarkCategory


LANDMARKS = ((1.0, 0.0, 0.0), (0.0, 2.0, 0.0), (3.0, 3.0, 1.0))


def classifier_output(category, confidence):
    """Model output selecting `category` with `confidence`."""
    probabilities = np.full(len(LandmarkCategory), 0.01)
    probabilities[int(category)] = 0.9
    return np.append(probabilities, confidence).reshape(1, -1)


class TestFallbackLabels:
    """Tests for the deterministic fallback."""

    def test_every_landmark_kept(self, fallback_registry, make_reading):
        """Test fallback returns one UNKNOWN landmark per input."""
        enhancer = LandmarkEnhancer(fallback_registry)

        result = enhancer.enhance(LANDMARKS, [make_reading(5.0)])

        assert not enhancer.uses_learned_path
        assert len(result) == len(LANDMARKS)
        assert [l.position for l in result] == list(LANDMARKS)
        assert all(l.category is LandmarkCategory.UNKNOWN for l in result)
        assert all(l.confidence == 0.5 for l in result)
        assert all(l.reliability == 0.6 for l in result)
        assert all(l.temporal_stability == 0.7 for l in result)

    def test_no_landmarks(self, fallback_registry):
        """Test empty input gives empty output."""
        assert LandmarkEnhancer(fallback_registry).enhance((), ()) == []


class TestLearnedClassification:
    """Tests for the learned path."""

    def test_confident_classification_kept(self, learned_registry, fake_model, make_reading):
        """Test confident classifications carry the argmax category."""
        model = fake_model(lambda x: classifier_output(LandmarkCategory.DOOR, 0.9))
        enhancer = LandmarkEnhancer(learned_registry({Capability.LANDMARK_CLASSIFICATION: model}))

        result = enhancer.enhance(LANDMARKS[:1], [make_reading(5.0, accuracy=0.6)])

        assert enhancer.uses_learned_path
        assert len(result) == 1
        assert result[0].category is LandmarkCategory.DOOR
        assert result[0].confidence == pytest.approx(0.9)
        assert result[0].reliability == pytest.approx(0.6)

    def test_below_threshold_dropped(self, learned_registry, fake_model, metrics):
        """Test classifications at or below the threshold are dropped."""
        confidences = iter([0.95, 0.7, 0.5])
        model = fake_model(lambda x: classifier_output(LandmarkCategory.WALL, next(confidences)))
        enhancer = LandmarkEnhancer(
            learned_registry({Capability.LANDMARK_CLASSIFICATION: model}), metrics=metrics
        )

        result = enhancer.enhance(LANDMARKS, ())

        assert [l.position for l in result] == [LANDMARKS[0]]
        assert all(l.confidence > 0.7 for l in result)
        assert metrics.get_drop_count('landmark_below_threshold') == 2

    def test_custom_threshold(self, learned_registry, fake_model):
        """Test the confidence threshold is configurable."""
        model = fake_model(lambda x: classifier_output(LandmarkCategory.PILLAR, 0.6))
        enhancer = LandmarkEnhancer(
            learned_registry({Capability.LANDMARK_CLASSIFICATION: model}),
            LandmarkConfig(confidence_threshold=0.5),
        )

        assert len(enhancer.enhance(LANDMARKS, ())) == len(LANDMARKS)

    def test_feature_row(self, learned_registry, fake_model, make_reading):
        """Test features are position then (distance, accuracy, modality) triples."""
        model = fake_model(lambda x: classifier_output(LandmarkCategory.WALL, 0.9))
        enhancer = LandmarkEnhancer(learned_registry({Capability.LANDMARK_CLASSIFICATION: model}))

        enhancer.enhance(LANDMARKS[:1], [make_reading(5.0, accuracy=0.8)])

        features = model.calls[0]
        assert features.shape == (1, 15)
        assert features[0, :6].tolist() == pytest.approx([1.0, 0.0, 0.0, 5.0, 0.8, 0.0])
        assert features[0, 6:].tolist() == [0.0] * 9

    def test_temporal_stability(self, learned_registry, fake_model):
        """Test stability decays with distance to the nearest previous landmark."""
        model = fake_model(lambda x: classifier_output(LandmarkCategory.CORNER, 0.9))
        enhancer = LandmarkEnhancer(learned_registry({Capability.LANDMARK_CLASSIFICATION: model}))

        unchanged = enhancer.enhance(LANDMARKS[:1], (), previous_landmarks=LANDMARKS[:1])[0]
        moved = enhancer.enhance(LANDMARKS[:1], (), previous_landmarks=((2.0, 0.0, 0.0),))[0]
        first = enhancer.enhance(LANDMARKS[:1], ())[0]

        assert unchanged.temporal_stability == pytest.approx(1.0)
        assert moved.temporal_stability == pytest.approx(0.5)
        assert first.temporal_stability == pytest.approx(0.8)
        assert first.reliability == pytest.approx(0.7)

    def test_failure_falls_back_to_labels(self, learned_registry, failing_model, metrics):
        """Test a failing model keeps every landmark as UNKNOWN."""
        enhancer = LandmarkEnhancer(
            learned_registry({Capability.LANDMARK_CLASSIFICATION: failing_model}), metrics=metrics
        )

        result = enhancer.enhance(LANDMARKS, ())

        assert len(result) == len(LANDMARKS)
        assert all(l.category is LandmarkCategory.UNKNOWN for l in result)
        assert metrics.get_drop_count('inference_failed') == 1

    def test_malformed_output_falls_back(self, learned_registry, fake_model, metrics):
        """Test a wrong-sized output is treated as a failure."""
        model = fake_model(lambda x: np.zeros((1, 5)))
        enhancer = LandmarkEnhancer(
            learned_registry({Capability.LANDMARK_CLASSIFICATION: model}), metrics=metrics
        )

        assert len(enhancer.enhance(LANDMARKS, ())) == len(LANDMARKS)
        assert metrics.get_drop_count('inference_failed') == 1
