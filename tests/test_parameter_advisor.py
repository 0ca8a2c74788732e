"""
Unit tests for the parameter advisor.

Tests cover:
- Neutral output for empty or short history
- Tracking stability, sensor performance and environment complexity
- Recommendation flags
- Neutral output on internal failure
- Sensor placement from landmark coverage
"""

import pytest

from ace_core.correction import AdvisorConfig, ParameterAdvisor
from ace_core.proto import ParameterRecommendations


def walk(make_context, xs, confidence=0.9, distances=(5.0,), **kwargs):
    """Contexts one second apart at the given x positions."""
    return [
        make_context(distances, position=(float(x), 0.0, 0.0), timestamp_ms=i * 1000,
                     confidence=confidence, **kwargs)
        for i, x in enumerate(xs)
    ]


class TestNeutralCases:
    """Tests for neutral recommendations."""

    def test_empty_history(self, metrics):
        """Test empty history gives neutral metrics and no flags."""
        result = ParameterAdvisor(metrics=metrics).advise([])

        assert result.tracking_stability == 1.0
        assert result.sensor_performance == 1.0
        assert result.environment_complexity == 0.0
        assert not result.any_flag
        assert result.timestamp_ms is not None
        assert metrics.get_counter('advisor_runs') == 1

    def test_short_history_is_stable(self, make_context):
        """Test fewer than min_contexts contexts scores full stability."""
        contexts = walk(make_context, [0, 10], confidence=0.2)

        assert ParameterAdvisor().tracking_stability(contexts) == 1.0

    def test_failure_gives_neutral(self, make_context, metrics, monkeypatch):
        """Test an internal error returns neutral recommendations."""
        advisor = ParameterAdvisor(metrics=metrics)

        def boom(contexts):
            raise ValueError("bad history")

        monkeypatch.setattr(advisor, 'tracking_stability', boom)

        result = advisor.advise(walk(make_context, [0, 1, 2]))

        assert result == ParameterRecommendations(timestamp_ms=result.timestamp_ms)
        assert metrics.get_drop_count('stage_degraded') == 1


class TestTrackingStability:
    """Tests for tracking stability and its flags."""

    def test_steady_motion(self, make_context):
        """Test constant speed scores the mean confidence."""
        contexts = walk(make_context, [0, 1, 2, 3])

        assert ParameterAdvisor().tracking_stability(contexts) == pytest.approx(0.9)

    def test_erratic_motion(self, make_context):
        """Test speed variation lowers stability."""
        contexts = walk(make_context, [0, 1, 11])

        assert ParameterAdvisor().tracking_stability(contexts) == pytest.approx(0.9 / 5.5)

    def test_unstable_flags(self, make_context):
        """Test low stability raises process noise and lowers prediction confidence."""
        result = ParameterAdvisor().advise(walk(make_context, [0, 1, 2], confidence=0.3))

        assert result.increase_process_noise
        assert result.reduce_prediction_confidence
        assert not result.increase_particle_count


class TestSensorPerformance:
    """Tests for sensor performance and its flags."""

    def test_good_sensors(self, make_context):
        """Test accurate gated readings score their mean accuracy."""
        contexts = walk(make_context, [0, 0, 0])

        assert ParameterAdvisor().sensor_performance(contexts) == pytest.approx(0.8)

    def test_weak_sensor_flags(self, make_context, make_reading):
        """Test poor accuracy raises measurement noise and robust fusion."""
        contexts = [
            make_context(readings=[make_reading(5.0, accuracy=0.4)], timestamp_ms=t)
            for t in (0, 1000, 2000)
        ]

        result = ParameterAdvisor().advise(contexts)

        assert result.sensor_performance == pytest.approx(0.4)
        assert result.increase_measurement_noise
        assert result.enable_robust_fusion

    def test_gated_readings_lower_score(self, make_context, make_reading):
        """Test readings failing the gate scale the score by the pass rate."""
        contexts = [
            make_context(readings=[make_reading(5.0, source_id="a"), make_reading(80.0, source_id="b")])
        ]

        assert ParameterAdvisor().sensor_performance(contexts) == pytest.approx(0.4)


class TestEnvironmentComplexity:
    """Tests for environment complexity and its flags."""

    def test_simple_environment(self, make_context):
        """Test few landmarks and steady distances score low."""
        contexts = walk(make_context, [0, 0, 0], landmarks=((1.0, 0.0, 0.0),))

        assert ParameterAdvisor().environment_complexity(contexts) == pytest.approx(0.5 / 50)

    def test_complex_flags(self, make_context):
        """Test dense landmarks and spread distances raise particle count."""
        landmarks = tuple((float(i), 0.0, 0.0) for i in range(60))
        contexts = [
            make_context([d], timestamp_ms=i * 1000, landmarks=landmarks)
            for i, d in enumerate([1.0, 10.0, 1.0])
        ]

        result = ParameterAdvisor().advise(contexts)

        assert result.environment_complexity == pytest.approx(1.0)
        assert result.increase_particle_count
        assert result.enable_advanced_landmark_detection

    def test_threshold_configurable(self, make_context):
        """Test a lower complexity threshold raises the flag sooner."""
        contexts = walk(make_context, [0, 0, 0], landmarks=tuple((0.0, 0.0, float(i)) for i in range(10)))
        advisor = ParameterAdvisor(AdvisorConfig(complexity_threshold=0.05))

        assert advisor.advise(contexts).increase_particle_count


class TestSensorPlacement:
    """Tests for coverage-based source placement."""

    @pytest.fixture
    def advisor(self, metrics):
        return ParameterAdvisor(AdvisorConfig(placement_sectors=4), metrics=metrics)

    def test_sparse_sectors_suggested(self, advisor):
        """Test empty and thin sectors are suggested, best first."""
        landmarks = [
            (1.0, 1.0, 0.0), (2.0, 2.0, 0.0),   # 0-90 deg, covered
            (-1.0, 1.0, 0.0),                   # 90-180 deg, one landmark
            (50.0, -50.0, 0.0),                 # out of range
        ]

        suggestions = advisor.suggest_sensor_positions(landmarks, (0.0, 0.0, 1.0))

        assert [s.expected_improvement for s in suggestions] == [1.0, 1.0, 0.5]
        assert suggestions[0].position == pytest.approx((-3.5355, -3.5355, 1.0), abs=1e-3)
        assert suggestions[2].position == pytest.approx((-3.5355, 3.5355, 1.0), abs=1e-3)
        assert "1 landmark(s)" in suggestions[2].reason

    def test_no_landmarks(self, advisor):
        """Test every sector is suggested when nothing is mapped."""
        suggestions = advisor.suggest_sensor_positions([], (2.0, 3.0, 0.0))

        assert len(suggestions) == 4
        assert all(s.expected_improvement == 1.0 for s in suggestions)

    def test_minimum_improvement(self, metrics):
        """Test suggestions at or below the minimum improvement are dropped."""
        advisor = ParameterAdvisor(
            AdvisorConfig(placement_sectors=4, min_placement_improvement=0.5), metrics=metrics
        )

        suggestions = advisor.suggest_sensor_positions([(-1.0, 1.0, 0.0)], (0.0, 0.0, 0.0))

        assert len(suggestions) == 3
        assert all(s.expected_improvement == 1.0 for s in suggestions)

    def test_malformed_landmarks(self, advisor, metrics):
        """Test malformed input yields no suggestions and counts a degradation."""
        assert advisor.suggest_sensor_positions([(1.0, 2.0)], (0.0, 0.0, 0.0)) == []
        assert metrics.get_drop_count('stage_degraded') == 1

    def test_invalid_config(self):
        with pytest.raises(AssertionError):
            AdvisorConfig(placement_sectors=0)
