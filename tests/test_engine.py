"""
Integration tests for the adaptive correction engine.

Tests cover:
- All-fallback end-to-end processing
- Arrival ordering and one state per cycle
- Shutdown semantics (rejected submits, cancelled cycles, closed streams)
- Advisor publishing
- Configuration from nested dictionaries
"""

import pytest

from ace_core import AdaptiveCorrectionEngine, EngineConfig, create_default_engine
from ace_core.correction import TrajectoryConfig
from ace_core.inference import Capability
from ace_core.proto import (
    BasePoseEstimate,
    InsightType,
    LandmarkCategory,
    ParameterRecommendations,
)


@pytest.fixture
def engine(fallback_registry, metrics):
    engine = AdaptiveCorrectionEngine(
        EngineConfig.from_dict({'trajectory': {'horizon': 5}, 'advisor_interval_s': 60.0}),
        registry=fallback_registry,
        metrics=metrics,
        clock=lambda: 12.5,
    )
    yield engine
    engine.shutdown(timeout=2.0)


def estimate_at(x, timestamp_ms):
    return BasePoseEstimate(
        position=(float(x), 0.0, 0.0),
        landmarks=((1.0, 0.0, 0.0), (0.0, 2.0, 0.0)),
        confidence=0.9,
        timestamp_ms=timestamp_ms,
    )


class TestEndToEnd:
    """Tests for threaded processing on the fallback path."""

    def test_walking_scenario(self, engine, make_reading):
        """Test three cycles walking along x produce complete records."""
        states = engine.states.subscribe()
        engine.start()

        for i in range(3):
            assert engine.submit(
                [make_reading(5.0, timestamp_ms=i * 1000), make_reading(6.0, source_id="ap2")],
                estimate_at(i, i * 1000),
                timestamp_ms=i * 1000,
            )
        assert engine.wait_idle(timeout=5.0)

        results = states.drain()
        assert [s.cycle_index for s in results] == [0, 1, 2]
        assert results[0].predicted_trajectory == ()
        assert results[1].predicted_trajectory[0].position == pytest.approx((2.0, 0.0, 0.0))
        assert results[2].predicted_trajectory[0].position == pytest.approx((3.0, 0.0, 0.0))

        for state in results:
            assert len(state.enhanced_readings) == 2
            assert [l.category for l in state.enhanced_landmarks] == [LandmarkCategory.UNKNOWN] * 2
            assert 0.0 <= state.confidence.overall_confidence <= 1.0

    def test_one_state_per_cycle_in_order(self, engine, make_reading, metrics):
        """Test many cycles arrive in submission order."""
        states = engine.states.subscribe(maxlen=100)
        engine.start()

        for i in range(20):
            engine.submit([make_reading(5.0)], estimate_at(i * 0.1, i * 100), timestamp_ms=i * 100)
        engine.wait_idle(timeout=5.0)

        results = states.drain()
        assert [s.cycle_index for s in results] == list(range(20))
        assert [s.timestamp_ms for s in results] == [i * 100 for i in range(20)]
        assert metrics.get_counter('cycles_in') == 20
        assert metrics.get_counter('cycles_processed') == 20
        assert metrics.get_counter('readings_in') == 20

    def test_default_timestamp_from_clock(self, engine, make_reading):
        """Test submit stamps cycles with the engine clock."""
        states = engine.states.subscribe()
        engine.start()

        engine.submit([make_reading(5.0)], estimate_at(0, 0))
        engine.wait_idle(timeout=5.0)

        assert states.get(timeout=1.0).timestamp_ms == 12500

    def test_empty_readings(self, engine):
        """Test a cycle without readings still yields a state."""
        states = engine.states.subscribe()
        engine.start()

        engine.submit([], estimate_at(0, 0), timestamp_ms=0)
        engine.wait_idle(timeout=5.0)

        state = states.get(timeout=1.0)
        assert state.enhanced_readings == ()
        assert state.confidence.measurement_confidence == 0.0

    def test_insights_published(self, engine, make_reading):
        """Test poor-quality readings produce a sensor insight."""
        insights = engine.insights.subscribe()
        engine.start()

        engine.submit([make_reading(5.0, accuracy=0.2)], estimate_at(0, 0), timestamp_ms=0)
        engine.wait_idle(timeout=5.0)

        published = insights.drain()
        assert [i.insight_type for i in published] == [InsightType.SENSOR_PERFORMANCE]
        assert engine.metrics.get_counter('insights_emitted') == 1


class TestShutdown:
    """Tests for lifecycle and shutdown semantics."""

    def test_submit_after_shutdown(self, engine, make_reading):
        """Test submit returns False once shut down."""
        engine.start()
        engine.shutdown()

        assert engine.is_shut_down
        assert not engine.running
        assert not engine.submit([make_reading(5.0)], estimate_at(0, 0))

    def test_queued_cycles_cancelled(self, engine, make_reading, metrics):
        """Test cycles queued before start are cancelled on shutdown."""
        states = engine.states.subscribe()
        for i in range(4):
            engine.submit([make_reading(5.0)], estimate_at(0, i), timestamp_ms=i)

        engine.shutdown()

        assert metrics.get_drop_count('cycle_cancelled') == 4
        assert engine.wait_idle(timeout=0.1)
        assert states.drain() == []
        assert states.closed

    def test_no_events_after_shutdown(self, engine, make_reading, make_context):
        """Test streams are closed and processing is refused after shutdown."""
        states = engine.states.subscribe()
        engine.start()
        engine.shutdown()

        assert engine.states.publish(object()) == 0
        with pytest.raises(RuntimeError):
            engine.process_cycle(make_context([5.0]))
        assert states.get(timeout=0.05) is None

    def test_shutdown_idempotent(self, engine):
        """Test repeated shutdown calls are harmless."""
        engine.start()
        engine.shutdown()
        engine.shutdown()

        assert engine.is_shut_down

    def test_restart_refused(self, engine):
        """Test start after shutdown raises."""
        engine.shutdown()

        with pytest.raises(RuntimeError):
            engine.start()

    def test_context_manager(self, fallback_registry, make_reading):
        """Test the engine shuts down when leaving the with block."""
        with AdaptiveCorrectionEngine(registry=fallback_registry) as engine:
            assert engine.running
            engine.submit([make_reading(5.0)], estimate_at(0, 0), timestamp_ms=0)
            engine.wait_idle(timeout=5.0)

        assert engine.is_shut_down
        assert engine.states.closed

    def test_shutdown_during_submit(self, fallback_registry, metrics, make_reading):
        """Test a submit racing shutdown is refused instead of stranded in the queue."""
        engines = []

        def clock():
            engines[0].shutdown(timeout=2.0)
            return 1.0

        engine = AdaptiveCorrectionEngine(registry=fallback_registry, metrics=metrics, clock=clock)
        engines.append(engine)
        engine.start()

        assert not engine.submit([make_reading(5.0)], estimate_at(0, 0))
        assert engine.wait_idle(timeout=0.5)
        assert engine.get_status()['queued'] == 0
        assert metrics.get_counter('cycles_in') == 0

    def test_models_released(self, learned_registry, fake_model):
        """Test shutdown closes learned models."""
        model = fake_model(lambda x: x)
        engine = AdaptiveCorrectionEngine(
            registry=learned_registry({Capability.NOISE_REDUCTION: model})
        )

        engine.shutdown()

        assert model.closed


class TestAdvisor:
    """Tests for the advisor integration."""

    def test_run_advisor_once_publishes(self, engine, make_context):
        """Test an on-demand run publishes and stores recommendations."""
        recommendations = engine.recommendations.subscribe()
        for t in (0, 1000, 2000):
            engine.process_cycle(make_context([5.0], timestamp_ms=t))

        result = engine.run_advisor_once()

        assert isinstance(result, ParameterRecommendations)
        assert engine.latest_recommendations is result
        assert recommendations.get(timeout=1.0) is result
        assert engine.metrics.get_counter('advisor_runs') == 1

    def test_gated_readings_counted_once(self, engine, make_context, metrics):
        """Test repeated advisor runs do not re-count gated readings."""
        for t in (0, 1000, 2000):
            engine.process_cycle(make_context([5.0, 60.0], timestamp_ms=t))

        first = engine.run_advisor_once()
        second = engine.run_advisor_once()

        assert metrics.get_drop_count('reading_gated') == 3
        assert metrics.get_counter('reading_gate_too_far') == 3
        assert first.sensor_performance == pytest.approx(second.sensor_performance)
        assert first.sensor_performance == pytest.approx(0.8 * 0.5)

    def test_periodic_advisor(self, fallback_registry, metrics):
        """Test the advisor thread runs on its own cadence."""
        engine = AdaptiveCorrectionEngine(
            EngineConfig.from_dict({'advisor_interval_s': 0.05}),
            registry=fallback_registry,
            metrics=metrics,
        )
        recommendations = engine.recommendations.subscribe()
        engine.start()
        try:
            assert recommendations.get(timeout=2.0) is not None
        finally:
            engine.shutdown(timeout=2.0)

        assert metrics.get_counter('advisor_runs') >= 1

    def test_status(self, engine):
        """Test the status summary reflects the engine."""
        engine.states.subscribe()

        status = engine.get_status()

        assert status['running'] is False
        assert status['subscribers']['states'] == 1
        assert not any(status['capabilities'].values())

    def test_sensor_positions_follow_latest_cycle(self, engine, make_context):
        """Test placement uses the most recent cycle and is empty before any."""
        assert engine.suggest_sensor_positions() == []

        engine.process_cycle(make_context([5.0], landmarks=[(2.0, 1.0, 0.0)]))
        suggestions = engine.suggest_sensor_positions()

        assert len(suggestions) == 8
        assert suggestions[-1].expected_improvement == 0.5


class TestEngineConfig:
    """Tests for configuration."""

    def test_defaults(self):
        config = EngineConfig()

        assert config.history_capacity == 500
        assert config.advisor_interval_s == 5.0
        assert config.pipeline_config is not None

    def test_from_dict_sections(self):
        """Test nested sections reach their component configs."""
        config = EngineConfig.from_dict({
            'history_capacity': 50,
            'advisor_interval_s': 2.0,
            'trajectory': {'horizon': 3},
            'gate': {'d_max_m': 80.0},
            'advisor': {'sensor_threshold': 0.5},
        })

        assert config.history_capacity == 50
        assert config.advisor_interval_s == 2.0
        assert config.pipeline_config.trajectory_config == TrajectoryConfig(horizon=3)
        assert config.gate_config.d_max_m == 80.0
        assert config.advisor_config.sensor_threshold == 0.5

    @pytest.mark.parametrize("data", [
        {'unknown_option': 1},
        {'trajectory': {'horizon': 3, 'bogus': True}},
        {'advisor': {'interval': 1.0}},
    ])
    def test_unknown_keys_rejected(self, data):
        """Test unknown keys raise ValueError."""
        with pytest.raises(ValueError):
            EngineConfig.from_dict(data)

    def test_invalid_capacity(self):
        with pytest.raises(AssertionError):
            EngineConfig(history_capacity=0)

    def test_create_default_engine(self):
        """Test the factory builds an all-fallback engine without models."""
        engine = create_default_engine()
        try:
            assert not any(engine.registry.status().values())
        finally:
            engine.shutdown()
