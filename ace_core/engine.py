"""
Adaptive Correction Engine.

Owns the history buffer, capability registry, correction pipeline,
parameter advisor and output streams, and runs them on background
threads.

Threads:
- worker: processes submitted cycles strictly in arrival order
- stage pool (2 workers): trajectory and landmark stages of a cycle
- advisor: periodic parameter analysis with its own stop event

Usage:
    engine = create_default_engine(model_dir="models/")
    states = engine.states.subscribe(maxlen=64)
    engine.start()

    engine.submit(readings, base_estimate)
    state = states.get(timeout=1.0)

    engine.shutdown()
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ace_core.correction import (
    AdvisorConfig,
    ConfidenceConfig,
    CorrectionPipeline,
    CorrectionPipelineConfig,
    FusionCorrectorConfig,
    InsightConfig,
    LandmarkConfig,
    NoiseReductionConfig,
    ParameterAdvisor,
    ReadingGate,
    ReadingGateConfig,
    TrajectoryConfig,
)
from ace_core.inference import CapabilityRegistry
from ace_core.io import EventStream, HistoryBuffer
from ace_core.metrics import MetricsCollector
from ace_core.proto import (
    BasePoseEstimate,
    EnhancedState,
    FusionContext,
    InertialReading,
    Insight,
    ParameterRecommendations,
    RangingReading,
    SensorPlacement,
)

logger = logging.getLogger(__name__)


# Nested dictionary section -> (CorrectionPipelineConfig attribute, config class)
_SECTIONS = {
    'fusion': ('fusion_config', FusionCorrectorConfig),
    'noise': ('noise_config', NoiseReductionConfig),
    'trajectory': ('trajectory_config', TrajectoryConfig),
    'landmark': ('landmark_config', LandmarkConfig),
    'confidence': ('confidence_config', ConfidenceConfig),
    'insight': ('insight_config', InsightConfig),
}


def _build(config_cls, values: Optional[Dict[str, Any]]):
    """Instantiate a config dataclass, rejecting unknown keys."""
    values = dict(values or {})
    known = {f.name for f in fields(config_cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown {config_cls.__name__} keys: {sorted(unknown)}")
    return config_cls(**values)


@dataclass
class EngineConfig:
    """
    Configuration for the correction engine.

    Attributes:
        history_capacity: Contexts retained in the history buffer
        subscriber_maxlen: Default per-subscriber queue length
        model_dir: Directory holding learned model artifacts (None = fallbacks only)
        pipeline_config: Per-stage configuration
        gate_config: ReadingGate configuration (per-cycle gating and advisor scoring)
        advisor_config: ParameterAdvisor configuration
    """

    history_capacity: int = 500
    subscriber_maxlen: int = 256
    model_dir: Optional[Union[str, Path]] = None
    pipeline_config: CorrectionPipelineConfig = None
    gate_config: ReadingGateConfig = None
    advisor_config: AdvisorConfig = None

    def __post_init__(self):
        """Validate configuration and fill in default stage configs."""
        assert self.history_capacity > 0, "history_capacity must be positive"
        assert self.subscriber_maxlen > 0, "subscriber_maxlen must be positive"

        if self.pipeline_config is None:
            self.pipeline_config = CorrectionPipelineConfig()
        if self.gate_config is None:
            self.gate_config = ReadingGateConfig()
        if self.advisor_config is None:
            self.advisor_config = AdvisorConfig()

    @property
    def advisor_interval_s(self) -> float:
        return self.advisor_config.interval_s

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngineConfig':
        """
        Build from nested dictionaries (see config.ENGINE_CONFIG).

        Top-level keys: history_capacity, subscriber_maxlen, model_dir,
        advisor_interval_s, plus one section per component: fusion, noise,
        trajectory, landmark, confidence, insight, gate, advisor.

        Raises:
            ValueError: On unknown keys
        """
        data = dict(data)

        pipeline_kwargs = {}
        for section, (attribute, config_cls) in _SECTIONS.items():
            pipeline_kwargs[attribute] = _build(config_cls, data.pop(section, None))

        advisor_values = dict(data.pop('advisor', None) or {})
        if 'advisor_interval_s' in data:
            advisor_values['interval_s'] = data.pop('advisor_interval_s')

        gate_config = _build(ReadingGateConfig, data.pop('gate', None))
        advisor_config = _build(AdvisorConfig, advisor_values)

        unknown = set(data) - {'history_capacity', 'subscriber_maxlen', 'model_dir'}
        if unknown:
            raise ValueError(f"Unknown EngineConfig keys: {sorted(unknown)}")

        return cls(
            pipeline_config=CorrectionPipelineConfig(**pipeline_kwargs),
            gate_config=gate_config,
            advisor_config=advisor_config,
            **data,
        )


class AdaptiveCorrectionEngine:
    """
    Threaded estimate-enhancement engine.

    Streams:
        states: One EnhancedState per processed cycle
        insights: Insight events
        recommendations: ParameterRecommendations from the advisor

    Notes:
        - submit() never blocks; cycles queue until the worker picks them up
        - Every processed cycle yields exactly one EnhancedState
        - shutdown() is idempotent; no events are published after it returns
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        registry: Optional[CapabilityRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize engine.

        Args:
            config: Engine configuration (uses defaults if None)
            registry: Capability registry (built from config.model_dir if None)
            metrics: Metrics collector shared by every component
            clock: Wall clock in seconds, used to timestamp submitted cycles
        """
        self.config = config or EngineConfig()
        self.metrics = metrics or MetricsCollector()
        self.clock = clock

        self.registry = registry or CapabilityRegistry(
            model_dir=self.config.model_dir, metrics=self.metrics
        )
        self.registry.probe()

        self.history = HistoryBuffer(self.config.history_capacity)
        self.pipeline = CorrectionPipeline(
            self.registry, self.history, self.config.pipeline_config, self.metrics
        )
        self.gate = ReadingGate(self.config.gate_config, self.metrics)
        self.advisor = ParameterAdvisor(self.config.advisor_config, self.gate, self.metrics)

        maxlen = self.config.subscriber_maxlen
        self.states: EventStream[EnhancedState] = EventStream("states", maxlen, self.metrics)
        self.insights: EventStream[Insight] = EventStream("insights", maxlen, self.metrics)
        self.recommendations: EventStream[ParameterRecommendations] = EventStream(
            "recommendations", maxlen, self.metrics
        )

        self._queue: "queue.Queue[FusionContext]" = queue.Queue()
        self._stop_event = threading.Event()
        self._advisor_stop = threading.Event()

        self._process_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._idle = threading.Condition()
        self._pending = 0

        self._worker: Optional[threading.Thread] = None
        self._advisor_thread: Optional[threading.Thread] = None
        self._started = False
        self._shut_down = False

        self._cycle_index = 0
        self._latest_recommendations: Optional[ParameterRecommendations] = None

        logger.info(f"Correction engine initialized (history={self.config.history_capacity})")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._started and not self._shut_down

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    def start(self):
        """Start the worker and advisor threads."""
        with self._lifecycle_lock:
            if self._shut_down:
                raise RuntimeError("Engine has been shut down")
            if self._started:
                return

            self._worker = threading.Thread(
                target=self._worker_loop, name="ace-worker", daemon=True
            )
            self._advisor_thread = threading.Thread(
                target=self._advisor_loop, name="ace-advisor", daemon=True
            )
            self._worker.start()
            self._advisor_thread.start()
            self._started = True

        logger.info(
            f"Correction engine started (advisor every {self.config.advisor_interval_s:.1f}s)"
        )

    def shutdown(self, timeout: Optional[float] = None):
        """
        Stop the engine.

        Queued cycles are discarded, threads are joined, streams are
        closed and learned models are released.

        Args:
            timeout: Maximum seconds to wait for each thread
        """
        with self._lifecycle_lock:
            if self._shut_down:
                return
            self._shut_down = True

        self._stop_event.set()
        self._advisor_stop.set()

        cancelled = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
            cancelled += 1
            self.metrics.increment_drop('cycle_cancelled')
            self._task_done()

        for thread in (self._worker, self._advisor_thread):
            if thread is not None:
                thread.join(timeout)
                if thread.is_alive():
                    logger.warning(f"{thread.name} did not stop within {timeout}s")

        # Serialise with any in-flight process_cycle() before closing
        with self._process_lock:
            for stream in (self.states, self.insights, self.recommendations):
                stream.close()

        self.pipeline.close()
        self.registry.close()

        logger.info(
            f"Correction engine stopped: {self.metrics.get_counter('cycles_processed')} "
            f"cycles processed, {cancelled} cancelled"
        )

    def __enter__(self) -> 'AdaptiveCorrectionEngine':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def submit(
        self,
        readings: Iterable[RangingReading],
        base_estimate: BasePoseEstimate,
        inertial: Optional[InertialReading] = None,
        timestamp_ms: Optional[int] = None,
    ) -> bool:
        """
        Queue a cycle for processing.

        Args:
            readings: Ranging readings for this cycle
            base_estimate: Upstream estimate (snapshotted)
            inertial: Optional inertial sample
            timestamp_ms: Arrival time (defaults to the engine clock)

        Returns:
            False if the engine has been shut down
        """
        if self._shut_down:
            return False

        if timestamp_ms is None:
            timestamp_ms = int(self.clock() * 1000)

        context = FusionContext(
            readings=tuple(readings),
            base_estimate=base_estimate.snapshot(),
            timestamp_ms=timestamp_ms,
            inertial=inertial,
        )

        # Checked again under the lifecycle lock so shutdown() cannot drain
        # the queue between the check and the put
        with self._lifecycle_lock:
            if self._shut_down:
                return False
            with self._idle:
                self._pending += 1
            self._queue.put(context)

        self.metrics.increment('cycles_in')
        self.metrics.increment('readings_in', len(context.readings))
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every submitted cycle has been processed or cancelled.

        Returns:
            True if idle, False on timeout
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout)

    def _task_done(self):
        with self._idle:
            self._pending -= 1
            if self._pending == 0:
                self._idle.notify_all()

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_cycle(self, context: FusionContext) -> EnhancedState:
        """
        Process one cycle synchronously and publish its outputs.

        Args:
            context: Cycle input bundle

        Returns:
            EnhancedState for the cycle

        Raises:
            RuntimeError: If the engine has been shut down
        """
        with self._process_lock:
            if self._shut_down and self.states.closed:
                raise RuntimeError("Engine has been shut down")

            cycle_index = self._cycle_index
            self._cycle_index += 1

            previous = self.history.latest()
            previous_readings = previous.readings if previous is not None else ()
            self.gate.check_cycle(context.readings, previous_readings)

            state, insights = self.pipeline.process(context, cycle_index)

            self.states.publish(state)
            for insight in insights:
                self.insights.publish(insight)
            self.metrics.increment('insights_emitted', len(insights))

        return state

    def _worker_loop(self):
        while not self._stop_event.is_set():
            try:
                context = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue

            try:
                self.process_cycle(context)
            except Exception as e:
                logger.error(f"Cycle processing error: {e}")
                self.metrics.increment_drop('cycle_failed')
            finally:
                self._task_done()

    # ------------------------------------------------------------------
    # Advisor
    # ------------------------------------------------------------------

    @property
    def latest_recommendations(self) -> Optional[ParameterRecommendations]:
        return self._latest_recommendations

    def run_advisor_once(self) -> ParameterRecommendations:
        """Analyse the current history snapshot and publish the result."""
        recommendations = self.advisor.advise(self.history.snapshot())
        self._latest_recommendations = recommendations
        self.recommendations.publish(recommendations)

        if recommendations.any_flag:
            logger.info(
                f"Parameter recommendations: stability={recommendations.tracking_stability:.2f}, "
                f"sensors={recommendations.sensor_performance:.2f}, "
                f"complexity={recommendations.environment_complexity:.2f}"
            )
        return recommendations

    def suggest_sensor_positions(self) -> List[SensorPlacement]:
        """Placement suggestions for the most recently processed cycle."""
        latest = self.history.latest()
        if latest is None:
            return []
        return self.advisor.suggest_sensor_positions(
            latest.base_estimate.landmarks, latest.position
        )

    def _advisor_loop(self):
        while not self._advisor_stop.wait(self.config.advisor_interval_s):
            try:
                self.run_advisor_once()
            except Exception as e:
                logger.error(f"Advisor error: {e}")
                self.metrics.increment_drop('stage_degraded')

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Engine status summary."""
        return {
            'running': self.running,
            'queued': self._queue.qsize(),
            'history': len(self.history),
            'capabilities': self.registry.status(),
            'subscribers': {
                'states': self.states.subscriber_count(),
                'insights': self.insights.subscriber_count(),
                'recommendations': self.recommendations.subscriber_count(),
            },
        }


def create_default_engine(
    model_dir: Optional[Union[str, Path]] = None,
) -> AdaptiveCorrectionEngine:
    """
    Create an engine with default configuration.

    Args:
        model_dir: Directory holding learned model artifacts (None = fallbacks only)

    Returns:
        Configured, not yet started, AdaptiveCorrectionEngine
    """
    return AdaptiveCorrectionEngine(EngineConfig(model_dir=model_dir))
