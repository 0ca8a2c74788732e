"""
Adaptive correction engine demo.

Replays a simulated sensor feed through the engine, prints enhanced
states, insights and parameter recommendations, then a metrics summary.
"""

import sys
import time
import signal
import logging
import argparse
from typing import Optional

import config
from ace_core import AdaptiveCorrectionEngine, EngineConfig
from ace_core.simulation import SimulatedSensorFeed, SimulationConfig

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOGGING_CONFIG["level"]),
    format=config.LOGGING_CONFIG["format"]
)
logger = logging.getLogger(__name__)


class CorrectionDemo:
    """Feeds simulated cycles into the engine and reports its output."""

    def __init__(self, cycles: int, rate_hz: float, seed: int):
        """
        Initialize demo.

        Args:
            cycles: Number of cycles to replay
            rate_hz: Submission rate
            seed: Simulation random seed
        """
        self.running = False
        self.cycles = cycles
        self.rate_hz = rate_hz

        sim = config.SIMULATION_CONFIG
        self.feed = SimulatedSensorFeed(SimulationConfig(
            sources_per_modality=sim["sources_per_modality"],
            speed_m_s=sim["speed_m_s"],
            step_ms=int(1000 / rate_hz),
            distance_noise_m=sim["distance_noise_m"],
            outlier_probability=sim["outlier_probability"],
            landmark_count=sim["landmark_count"],
            room_size_m=sim["room_size_m"],
            seed=seed,
        ), start_ms=int(time.time() * 1000))

        self.engine = AdaptiveCorrectionEngine(EngineConfig.from_dict(config.ENGINE_CONFIG))
        self.state_sub = self.engine.states.subscribe()
        self.insight_sub = self.engine.insights.subscribe()
        self.recommendation_sub = self.engine.recommendations.subscribe()

        # Statistics
        self.submitted = 0
        self.states_seen = 0
        self.insights_seen = 0
        self.last_confidence: Optional[float] = None

        # Signal handling
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        self.running = False

    def start(self):
        """Run the replay loop."""
        logger.info(f"Replaying {self.cycles} cycles at {self.rate_hz:.1f} Hz")
        logger.info(f"Capabilities: {self.engine.registry.status()}")

        self.engine.start()
        self.running = True

        try:
            self._run_loop()
            if self.running:
                self.engine.wait_idle(timeout=5.0)
                self.engine.run_advisor_once()
            self._report()
        finally:
            self.stop()

    def _run_loop(self):
        period = 1.0 / self.rate_hz
        print_interval = config.SIMULATION_CONFIG["print_interval"]

        for cycle in self.feed.take(self.cycles):
            if not self.running:
                break

            self.engine.submit(
                cycle.readings,
                cycle.base_estimate,
                cycle.inertial,
                timestamp_ms=cycle.timestamp_ms,
            )
            self.submitted += 1

            for state in self.state_sub.drain():
                self.states_seen += 1
                self.last_confidence = state.confidence.overall_confidence
                if self.states_seen % print_interval == 0:
                    x, y, z = state.base_estimate.position
                    print(f"[cycle {state.cycle_index:4d}] pos=({x:6.2f}, {y:6.2f}, {z:5.2f}) "
                          f"waypoints={len(state.predicted_trajectory)} "
                          f"landmarks={len(state.enhanced_landmarks)} "
                          f"confidence={state.confidence.overall_confidence:.2f} "
                          f"latency={state.processing_time_ms:.1f}ms")

            self._report()
            time.sleep(period)

    def _report(self):
        for insight in self.insight_sub.drain():
            self.insights_seen += 1
            print(f"  insight [{insight.insight_type.value}] {insight.message} "
                  f"(confidence {insight.confidence:.2f})")

        for recommendation in self.recommendation_sub.drain():
            flags = [
                name for name in (
                    'increase_process_noise',
                    'reduce_prediction_confidence',
                    'increase_measurement_noise',
                    'enable_robust_fusion',
                    'increase_particle_count',
                    'enable_advanced_landmark_detection',
                ) if getattr(recommendation, name)
            ]
            print(f"  advisor: stability={recommendation.tracking_stability:.2f} "
                  f"sensors={recommendation.sensor_performance:.2f} "
                  f"complexity={recommendation.environment_complexity:.2f} "
                  f"flags={flags or 'none'}")

    def stop(self):
        """Shut down the engine and print final statistics."""
        self.running = False
        placements = self.engine.suggest_sensor_positions()
        self.engine.shutdown(timeout=5.0)

        print("\n" + "=" * 60)
        print("               Replay finished")
        print("=" * 60)
        print(f"Cycles submitted: {self.submitted}")
        print(f"States received: {self.states_seen}")
        print(f"Insights received: {self.insights_seen}")
        if self.last_confidence is not None:
            print(f"Last overall confidence: {self.last_confidence:.2f}")
        for placement in placements[:3]:
            x, y, z = placement.position
            print(f"Suggested source at ({x:.1f}, {y:.1f}, {z:.1f}): "
                  f"+{placement.expected_improvement:.2f} ({placement.reason})")
        print("=" * 60)

        self.engine.metrics.print_summary()


def main(argv=None):
    """Entry point."""
    sim = config.SIMULATION_CONFIG

    parser = argparse.ArgumentParser(description='Adaptive correction engine demo')
    parser.add_argument('--cycles', '-n', type=int, default=sim["cycles"],
                        help='Number of cycles to replay')
    parser.add_argument('--rate-hz', '-r', type=float, default=sim["rate_hz"],
                        help='Cycle submission rate')
    parser.add_argument('--model-dir', '-m', type=str, default=None,
                        help='Directory with learned model artifacts')
    parser.add_argument('--advisor-interval', '-a', type=float, default=None,
                        help='Seconds between parameter advisor runs')
    parser.add_argument('--seed', '-s', type=int, default=sim["seed"],
                        help='Simulation random seed')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.cycles <= 0 or args.rate_hz <= 0:
        parser.error("--cycles and --rate-hz must be positive")

    # Update configuration
    if args.model_dir:
        config.ENGINE_CONFIG["model_dir"] = args.model_dir
    if args.advisor_interval:
        config.ENGINE_CONFIG["advisor_interval_s"] = args.advisor_interval

    demo = CorrectionDemo(cycles=args.cycles, rate_hz=args.rate_hz, seed=args.seed)
    demo.start()
    return 0


if __name__ == "__main__":
    sys.exit(main())
