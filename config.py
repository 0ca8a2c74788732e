"""
Adaptive correction engine configuration.
"""

# Engine configuration (see ace_core.engine.EngineConfig.from_dict)
ENGINE_CONFIG = {
    "history_capacity": 500,      # Contexts kept in the rolling history
    "subscriber_maxlen": 256,     # Per-subscriber queue length (drop-oldest)
    "model_dir": None,            # Learned model directory (None = fallbacks only)
    "advisor_interval_s": 5.0,    # Parameter advisor cadence

    "fusion": {
        "history_window": 5,
        "outlier_threshold": 0.3,     # Relative deviation from the modality median
        "blend_original": 0.3,
    },
    "noise": {
        "history_window": 3,
    },
    "trajectory": {
        "horizon": 10,                # Waypoints per prediction
        "step_ms": 1000,
    },
    "landmark": {
        "confidence_threshold": 0.7,
    },
    "insight": {
        "improvement_threshold": 0.1,
        "poor_quality_threshold": 0.5,
        "trajectory_threshold": 0.8,
    },
    "gate": {
        "d_min_m": 0.1,
        "d_max_m": 50.0,
        "min_accuracy": 0.3,
        "max_rate_m_s": 5.0,
    },
    "advisor": {
        "stability_threshold": 0.6,
        "sensor_threshold": 0.7,
        "complexity_threshold": 0.8,
        "placement_sectors": 8,       # Bearing sectors for source placement
        "placement_radius_m": 10.0,
    },
}

# Logging configuration
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}

# Simulated sensor feed (main.py)
SIMULATION_CONFIG = {
    "cycles": 100,                # Cycles to replay
    "rate_hz": 10.0,              # Cycle submission rate
    "seed": 42,
    "sources_per_modality": 3,
    "speed_m_s": 1.0,             # Random-walk speed
    "distance_noise_m": 0.05,
    "outlier_probability": 0.05,  # Chance of a gross ranging outlier
    "landmark_count": 8,
    "room_size_m": 20.0,
    "print_interval": 10,         # Print status every N states
}
