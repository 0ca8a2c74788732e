"""
Ranging and Inertial Reading Schemas.

Defines the raw per-cycle inputs produced by sensor acquisition:
ranging readings from three physical modalities and an optional
inertial sample.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


Vector3 = Tuple[float, float, float]


def clamp_unit(value: float) -> float:
    """
    Clamp a score to [0, 1].

    NaN maps to 0.0 so that a bad model output can never leak an
    undefined confidence downstream.
    """
    value = float(value)
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


class RangingModality(Enum):
    """Physical ranging technique that produced a reading."""

    WIFI_RTT = "wifi_rtt"                                      # Radio round-trip time
    BLUETOOTH_CHANNEL_SOUNDING = "bluetooth_channel_sounding"  # Radio channel-phase sounding
    ACOUSTIC_FMCW = "acoustic_fmcw"                            # Acoustic frequency-sweep echo

    @property
    def ordinal(self) -> int:
        """Stable integer index, used as a model feature."""
        return list(RangingModality).index(self)


@dataclass(frozen=True)
class RangingReading:
    """
    Single distance measurement to a ranging source.

    Attributes:
        source_id: Identifier of the responder (access point, beacon, speaker)
        distance_m: Measured distance in meters
        accuracy: Stated accuracy score (0-1, higher is better)
        modality: Ranging technique
        timestamp_ms: Arrival timestamp (milliseconds)
    """

    source_id: str
    distance_m: float
    accuracy: float
    modality: RangingModality
    timestamp_ms: int

    def __post_init__(self):
        """Validate reading after initialization."""
        if self.distance_m < 0:
            raise ValueError(f"Distance cannot be negative: {self.distance_m}")

        if not 0 <= self.accuracy <= 1:
            raise ValueError(f"Accuracy must be in [0,1]: {self.accuracy}")


@dataclass(frozen=True)
class InertialReading:
    """
    Inertial sample accompanying a cycle.

    Attributes:
        acceleration: Linear acceleration (x, y, z) in m/s²
        angular_rate: Angular rate (x, y, z) in rad/s
        magnetic_field: Magnetic field (x, y, z) in μT, if available
        timestamp_ms: Sample timestamp (milliseconds)
    """

    acceleration: Vector3
    angular_rate: Vector3
    magnetic_field: Optional[Vector3] = None
    timestamp_ms: int = 0

    def to_features(self) -> Tuple[float, ...]:
        """
        Flatten to 9 model features (acc, gyro, mag).

        A missing magnetometer is zero-filled.
        """
        mag = self.magnetic_field if self.magnetic_field is not None else (0.0, 0.0, 0.0)
        return tuple(float(v) for v in (*self.acceleration, *self.angular_rate, *mag))
