"""Live telemetry sampling and trip aggregation."""

import time
import logging
from dataclasses import dataclass, field

from .constants import (
    PID_SPEED, PID_RPM, PID_ENGINE_OIL_TEMP, PID_FUEL_LEVEL,
    HIGH_SPEED_THRESHOLD, IDLE_SPEED_THRESHOLD,
)

log = logging.getLogger(__name__)


def celsius_to_fahrenheit(c):
    return c * 1.8 + 32.0


@dataclass
class TelemetrySample:
    """One polling round. Values the ECU did not supply stay None."""
    timestamp: float
    vehicle_speed: int = None   # km/h
    engine_speed: int = None    # rpm
    oil_temp: float = None      # degF
    fuel_level: int = None      # %


@dataclass
class RunningMean:
    value: float = 0.0
    count: int = 0

    def add(self, x):
        self.value = (self.value * self.count + x) / (self.count + 1)
        self.count += 1


@dataclass
class TripStats:
    """Aggregates samples over a trip.

    Durations are in seconds and accumulate the time since the previous
    sample while the vehicle is idle (speed <= IDLE_SPEED_THRESHOLD) or
    fast (speed > HIGH_SPEED_THRESHOLD).
    """
    speed_mean: RunningMean = field(default_factory=RunningMean)
    rpm_mean: RunningMean = field(default_factory=RunningMean)
    oil_temp_mean: RunningMean = field(default_factory=RunningMean)
    max_speed: float = 0.0
    acceleration: float = 0.0    # km/h per second
    idle_duration: float = 0.0
    idle_interval: float = 0.0   # current uninterrupted idle stretch
    high_speed_duration: float = 0.0
    samples: int = 0
    _last_time: float = None
    _last_speed: float = None

    def update(self, sample):
        dt = 0.0 if self._last_time is None else sample.timestamp - self._last_time
        self._last_time = sample.timestamp
        self.samples += 1

        if sample.engine_speed is not None:
            self.rpm_mean.add(sample.engine_speed)
        if sample.oil_temp is not None:
            self.oil_temp_mean.add(sample.oil_temp)

        speed = sample.vehicle_speed
        if speed is None:
            return

        if self._last_speed is not None and dt > 0:
            self.acceleration = (speed - self._last_speed) / dt
        self._last_speed = speed

        self.speed_mean.add(speed)
        self.max_speed = max(self.max_speed, speed)
        if speed > HIGH_SPEED_THRESHOLD:
            self.high_speed_duration += dt
        if speed <= IDLE_SPEED_THRESHOLD:
            self.idle_duration += dt
            self.idle_interval += dt
        else:
            self.idle_interval = 0.0

    def summary(self):
        """Flat dict of the aggregated values for display."""
        return {
            "Avg Speed": round(self.speed_mean.value, 1),
            "Max Speed": self.max_speed,
            "Avg RPM": round(self.rpm_mean.value),
            "Avg Oil Temp": round(self.oil_temp_mean.value, 1),
            "Acceleration": round(self.acceleration, 2),
            "Idle Time": round(self.idle_duration, 1),
            "Idle Stretch": round(self.idle_interval, 1),
            "High Speed Time": round(self.high_speed_duration, 1),
        }


def poll_sample(session, clock=time.monotonic):
    """Read speed, RPM, oil temperature and fuel level from the session."""
    oil = session.read_pid(PID_ENGINE_OIL_TEMP)
    sample = TelemetrySample(
        timestamp=clock(),
        vehicle_speed=session.read_pid(PID_SPEED),
        engine_speed=session.read_pid(PID_RPM),
        oil_temp=None if oil is None else celsius_to_fahrenheit(oil),
        fuel_level=session.read_pid(PID_FUEL_LEVEL),
    )
    log.debug("Sample: %s", sample)
    return sample
