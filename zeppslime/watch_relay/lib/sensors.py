import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Union

import numpy as np

LOG = logging.getLogger("watch_relay.sensors")

GRAVITY_CM_S2 = 980.665


class SensorType(Enum):
    ACCELEROMETER = "accelerometer"   # cm/s^2
    GYROSCOPE     = "gyroscope"       # deg/s


@dataclass(frozen=True)
class SensorSample:
    kind: SensorType
    x: float
    y: float
    z: float
    ts: float

    @property
    def axes(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


SampleCallback = Callable[[SensorSample], None]


class Sensor(ABC):
    """A 3-axis sample producer."""

    def __init__(self, kind: SensorType):
        self.kind = kind
        self._callbacks: List[SampleCallback] = []

    def on_change(self, callback: SampleCallback) -> None:
        self._callbacks.append(callback)

    def _publish(self, sample: SensorSample) -> None:
        for cb in list(self._callbacks):
            cb(sample)

    @abstractmethod
    def check(self) -> Optional[str]:
        """None when the sensor can be used, otherwise the reason it cannot."""

    @abstractmethod
    def start(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...


@dataclass(frozen=True)
class Available:
    sensor: Sensor


@dataclass(frozen=True)
class Unavailable:
    kind: SensorType
    reason: str


Probe = Union[Available, Unavailable]


def probe(sensor: Sensor) -> Probe:
    reason = sensor.check()
    LOG.info("%s available: %s", sensor.kind.value.capitalize(), reason is None)
    if reason is not None:
        return Unavailable(sensor.kind, reason)
    return Available(sensor)


class SimulatedSensor(Sensor):
    """Wrist-swing motion generator running on the asyncio loop.

    Roll follows ``amplitude * sin(2*pi*frequency*t)`` degrees; the
    accelerometer reports gravity rotated by that roll, the gyroscope its
    rate. White Gaussian noise of std ``noise`` is added to every axis.
    """

    def __init__(self,
                 kind: SensorType,
                 rate_hz: float = 50.0,
                 amplitude: float = 30.0,
                 frequency: float = 0.5,
                 noise: float = 0.5,
                 seed: int | None = None,
                 present: bool = True,
                 clock: Callable[[], float] = time.monotonic):
        super().__init__(kind)
        if rate_hz <= 0:
            raise ValueError("rate_hz must be positive")
        self.rate_hz = float(rate_hz)
        self.amplitude = float(amplitude)
        self.frequency = float(frequency)
        self.noise = float(noise)
        self.present = present
        self._rng = np.random.default_rng(seed)
        self._clock = clock
        self._t0 = 0.0
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    def check(self) -> Optional[str]:
        return None if self.present else f"no {self.kind.value} on this device"

    def read(self, t: float) -> np.ndarray:
        """Noisy 3-axis value at simulation time ``t`` seconds."""
        w = 2.0 * math.pi * self.frequency
        roll = math.radians(self.amplitude * math.sin(w * t))
        if self.kind is SensorType.ACCELEROMETER:
            value = np.array([0.0, GRAVITY_CM_S2 * math.sin(roll), GRAVITY_CM_S2 * math.cos(roll)])
        else:
            roll_rate = self.amplitude * w * math.cos(w * t)
            pitch_rate = (self.amplitude / 2.0) * w * math.cos(w * t + math.pi / 2.0)
            value = np.array([roll_rate, pitch_rate, 0.0])
        if self.noise > 0.0:
            value = value + self._rng.normal(0.0, self.noise, size=3)
        return value

    def start(self) -> None:
        if self._handle is not None:
            return
        if not self.present:
            raise RuntimeError(f"{self.kind.value} is not present")
        self._t0 = self._clock()
        self._schedule()

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(1.0 / self.rate_hz, self._tick)

    def _tick(self) -> None:
        now = self._clock()
        v = self.read(now - self._t0)
        self._schedule()
        self._publish(SensorSample(self.kind, float(v[0]), float(v[1]), float(v[2]), now))
