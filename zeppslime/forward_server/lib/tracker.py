"""Boundary of the tracker-emulation capability.

The wire protocol spoken to the SlimeVR server lives outside this package.
Everything the bridge needs from an emulated tracker is captured by
``TrackerHandle``; concrete implementations are injected through a factory
so queueing, dedup and logging can run against a fake.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from zeppslime.forward_server.lib.address import HardwareAddress

LOG = logging.getLogger("forward_server.tracker")


class TrackerEvent(Enum):
    READY            = "ready"
    SEARCHING        = "searching-for-server"
    CONNECTED        = "connected-to-server"
    DISCONNECTED     = "disconnected-from-server"
    ERROR            = "error"
    UNKNOWN_PACKET   = "unknown-incoming-packet"
    OUTGOING_PACKET  = "outgoing-packet"
    INCOMING_PACKET  = "incoming-packet"


class SensorKind(Enum):
    UNKNOWN       = 0
    ACCELEROMETER = 1
    GYROSCOPE     = 2


class SensorStatus(Enum):
    OFFLINE = 0
    OK      = 1
    ERROR   = 2


class Metric(Enum):
    TEMPERATURE      = "temperature"
    SIGNAL_STRENGTH  = "signal-strength"
    ROTATION         = "rotation"
    ACCELERATION     = "acceleration"
    ANGULAR_VELOCITY = "angular-velocity"
    BATTERY          = "battery"
    USER_ACTION      = "user-action"


class TrackerInitError(RuntimeError):
    """Raised when an emulated tracker cannot complete its startup."""


Handler = Callable[..., None]


class Subscription:
    """Token returned by ``subscribe``; ``cancel()`` detaches the handler."""

    def __init__(self, detach: Callable[[], None]):
        self._detach: Optional[Callable[[], None]] = detach

    @property
    def active(self) -> bool:
        return self._detach is not None

    def cancel(self) -> None:
        if self._detach is not None:
            detach, self._detach = self._detach, None
            detach()


class TrackerHandle(ABC):
    """One emulated tracker device.

    Subclasses implement the I/O; handler bookkeeping and dispatch live here.
    ``emit`` must only be called from the event-loop thread.
    """

    def __init__(self, address: HardwareAddress, display_name: str):
        self.address = address
        self.display_name = display_name
        self._handlers: Dict[TrackerEvent, List[Handler]] = {}

    def subscribe(self, event: TrackerEvent, handler: Handler) -> Subscription:
        handlers = self._handlers.setdefault(event, [])
        handlers.append(handler)

        def _detach() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return Subscription(_detach)

    def emit(self, event: TrackerEvent, *args: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception:
                LOG.exception("Handler for %s on %s failed", event.value, self.address)

    @abstractmethod
    async def initialize(self) -> None:
        ...

    @abstractmethod
    async def register_sensor_channel(self, kind: SensorKind, status: SensorStatus) -> int:
        """Add a sensor channel and return its id."""

    @abstractmethod
    def send_metric(self, metric: Metric, value: Any, sensor_id: int = 0) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


TrackerFactory = Callable[[HardwareAddress, str], TrackerHandle]
