import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Optional, Sequence, Set

from zeppslime.common.imu import ImuFrame, schema_errors
from zeppslime.watch_relay.lib.sensors import Sensor, SensorSample, SensorType
from zeppslime.watch_relay.lib.settings import ThrottlePolicy
from zeppslime.watch_relay.lib.transport import Transport

LOG = logging.getLogger("watch_relay.relay")

# (delay_s, callback) -> handle with cancel(); asyncio's loop.call_later by default
Timer = Callable[[float, Callable[[], None]], Any]


def _call_later(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


@dataclass
class RelayState:
    last_send: Optional[float] = None
    send_pending: bool = False


class TelemetryRelay:
    """Merges accelerometer and gyroscope streams into rate-limited IMU frames.

    A frame is only built when both streams hold a current sample. Attempts
    closer than ``interval_s`` to the previous send are dropped, or with the
    QUEUE policy one of them is retried once the window reopens; further
    attempts while that retry is pending are dropped.
    """

    def __init__(self,
                 transport: Transport,
                 producers: Sequence[Sensor] = (),
                 interval_s: float = 0.040,
                 policy: ThrottlePolicy = ThrottlePolicy.DROP,
                 persistent_session: bool = False,
                 validate_schema: bool = False,
                 tracker: Optional[str] = None,
                 clock: Callable[[], float] = time.monotonic,
                 timer: Timer = _call_later):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.transport = transport
        self.producers = list(producers)
        self.interval_s = float(interval_s)
        self.policy = policy
        self.persistent_session = persistent_session
        self.validate_schema = validate_schema
        self.tracker = tracker
        self._clock = clock
        self._timer = timer

        self.state = RelayState()
        self.accel: Optional[SensorSample] = None
        self.gyro: Optional[SensorSample] = None
        self._streaming = False
        self._generation = 0
        self._retry = None
        self._writes: Set[asyncio.Task] = set()

        self.sent = 0
        self.suppressed = 0
        self.failures = 0

        for producer in self.producers:
            producer.on_change(self.on_sample)

    @property
    def streaming(self) -> bool:
        return self._streaming

    @property
    def retry_pending(self) -> bool:
        return self._retry is not None

    def _reset(self) -> None:
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None
        self.state = RelayState()
        self.accel = None
        self.gyro = None

    async def start(self) -> None:
        if self._streaming:
            return
        self._reset()
        self._streaming = True

        for producer in self.producers:
            try:
                producer.start()
            except Exception as e:
                LOG.warning("Failed to start %s: %s", producer.kind.value, e)

        if not self.transport.is_open:
            try:
                await self.transport.open()
            except Exception as e:
                LOG.warning("Transport open failed: %s", e)
        LOG.info("Streaming enabled")

    async def stop(self) -> None:
        if not self._streaming:
            return
        self._streaming = False
        self._generation += 1
        self._reset()

        for producer in self.producers:
            try:
                producer.stop()
            except Exception as e:
                LOG.warning("Failed to stop %s: %s", producer.kind.value, e)

        if not self.persistent_session:
            await self.transport.close()
        LOG.info("Streaming disabled")

    async def flush(self) -> None:
        """Wait for in-flight transport writes."""
        if self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)

    def on_sample(self, sample: SensorSample) -> None:
        if not self._streaming:
            return
        if sample.kind is SensorType.ACCELEROMETER:
            self.accel = sample
        else:
            self.gyro = sample
        self.try_send()

    def try_send(self) -> bool:
        """Attempt one send; returns True if a frame went to the transport."""
        if not self._streaming or self.accel is None or self.gyro is None:
            return False

        now = self._clock()
        if self.state.last_send is not None:
            elapsed = now - self.state.last_send
            if elapsed < self.interval_s:
                self.suppressed += 1
                if self.policy is ThrottlePolicy.QUEUE and not self.state.send_pending:
                    self.state.send_pending = True
                    self._retry = self._timer(self.interval_s - elapsed, self._fire_retry)
                return False

        frame = ImuFrame.from_axes(self.accel.axes, self.gyro.axes, tracker=self.tracker)
        if self.validate_schema:
            errors = schema_errors(frame.model_dump(exclude_none=True))
            if errors:
                LOG.warning("Outgoing frame failed schema validation: %s", errors[0])
                return False

        self.state.last_send = now
        self.sent += 1
        self._spawn(self._deliver(frame, self._generation))
        return True

    def _fire_retry(self) -> None:
        self._retry = None
        self.state.send_pending = False
        self.try_send()

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _deliver(self, frame: ImuFrame, generation: int) -> None:
        if generation != self._generation:
            LOG.debug("Streaming stopped, frame dropped")
            return
        if not self.transport.is_open:
            LOG.debug("Transport not ready, frame dropped")
            return
        try:
            await self.transport.send_imu(frame)
        except Exception as e:
            self.failures += 1
            LOG.warning("IMU write error: %s", e)
