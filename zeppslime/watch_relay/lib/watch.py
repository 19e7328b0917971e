import logging
from typing import List, Optional, Sequence

from zeppslime.watch_relay.lib.relay import TelemetryRelay
from zeppslime.watch_relay.lib.sensors import Available, Probe, Sensor, SensorType, SimulatedSensor, Unavailable, probe
from zeppslime.watch_relay.lib.settings import RelayConfig
from zeppslime.watch_relay.lib.transport import Transport, make_transport

LOG = logging.getLogger("watch_relay.watch")


class WatchRelay:
    """Watch-side application object: sensors -> relay -> transport.

    Sensors that probe as unavailable are logged once and left out; the relay
    keeps running on whatever is left (which, with a single stream, means no
    frames, since a frame needs both).
    """

    def __init__(self, config: RelayConfig, sensors: Sequence[Sensor],
                 transport: Optional[Transport] = None, **relay_kwargs):
        self.config = config
        self.transport = transport if transport is not None else make_transport(config)
        self.probes: List[Probe] = [probe(s) for s in sensors]

        available = []
        for p in self.probes:
            if isinstance(p, Unavailable):
                LOG.warning("%s unavailable: %s", p.kind.value, p.reason)
            elif isinstance(p, Available):
                available.append(p.sensor)

        self.relay = TelemetryRelay(
            self.transport,
            producers=available,
            interval_s=config.send_interval_s,
            policy=config.throttle,
            persistent_session=config.persistent_session,
            validate_schema=config.validate_schema,
            tracker=config.tracker,
            **relay_kwargs,
        )

    @classmethod
    def simulated(cls, config: RelayConfig, transport: Optional[Transport] = None) -> "WatchRelay":
        seed = config.seed
        sensors = [
            SimulatedSensor(SensorType.ACCELEROMETER, config.rate_hz, config.amplitude, config.frequency,
                            config.noise, seed=seed, present=config.accelerometer),
            SimulatedSensor(SensorType.GYROSCOPE, config.rate_hz, config.amplitude, config.frequency,
                            config.noise, seed=None if seed is None else seed + 1, present=config.gyroscope),
        ]
        return cls(config, sensors, transport)

    @property
    def streaming(self) -> bool:
        return self.relay.streaming

    async def toggle(self) -> bool:
        """Start or stop streaming; returns the new state."""
        if self.relay.streaming:
            await self.relay.stop()
        else:
            await self.relay.start()
        return self.relay.streaming

    async def _ensure_open(self) -> bool:
        if self.transport.is_open:
            return True
        try:
            await self.transport.open()
        except Exception as e:
            LOG.warning("Transport open failed: %s", e)
            return False
        return True

    async def press_button(self, code: int) -> bool:
        if not await self._ensure_open():
            return False
        try:
            await self.transport.send_button(code)
        except Exception as e:
            LOG.warning("Button %s not delivered: %s", code, e)
            return False
        return True

    async def turn_wheel(self, direction: int) -> bool:
        if not await self._ensure_open():
            return False
        try:
            await self.transport.send_wheel(direction)
        except Exception as e:
            LOG.warning("Wheel %s not delivered: %s", direction, e)
            return False
        return True

    async def shutdown(self) -> None:
        await self.relay.stop()
        await self.relay.flush()
        await self.transport.close()
