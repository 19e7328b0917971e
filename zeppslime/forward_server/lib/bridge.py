import logging
from typing import Any, Dict, Optional

import numpy as np

from zeppslime.common.imu import ImuFrame
from zeppslime.forward_server.lib.address import IdentityAssigner
from zeppslime.forward_server.lib.events import ControlEvent, ControlKind
from zeppslime.forward_server.lib.heartbeat import HeartbeatDevice
from zeppslime.forward_server.lib.lifecycle import LifecycleLogger
from zeppslime.forward_server.lib.registration import RegistrationQueue
from zeppslime.forward_server.lib.registry import TrackerRegistry
from zeppslime.forward_server.lib.settings import BridgeConfig
from zeppslime.forward_server.lib.tracker import Metric, TrackerFactory, TrackerHandle

LOG = logging.getLogger("forward_server.backend")
CONN_LOG = logging.getLogger("forward_server.connection")


class Bridge:
    """Process-wide bridge state: registry, admission queue and heartbeat.

    Built once at startup; every method runs on the event-loop thread.
    """

    def __init__(self, config: BridgeConfig, factory: TrackerFactory,
                 rng: Optional[np.random.Generator] = None):
        self.config = config
        self.server_found = False

        self.registry = TrackerRegistry()
        self.lifecycle = LifecycleLogger(log_packets=config.log_packets,
                                         on_server_found=self._mark_server_found)
        self.assigner = IdentityAssigner(config.randomize_mac, rng)
        self.queue = RegistrationQueue(self.registry, self.assigner, factory, self.lifecycle,
                                       display_name=config.display_name)
        self.heartbeat = HeartbeatDevice(factory, self.lifecycle, config.display_name)

    def _mark_server_found(self) -> None:
        self.server_found = True

    async def start(self) -> None:
        await self.heartbeat.start()
        CONN_LOG.info("Looking for SlimeVR server on: %s:%s",
                      self.config.server_address, self.config.server_port)

    def add_tracker(self, name: str) -> None:
        self.queue.enqueue(name)

    async def remove_tracker(self, name: str) -> bool:
        handle = self.registry.remove(name)
        if handle is None:
            return False
        try:
            await handle.close()
        except Exception:
            LOG.exception("Tracker %s failed to close cleanly", name)
        LOG.info("Removed tracker: %s", name)
        return True

    async def shutdown(self) -> None:
        try:
            await self.queue.join()
            for name in self.registry.names():
                await self.remove_tracker(name)
        finally:
            try:
                await self.heartbeat.stop()
            except Exception:
                LOG.exception("Heartbeat tracker failed to close cleanly")

    def _tracker(self, name: str) -> Optional[TrackerHandle]:
        handle = self.registry.get(name)
        if handle is None and not self.queue.is_queued(name):
            self.add_tracker(name)
        return handle

    def handle_event(self, event: ControlEvent) -> None:
        if event.kind is ControlKind.BUTTON_PRESSED:
            button = event.payload.get("button")
            LOG.info("Button pressed: %s", button)
            handle = self.registry.get(self.config.default_tracker)
            if handle is not None:
                handle.send_metric(Metric.USER_ACTION, f"button:{button}")

        elif event.kind is ControlKind.WHEEL_TURNED:
            direction = event.payload.get("direction")
            LOG.info("Wheel turned: %s", direction)
            handle = self.registry.get(self.config.default_tracker)
            if handle is not None:
                handle.send_metric(Metric.USER_ACTION, f"wheel:{direction}")

        elif event.kind is ControlKind.IMU:
            frame: ImuFrame = event.payload["data"]
            LOG.debug("IMU data received: %s", frame.to_json())
            handle = self._tracker(frame.tracker or self.config.default_tracker)
            if handle is not None:
                handle.send_metric(Metric.ACCELERATION, frame.accel)
                handle.send_metric(Metric.ANGULAR_VELOCITY, frame.gyro)

    def status(self) -> Dict[str, Any]:
        return {
            "trackers": {name: str(self.registry.get(name).address) for name in sorted(self.registry)},
            "pending": self.queue.pending,
            "server_found": self.server_found,
            "heartbeat": str(self.heartbeat.address) if self.heartbeat.started else None,
            "server": f"{self.config.server_address}:{self.config.server_port}",
        }
