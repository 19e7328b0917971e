import logging
from typing import List, Optional

from zeppslime.forward_server.lib.address import HardwareAddress
from zeppslime.forward_server.lib.lifecycle import HEARTBEAT_LABEL, LifecycleLogger
from zeppslime.forward_server.lib.tracker import Subscription, TrackerFactory, TrackerHandle

LOG = logging.getLogger("forward_server.heartbeat")


class HeartbeatDevice:
    """Always-on tracker with an all-zero address, kept out of the registry.

    It lets the SlimeVR server see the bridge before any real tracker exists.
    """

    def __init__(self, factory: TrackerFactory, lifecycle: LifecycleLogger, display_name: str):
        self.address = HardwareAddress.zero()
        self.display_name = f"{display_name} heartbeat"
        self._factory = factory
        self._lifecycle = lifecycle
        self.handle: Optional[TrackerHandle] = None
        self._subscriptions: List[Subscription] = []

    @property
    def started(self) -> bool:
        return self.handle is not None

    async def start(self) -> None:
        if self.handle is not None:
            return
        handle = self._factory(self.address, self.display_name)
        self._subscriptions = self._lifecycle.attach(handle, HEARTBEAT_LABEL, heartbeat=True)
        try:
            await handle.initialize()
        except Exception:
            LOG.exception("Heartbeat tracker failed to initialize")
            for sub in self._subscriptions:
                sub.cancel()
            self._subscriptions = []
            return
        self.handle = handle

    async def stop(self) -> None:
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions = []
        if self.handle is not None:
            handle, self.handle = self.handle, None
            await handle.close()
