import asyncio
import json
import logging
from collections import deque
from typing import Deque, Optional

from zeppslime.forward_server.lib.address import IdentityAssigner
from zeppslime.forward_server.lib.lifecycle import LifecycleLogger
from zeppslime.forward_server.lib.registry import TrackerRegistry
from zeppslime.forward_server.lib.tracker import SensorKind, SensorStatus, TrackerFactory

LOG = logging.getLogger("forward_server.tracker")


class RegistrationQueue:
    """Serializes admission of tracker names into the registry.

    ``enqueue`` may be called any number of times; at most one drain runs,
    and it keeps popping until the queue is empty, so names appended while a
    drain is suspended are picked up by that same drain.
    """

    def __init__(self,
                 registry: TrackerRegistry,
                 assigner: IdentityAssigner,
                 factory: TrackerFactory,
                 lifecycle: LifecycleLogger,
                 display_name: str = "ZeppSlime"):
        self.registry = registry
        self.assigner = assigner
        self.factory = factory
        self.lifecycle = lifecycle
        self.display_name = display_name

        self._pending: Deque[str] = deque()
        self._draining = False
        self._current: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def draining(self) -> bool:
        return self._draining

    @property
    def pending(self) -> list[str]:
        return list(self._pending)

    def is_queued(self, name: str) -> bool:
        """True while ``name`` waits in the queue or is being admitted."""
        return name == self._current or name in self._pending

    def enqueue(self, name: str) -> None:
        """Queue a name and start a drain unless one is already running.

        Must be called with a running event loop.
        """
        self._pending.append(name)
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.drain())

    async def join(self) -> None:
        """Wait until no drain is in progress."""
        while self._task is not None and not self._task.done():
            await self._task

    async def drain(self) -> None:
        if self._draining or not self._pending:
            return
        self._draining = True
        try:
            while self._pending:
                name = self._pending.popleft()
                if not name or name in self.registry:
                    continue
                self._current = name
                try:
                    await self._admit(name)
                finally:
                    self._current = None

            self.registry.sort()
            LOG.info("Connected devices: %s", json.dumps(self.registry.names()))
        finally:
            self._draining = False

    async def _admit(self, name: str) -> None:
        address = self.assigner.assign(name)
        handle = self.factory(address, self.display_name)
        subscriptions = self.lifecycle.attach(handle, name)
        try:
            await handle.initialize()
            await handle.register_sensor_channel(SensorKind.UNKNOWN, SensorStatus.OK)
        except Exception:
            LOG.exception('Tracker "%s" (%s) failed to initialize', name, address)
            for sub in subscriptions:
                sub.cancel()
            try:
                await handle.close()
            except Exception:
                LOG.debug("Failed to close tracker %s after init failure", name)
            return

        self.registry.insert(name, handle)
        self.registry.attach(name, subscriptions)
        LOG.info("Connected to tracker: %s", name)
