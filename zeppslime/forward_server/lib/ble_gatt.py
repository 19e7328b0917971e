"""GATT peripheral the watch writes to, and decoding of those writes.

``BleGattHost`` advertises the ZeppSlime service through bless and hands
each characteristic write to ``decode_write``; decoded events are posted
onto the asyncio loop for the bridge.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from bless import BlessServer, GATTAttributePermissions, GATTCharacteristicProperties

from zeppslime.common.imu import (BUTTON_CHAR_UUID, BUTTON_MAP, IMU_CHAR_UUID, SERVICE_UUID,
                                  WHEEL_CHAR_UUID, WHEEL_DIRECTION_MAP, decode_code, parse_imu_json)
from zeppslime.forward_server.lib.events import ControlEvent

LOG = logging.getLogger("forward_server.ble")

ADVERTISED_NAME = "ZeppSlime Server"

SERVICE = {
    "uuid": SERVICE_UUID,
    "primary": True,
    "characteristics": [IMU_CHAR_UUID, BUTTON_CHAR_UUID, WHEEL_CHAR_UUID],
}


def decode_write(characteristic: str, value: bytes) -> Optional[ControlEvent]:
    """Translate one characteristic write into a control event.

    Returns None (after logging a warning) for anything unrecognised.
    """
    char = str(characteristic).lower()
    if not value:
        LOG.warning("Empty write on characteristic %s", char)
        return None

    if char == IMU_CHAR_UUID:
        try:
            frame = parse_imu_json(value)
        except ValueError as e:
            LOG.warning("Discarding IMU write: %s", e)
            return None
        return ControlEvent.imu(frame)

    if char == BUTTON_CHAR_UUID:
        button = decode_code(value, BUTTON_MAP)
        if button is None:
            LOG.warning("Unknown button pressed: %r", value)
            return None
        LOG.debug("Button pressed via BLE: %s", button)
        return ControlEvent.button(button)

    if char == WHEEL_CHAR_UUID:
        direction = decode_code(value, WHEEL_DIRECTION_MAP)
        if direction is None:
            LOG.warning("Unknown wheel direction: %r", value)
            return None
        LOG.debug("Wheel turned via BLE: %s", direction)
        return ControlEvent.wheel(direction)

    LOG.warning("Unknown characteristic write on %s: %r", char, value)
    return None


class BleGattHost:
    """Hosts the ZeppSlime GATT service and feeds decoded writes to ``sink``.

    bless may invoke the write callback off the loop thread, so events are
    re-posted with ``call_soon_threadsafe``.
    """

    def __init__(self,
                 sink: Callable[[ControlEvent], None],
                 name: str = ADVERTISED_NAME,
                 server_factory: Optional[Callable[..., Any]] = None):
        self._sink = sink
        self.name = name
        self._server_factory = server_factory or BlessServer
        self.server: Optional[Any] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def running(self) -> bool:
        return self.server is not None

    async def start(self) -> None:
        if self.server is not None:
            return
        self._loop = asyncio.get_running_loop()
        server = self._server_factory(name=self.name, loop=self._loop)
        server.read_request_func = self._on_read
        server.write_request_func = self._on_write

        await server.add_new_service(SERVICE["uuid"])
        for char_uuid in SERVICE["characteristics"]:
            await server.add_new_characteristic(
                SERVICE["uuid"],
                char_uuid,
                GATTCharacteristicProperties.write | GATTCharacteristicProperties.write_without_response,
                None,
                GATTAttributePermissions.writeable,
            )
        await server.start()
        self.server = server
        LOG.info('[BLE] advertising "%s" with service %s', self.name, SERVICE["uuid"])

    async def stop(self) -> None:
        if self.server is not None:
            server, self.server = self.server, None
            await server.stop()

    def _on_read(self, characteristic, **kwargs) -> bytearray:
        return characteristic.value or bytearray()

    def _on_write(self, characteristic, value, **kwargs) -> None:
        event = decode_write(characteristic.uuid, bytes(value or b""))
        if event is not None and self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._sink, event)
