"""Watch-to-bridge transports.

Every transport carries the same three payloads (IMU frame, button code,
wheel direction). Connect and write failures surface as ``TransportError``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
import paho.mqtt.client as mqtt
from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from zeppslime.common.imu import BUTTON_CHAR_UUID, IMU_CHAR_UUID, SERVICE_UUID, WHEEL_CHAR_UUID, ImuFrame
from zeppslime.watch_relay.lib.settings import RelayConfig, TransportKind

LOG = logging.getLogger("watch_relay.transport")


class TransportError(RuntimeError):
    """Connect or write failure on a transport."""


class Transport(ABC):
    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    async def open(self) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def send_imu(self, frame: ImuFrame) -> None:
        ...

    @abstractmethod
    async def send_button(self, code: int) -> None:
        ...

    @abstractmethod
    async def send_wheel(self, direction: int) -> None:
        ...


class HttpTransport(Transport):
    """GET-based HTTP surface: /imu?ax=.., /button/<n>, /wheel/<n>."""

    def __init__(self, base_url: str, timeout: float = 2.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                             transport=self._transport)
            LOG.info("[HTTP] session opened to %s", self.base_url)

    async def close(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    async def _get(self, path: str, params: Optional[dict] = None) -> str:
        if self._client is None:
            raise TransportError("HTTP transport is not open")
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {path} failed: {exc}") from exc
        return resp.text

    async def send_imu(self, frame: ImuFrame) -> None:
        params = frame.to_query()
        if frame.tracker:
            params["tracker"] = frame.tracker
        await self._get("/imu", params)

    async def send_button(self, code: int) -> None:
        await self._get(f"/button/{int(code)}")

    async def send_wheel(self, direction: int) -> None:
        await self._get(f"/wheel/{int(direction)}")


class BleTransport(Transport):
    """GATT central writing to the forward server's ZeppSlime service."""

    def __init__(self, scan_timeout: float = 10.0, device_name: Optional[str] = None):
        self.scan_timeout = scan_timeout
        self.device_name = device_name
        self._client: Optional[BleakClient] = None

    @property
    def is_open(self) -> bool:
        return self._client is not None and self._client.is_connected

    def _matches(self, device, adv) -> bool:
        uuids = [u.lower() for u in (adv.service_uuids or [])]
        if SERVICE_UUID not in uuids:
            return False
        return self.device_name is None or device.name == self.device_name

    async def open(self) -> None:
        if self.is_open:
            return
        try:
            device = await BleakScanner.find_device_by_filter(self._matches, timeout=self.scan_timeout)
        except (BleakError, OSError) as exc:
            raise TransportError(f"[BLE] scan failed: {exc}") from exc
        if device is None:
            raise TransportError(f"[BLE] no device advertising {SERVICE_UUID} "
                                 f"within {self.scan_timeout}s")
        LOG.info("[BLE] found device: %s - %s", device.name, device.address)

        client = BleakClient(device)
        try:
            await client.connect()
        except (BleakError, OSError, asyncio.TimeoutError) as exc:
            raise TransportError(f"[BLE] failed to connect to {device.address}: {exc}") from exc
        self._client = client
        LOG.info("[BLE] connected to device: %s", device.address)

    async def close(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            try:
                await client.disconnect()
            except (BleakError, OSError) as e:
                LOG.warning("[BLE] quit error: %s", e)

    async def _write(self, char_uuid: str, data: bytes) -> None:
        if not self.is_open:
            raise TransportError("[BLE] not connected")
        try:
            await self._client.write_gatt_char(char_uuid, data, response=True)
        except (BleakError, OSError) as exc:
            raise TransportError(f"[BLE] write error: {exc}") from exc

    async def send_imu(self, frame: ImuFrame) -> None:
        await self._write(IMU_CHAR_UUID, frame.to_json().encode("utf-8"))

    async def send_button(self, code: int) -> None:
        await self._write(BUTTON_CHAR_UUID, str(int(code)).encode("utf-8"))

    async def send_wheel(self, direction: int) -> None:
        await self._write(WHEEL_CHAR_UUID, str(int(direction)).encode("utf-8"))


class MqttTransport(Transport):
    """Publishes to ``<prefix>/imu|button|wheel`` for the bridge's MQTT ingress."""

    def __init__(self, host: str = "localhost", port: int = 1883, prefix: str = "watch",
                 client: Optional[mqtt.Client] = None):
        self.host = host
        self.port = port
        self.prefix = prefix.rstrip("/")
        self._client_override = client
        self.client: Optional[mqtt.Client] = None

    @property
    def is_open(self) -> bool:
        return self.client is not None

    async def open(self) -> None:
        if self.client is not None:
            return
        client = self._client_override or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, client.connect, self.host, self.port, 60)
        except (OSError, ValueError) as exc:
            raise TransportError(f"cannot connect to broker {self.host}:{self.port}: {exc}") from exc
        client.loop_start()
        self.client = client
        LOG.info("[MQTT] connected to %s:%s", self.host, self.port)

    async def close(self) -> None:
        if self.client is not None:
            client, self.client = self.client, None
            try:
                client.loop_stop()
                client.disconnect()
            except Exception as e:
                LOG.debug("Exception while disconnecting MQTT client: %s", e)

    def _publish(self, suffix: str, payload: str) -> None:
        if self.client is None:
            raise TransportError("MQTT transport is not open")
        info = self.client.publish(f"{self.prefix}/{suffix}", payload, qos=0, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"publish to {self.prefix}/{suffix} failed (rc={info.rc})")

    async def send_imu(self, frame: ImuFrame) -> None:
        self._publish("imu", frame.to_json())

    async def send_button(self, code: int) -> None:
        self._publish("button", str(int(code)))

    async def send_wheel(self, direction: int) -> None:
        self._publish("wheel", str(int(direction)))


def make_transport(config: RelayConfig) -> Transport:
    if config.transport is TransportKind.HTTP:
        return HttpTransport(config.http_base_url, timeout=config.http_timeout)
    if config.transport is TransportKind.MQTT:
        return MqttTransport(config.mqtt_host, config.mqtt_port, config.mqtt_prefix)
    return BleTransport(config.ble_scan_timeout, config.ble_device_name)
