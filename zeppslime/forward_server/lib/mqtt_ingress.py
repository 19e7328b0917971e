import asyncio
import logging
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from zeppslime.common.imu import BUTTON_MAP, WHEEL_DIRECTION_MAP, decode_code, parse_imu_json
from zeppslime.forward_server.lib.events import ControlEvent

LOG = logging.getLogger("forward_server.mqtt_ingress")


def decode_message(prefix: str, topic: str, payload: bytes) -> Optional[ControlEvent]:
    prefix = prefix.rstrip("/")
    if topic == f"{prefix}/imu":
        try:
            return ControlEvent.imu(parse_imu_json(payload))
        except ValueError as e:
            LOG.warning("Discarding IMU message: %s", e)
            return None
    if topic == f"{prefix}/button":
        button = decode_code(payload, BUTTON_MAP)
        if button is None:
            LOG.warning("Unknown button pressed: %r", payload)
            return None
        return ControlEvent.button(button)
    if topic == f"{prefix}/wheel":
        direction = decode_code(payload, WHEEL_DIRECTION_MAP)
        if direction is None:
            LOG.warning("Unknown wheel direction: %r", payload)
            return None
        return ControlEvent.wheel(direction)
    LOG.warning("Unexpected message on %s", topic)
    return None


class MqttIngress:
    """Subscribes to the watch topics and feeds decoded events to the bridge."""

    def __init__(self,
                 sink: Callable[[ControlEvent], None],
                 host: str = "localhost",
                 port: int = 1883,
                 prefix: str = "watch",
                 client_id: str = "zeppslime_forward",
                 client: Optional[mqtt.Client] = None):
        self._sink = sink
        self._host = host
        self._port = port
        self.prefix = prefix.rstrip("/")
        self._client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2,
                                             client_id=f"{client_id}-ingress")
        self._client.on_connect = self._on_connect
        self._client.on_message = self._on_message
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def topics(self) -> list[str]:
        return [f"{self.prefix}/imu", f"{self.prefix}/button", f"{self.prefix}/wheel"]

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        LOG.info("Connecting MQTT ingress to %s:%s (%s/#)", self._host, self._port, self.prefix)
        self._client.connect_async(self._host, self._port, keepalive=60)
        self._client.loop_start()

    def stop(self) -> None:
        try:
            self._client.loop_stop()
            self._client.disconnect()
        except Exception as e:
            LOG.debug("Exception while disconnecting MQTT ingress: %s", e)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            LOG.error("MQTT ingress connect failed: %s", reason_code)
            return
        for topic in self.topics:
            client.subscribe(topic)

    def _on_message(self, client, userdata, msg):
        event = decode_message(self.prefix, msg.topic, msg.payload)
        if event is not None and self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._sink, event)
