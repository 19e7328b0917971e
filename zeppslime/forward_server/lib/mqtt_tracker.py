import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import paho.mqtt.client as mqtt

from zeppslime.forward_server.lib.address import HardwareAddress
from zeppslime.forward_server.lib.settings import BridgeConfig
from zeppslime.forward_server.lib.tracker import (Metric, SensorKind, SensorStatus, TrackerEvent,
                                                  TrackerFactory, TrackerHandle, TrackerInitError)

LOG = logging.getLogger("forward_server.mqtt_tracker")


def now_iso() -> str:
    """Return ISO-8601 UTC timestamp with milliseconds and trailing 'Z'."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MqttTracker(TrackerHandle):
    """Emulated tracker whose SlimeVR wire protocol is run by an external daemon.

    Topics, under ``<prefix>/<mac hex>``:
        announce        retained device description (name, server, sensors)
        status          online/offline, with an offline Last-Will
        metric/<kind>   outgoing metric values
        event           daemon -> bridge lifecycle notifications

    paho runs its network loop on its own thread; every callback is
    re-posted onto the asyncio loop before any handler sees it.
    """

    def __init__(self,
                 address: HardwareAddress,
                 display_name: str,
                 server_address: str = "255.255.255.255",
                 server_port: int = 6969,
                 broker_host: str = "localhost",
                 broker_port: int = 1883,
                 prefix: str = "zeppslime/trackers",
                 connect_timeout: float = 5.0,
                 client: Optional[mqtt.Client] = None):
        super().__init__(address, display_name)
        self.server_address = server_address
        self.server_port = server_port
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.connect_timeout = connect_timeout
        self.base_topic = f"{prefix.rstrip('/')}/{address.topic_id}"
        self.qos = 1

        self.client: Optional[mqtt.Client] = client
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected: Optional[asyncio.Future] = None
        self._channels: List[Dict[str, Any]] = []
        self._closed = False

    @property
    def event_topic(self) -> str:
        return f"{self.base_topic}/event"

    @property
    def status_topic(self) -> str:
        return f"{self.base_topic}/status"

    def _setup_mqtt_client(self) -> None:
        if self.client is None:
            self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2,
                                      client_id=f"zeppslime-{self.address.topic_id}")
        lwt_payload = json.dumps({"status": "offline", "ts": now_iso()})
        self.client.will_set(self.status_topic, payload=lwt_payload, qos=1, retain=True)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

    async def initialize(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._connected = self._loop.create_future()
        self._setup_mqtt_client()

        LOG.debug("Connecting tracker %s to broker %s:%s", self.address, self.broker_host, self.broker_port)
        try:
            self.client.connect_async(self.broker_host, self.broker_port, keepalive=60)
            self.client.loop_start()
        except (OSError, ValueError) as exc:
            raise TrackerInitError(f"cannot reach broker {self.broker_host}:{self.broker_port}: {exc}") from exc

        try:
            await asyncio.wait_for(asyncio.shield(self._connected), self.connect_timeout)
        except asyncio.TimeoutError:
            self.client.loop_stop()
            raise TrackerInitError(
                f"broker {self.broker_host}:{self.broker_port} did not accept the connection "
                f"within {self.connect_timeout}s") from None
        except ConnectionError as exc:
            self.client.loop_stop()
            raise TrackerInitError(str(exc)) from exc

        self._publish("status", {"status": "online", "ts": now_iso()}, retain=True)
        self._announce()
        self.emit(TrackerEvent.READY)
        self.emit(TrackerEvent.SEARCHING)

    async def register_sensor_channel(self, kind: SensorKind, status: SensorStatus) -> int:
        sensor_id = len(self._channels)
        self._channels.append({"id": sensor_id, "kind": kind.name, "status": status.name})
        self._announce()
        return sensor_id

    def send_metric(self, metric: Metric, value: Any, sensor_id: int = 0) -> None:
        if isinstance(value, tuple):
            value = list(value)
        self._publish(f"metric/{metric.value}", {"sensor": sensor_id, "value": value, "ts": now_iso()})

    async def close(self) -> None:
        if self._closed or self.client is None:
            return
        self._closed = True
        try:
            self._publish("status", {"status": "offline", "ts": now_iso()}, retain=True)
            self.client.loop_stop()
            self.client.disconnect()
        except Exception as e:
            LOG.debug("Exception while disconnecting tracker %s: %s", self.address, e)

    def _announce(self) -> None:
        self._publish("announce", {
            "mac": str(self.address),
            "name": self.display_name,
            "server": {"address": self.server_address, "port": self.server_port},
            "sensors": self._channels,
        }, retain=True)

    def _publish(self, suffix: str, payload: Dict[str, Any], retain: bool = False) -> None:
        topic = f"{self.base_topic}/{suffix}"
        text = json.dumps(payload, separators=(",", ":"))
        info = self.client.publish(topic, text, qos=self.qos, retain=retain)
        self.emit(TrackerEvent.OUTGOING_PACKET, f"{topic} {text}")
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.emit(TrackerEvent.ERROR, ConnectionError(f"publish to {topic} failed (rc={info.rc})"))

    #  paho callbacks (network thread)
    def _post(self, event: TrackerEvent, *args: Any) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.emit, event, *args)

    def _resolve_connect(self, error: Optional[Exception]) -> None:
        if self._connected is None or self._connected.done():
            return
        if error is None:
            self._connected.set_result(True)
        else:
            self._connected.set_exception(error)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            LOG.error("MQTT connect failed for tracker %s: %s", self.address, reason_code)
            error = ConnectionError(f"broker refused connection: {reason_code}")
            self._loop.call_soon_threadsafe(self._resolve_connect, error)
            return
        client.subscribe(self.event_topic, qos=self.qos)
        self._loop.call_soon_threadsafe(self._resolve_connect, None)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        if self._closed:
            return
        LOG.warning("Tracker %s lost broker connection (rc=%s)", self.address, reason_code)
        self._post(TrackerEvent.ERROR, ConnectionError(f"broker connection lost: {reason_code}"))

    def _on_message(self, client, userdata, msg):
        if msg.topic != self.event_topic:
            return
        raw = msg.payload.decode("utf-8", errors="replace")
        self._post(TrackerEvent.INCOMING_PACKET, raw)
        try:
            data = json.loads(raw)
            name = str(data.get("event", ""))
            if name == TrackerEvent.CONNECTED.value:
                peer = (str(data.get("ip", "")), int(data.get("port", 0)))
        except (ValueError, TypeError, AttributeError):
            self._post(TrackerEvent.UNKNOWN_PACKET, raw)
            return

        if name == TrackerEvent.CONNECTED.value:
            self._post(TrackerEvent.CONNECTED, *peer)
        elif name == TrackerEvent.DISCONNECTED.value:
            self._post(TrackerEvent.DISCONNECTED, str(data.get("reason", "unknown")))
        elif name == TrackerEvent.SEARCHING.value:
            self._post(TrackerEvent.SEARCHING)
        elif name == TrackerEvent.ERROR.value:
            self._post(TrackerEvent.ERROR, RuntimeError(str(data.get("message", "daemon error"))))
        else:
            self._post(TrackerEvent.UNKNOWN_PACKET, raw)


def mqtt_tracker_factory(config: BridgeConfig) -> TrackerFactory:
    def _make(address: HardwareAddress, display_name: str) -> MqttTracker:
        return MqttTracker(
            address,
            display_name,
            server_address=config.server_address,
            server_port=config.server_port,
            broker_host=config.mqtt_host,
            broker_port=config.mqtt_port,
            prefix=config.tracker_prefix,
            connect_timeout=config.connect_timeout,
        )
    return _make
