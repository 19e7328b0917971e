import asyncio
import json
from types import SimpleNamespace

import pytest

from zeppslime.forward_server.lib.address import HardwareAddress
from zeppslime.forward_server.lib.mqtt_tracker import MqttTracker, mqtt_tracker_factory
from zeppslime.forward_server.lib.settings import BridgeConfig
from zeppslime.forward_server.lib.tracker import (Metric, SensorKind, SensorStatus, TrackerEvent,
                                                  TrackerInitError)

ADDRESS = HardwareAddress(bytes([0x02, 0x11, 0x22, 0x33, 0x44, 0x55]))
BASE = "zeppslime/trackers/021122334455"


class FakePahoClient:
    """Stands in for paho's Client; connect callbacks fire from loop_start."""

    def __init__(self, accept=True, respond=True, publish_rc=0):
        self.accept = accept
        self.respond = respond
        self.publish_rc = publish_rc
        self.published = []
        self.subscribed = []
        self.will = None
        self.loop_running = False
        self.disconnected = False

    def will_set(self, topic, payload=None, qos=0, retain=False):
        self.will = (topic, json.loads(payload), retain)

    def connect_async(self, host, port, keepalive=60):
        self.target = (host, port)

    def loop_start(self):
        self.loop_running = True
        if self.respond:
            self.on_connect(self, None, {}, SimpleNamespace(is_failure=not self.accept), None)

    def loop_stop(self):
        self.loop_running = False

    def disconnect(self):
        self.disconnected = True

    def subscribe(self, topic, qos=0):
        self.subscribed.append(topic)

    def publish(self, topic, payload, qos=0, retain=False):
        self.published.append((topic, json.loads(payload), retain))
        return SimpleNamespace(rc=self.publish_rc)

    def topics(self):
        return [t for t, _, _ in self.published]


def make_tracker(client, **kwargs):
    return MqttTracker(ADDRESS, "ZeppSlime v0.1.0", client=client, **kwargs)


def test_initialize_announces_and_goes_online():
    client = FakePahoClient()
    tracker = make_tracker(client, server_address="10.0.0.2", server_port=6970)
    events = []
    tracker.subscribe(TrackerEvent.READY, lambda: events.append("ready"))
    tracker.subscribe(TrackerEvent.SEARCHING, lambda: events.append("searching"))

    async def scenario():
        await tracker.initialize()
        await tracker.register_sensor_channel(SensorKind.UNKNOWN, SensorStatus.OK)

    asyncio.run(scenario())

    assert events == ["ready", "searching"]
    assert client.subscribed == [f"{BASE}/event"]
    assert client.will == (f"{BASE}/status", client.will[1], True)
    assert client.will[1]["status"] == "offline"
    assert client.topics() == [f"{BASE}/status", f"{BASE}/announce", f"{BASE}/announce"]

    announce = client.published[-1][1]
    assert announce["mac"] == "02:11:22:33:44:55"
    assert announce["server"] == {"address": "10.0.0.2", "port": 6970}
    assert announce["sensors"] == [{"id": 0, "kind": "UNKNOWN", "status": "OK"}]


def test_initialize_times_out():
    client = FakePahoClient(respond=False)
    tracker = make_tracker(client, connect_timeout=0.05)

    with pytest.raises(TrackerInitError):
        asyncio.run(tracker.initialize())
    assert not client.loop_running


def test_refused_connection_raises_init_error():
    client = FakePahoClient(accept=False)
    tracker = make_tracker(client)

    with pytest.raises(TrackerInitError):
        asyncio.run(tracker.initialize())


def test_send_metric_publishes_json():
    client = FakePahoClient()
    tracker = make_tracker(client)

    async def scenario():
        await tracker.initialize()
        tracker.send_metric(Metric.ACCELERATION, (1.0, 2.0, 3.0))
        tracker.send_metric(Metric.TEMPERATURE, 420.69)

    asyncio.run(scenario())

    topic, payload, retain = client.published[-2]
    assert topic == f"{BASE}/metric/acceleration"
    assert payload["value"] == [1.0, 2.0, 3.0]
    assert payload["sensor"] == 0
    assert payload["ts"].endswith("Z")
    assert retain is False
    assert client.published[-1][0] == f"{BASE}/metric/temperature"


def test_failed_publish_emits_error():
    client = FakePahoClient(publish_rc=4)
    tracker = make_tracker(client)
    errors = []
    tracker.subscribe(TrackerEvent.ERROR, errors.append)

    asyncio.run(tracker.initialize())

    assert errors
    assert isinstance(errors[0], ConnectionError)


def test_daemon_events_are_mapped():
    client = FakePahoClient()
    tracker = make_tracker(client)
    seen = []
    tracker.subscribe(TrackerEvent.CONNECTED, lambda ip, port: seen.append(("connected", ip, port)))
    tracker.subscribe(TrackerEvent.DISCONNECTED, lambda reason: seen.append(("disconnected", reason)))
    tracker.subscribe(TrackerEvent.UNKNOWN_PACKET, lambda raw: seen.append(("unknown", raw)))
    incoming = []
    tracker.subscribe(TrackerEvent.INCOMING_PACKET, incoming.append)

    def deliver(payload, topic=f"{BASE}/event"):
        tracker._on_message(client, None, SimpleNamespace(topic=topic, payload=payload))

    async def scenario():
        await tracker.initialize()
        deliver(b'{"event": "connected-to-server", "ip": "10.0.0.2", "port": 6969}')
        deliver(b'{"event": "disconnected-from-server", "reason": "timeout"}')
        deliver(b'{"event": "mystery"}')
        deliver(b"not json")
        deliver(b'{"event": "connected-to-server", "port": "x"}')
        deliver(b'{"event": "connected-to-server"}', topic="elsewhere")
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert seen == [
        ("connected", "10.0.0.2", 6969),
        ("disconnected", "timeout"),
        ("unknown", '{"event": "mystery"}'),
        ("unknown", "not json"),
        ("unknown", '{"event": "connected-to-server", "port": "x"}'),
    ]
    assert len(incoming) == 5


def test_close_publishes_offline_and_ignores_later_disconnect():
    client = FakePahoClient()
    tracker = make_tracker(client)
    errors = []
    tracker.subscribe(TrackerEvent.ERROR, errors.append)

    async def scenario():
        await tracker.initialize()
        await tracker.close()
        await tracker.close()
        tracker._on_disconnect(client, None, {}, "normal", None)
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert client.published[-1][0] == f"{BASE}/status"
    assert client.published[-1][1]["status"] == "offline"
    assert client.disconnected
    assert errors == []


def test_factory_uses_config():
    config = BridgeConfig(server_address="10.1.1.1", mqtt_host="broker", tracker_prefix="t/")
    tracker = mqtt_tracker_factory(config)(ADDRESS, "name")

    assert tracker.server_address == "10.1.1.1"
    assert tracker.broker_host == "broker"
    assert tracker.base_topic == "t/021122334455"
