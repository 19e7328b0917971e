import asyncio
import logging

from zeppslime.forward_server.lib.address import HardwareAddress
from zeppslime.forward_server.lib.heartbeat import HeartbeatDevice
from zeppslime.forward_server.lib.lifecycle import LifecycleLogger
from zeppslime.forward_server.lib.tracker import TrackerEvent
from zeppslime.forward_server.tests.fakes import FakeFactory


def test_heartbeat_uses_zero_address_and_logs_label(caplog):
    factory = FakeFactory()
    heartbeat = HeartbeatDevice(factory, LifecycleLogger(), "ZeppSlime v0.1.0")

    with caplog.at_level(logging.INFO, logger="forward_server.emulated_tracker"):
        asyncio.run(heartbeat.start())

    assert heartbeat.started
    handle = factory.created[0]
    assert handle.address == HardwareAddress.zero()
    assert handle.display_name == "ZeppSlime v0.1.0 heartbeat"
    assert 'Tracker "(HEARTBEAT)" is ready to search for SlimeVR server...' in caplog.text


def test_heartbeat_start_is_idempotent():
    factory = FakeFactory()
    heartbeat = HeartbeatDevice(factory, LifecycleLogger(), "ZeppSlime v0.1.0")

    async def scenario():
        await heartbeat.start()
        await heartbeat.start()

    asyncio.run(scenario())
    assert len(factory.created) == 1


def test_heartbeat_connect_does_not_flag_server():
    found = []
    factory = FakeFactory()
    heartbeat = HeartbeatDevice(factory, LifecycleLogger(on_server_found=lambda: found.append(1)), "Z")
    asyncio.run(heartbeat.start())

    heartbeat.handle.emit(TrackerEvent.CONNECTED, "10.0.0.2", 6969)

    assert found == []
    assert heartbeat.handle.metrics == []


def test_heartbeat_failure_is_contained(caplog):
    factory = FakeFactory()
    factory.failing.add(HardwareAddress.zero())
    heartbeat = HeartbeatDevice(factory, LifecycleLogger(), "Z")

    with caplog.at_level(logging.ERROR, logger="forward_server.heartbeat"):
        asyncio.run(heartbeat.start())

    assert not heartbeat.started
    assert "Heartbeat tracker failed to initialize" in caplog.text


def test_heartbeat_stop_closes_handle():
    factory = FakeFactory()
    heartbeat = HeartbeatDevice(factory, LifecycleLogger(), "Z")

    async def scenario():
        await heartbeat.start()
        await heartbeat.stop()
        await heartbeat.stop()

    asyncio.run(scenario())

    assert factory.created[0].closed
    assert not heartbeat.started
