import asyncio
import logging

from zeppslime.watch_relay.lib.sensors import SensorType, SimulatedSensor, Unavailable
from zeppslime.watch_relay.lib.settings import RelayConfig, ThrottlePolicy
from zeppslime.watch_relay.lib.watch import WatchRelay
from zeppslime.watch_relay.tests.fakes import FakeClock, FakeTimer, FakeTransport, ManualSensor


def make_watch(config=None, transport=None, gyro_present=True):
    clock = FakeClock()
    accel = ManualSensor(SensorType.ACCELEROMETER, clock)
    gyro = ManualSensor(SensorType.GYROSCOPE, clock, present=gyro_present)
    transport = transport or FakeTransport()
    watch = WatchRelay(config or RelayConfig(), [accel, gyro], transport,
                       clock=clock, timer=FakeTimer(clock))
    return watch, accel, gyro, transport


def test_relay_configured_from_settings():
    config = RelayConfig(send_interval_ms=25, throttle=ThrottlePolicy.QUEUE, tracker="hip")
    watch, _, _, _ = make_watch(config)

    assert watch.relay.interval_s == 0.025
    assert watch.relay.policy is ThrottlePolicy.QUEUE
    assert watch.relay.tracker == "hip"


def test_unavailable_sensor_is_logged_and_skipped(caplog):
    with caplog.at_level(logging.WARNING, logger="watch_relay.watch"):
        watch, accel, gyro, _ = make_watch(gyro_present=False)

    assert watch.relay.producers == [accel]
    assert any(isinstance(p, Unavailable) for p in watch.probes)
    assert "gyroscope unavailable: disabled" in caplog.text


def test_single_stream_never_sends():
    watch, accel, gyro, transport = make_watch(gyro_present=False)

    async def scenario():
        await watch.toggle()
        accel.emit(1.0, 2.0, 3.0)
        gyro.emit(4.0, 5.0, 6.0)
        await watch.relay.flush()

    asyncio.run(scenario())
    assert transport.frames == []


def test_toggle_streams_frames_and_stops():
    watch, accel, gyro, transport = make_watch()

    async def scenario():
        assert await watch.toggle() is True
        accel.emit(1.0, 0.0, 0.0)
        gyro.emit(0.0, 1.0, 0.0)
        await watch.relay.flush()
        assert await watch.toggle() is False

    asyncio.run(scenario())

    assert len(transport.frames) == 1
    assert not watch.streaming
    assert not transport.is_open


def test_buttons_and_wheel_open_transport_lazily():
    watch, _, _, transport = make_watch()

    async def scenario():
        assert await watch.press_button(1)
        assert await watch.turn_wheel(0)

    asyncio.run(scenario())

    assert transport.opened == 1
    assert transport.buttons == [1]
    assert transport.wheels == [0]


def test_button_failure_is_reported(caplog):
    watch, _, _, transport = make_watch(transport=FakeTransport(fail_open=True))

    with caplog.at_level(logging.WARNING, logger="watch_relay.watch"):
        delivered = asyncio.run(watch.press_button(2))

    assert delivered is False
    assert "Transport open failed" in caplog.text

    failing = FakeTransport(fail_send=True)
    watch, _, _, _ = make_watch(transport=failing)
    assert asyncio.run(watch.turn_wheel(1)) is False


def test_shutdown_closes_session():
    watch, _, _, transport = make_watch(RelayConfig(persistent_session=True))

    async def scenario():
        await watch.toggle()
        await watch.toggle()
        assert transport.is_open
        await watch.shutdown()

    asyncio.run(scenario())
    assert not transport.is_open


def test_simulated_sensors_follow_config():
    config = RelayConfig(gyroscope=False, seed=5, rate_hz=20.0)
    watch = WatchRelay.simulated(config, FakeTransport())

    assert len(watch.relay.producers) == 1
    accel = watch.relay.producers[0]
    assert isinstance(accel, SimulatedSensor)
    assert accel.kind is SensorType.ACCELEROMETER
    assert accel.rate_hz == 20.0
