import asyncio
import logging
import math

import numpy as np
import pytest

from zeppslime.watch_relay.lib.sensors import (GRAVITY_CM_S2, Available, SensorType, SimulatedSensor,
                                               Unavailable, probe)


def test_probe_reports_available(caplog):
    sensor = SimulatedSensor(SensorType.ACCELEROMETER)
    with caplog.at_level(logging.INFO, logger="watch_relay.sensors"):
        result = probe(sensor)
    assert isinstance(result, Available)
    assert result.sensor is sensor
    assert "Accelerometer available: True" in caplog.text


def test_probe_reports_unavailable(caplog):
    sensor = SimulatedSensor(SensorType.GYROSCOPE, present=False)
    with caplog.at_level(logging.INFO, logger="watch_relay.sensors"):
        result = probe(sensor)
    assert isinstance(result, Unavailable)
    assert result.kind is SensorType.GYROSCOPE
    assert "gyroscope" in result.reason
    assert "Gyroscope available: False" in caplog.text


def test_accelerometer_reports_rotated_gravity():
    sensor = SimulatedSensor(SensorType.ACCELEROMETER, amplitude=30.0, frequency=0.5, noise=0.0)

    at_rest = sensor.read(0.0)
    np.testing.assert_allclose(at_rest, [0.0, 0.0, GRAVITY_CM_S2], atol=1e-9)

    # quarter period: full 30 degree roll
    tilted = sensor.read(0.5)
    assert tilted[1] == pytest.approx(GRAVITY_CM_S2 * math.sin(math.radians(30.0)))
    for t in (0.1, 0.7, 1.3):
        assert np.linalg.norm(sensor.read(t)) == pytest.approx(GRAVITY_CM_S2)


def test_gyroscope_reports_roll_rate():
    sensor = SimulatedSensor(SensorType.GYROSCOPE, amplitude=30.0, frequency=0.5, noise=0.0)
    w = 2.0 * math.pi * 0.5

    value = sensor.read(0.0)
    assert value[0] == pytest.approx(30.0 * w)
    assert value[1] == pytest.approx(0.0, abs=1e-9)
    assert value[2] == 0.0


def test_noise_is_reproducible_with_seed():
    a = SimulatedSensor(SensorType.GYROSCOPE, noise=1.0, seed=42)
    b = SimulatedSensor(SensorType.GYROSCOPE, noise=1.0, seed=42)
    clean = SimulatedSensor(SensorType.GYROSCOPE, noise=0.0)

    np.testing.assert_array_equal(a.read(0.2), b.read(0.2))
    assert not np.allclose(a.read(0.2), clean.read(0.2))


def test_missing_sensor_cannot_start():
    sensor = SimulatedSensor(SensorType.ACCELEROMETER, present=False)
    with pytest.raises(RuntimeError):
        sensor.start()


def test_rate_must_be_positive():
    with pytest.raises(ValueError):
        SimulatedSensor(SensorType.ACCELEROMETER, rate_hz=0)


def test_running_sensor_publishes_until_stopped():
    sensor = SimulatedSensor(SensorType.ACCELEROMETER, rate_hz=200.0, noise=0.0)
    samples = []
    sensor.on_change(samples.append)

    async def scenario():
        sensor.start()
        assert sensor.running
        await asyncio.sleep(0.1)
        sensor.stop()
        count = len(samples)
        await asyncio.sleep(0.03)
        return count

    count = asyncio.run(scenario())

    assert count >= 2
    assert len(samples) == count
    assert not sensor.running
    assert all(s.kind is SensorType.ACCELEROMETER for s in samples)
    assert samples[0].ts <= samples[-1].ts
