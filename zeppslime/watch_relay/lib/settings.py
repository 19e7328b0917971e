"""Immutable watch-relay configuration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from zeppslime.watch_relay.lib.configparser import RelayParser


class ThrottlePolicy(Enum):
    DROP  = "drop"    # suppressed sends are discarded
    QUEUE = "queue"   # one suppressed send is retried when the window opens


class TransportKind(Enum):
    BLE  = "ble"
    HTTP = "http"
    MQTT = "mqtt"


@dataclass(frozen=True)
class RelayConfig:
    send_interval_ms: int = 40
    throttle: ThrottlePolicy = ThrottlePolicy.DROP
    persistent_session: bool = False
    validate_schema: bool = False
    tracker: str | None = None

    transport: TransportKind = TransportKind.BLE
    http_base_url: str = "http://192.168.1.127:5001"
    http_timeout: float = 2.0
    ble_scan_timeout: float = 10.0
    ble_device_name: str | None = None
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_prefix: str = "watch"

    accelerometer: bool = True
    gyroscope: bool = True
    rate_hz: float = 50.0
    amplitude: float = 30.0
    frequency: float = 0.5
    noise: float = 0.5
    seed: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.send_interval_ms, int) or self.send_interval_ms <= 0:
            raise ValueError("send_interval_ms must be a positive integer")
        if self.rate_hz <= 0:
            raise ValueError("rate_hz must be positive")
        if not 0 < self.mqtt_port < 65536:
            raise ValueError(f"Invalid MQTT port {self.mqtt_port}")
        if self.http_timeout <= 0 or self.ble_scan_timeout <= 0:
            raise ValueError("transport timeouts must be positive")

    @property
    def send_interval_s(self) -> float:
        return self.send_interval_ms / 1000.0


def _enum(cls, val: str, what: str):
    try:
        return cls(val)
    except ValueError:
        raise ValueError(f"Invalid {what} {val!r}. "
                         f"Valid values are {[e.value for e in cls]}.") from None


def load_config(path: str) -> RelayConfig:
    parser = RelayParser(path)
    return RelayConfig(
        send_interval_ms=parser.parse_send_interval_ms(),
        throttle=_enum(ThrottlePolicy, parser.parse_throttle(), "throttle policy"),
        persistent_session=parser.parse_persistent_session(),
        validate_schema=parser.parse_validate_schema(),
        tracker=parser.parse_tracker(),
        transport=_enum(TransportKind, parser.parse_transport_kind(), "transport kind"),
        http_base_url=parser.parse_http_base_url(),
        http_timeout=parser.parse_http_timeout(),
        ble_scan_timeout=parser.parse_ble_scan_timeout(),
        ble_device_name=parser.parse_ble_device_name(),
        mqtt_host=parser.parse_mqtt_host(),
        mqtt_port=parser.parse_mqtt_port(),
        mqtt_prefix=parser.parse_mqtt_prefix(),
        accelerometer=parser.parse_accelerometer(),
        gyroscope=parser.parse_gyroscope(),
        rate_hz=parser.parse_rate_hz(),
        amplitude=parser.parse_amplitude(),
        frequency=parser.parse_frequency(),
        noise=parser.parse_noise(),
        seed=parser.parse_seed(),
    )
