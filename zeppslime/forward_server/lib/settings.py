"""Immutable forward-server configuration built from the INI parser."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from zeppslime.forward_server.lib.configparser import ForwardParser


# logging mode -> stdlib level; mode 3 additionally logs every protocol frame
LOGGING_LEVELS = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG, 3: logging.DEBUG}


def _check_port(val: int, what: str) -> int:
    if not isinstance(val, int) or not 0 < val < 65536:
        raise ValueError(f"Invalid {what} {val}. Valid values are 1..65535.")
    return val


@dataclass(frozen=True)
class BridgeConfig:
    server_address: str = "255.255.255.255"
    server_port: int = 6969
    randomize_mac: bool = False
    firmware: str = "ZeppSlime"
    version: str = "0.1.0"
    logging_mode: int = 1

    http_enabled: bool = True
    http_host: str = "0.0.0.0"
    http_port: int = 5001

    ble_enabled: bool = True
    ble_name: str = "ZeppSlime Server"

    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    client_id: str = "zeppslime_forward"
    tracker_prefix: str = "zeppslime/trackers"
    ingress_enabled: bool = False
    ingress_prefix: str = "watch"
    connect_timeout: float = 5.0

    default_tracker: str = "watch"

    def __post_init__(self) -> None:
        _check_port(self.server_port, "server port")
        _check_port(self.http_port, "HTTP port")
        _check_port(self.mqtt_port, "MQTT port")
        if self.logging_mode not in LOGGING_LEVELS:
            raise ValueError(f"Invalid logging mode {self.logging_mode}. "
                             f"Valid values are {sorted(LOGGING_LEVELS)}.")
        if not self.ble_name.strip():
            raise ValueError("BLE advertised name must be a non-empty string")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")
        if not self.default_tracker.strip():
            raise ValueError("default_tracker must be a non-empty string")

    @property
    def log_level(self) -> int:
        return LOGGING_LEVELS[self.logging_mode]

    @property
    def log_packets(self) -> bool:
        return self.logging_mode == 3

    @property
    def display_name(self) -> str:
        return f"{self.firmware} v{self.version}"


def load_config(path: str) -> BridgeConfig:
    parser = ForwardParser(path)
    server_cfg = parser.get_server_cfg()
    http_cfg = parser.get_http_cfg()
    ble_cfg = parser.get_ble_cfg()
    mqtt_cfg = parser.get_mqtt_cfg()
    return BridgeConfig(
        server_address=server_cfg["address"],
        server_port=server_cfg["port"],
        randomize_mac=parser.parse_randomize_mac(),
        firmware=parser.parse_firmware(),
        version=parser.parse_version(),
        logging_mode=parser.parse_logging_mode(),
        http_enabled=http_cfg["enabled"],
        http_host=http_cfg["host"],
        http_port=http_cfg["port"],
        ble_enabled=ble_cfg["enabled"],
        ble_name=ble_cfg["name"],
        mqtt_host=mqtt_cfg["host"],
        mqtt_port=mqtt_cfg["port"],
        client_id=mqtt_cfg["client_id"],
        tracker_prefix=mqtt_cfg["tracker_prefix"],
        ingress_enabled=mqtt_cfg["ingress_enabled"],
        ingress_prefix=mqtt_cfg["ingress_prefix"],
        connect_timeout=mqtt_cfg["connect_timeout"],
        default_tracker=parser.parse_default_tracker(),
    )
