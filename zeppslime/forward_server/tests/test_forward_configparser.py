import dataclasses
import logging

import pytest
from pathlib import Path

from zeppslime.forward_server.lib.configparser import ForwardParser
from zeppslime.forward_server.lib.settings import BridgeConfig, load_config

VALID_CONFIG = """
[slimevr]
server_address = 192.168.1.50
server_port = 6970
randomize_mac = true
firmware = ZeppSlime
version = 1.2.3

[logging]
mode = 3

[http]
enabled = false
host = 127.0.0.1
port = 5002

[ble]
enabled = false
name = Wrist Bridge

[mqtt]
host = mosquitto
port = 1884
client_id = forward_test
tracker_prefix = test/trackers
ingress_enabled = true
ingress_prefix = wrist
connect_timeout = 2.5

[bridge]
default_tracker = left-wrist
"""

MINIMAL_CONFIG = """
[slimevr]
"""


def write_cfg(tmp_path: Path, content: str) -> str:
    p = tmp_path / "forward_config.ini"
    p.write_text(content.strip() + "\n", encoding="utf-8")
    return str(p)


def test_full_config_parsed_correctly(tmp_path):
    """All parse_* helpers should return the values from the file."""
    parser = ForwardParser(write_cfg(tmp_path, VALID_CONFIG))

    assert parser.parse_server_address() == "192.168.1.50"
    assert parser.parse_server_port() == 6970
    assert parser.parse_randomize_mac() is True
    assert parser.parse_version() == "1.2.3"
    assert parser.parse_logging_mode() == 3

    assert parser.get_http_cfg() == {"enabled": False, "host": "127.0.0.1", "port": 5002}
    assert parser.get_ble_cfg() == {"enabled": False, "name": "Wrist Bridge"}

    mqtt_cfg = parser.get_mqtt_cfg()
    assert mqtt_cfg["host"] == "mosquitto"
    assert mqtt_cfg["port"] == 1884
    assert mqtt_cfg["tracker_prefix"] == "test/trackers"
    assert mqtt_cfg["ingress_enabled"] is True
    assert mqtt_cfg["ingress_prefix"] == "wrist"
    assert mqtt_cfg["connect_timeout"] == pytest.approx(2.5)

    assert parser.parse_default_tracker() == "left-wrist"
    assert parser.get_server_cfg() == {"address": "192.168.1.50", "port": 6970}


def test_minimal_config_uses_defaults(tmp_path):
    """Missing sections and keys fall back to defaults without raising."""
    parser = ForwardParser(write_cfg(tmp_path, MINIMAL_CONFIG))

    assert parser.parse_server_address() == "255.255.255.255"
    assert parser.parse_server_port() == 6969
    assert parser.parse_randomize_mac() is False
    assert parser.parse_http_port() == 5001
    assert parser.parse_ble_enabled() is True
    assert parser.parse_ble_name() == "ZeppSlime Server"
    assert parser.parse_logging_mode() == 1
    assert parser.parse_mqtt_port() == 1883
    assert parser.parse_ingress_enabled() is False
    assert parser.parse_default_tracker() == "watch"


def test_missing_file_uses_defaults(tmp_path):
    cfg = load_config(str(tmp_path / "does_not_exist.ini"))
    assert cfg == BridgeConfig()


def test_load_config_builds_frozen_config(tmp_path):
    cfg = load_config(write_cfg(tmp_path, VALID_CONFIG))

    assert cfg.server_address == "192.168.1.50"
    assert cfg.server_port == 6970
    assert cfg.ble_enabled is False
    assert cfg.ble_name == "Wrist Bridge"
    assert cfg.randomize_mac is True
    assert cfg.http_enabled is False
    assert cfg.log_level == logging.DEBUG
    assert cfg.log_packets is True
    assert cfg.display_name == "ZeppSlime v1.2.3"

    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.server_port = 1


@pytest.mark.parametrize("section,key,value", [
    ("slimevr", "server_port", "0"),
    ("http", "port", "70000"),
    ("logging", "mode", "7"),
    ("mqtt", "connect_timeout", "0"),
    ("ble", "name", ""),
])
def test_invalid_values_raise(tmp_path, section, key, value):
    content = f"[{section}]\n{key} = {value}\n"
    with pytest.raises(ValueError):
        load_config(write_cfg(tmp_path, content))


def test_logging_modes_map_to_levels():
    assert BridgeConfig(logging_mode=0).log_level == logging.WARNING
    assert BridgeConfig(logging_mode=1).log_level == logging.INFO
    assert BridgeConfig(logging_mode=2).log_packets is False
