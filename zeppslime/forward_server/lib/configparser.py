from pathlib import Path
import configparser
from typing import Dict


class ForwardParser:
    def __init__(self, filename: str = "config.ini"):
        self.config = configparser.ConfigParser(inline_comment_prefixes=(";",))
        self.config.read(Path(filename))
        for section in ("slimevr", "logging", "http", "ble", "mqtt", "bridge"):
            if not self.config.has_section(section):
                self.config.add_section(section)

    #  SlimeVR server
    def parse_server_address(self) -> str:
        return self.config["slimevr"].get("server_address", fallback="255.255.255.255")

    def parse_server_port(self) -> int:
        return self.config["slimevr"].getint("server_port", fallback=6969)

    def parse_randomize_mac(self) -> bool:
        return self.config["slimevr"].getboolean("randomize_mac", fallback=False)

    def parse_firmware(self) -> str:
        return self.config["slimevr"].get("firmware", fallback="ZeppSlime")

    def parse_version(self) -> str:
        return self.config["slimevr"].get("version", fallback="0.1.0")

    #  Logging
    def parse_logging_mode(self) -> int:
        return self.config["logging"].getint("mode", fallback=1)

    #  HTTP ingress
    def parse_http_enabled(self) -> bool:
        return self.config["http"].getboolean("enabled", fallback=True)

    def parse_http_host(self) -> str:
        return self.config["http"].get("host", fallback="0.0.0.0")

    def parse_http_port(self) -> int:
        return self.config["http"].getint("port", fallback=5001)

    #  BLE GATT host
    def parse_ble_enabled(self) -> bool:
        return self.config["ble"].getboolean("enabled", fallback=True)

    def parse_ble_name(self) -> str:
        return self.config["ble"].get("name", fallback="ZeppSlime Server")

    #  MQTT (tracker emulation daemon + optional ingress)
    def parse_mqtt_host(self) -> str:
        return self.config["mqtt"].get("host", fallback="localhost")

    def parse_mqtt_port(self) -> int:
        return self.config["mqtt"].getint("port", fallback=1883)

    def parse_client_id(self) -> str:
        return self.config["mqtt"].get("client_id", fallback="zeppslime_forward")

    def parse_tracker_prefix(self) -> str:
        return self.config["mqtt"].get("tracker_prefix", fallback="zeppslime/trackers")

    def parse_ingress_enabled(self) -> bool:
        return self.config["mqtt"].getboolean("ingress_enabled", fallback=False)

    def parse_ingress_prefix(self) -> str:
        return self.config["mqtt"].get("ingress_prefix", fallback="watch")

    def parse_connect_timeout(self) -> float:
        return self.config["mqtt"].getfloat("connect_timeout", fallback=5.0)

    #  Bridge
    def parse_default_tracker(self) -> str:
        return self.config["bridge"].get("default_tracker", fallback="watch")

    def get_server_cfg(self) -> Dict[str, object]:
        return {
            "address": self.parse_server_address(),
            "port": self.parse_server_port(),
        }

    def get_http_cfg(self) -> Dict[str, object]:
        return {
            "enabled": self.parse_http_enabled(),
            "host": self.parse_http_host(),
            "port": self.parse_http_port(),
        }

    def get_ble_cfg(self) -> Dict[str, object]:
        return {
            "enabled": self.parse_ble_enabled(),
            "name": self.parse_ble_name(),
        }

    def get_mqtt_cfg(self) -> Dict[str, object]:
        return {
            "host": self.parse_mqtt_host(),
            "port": self.parse_mqtt_port(),
            "client_id": self.parse_client_id(),
            "tracker_prefix": self.parse_tracker_prefix(),
            "ingress_enabled": self.parse_ingress_enabled(),
            "ingress_prefix": self.parse_ingress_prefix(),
            "connect_timeout": self.parse_connect_timeout(),
        }
