import configparser

from pathlib import Path


class RelayParser:
    def __init__(self, filename="config.ini"):
        self.config = configparser.ConfigParser(inline_comment_prefixes=(';'))
        self.config.read(Path(filename))
        for section in ("relay", "transport", "sensors"):
            if not self.config.has_section(section):
                self.config.add_section(section)

    # Relay
    def parse_send_interval_ms(self):
        return self.config["relay"].getint("send_interval_ms", fallback=40)

    def parse_throttle(self):
        return self.config["relay"].get("throttle", fallback="drop").strip().lower()

    def parse_persistent_session(self):
        return self.config["relay"].getboolean("persistent_session", fallback=False)

    def parse_validate_schema(self):
        return self.config["relay"].getboolean("validate_schema", fallback=False)

    def parse_tracker(self):
        return self.config["relay"].get("tracker", fallback="").strip() or None


    # Transport
    def parse_transport_kind(self):
        return self.config["transport"].get("kind", fallback="ble").strip().lower()

    def parse_http_base_url(self):
        return self.config["transport"].get("http_base_url", fallback="http://192.168.1.127:5001")

    def parse_http_timeout(self):
        return self.config["transport"].getfloat("http_timeout", fallback=2.0)

    def parse_ble_scan_timeout(self):
        return self.config["transport"].getfloat("ble_scan_timeout", fallback=10.0)

    def parse_ble_device_name(self):
        return self.config["transport"].get("ble_device_name", fallback="").strip() or None

    def parse_mqtt_host(self):
        return self.config["transport"].get("mqtt_host", fallback="localhost")

    def parse_mqtt_port(self):
        return self.config["transport"].getint("mqtt_port", fallback=1883)

    def parse_mqtt_prefix(self):
        return self.config["transport"].get("mqtt_prefix", fallback="watch")


    # Sensors
    def parse_accelerometer(self) -> bool:
        return self.config["sensors"].getboolean("accelerometer", fallback=True)

    def parse_gyroscope(self) -> bool:
        return self.config["sensors"].getboolean("gyroscope", fallback=True)

    def parse_rate_hz(self) -> float:
        return self.config["sensors"].getfloat("rate_hz", fallback=50.0)

    def parse_amplitude(self) -> float:
        return self.config["sensors"].getfloat("amplitude", fallback=30.0)

    def parse_frequency(self) -> float:
        return self.config["sensors"].getfloat("frequency", fallback=0.5)

    def parse_noise(self) -> float:
        return self.config["sensors"].getfloat("noise", fallback=0.5)

    def parse_seed(self) -> int | None:
        seed = self.config["sensors"].get("seed", fallback="").strip()
        return int(seed) if seed else None
