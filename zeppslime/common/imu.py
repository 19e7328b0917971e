"""Wire definitions shared by the watch relay and the forward server."""

import json
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator
from pydantic import BaseModel


# GATT surface advertised by the forward server
SERVICE_UUID = "fb0e0c26-a91d-4df7-9b52-692b023c63b3"
IMU_CHAR_UUID = "fb0e0c27-a91d-4df7-9b52-692b023c63b3"
BUTTON_CHAR_UUID = "fb0e0c28-a91d-4df7-9b52-692b023c63b3"
WHEEL_CHAR_UUID = "fb0e0c29-a91d-4df7-9b52-692b023c63b3"

BUTTON_MAP: Dict[int, str] = {1: "upper", 2: "lower", 3: "something_else"}
WHEEL_DIRECTION_MAP: Dict[int, str] = {0: "left", 1: "right"}

IMU_FIELDS = ("ax", "ay", "az", "gx", "gy", "gz")

IMU_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        **{k: {"type": "number"} for k in IMU_FIELDS},
        "tracker": {"type": "string", "minLength": 1},
    },
    "required": list(IMU_FIELDS),
}

_VALIDATOR = Draft7Validator(IMU_SCHEMA)


class ImuFrame(BaseModel):
    """One combined accelerometer + gyroscope reading."""

    ax: float
    ay: float
    az: float
    gx: float
    gy: float
    gz: float
    tracker: Optional[str] = None

    @property
    def accel(self) -> tuple[float, float, float]:
        return (self.ax, self.ay, self.az)

    @property
    def gyro(self) -> tuple[float, float, float]:
        return (self.gx, self.gy, self.gz)

    def to_query(self) -> Dict[str, float]:
        return {k: getattr(self, k) for k in IMU_FIELDS}

    def to_json(self) -> str:
        return json.dumps(self.model_dump(exclude_none=True), separators=(",", ":"))

    @classmethod
    def from_axes(cls, accel, gyro, tracker: Optional[str] = None) -> "ImuFrame":
        return cls(ax=float(accel[0]), ay=float(accel[1]), az=float(accel[2]),
                   gx=float(gyro[0]), gy=float(gyro[1]), gz=float(gyro[2]),
                   tracker=tracker)


def decode_code(raw: bytes, table: Dict[int, str]) -> Optional[str]:
    """Resolve a button/wheel write to its name.

    Numeric text or a single non-printable byte is looked up in ``table``
    (None when unknown); any other text is taken as the name itself.
    """
    if len(raw) == 1 and not 0x20 <= raw[0] < 0x7F:
        return table.get(raw[0])
    try:
        text = raw.decode("utf-8").strip()
    except UnicodeDecodeError:
        return None
    if not text:
        return None
    try:
        return table.get(int(text))
    except ValueError:
        return text


def schema_errors(payload: Any) -> list[str]:
    """Return jsonschema error messages for an IMU payload (empty when valid)."""
    return [e.message for e in _VALIDATOR.iter_errors(payload)]


def parse_imu_json(raw: bytes | str) -> ImuFrame:
    """Decode and validate a JSON IMU payload.

    Raises:
        ValueError: if the payload is not JSON or does not match IMU_SCHEMA.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValueError("IMU payload is not UTF-8") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"IMU payload is not JSON: {exc.msg}") from exc

    errors = schema_errors(data)
    if errors:
        raise ValueError(f"IMU payload failed schema validation: {errors[0]}")
    return ImuFrame(**data)
