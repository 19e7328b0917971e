from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from zeppslime.common.imu import ImuFrame


class ControlKind(Enum):
    BUTTON_PRESSED = "button-pressed"
    WHEEL_TURNED   = "wheel-turned"
    IMU            = "imu"


@dataclass(frozen=True)
class ControlEvent:
    """Inbound event from the watch, whatever surface it arrived on."""

    kind: ControlKind
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def button(cls, button: Any) -> "ControlEvent":
        return cls(ControlKind.BUTTON_PRESSED, {"button": button})

    @classmethod
    def wheel(cls, direction: Any) -> "ControlEvent":
        return cls(ControlKind.WHEEL_TURNED, {"direction": direction})

    @classmethod
    def imu(cls, frame: ImuFrame) -> "ControlEvent":
        return cls(ControlKind.IMU, {"data": frame})
