import json
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Path, Query
from fastapi.responses import PlainTextResponse

from zeppslime.common.imu import BUTTON_MAP, WHEEL_DIRECTION_MAP, ImuFrame
from zeppslime.forward_server.lib.bridge import Bridge
from zeppslime.forward_server.lib.events import ControlEvent

LOG = logging.getLogger("forward_server.http")


def create_app(bridge: Bridge) -> FastAPI:
    """Build the HTTP surface the watch (or any client) talks to."""
    app = FastAPI(title="ZeppSlime forward server")

    @app.get("/", response_class=PlainTextResponse)
    async def hello() -> str:
        return "Hello world!"

    @app.get("/imu", response_class=PlainTextResponse)
    async def imu_data(ax: float = Query(...), ay: float = Query(...), az: float = Query(...),
                       gx: float = Query(...), gy: float = Query(...), gz: float = Query(...),
                       tracker: Optional[str] = Query(None, min_length=1)) -> str:
        LOG.debug("Received IMU data: ax=%s, ay=%s, az=%s, gx=%s, gy=%s, gz=%s", ax, ay, az, gx, gy, gz)
        frame = ImuFrame(ax=ax, ay=ay, az=az, gx=gx, gy=gy, gz=gz, tracker=tracker)
        bridge.handle_event(ControlEvent.imu(frame))
        imu_json = json.dumps({
            "accel": {"x": ax, "y": ay, "z": az},
            "gyro": {"x": gx, "y": gy, "z": gz},
        })
        return f"IMU data received: {imu_json}"

    @app.get("/button/{button}", response_class=PlainTextResponse)
    async def press(button: int = Path(..., ge=0, le=255)) -> str:
        name = BUTTON_MAP.get(button)
        if name is None:
            LOG.warning("Unknown button pressed: %s", button)
            return f"Unknown button pressed: {button}"
        bridge.handle_event(ControlEvent.button(name))
        return f"Button pressed: {name}"

    @app.get("/wheel/{direction}", response_class=PlainTextResponse)
    async def wheel(direction: int = Path(..., ge=0, le=255)) -> str:
        name = WHEEL_DIRECTION_MAP.get(direction)
        if name is None:
            LOG.warning("Unknown wheel direction: %s", direction)
            return f"Unknown wheel direction: {direction}"
        bridge.handle_event(ControlEvent.wheel(name))
        return f"Wheel turned: {name}"

    @app.post("/trackers/{name}", status_code=202)
    async def add_tracker(name: str) -> Dict[str, Any]:
        bridge.add_tracker(name)
        return {"queued": name}

    @app.delete("/trackers/{name}")
    async def remove_tracker(name: str) -> Dict[str, Any]:
        if not await bridge.remove_tracker(name):
            raise HTTPException(status_code=404, detail=f"unknown tracker {name}")
        return {"removed": name}

    @app.get("/status")
    async def status() -> Dict[str, Any]:
        return bridge.status()

    return app
