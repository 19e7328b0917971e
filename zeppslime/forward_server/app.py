import asyncio
import logging
import os
import signal
from pathlib import Path

import uvicorn

from zeppslime.forward_server.lib.ble_gatt import BleGattHost
from zeppslime.forward_server.lib.bridge import Bridge
from zeppslime.forward_server.lib.http_api import create_app
from zeppslime.forward_server.lib.mqtt_ingress import MqttIngress
from zeppslime.forward_server.lib.mqtt_tracker import mqtt_tracker_factory
from zeppslime.forward_server.lib.settings import BridgeConfig, load_config

LOG = logging.getLogger("forward_server.app")

# Config to load (overridable via ZEPPSLIME_FORWARD_CONFIG env var)
CONFIG_FILE = Path(
    os.getenv(
        "ZEPPSLIME_FORWARD_CONFIG",
        Path(__file__).resolve().parent / "config.ini",
    )
)


async def _wait_for_signal() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    await stop.wait()
    LOG.info("Signal received, shutting down")


async def serve(config: BridgeConfig) -> None:
    bridge = Bridge(config, mqtt_tracker_factory(config))
    await bridge.start()

    ingress = None
    if config.ingress_enabled:
        ingress = MqttIngress(bridge.handle_event, host=config.mqtt_host, port=config.mqtt_port,
                              prefix=config.ingress_prefix, client_id=config.client_id)
        ingress.start()

    ble_host = None
    if config.ble_enabled:
        ble_host = BleGattHost(bridge.handle_event, name=config.ble_name)
        try:
            await ble_host.start()
        except Exception:
            LOG.exception("BLE GATT host failed to start, continuing without BLE")
            ble_host = None

    try:
        if config.http_enabled:
            LOG.info("Starting HTTP server - http://%s:%s", config.http_host, config.http_port)
            server = uvicorn.Server(uvicorn.Config(
                create_app(bridge),
                host=config.http_host,
                port=config.http_port,
                log_level=logging.getLevelName(config.log_level).lower(),
            ))
            await server.serve()
        else:
            await _wait_for_signal()
    finally:
        if ble_host is not None:
            try:
                await ble_host.stop()
            except Exception as e:
                LOG.debug("Exception while stopping BLE GATT host: %s", e)
        if ingress is not None:
            ingress.stop()
        await bridge.shutdown()


def main() -> None:
    config = load_config(str(CONFIG_FILE))
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    asyncio.run(serve(config))


if __name__ == "__main__":
    main()
