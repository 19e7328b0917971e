import asyncio
import logging
import os
import signal
from pathlib import Path

from zeppslime.watch_relay.lib.settings import RelayConfig, load_config
from zeppslime.watch_relay.lib.watch import WatchRelay

LOG = logging.getLogger("watch_relay.app")

# Config to load (overridable via ZEPPSLIME_RELAY_CONFIG env var)
CONFIG_FILE = Path(
    os.getenv(
        "ZEPPSLIME_RELAY_CONFIG",
        Path(__file__).resolve().parent / "config.ini",
    )
)


async def run(config: RelayConfig) -> None:
    watch = WatchRelay.simulated(config)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    LOG.info("Relaying IMU every %d ms (%s policy) over %s",
             config.send_interval_ms, config.throttle.value, config.transport.value)
    await watch.toggle()
    try:
        await stop.wait()
        LOG.info("Signal received, shutting down")
    finally:
        await watch.shutdown()
        LOG.info("Sent %d frames, suppressed %d, failed %d",
                 watch.relay.sent, watch.relay.suppressed, watch.relay.failures)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    asyncio.run(run(load_config(str(CONFIG_FILE))))


if __name__ == "__main__":
    main()
