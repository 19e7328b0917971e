import logging
from typing import Callable, List, Optional

from zeppslime.forward_server.lib.tracker import Metric, Subscription, TrackerEvent, TrackerHandle

LOG = logging.getLogger("forward_server.emulated_tracker")

HEARTBEAT_LABEL = "(HEARTBEAT)"

# One-time values pushed to a tracker once the server accepts it
DIAGNOSTIC_TEMPERATURE = 420.69
DIAGNOSTIC_SIGNAL_STRENGTH = 69


class LifecycleLogger:
    """Turns per-device lifecycle events into log lines.

    Args:
        log_packets: also log every outgoing and incoming frame verbatim.
        on_server_found: called when a non-heartbeat tracker reaches the server.
    """

    def __init__(self, log_packets: bool = False, on_server_found: Optional[Callable[[], None]] = None):
        self.log_packets = log_packets
        self._on_server_found = on_server_found

    def attach(self, handle: TrackerHandle, name: str, heartbeat: bool = False) -> List[Subscription]:
        label = HEARTBEAT_LABEL if heartbeat else name

        def on_ready():
            LOG.info('Tracker "%s" is ready to search for SlimeVR server...', label)

        def on_searching():
            LOG.info('Tracker "%s" is searching for SlimeVR server...', label)

        def on_connected(ip: str, port: int):
            if heartbeat:
                return
            LOG.info('Tracker "%s" connected to SlimeVR server on %s:%s', label, ip, port)
            handle.send_metric(Metric.TEMPERATURE, DIAGNOSTIC_TEMPERATURE)
            handle.send_metric(Metric.SIGNAL_STRENGTH, DIAGNOSTIC_SIGNAL_STRENGTH)
            if self._on_server_found is not None:
                self._on_server_found()

        def on_disconnected(reason):
            LOG.info('Tracker "%s" disconnected from SlimeVR server due to: %s', label, reason)

        def on_error(err):
            LOG.error('Tracker "%s" error: %s', label, err)

        def on_unknown(packet):
            LOG.warning('Tracker "%s" unknown incoming packet: %s', label, packet)

        subs = [
            handle.subscribe(TrackerEvent.READY, on_ready),
            handle.subscribe(TrackerEvent.SEARCHING, on_searching),
            handle.subscribe(TrackerEvent.CONNECTED, on_connected),
            handle.subscribe(TrackerEvent.DISCONNECTED, on_disconnected),
            handle.subscribe(TrackerEvent.ERROR, on_error),
            handle.subscribe(TrackerEvent.UNKNOWN_PACKET, on_unknown),
        ]

        if self.log_packets:
            subs.append(handle.subscribe(
                TrackerEvent.OUTGOING_PACKET,
                lambda packet: LOG.info('Tracker "%s" outgoing packet: %s', label, packet)))
            subs.append(handle.subscribe(
                TrackerEvent.INCOMING_PACKET,
                lambda packet: LOG.info('Tracker "%s" incoming packet: %s', label, packet)))
        return subs
