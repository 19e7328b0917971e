from typing import Dict, Iterator, List, Optional, Tuple

from zeppslime.forward_server.lib.tracker import Subscription, TrackerHandle


class TrackerRegistry:
    """Tracker name -> handle, one entry per name.

    Each entry also owns the lifecycle subscriptions attached to its handle so
    teardown can detach them together.
    """

    def __init__(self):
        self._entries: Dict[str, TrackerHandle] = {}
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def get(self, name: str) -> Optional[TrackerHandle]:
        return self._entries.get(name)

    def names(self) -> List[str]:
        return list(self._entries)

    def items(self) -> List[Tuple[str, TrackerHandle]]:
        return list(self._entries.items())

    def insert(self, name: str, handle: TrackerHandle) -> None:
        if name in self._entries:
            raise KeyError(f"tracker {name!r} is already registered")
        self._entries[name] = handle
        self._subscriptions[name] = []

    def attach(self, name: str, subscriptions: List[Subscription]) -> None:
        self._subscriptions[name].extend(subscriptions)

    def remove(self, name: str) -> Optional[TrackerHandle]:
        """Drop an entry and cancel its subscriptions. Returns the handle, if any."""
        handle = self._entries.pop(name, None)
        for sub in self._subscriptions.pop(name, []):
            sub.cancel()
        return handle

    def sort(self) -> None:
        self._entries = dict(sorted(self._entries.items()))
