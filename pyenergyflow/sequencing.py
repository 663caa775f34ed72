import logging
from collections import defaultdict
from contextlib import contextmanager
from typing import DefaultDict, Iterator, Set

log = logging.getLogger(__name__)


class RequestSequencer:
    """
    Monotonic request numbers per channel ("snapshot", "history", ...).

    A response is applied only if its number is newer than the last one
    applied on the same channel, so a slow response for an older request
    can never overwrite a newer result.
    """

    def __init__(self):
        self._issued: DefaultDict[str, int] = defaultdict(int)
        self._applied: DefaultDict[str, int] = defaultdict(int)

    def next(self, channel: str) -> int:
        self._issued[channel] += 1
        return self._issued[channel]

    def latest(self, channel: str) -> int:
        return self._issued[channel]

    def accept(self, channel: str, seq: int) -> bool:
        if seq <= self._applied[channel]:
            log.debug(f"Discarding stale {channel} response #{seq} (applied #{self._applied[channel]})")
            return False
        self._applied[channel] = seq
        return True

    def reset(self, channel: str = None):
        """Invalidate everything in flight on channel (or all channels)"""
        channels = [channel] if channel else list(self._issued)
        for c in channels:
            self._applied[c] = self._issued[c]


class SingleFlight:
    """Skip a periodic tick while the previous tick of the same kind is still running"""

    def __init__(self):
        self._running: Set[str] = set()

    def busy(self, key: str) -> bool:
        return key in self._running

    @contextmanager
    def run(self, key: str) -> Iterator[bool]:
        if key in self._running:
            log.debug(f"Previous {key} tick still in progress - skipping")
            yield False
            return
        self._running.add(key)
        try:
            yield True
        finally:
            self._running.discard(key)
