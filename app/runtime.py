import os
import time
from typing import Callable, Dict


def _log(message: str) -> None:
    # Always-on detection logging (real-time).
    print(message, flush=True)


def _is_debug_enabled() -> bool:
    return os.getenv("RIDEWATCH_DEBUG", "0") == "1"


def _debug(message: str) -> None:
    if _is_debug_enabled():
        _log(message)


class LogThrottle:
    """Emit at most one line per key within `interval_s` (monotonic)."""

    def __init__(self, interval_s: float = 2.0, clock: Callable[[], float] = time.monotonic):
        self.interval_s = interval_s
        self._clock = clock
        self._last: Dict[str, float] = {}

    def allow(self, key: str) -> bool:
        now = self._clock()
        last = self._last.get(key)
        if last is not None and now - last < self.interval_s:
            return False
        self._last[key] = now
        return True

    def log(self, key: str, message: str) -> None:
        if self.allow(key):
            _debug(message)
