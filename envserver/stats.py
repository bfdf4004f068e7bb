"""Thread-safe statistics counters and their periodic emission policy."""

import logging
import threading
import time

logger = logging.getLogger(__name__)

ACCEPT = "accept"
ACCEPT_FAIL = "accept_fail"
READ = "read"
READ_FAIL = "read_fail"
DATA_TOO_LONG = "data_too_long"
MESSAGE = "message"
MESSAGE_FAIL = "message_fail"

COUNTERS = (ACCEPT, ACCEPT_FAIL, READ, READ_FAIL, DATA_TOO_LONG, MESSAGE, MESSAGE_FAIL)


class ServerStats:
    """Monotonic process-wide counters. Never reset."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: dict[str, int] = {name: 0 for name in COUNTERS}
        self._start_time = time.monotonic()

    def increment(self, name: str, amount: int = 1) -> int:
        """Bump counter *name* and return its new value."""
        with self._lock:
            if name not in self._counters:
                raise KeyError(f"unknown counter: {name}")
            self._counters[name] += amount
            return self._counters[name]

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def snapshot(self) -> dict:
        """Return a point-in-time copy of all counters."""
        with self._lock:
            snap = dict(self._counters)
            elapsed = time.monotonic() - self._start_time
        snap["uptime_seconds"] = round(elapsed, 1)
        return snap


class StatsReporter:
    """Logs a statistics line every *interval* accepted connections."""

    def __init__(self, interval: int = 1024):
        if interval < 1:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval

    def should_emit(self, accept_count: int) -> bool:
        return accept_count % self.interval == 0

    def emit(self, stats: ServerStats) -> None:
        snap = stats.snapshot()
        logger.info(
            "Stats: accept=%d, accept_fail=%d, read=%d, read_fail=%d, "
            "data_too_long=%d, message=%d, message_fail=%d",
            snap[ACCEPT], snap[ACCEPT_FAIL], snap[READ], snap[READ_FAIL],
            snap[DATA_TOO_LONG], snap[MESSAGE], snap[MESSAGE_FAIL],
        )

    def maybe_emit(self, stats: ServerStats) -> bool:
        """Emit if the accept counter hits the sampling interval. Returns True if emitted."""
        if not self.should_emit(stats.get(ACCEPT)):
            return False
        self.emit(stats)
        return True
