"""Append-only diagnostic event log exposed through `/examine`."""

import threading
import time
from collections import deque
from typing import Any


class EventLog:
    """Thread-safe list of `{payload, timestamp}` entries.

    `max_entries=0` keeps everything for the life of the process; a positive
    value drops the oldest entries once the cap is reached.
    """

    def __init__(self, max_entries: int = 0) -> None:
        self._entries: deque[dict[str, Any]] = deque(maxlen=max_entries or None)
        self._lock = threading.Lock()

    def append(self, payload: Any) -> None:
        # Timestamp in epoch milliseconds.
        entry = {"payload": payload, "timestamp": int(time.time() * 1000)}
        with self._lock:
            self._entries.append(entry)

    def snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
