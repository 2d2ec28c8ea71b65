from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Deque, Dict, Iterable, List, Optional

from .models import MetricsSnapshot

EVENTS = (
    "cycle",
    "extraction_miss",
    "record_emitted",
    "attempt",
    "delivered",
    "transmission_failed",
    "dropped_invalid",
    "session_drift",
)


class MetricsCollector:
    """Thread-safe collector for monitoring outcomes.

    Records named events (cycles, misses, attempts, deliveries, drops) and
    produces aggregated MetricsSnapshot objects over sliding time windows."""

    def __init__(self, maxlen: int = 10000) -> None:
        self._lock = Lock()
        self._events: Deque[tuple[float, str, Optional[str]]] = deque(maxlen=maxlen)

    def record(self, event: str, stream_id: Optional[str] = None) -> None:
        """Record one outcome event with the current timestamp."""
        if event not in EVENTS:
            raise ValueError(f"Unknown metrics event: {event}")
        with self._lock:
            self._events.append((time.time(), event, stream_id))

    def count(self, event: str, stream_id: Optional[str] = None) -> int:
        """Total occurrences of an event, optionally for one session."""
        with self._lock:
            return sum(
                1
                for _, name, sid in self._events
                if name == event and (stream_id is None or sid == stream_id)
            )

    def snapshot(self, window_secs: int) -> MetricsSnapshot:
        """Return aggregated counts for events within the last window_secs seconds."""
        now = time.time()
        cutoff = now - window_secs
        with self._lock:
            names: List[str] = [name for ts, name, _ in self._events if ts >= cutoff]
        counts: Dict[str, int] = {name: 0 for name in EVENTS}
        for name in names:
            counts[name] += 1

        return MetricsSnapshot(
            window_secs=window_secs,
            cycles=counts["cycle"],
            extraction_misses=counts["extraction_miss"],
            records_emitted=counts["record_emitted"],
            attempts=counts["attempt"],
            delivered=counts["delivered"],
            transmission_failed=counts["transmission_failed"],
            dropped_invalid=counts["dropped_invalid"],
            session_drifts=counts["session_drift"],
            timestamp=now,
        )

    def export_rows(self) -> Iterable[Dict]:
        """Yield recorded events as flat dictionaries."""
        with self._lock:
            rows = list(self._events)
        for ts, name, sid in rows:
            yield {"timestamp": ts, "event": name, "stream_id": sid}
