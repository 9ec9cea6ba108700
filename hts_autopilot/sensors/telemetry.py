"""
Telemetry Store Module
======================

In-memory store of the vessel's latest navigation values, keyed by
Signal K style paths (e.g. ``navigation.headingMagnetic``).

The store is the read-only provider consumed by navigation fusion.
Writers (the NMEA2000 reader, tests, other integrations) push values in;
fusion polls them on demand. Angles are stored as received, which for
Signal K sources means radians.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawReading:
    """A single telemetry value snapshot."""
    value: Any                          # Number, or mapping for position
    timestamp_ms: Optional[float] = None  # Epoch milliseconds, None if unknown


class TelemetryStore:
    """
    Thread-safe latest-value store.

    Each path holds only its most recent reading.
    """

    def __init__(self):
        self._values: Dict[str, RawReading] = {}
        self._lock = threading.Lock()
        self._update_count = 0

    def update(self, path: str, value: Any, timestamp_ms: Optional[float] = None,
               stamp: bool = True):
        """
        Store a new value for a path.

        Args:
            path: Signal K style path
            value: Scalar number or position mapping
            timestamp_ms: Epoch milliseconds of the value
            stamp: If True and no timestamp given, stamp with current time
        """
        if timestamp_ms is None and stamp:
            timestamp_ms = time.time() * 1000.0

        with self._lock:
            self._values[path] = RawReading(value=value, timestamp_ms=timestamp_ms)
            self._update_count += 1

    def read(self, path: str) -> Optional[RawReading]:
        """Get the latest reading for a path, or None if absent."""
        with self._lock:
            return self._values.get(path)

    def remove(self, path: str):
        """Forget a path (e.g. source went away)."""
        with self._lock:
            self._values.pop(path, None)

    def paths(self) -> List[str]:
        """List all paths currently holding a value."""
        with self._lock:
            return sorted(self._values)

    @property
    def stats(self) -> dict:
        """Get store statistics."""
        with self._lock:
            return {
                "path_count": len(self._values),
                "update_count": self._update_count
            }
