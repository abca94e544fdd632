"""
Operational counters for the upload and retrieval paths.

No principal ids, object ids or filenames are recorded.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class Metrics:
    """Counters and last-value gauges, safe to share between request threads."""

    counters: Dict[str, int] = field(default_factory=dict)
    gauges: Dict[str, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def inc(self, name: str, by: int = 1) -> None:
        """Increment counter by value."""
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + by

    def observe(self, name: str, value: float) -> None:
        """Record gauge value."""
        with self._lock:
            self.gauges[name] = float(value)

    def snapshot(self) -> dict:
        """Return current metrics snapshot."""
        with self._lock:
            return {
                "counters": dict(self.counters),
                "gauges": dict(self.gauges),
            }
