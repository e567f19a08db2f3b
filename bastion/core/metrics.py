"""
In-process security counters.

Counters live per engine and are exposed through ``/admin/stats``. Rejection
counters follow the ``rejections_<signal>_total`` naming so they can be
grouped by signal.
"""

from __future__ import annotations

import threading
from collections import Counter

BASE_COUNTERS = (
    "violations_total",
    "blacklistings_total",
    "lockouts_total",
    "attack_activations_total",
)

_REJECTION_PREFIX = "rejections_"
_REJECTION_SUFFIX = "_total"


class MetricsRegistry:
    """Thread-safe named counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Counter[str] = Counter({name: 0 for name in BASE_COUNTERS})

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def rejections(self) -> dict[str, int]:
        """Rejection counts keyed by signal name."""
        with self._lock:
            return {
                name[len(_REJECTION_PREFIX):-len(_REJECTION_SUFFIX)]: value
                for name, value in self._counters.items()
                if name.startswith(_REJECTION_PREFIX) and name.endswith(_REJECTION_SUFFIX)
            }

    def snapshot(self) -> dict[str, dict[str, int]]:
        counters = self.get_all()
        return {"counters": counters, "rejections": self.rejections()}

    def get_all(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)
