"""Time helpers.

Security records store wall-clock epoch seconds so that several processes
sharing one store agree on expiry. Components take a ``Clock`` so tests can
drive time explicitly.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], float]


def system_clock() -> float:
    """Current epoch time in seconds."""
    return time.time()


def to_datetime(epoch: float) -> datetime:
    """Convert epoch seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(epoch, tz=timezone.utc)
