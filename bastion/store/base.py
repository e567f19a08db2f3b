"""
Base TTL store interface.

Defines the contract every backing store must satisfy. The engine never
locks: all counters are read-modify-write against this interface and are
"eventually correct, not atomic" under true concurrency, except where an
adapter offers a native atomic increment.
"""

import json
from abc import ABC, abstractmethod
from typing import Any

from bastion.core.errors import CorruptedStateError


class TTLStore(ABC):
    """
    Abstract key/value store whose entries carry an expiration.

    ``ttl`` is in seconds; ``None`` means the entry never expires on its own.
    Adapters raise ``StoreUnavailableError`` when the backend cannot be
    reached.
    """

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Return the stored value, or None if absent or expired."""
        ...

    @abstractmethod
    def set(self, key: str, value: bytes, ttl: int | None) -> None:
        """Store ``value`` under ``key``, replacing any prior entry and TTL."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if an entry existed."""
        ...

    @abstractmethod
    def increment(self, key: str, ttl: int) -> int:
        """
        Increment the integer at ``key``, initializing it to 1 with ``ttl``.

        An existing counter keeps its original expiry, which is what makes
        windows fixed rather than sliding.
        """
        ...

    def close(self) -> None:
        """Release backend resources (optional)."""
        return None


def dump_record(record: dict[str, Any]) -> bytes:
    """Serialize a record for storage."""
    return json.dumps(record, separators=(",", ":"), sort_keys=True).encode()


def load_record(key: str, raw: bytes | None) -> dict[str, Any] | None:
    """Decode a stored record, raising CorruptedStateError on garbage."""
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise CorruptedStateError(key, f"invalid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise CorruptedStateError(key, "expected an object")
    return value


def load_int(key: str, raw: bytes | None) -> int:
    """Decode a stored counter; absent counters read as zero."""
    if raw is None:
        return 0
    try:
        value = int(raw)
    except ValueError as exc:
        raise CorruptedStateError(key, "counter is not an integer") from exc
    if value < 0:
        raise CorruptedStateError(key, "counter is negative")
    return value
