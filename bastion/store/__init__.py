"""TTL store adapters."""

from bastion.config import Settings
from bastion.core.time import Clock, system_clock
from bastion.store.base import TTLStore, dump_record, load_int, load_record
from bastion.store.memory import MemoryTTLStore
from bastion.store.redis import RedisTTLStore


def build_store(settings: Settings, clock: Clock = system_clock) -> TTLStore:
    """Create the store adapter selected by ``settings.store_backend``."""
    if settings.store_backend == "redis":
        return RedisTTLStore.from_url(settings.redis_url)
    return MemoryTTLStore(maxsize=settings.memory_store_maxsize, clock=clock)


__all__ = [
    "MemoryTTLStore",
    "RedisTTLStore",
    "TTLStore",
    "build_store",
    "dump_record",
    "load_int",
    "load_record",
]
