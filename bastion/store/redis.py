"""
Redis-backed TTL store for multi-process deployments.

Counters use ``SET NX EX`` followed by ``INCR`` in one pipeline, so the
window is fixed at creation and never extended by later increments.
"""

from __future__ import annotations

import redis
from redis.exceptions import RedisError

from bastion.core.errors import StoreUnavailableError
from bastion.core.logging import get_logger
from bastion.store.base import TTLStore

logger = get_logger(__name__)


class RedisTTLStore(TTLStore):
    """TTL store delegating to a Redis server."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisTTLStore":
        return cls(redis.Redis.from_url(url, **kwargs))

    def _unavailable(self, op: str, exc: RedisError) -> StoreUnavailableError:
        logger.warning(f"Redis {op} failed", data={"error": str(exc)})
        return StoreUnavailableError()

    def get(self, key: str) -> bytes | None:
        try:
            return self._client.get(key)
        except RedisError as exc:
            raise self._unavailable("get", exc) from exc

    def set(self, key: str, value: bytes, ttl: int | None) -> None:
        try:
            if ttl is None:
                self._client.set(key, value)
            else:
                self._client.set(key, value, ex=max(1, int(ttl)))
        except RedisError as exc:
            raise self._unavailable("set", exc) from exc

    def delete(self, key: str) -> bool:
        try:
            return bool(self._client.delete(key))
        except RedisError as exc:
            raise self._unavailable("delete", exc) from exc

    def increment(self, key: str, ttl: int) -> int:
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.set(key, 0, ex=max(1, int(ttl)), nx=True)
            pipe.incr(key)
            _, count = pipe.execute()
        except RedisError as exc:
            raise self._unavailable("increment", exc) from exc
        return int(count)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError:
            return False

    def close(self) -> None:
        self._client.close()
