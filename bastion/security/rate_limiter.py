"""
Fixed-window rate limiting shared by login, form and GraphQL traffic.

A window starts with the first request and lasts for the bucket's window
length. A client can therefore send ``limit`` requests just before the
window closes and ``limit`` more right after it reopens.
"""

from __future__ import annotations

from dataclasses import dataclass

from bastion.core.errors import StoreUnavailableError
from bastion.core.logging import get_logger
from bastion.security.ip_key import IPKeyCodec
from bastion.security.keyspace import Keyspace
from bastion.security.types import RateLimitDecision
from bastion.store.base import TTLStore, load_int

logger = get_logger(__name__)

LOGIN_BUCKET = "login"
FORM_BUCKET = "form"
GRAPHQL_BUCKET = "graphql"
LOGIN_PAGE_BUCKET = "login-page"
BOT_ACTIVITY_BUCKET = "bot-activity"
CAPTCHA_BUCKET = "captcha"


@dataclass(frozen=True)
class Bucket:
    """Threshold and window length for one bucket."""

    limit: int
    window_seconds: int


class RateLimiter:
    """Counts requests per (bucket, IP) in fixed windows."""

    def __init__(
        self,
        store: TTLStore,
        codec: IPKeyCodec,
        keyspace: Keyspace,
        buckets: dict[str, Bucket] | None = None,
    ):
        self.store = store
        self.codec = codec
        self.keyspace = keyspace
        self.buckets: dict[str, Bucket] = dict(buckets or {})

    def configure(self, name: str, limit: int, window_seconds: int) -> None:
        self.buckets[name] = Bucket(limit=limit, window_seconds=window_seconds)

    def bucket(self, name: str) -> Bucket:
        try:
            return self.buckets[name]
        except KeyError:
            raise ValueError(f"Unknown rate limit bucket: {name}") from None

    def _key(self, bucket: str, ip: str) -> str:
        return self.keyspace.counter(bucket, self.codec.key(ip, bucket))

    def allow(self, bucket: str, ip: str, limit: int | None = None) -> RateLimitDecision:
        """
        Count one request and decide whether it is within the limit.

        ``limit`` overrides the bucket threshold for this call only (used
        for burst allowances). Store outages fail open.
        """
        config = self.bucket(bucket)
        threshold = limit if limit is not None else config.limit
        try:
            count = self.store.increment(self._key(bucket, ip), config.window_seconds)
        except StoreUnavailableError:
            logger.warning("Rate limit store unavailable; allowing request", data={"bucket": bucket})
            return RateLimitDecision(allowed=True, count=0, limit=threshold, remaining=threshold)
        return RateLimitDecision(
            allowed=count <= threshold,
            count=count,
            limit=threshold,
            remaining=max(0, threshold - count),
        )

    def count(self, bucket: str, ip: str) -> int:
        """Current count without incrementing."""
        key = self._key(bucket, ip)
        return load_int(key, self.store.get(key))

    def reset(self, bucket: str, ip: str) -> bool:
        """Delete the counter for ``(bucket, ip)``."""
        return self.store.delete(self._key(bucket, ip))

    def hold(self, bucket: str, ip: str, count: int, ttl: int) -> None:
        """Overwrite the counter with ``count``, expiring after ``ttl`` seconds."""
        self.store.set(self._key(bucket, ip), str(count).encode(), ttl)
