"""
Security engine service object.

Constructed once per process from typed settings and passed into every
request path. All state lives in the TTL store, so several engines in
different processes sharing one store stay consistent.
"""

from __future__ import annotations

from typing import Any

from bastion.config import Settings
from bastion.core.logging import get_logger
from bastion.core.metrics import MetricsRegistry
from bastion.core.time import Clock, system_clock
from bastion.graphql.policy import QueryCostCalculator
from bastion.security.bot_guard import BotGuard
from bastion.security.captcha import CaptchaService
from bastion.security.ip_key import IPKeyCodec
from bastion.security.keyspace import Keyspace
from bastion.security.lockout import LockoutManager
from bastion.security.rate_limiter import RateLimiter
from bastion.security.reputation import ReputationTracker
from bastion.security.submission import SubmissionValidator
from bastion.security.under_attack import UnderAttackMode
from bastion.store import TTLStore, build_store

logger = get_logger(__name__)


class SecurityEngine:
    """Owns and wires the security components."""

    def __init__(
        self,
        settings: Settings,
        store: TTLStore | None = None,
        clock: Clock = system_clock,
        metrics: MetricsRegistry | None = None,
    ):
        self.settings = settings
        self.clock = clock
        self.store = store if store is not None else build_store(settings, clock)
        self.metrics = metrics or MetricsRegistry()
        self.codec = IPKeyCodec(settings.ip_key_secret)
        self.keyspace = Keyspace(settings.store_prefix)

        self.limiter = RateLimiter(self.store, self.codec, self.keyspace)
        self.reputation = ReputationTracker(
            self.store, self.codec, self.keyspace, settings, clock, self.metrics
        )
        self.under_attack = UnderAttackMode(
            self.store, self.codec, self.keyspace, settings, clock, self.metrics
        )
        self.reputation.add_observer(self.under_attack.record_attack)
        self.captcha = CaptchaService(self.store, self.keyspace, settings, clock)
        self.lockout = LockoutManager(self.limiter, self.reputation, settings, self.metrics)
        self.bots = BotGuard(self.limiter, self.reputation, settings, self.metrics)
        self.submissions = SubmissionValidator(
            self.limiter,
            self.reputation,
            self.under_attack,
            self.captcha,
            settings,
            clock,
            self.metrics,
        )
        self.graphql = QueryCostCalculator(settings, self.limiter, self.reputation)

        logger.info(
            "Security engine ready",
            data={"store": type(self.store).__name__, "environment": settings.environment},
        )

    def stats(self) -> dict[str, Any]:
        """Operator snapshot: blacklist counts, attack status and metrics."""
        return {
            "blacklist": self.reputation.stats(),
            "under_attack": self.under_attack.status(),
            "graphql": {
                "mode": self.graphql.mode.value,
                "security_level": self.graphql.security_level(),
            },
            "metrics": self.metrics.snapshot(),
        }

    def close(self) -> None:
        self.store.close()
