"""
GraphQL query cost policy.

Computes the limits the external GraphQL engine enforces per request.
Nothing here parses or executes queries. Headless mode raises the
alias/directive/duplicate limits, bounded by absolute ceilings.
"""

from __future__ import annotations

import math
import re
from typing import Any

from bastion.config import Settings
from bastion.core.logging import log_security_event
from bastion.security.ip_key import normalize_ip
from bastion.security.rate_limiter import GRAPHQL_BUCKET, RateLimiter
from bastion.security.reputation import ReputationTracker
from bastion.security.types import PolicyMode, QueryCostPolicy, RejectionSignal, Verdict

ALIAS_CEILING = 100
DIRECTIVE_CEILING = 60
FIELD_DUPLICATE_CEILING = 40

STANDARD_REQUESTS_PER_MINUTE = 60
HEADLESS_REQUESTS_PER_MINUTE = 120
BATCH_SLOT_BONUS = 10
MAX_BATCH_SLOTS = 10
BURST_FACTOR = 1.5
RATE_WINDOW_SECONDS = 60

BUILD_CLIENT_RE = re.compile(r"(next|gatsby|nuxt|build|node|fetch)", re.IGNORECASE)


def is_build_client(user_agent: str | None) -> bool:
    """Static site generators and server-side fetchers get the burst limit."""
    return bool(BUILD_CLIENT_RE.search(user_agent or ""))


def _scaled(base: int, multiplier: float, ceiling: int) -> int:
    return min(math.ceil(base * multiplier), ceiling)


class QueryCostCalculator:
    """Policy provider and request admission for the GraphQL endpoint."""

    def __init__(self, settings: Settings, limiter: RateLimiter, reputation: ReputationTracker):
        self.settings = settings
        self.limiter = limiter
        self.reputation = reputation
        limiter.configure(GRAPHQL_BUCKET, self.rate_limit_config()["requests_per_minute"], RATE_WINDOW_SECONDS)

    @property
    def mode(self) -> PolicyMode:
        return PolicyMode.HEADLESS if self.settings.graphql_headless_mode else PolicyMode.STANDARD

    def effective_timeout(self) -> int:
        """Configured timeout, never above the host's execution ceiling."""
        timeout = self.settings.graphql_query_timeout
        host_limit = self.settings.host_max_execution_time
        if host_limit > 0:
            timeout = min(timeout, host_limit)
        return timeout

    def current_policy(self) -> QueryCostPolicy:
        s = self.settings
        alias, directive, duplicate = (
            s.graphql_alias_limit,
            s.graphql_directive_limit,
            s.graphql_field_duplicate_limit,
        )
        if self.mode is PolicyMode.HEADLESS:
            factor = s.graphql_headless_multiplier
            alias = _scaled(alias, factor, ALIAS_CEILING)
            directive = _scaled(directive, factor, DIRECTIVE_CEILING)
            duplicate = _scaled(duplicate, factor, FIELD_DUPLICATE_CEILING)
        return QueryCostPolicy(
            depth_limit=s.graphql_query_depth,
            complexity_limit=s.graphql_query_complexity,
            alias_limit=alias,
            directive_limit=directive,
            field_duplicate_limit=duplicate,
            timeout=self.effective_timeout(),
            mode=self.mode,
            introspection_allowed=s.is_development and s.graphql_introspection_enabled,
        )

    def rate_limit_config(self) -> dict[str, int]:
        s = self.settings
        per_minute = HEADLESS_REQUESTS_PER_MINUTE if s.graphql_headless_mode else STANDARD_REQUESTS_PER_MINUTE
        if s.graphql_batch_enabled and s.graphql_batch_limit > 1:
            per_minute += min(s.graphql_batch_limit, MAX_BATCH_SLOTS) * BATCH_SLOT_BONUS
        return {
            "requests_per_minute": per_minute,
            "burst_limit": int(per_minute * BURST_FACTOR),
            "timeout_seconds": self.effective_timeout(),
        }

    def admit(self, ip: str, user_agent: str = "") -> Verdict:
        """Rate-limit one GraphQL request from ``ip``."""
        if self.reputation.is_blacklisted(ip):
            return Verdict.reject(RejectionSignal.BLACKLISTED)
        config = self.rate_limit_config()
        if self.mode is PolicyMode.HEADLESS or is_build_client(user_agent):
            limit = config["burst_limit"]
        else:
            limit = config["requests_per_minute"]
        decision = self.limiter.allow(GRAPHQL_BUCKET, ip, limit=limit)
        if decision.allowed:
            return Verdict.allow()
        log_security_event(
            "GRAPHQL_RATE_LIMITED",
            "GraphQL rate limit exceeded",
            ip=normalize_ip(ip),
            count=decision.count,
            limit=limit,
        )
        self.reputation.record_violation(ip, "graphql_rate_limit")
        return Verdict.reject(RejectionSignal.RATE_LIMITED, retry_after=RATE_WINDOW_SECONDS)

    def recommendations(self) -> list[dict[str, str]]:
        s = self.settings
        found = []
        if s.graphql_introspection_enabled:
            found.append({"level": "warning", "message": "Public introspection enabled (security risk)"})
        if s.graphql_debug_mode:
            found.append({"level": "warning", "message": "Debug mode enabled (not recommended for production)"})
        if not s.graphql_endpoint_restricted:
            found.append({"level": "info", "message": "GraphQL endpoint is publicly accessible"})
        return found

    def security_level(self) -> str:
        s = self.settings
        score = 0
        if not s.graphql_introspection_enabled:
            score += 2
        if not s.graphql_debug_mode:
            score += 2
        if s.graphql_endpoint_restricted:
            score += 3
        if 0 < s.graphql_query_depth <= 15:
            score += 2
        if s.graphql_batch_limit <= 20:
            score += 1
        if score >= 8:
            return "high"
        if score >= 5:
            return "medium"
        return "low"

    def assess(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "security_level": self.security_level(),
            "recommendations": self.recommendations(),
            "policy": self.current_policy().to_dict(),
            "rate_limits": self.rate_limit_config(),
        }
