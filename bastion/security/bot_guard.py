"""
Login page bot protection.

Runs before authentication. A request is treated as a bot when its user
agent carries a scanner signature, is missing or shorter than ten
characters, when none of the browser Accept headers are present, or when
the address requests the login page too often. Repeat detections within
the activity window block the address in the ``bot`` blacklist category.
"""

from __future__ import annotations

from collections.abc import Mapping

from bastion.config import Settings
from bastion.core.errors import StoreUnavailableError
from bastion.core.logging import get_logger, log_security_event
from bastion.core.metrics import MetricsRegistry
from bastion.security import patterns
from bastion.security.ip_key import normalize_ip
from bastion.security.rate_limiter import BOT_ACTIVITY_BUCKET, LOGIN_PAGE_BUCKET, RateLimiter
from bastion.security.reputation import ReputationTracker
from bastion.security.types import BlacklistSource, RejectionSignal, Verdict

logger = get_logger(__name__)

LOGIN_PAGE_WINDOW_SECONDS = 60


class BotGuard:
    """Pre-authentication screening of login page requests."""

    def __init__(
        self,
        limiter: RateLimiter,
        reputation: ReputationTracker,
        settings: Settings,
        metrics: MetricsRegistry | None = None,
    ):
        self.limiter = limiter
        self.reputation = reputation
        self.settings = settings
        self.metrics = metrics or reputation.metrics
        limiter.configure(LOGIN_PAGE_BUCKET, settings.login_page_rate_limit, LOGIN_PAGE_WINDOW_SECONDS)
        limiter.configure(
            BOT_ACTIVITY_BUCKET,
            settings.bot_activity_threshold,
            settings.bot_activity_window_seconds,
        )

    def is_exempt(self, action: str = "", password_reset: bool = False) -> bool:
        """Password recovery and similar actions skip bot screening."""
        if not self.settings.bot_protection_enabled:
            return True
        return password_reset or action in patterns.LOGIN_BYPASS_ACTIONS

    def detect(self, ip: str, user_agent: str | None, headers: Mapping[str, str] | None) -> str | None:
        """
        Name the heuristic that flags this request, or None.

        ``headers`` of None skips the Accept header check. The login page
        counter only advances for requests not already flagged.
        """
        signature = patterns.find_bot_signature(user_agent)
        if signature is not None:
            return f"user_agent:{signature}"
        if len((user_agent or "").strip()) < patterns.MIN_USER_AGENT_LENGTH:
            return "short_user_agent"
        if headers is not None and patterns.lacks_browser_headers(headers):
            return "missing_browser_headers"
        if not self.limiter.allow(LOGIN_PAGE_BUCKET, ip).allowed:
            return "login_page_rate"
        return None

    def check(
        self,
        ip: str,
        user_agent: str | None,
        headers: Mapping[str, str] | None = None,
        action: str = "",
        password_reset: bool = False,
    ) -> Verdict:
        """Decide whether a login page request from ``ip`` may proceed."""
        if self.is_exempt(action, password_reset):
            return Verdict.allow()

        try:
            entry = self.reputation.get_entry(ip, BlacklistSource.BOT)
        except StoreUnavailableError:
            logger.warning("Bot block store unavailable; allowing request")
            entry = None
        if entry is not None:
            self.metrics.increment(f"rejections_{RejectionSignal.BOT_DETECTED.value}_total")
            return Verdict.reject(RejectionSignal.BOT_DETECTED, entry.remaining(self.reputation.clock()))

        reason = self.detect(ip, user_agent, headers)
        if reason is None:
            return Verdict.allow()

        self.metrics.increment(f"rejections_{RejectionSignal.BOT_DETECTED.value}_total")
        log_security_event(
            "BOT_BLOCKED",
            "Bot/crawler blocked from login page",
            ip=normalize_ip(ip),
            reason=reason,
            user_agent=(user_agent or "Unknown")[:200],
        )
        retry_after = self._track(ip, reason)
        return Verdict.reject(RejectionSignal.BOT_DETECTED, retry_after)

    def _track(self, ip: str, reason: str) -> int | None:
        """Count one bot activity; past the threshold, block the address."""
        decision = self.limiter.allow(BOT_ACTIVITY_BUCKET, ip)
        if decision.allowed:
            return None

        duration = self.settings.bot_block_seconds
        try:
            self.reputation.add_to_blacklist(
                ip,
                f"Bot activity: {decision.count} detections ({reason})",
                ttl=duration,
                source=BlacklistSource.BOT,
            )
            self.limiter.reset(BOT_ACTIVITY_BUCKET, ip)
        except StoreUnavailableError:
            logger.warning("Could not persist bot block")
            return None

        self.metrics.increment("blacklistings_total")
        log_security_event(
            "BOT_EXTENDED_BLOCK",
            "Repeated bot activity; address blocked",
            ip=normalize_ip(ip),
            detections=decision.count,
            duration=duration,
        )
        return duration
