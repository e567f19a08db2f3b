"""
Login lockout management.

Failed logins are counted per IP in the ``login`` bucket. Reaching the
configured maximum creates a short-lived auto blacklist entry flagged as a
lockout, which a successful login or password change removes again.
Escalation bans and manual blocks are never lifted by this module.
"""

from __future__ import annotations

import logging

from bastion.config import Settings
from bastion.core.errors import StoreUnavailableError
from bastion.core.logging import get_logger, log_security_event
from bastion.core.metrics import MetricsRegistry
from bastion.security.ip_key import normalize_ip
from bastion.security.rate_limiter import LOGIN_BUCKET, RateLimiter
from bastion.security.reputation import ReputationTracker
from bastion.security.types import BlacklistSource, RejectionSignal, Verdict

logger = get_logger(__name__)


class LockoutManager:
    """Failed-login counting, temporary lockout and clearing."""

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
        limiter.configure(LOGIN_BUCKET, settings.login_max_attempts, settings.lockout_duration_seconds)

    @property
    def max_attempts(self) -> int:
        return self.settings.login_max_attempts

    def is_locked(self, ip: str) -> bool:
        """Counter at or over the maximum and the lockout entry present."""
        entry = self.reputation.get_entry(ip, BlacklistSource.AUTO)
        if entry is None or not entry.lockout:
            return False
        return self.limiter.count(LOGIN_BUCKET, ip) >= self.max_attempts

    def check_lockout(self, ip: str) -> Verdict:
        """
        Decide whether an authentication attempt from ``ip`` may proceed.

        Any active blacklist entry also rejects. ``retry_after`` is the
        remaining block time in seconds, or None for indefinite blocks.
        """
        try:
            entries = self.reputation.active_entries(ip)
            if not entries:
                return Verdict.allow()
            now = self.reputation.clock()
            lockouts = [e for e in entries if e.lockout]
            others = [e for e in entries if not e.lockout]
            if others:
                remaining = [e.remaining(now) for e in others]
                retry_after = None if None in remaining else max(remaining)
                return Verdict.reject(RejectionSignal.BLACKLISTED, retry_after)
            if self.limiter.count(LOGIN_BUCKET, ip) < self.max_attempts:
                return Verdict.allow()
            return Verdict.reject(RejectionSignal.LOCKED_OUT, lockouts[0].remaining(now))
        except StoreUnavailableError:
            logger.warning("Lockout store unavailable; allowing login attempt")
            return Verdict.allow()

    def remaining_lockout_seconds(self, ip: str) -> int:
        verdict = self.check_lockout(ip)
        if verdict.allowed:
            return 0
        return verdict.retry_after or 0

    def handle_failed_attempt(self, identifier: str, ip: str) -> bool:
        """Count a failed login. Returns True when this attempt locked the IP."""
        decision = self.limiter.allow(LOGIN_BUCKET, ip)
        log_security_event(
            "LOGIN_FAILED",
            "Failed login attempt",
            ip=normalize_ip(ip),
            level=logging.INFO,
            username=identifier,
            attempts=decision.count,
            max_attempts=self.max_attempts,
        )
        if decision.count < self.max_attempts:
            return False

        duration = self.settings.lockout_duration_seconds
        try:
            existing = self.reputation.get_entry(ip, BlacklistSource.AUTO)
            if existing is not None and not existing.lockout:
                # Escalation ban already in place; keep it.
                return False
            self.reputation.add_to_blacklist(
                ip,
                f"Login lockout after {decision.count} failed attempts",
                ttl=duration,
                source=BlacklistSource.AUTO,
                lockout=True,
            )
            # Align the counter with the lockout so both expire together.
            self.limiter.hold(LOGIN_BUCKET, ip, decision.count, duration)
        except StoreUnavailableError:
            logger.warning("Could not persist login lockout")
            return False

        self.metrics.increment("lockouts_total")
        log_security_event(
            "LOGIN_LOCKOUT",
            "IP locked out after repeated login failures",
            ip=normalize_ip(ip),
            username=identifier,
            attempts=decision.count,
            lockout_duration=duration,
        )
        self.reputation.record_violation(ip, "login_lockout", BlacklistSource.AUTO)
        return True

    def _clear(self, ip: str) -> None:
        try:
            self.limiter.reset(LOGIN_BUCKET, ip)
            entry = self.reputation.get_entry(ip, BlacklistSource.AUTO)
            if entry is not None and entry.lockout:
                self.reputation.remove_from_blacklist(ip, BlacklistSource.AUTO)
        except StoreUnavailableError:
            logger.warning("Could not clear login failures")

    def handle_successful_login(self, identifier: str, ip: str) -> None:
        """Forget failures and lift a lockout after a successful login."""
        self._clear(ip)
        logger.info("Login succeeded; failures cleared", data={"username": identifier})

    def clear_on_password_change(self, identifier: str, ip: str) -> None:
        """Forget failures and lift a lockout after a password change."""
        self._clear(ip)
        log_security_event(
            "PASSWORD_CHANGED",
            "Login failures cleared after password change",
            ip=normalize_ip(ip),
            level=logging.INFO,
            username=identifier,
        )
