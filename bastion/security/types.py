"""
Shared value types for the security components.

Policy outcomes are plain values: a rejected request yields a ``Verdict``
carrying the signal that fired, never an exception.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class BlacklistSource(str, Enum):
    """Categories a blacklist entry can belong to."""

    MANUAL = "manual"
    AUTO = "auto"
    FORM_ABUSE = "form-abuse"
    BOT = "bot"


class RejectionSignal(str, Enum):
    """The check responsible for a rejection. Internal only."""

    BLACKLISTED = "blacklisted"
    RATE_LIMITED = "rate_limited"
    HONEYPOT = "honeypot"
    TOO_FAST = "too_fast"
    OBSOLETE_CLIENT = "obsolete_client"
    SPAM_PATTERN = "spam_pattern"
    INJECTION_PATTERN = "injection_pattern"
    CAPTCHA_FAILED = "captcha_failed"
    LOCKED_OUT = "locked_out"
    BOT_DETECTED = "bot_detected"


class PolicyMode(str, Enum):
    """GraphQL operating modes."""

    STANDARD = "standard"
    HEADLESS = "headless"


@dataclass(frozen=True)
class Verdict:
    """Outcome of a gating check."""

    allowed: bool
    signal: RejectionSignal | None = None
    retry_after: int | None = None

    @classmethod
    def allow(cls) -> "Verdict":
        return cls(allowed=True)

    @classmethod
    def reject(cls, signal: RejectionSignal, retry_after: int | None = None) -> "Verdict":
        return cls(allowed=False, signal=signal, retry_after=retry_after)


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of one rate limiter call."""

    allowed: bool
    count: int
    limit: int
    remaining: int


@dataclass
class BlacklistEntry:
    """An active block for one IP in one source category."""

    ip: str
    address: str
    reason: str
    blocked_at: float
    expires_at: float | None
    source: BlacklistSource
    lockout: bool = False

    def to_record(self) -> dict[str, Any]:
        record = asdict(self)
        record["source"] = self.source.value
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "BlacklistEntry":
        return cls(
            ip=record["ip"],
            address=record.get("address", ""),
            reason=record.get("reason", ""),
            blocked_at=float(record["blocked_at"]),
            expires_at=None if record.get("expires_at") is None else float(record["expires_at"]),
            source=BlacklistSource(record["source"]),
            lockout=bool(record.get("lockout", False)),
        )

    def remaining(self, now: float) -> int | None:
        """Seconds left on the block, None for indefinite entries."""
        if self.expires_at is None:
            return None
        return max(0, int(round(self.expires_at - now)))


@dataclass
class ViolationRecord:
    """Decaying violation counter for one IP."""

    ip: str
    violations: int = 0
    last_violation_at: float | None = None
    reasons: list[str] = field(default_factory=list)


@dataclass
class AttackState:
    """Site-wide Under Attack status."""

    active: bool = False
    activated_at: float | None = None
    reason: str = ""
    distinct_attacker_count: int = 0
    manual: bool = False
    expires_at: float | None = None


@dataclass(frozen=True)
class CaptchaChallenge:
    """An issued arithmetic challenge. ``answer`` is never sent to clients."""

    token: str
    question: str
    answer: int
    created_at: float
    ttl: int


@dataclass(frozen=True)
class FormDescriptor:
    """Identifies a protected form and how it was rendered."""

    form_id: str = "default"
    honeypot_field: str = "bastion_website_url"
    rendered_at: float | None = None


@dataclass(frozen=True)
class QueryCostPolicy:
    """Effective limits handed to the external GraphQL engine."""

    depth_limit: int
    complexity_limit: int
    alias_limit: int
    directive_limit: int
    field_duplicate_limit: int
    timeout: int
    mode: PolicyMode
    introspection_allowed: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        return data
