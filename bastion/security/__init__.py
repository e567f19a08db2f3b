"""Security components: rate limiting, reputation, lockout, attack mode, screening."""

from bastion.security.captcha import CaptchaService
from bastion.security.ip_key import IPKeyCodec, normalize_ip, resolve_client_ip
from bastion.security.keyspace import Keyspace
from bastion.security.lockout import LockoutManager
from bastion.security.rate_limiter import FORM_BUCKET, GRAPHQL_BUCKET, LOGIN_BUCKET, RateLimiter
from bastion.security.reputation import ReputationTracker
from bastion.security.submission import SubmissionValidator
from bastion.security.types import (
    AttackState,
    BlacklistEntry,
    BlacklistSource,
    CaptchaChallenge,
    FormDescriptor,
    PolicyMode,
    QueryCostPolicy,
    RateLimitDecision,
    RejectionSignal,
    Verdict,
)
from bastion.security.under_attack import UnderAttackMode

__all__ = [
    "AttackState",
    "BlacklistEntry",
    "BlacklistSource",
    "CaptchaChallenge",
    "CaptchaService",
    "FORM_BUCKET",
    "FormDescriptor",
    "GRAPHQL_BUCKET",
    "IPKeyCodec",
    "Keyspace",
    "LOGIN_BUCKET",
    "LockoutManager",
    "PolicyMode",
    "QueryCostPolicy",
    "RateLimitDecision",
    "RateLimiter",
    "RejectionSignal",
    "ReputationTracker",
    "SubmissionValidator",
    "UnderAttackMode",
    "Verdict",
    "normalize_ip",
    "resolve_client_ip",
]
