"""
Submission validator pipeline.

Checks run cheapest first and stop at the first failure. Every rejection
feeds the reputation tracker as a form-abuse violation, which in turn
drives auto-blacklisting and Under Attack promotion. Callers only ever
see a generic denial; the signal is kept for logs and metrics.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from bastion.config import Settings
from bastion.core.errors import StoreUnavailableError
from bastion.core.logging import get_logger, log_security_event
from bastion.core.metrics import MetricsRegistry
from bastion.core.time import Clock, system_clock
from bastion.security import patterns
from bastion.security.captcha import CaptchaService
from bastion.security.ip_key import normalize_ip
from bastion.security.markup import (
    CAPTCHA_ANSWER_FIELD,
    CAPTCHA_TOKEN_FIELD,
    captcha_fragment,
    honeypot_fragment,
    inject_before_submit,
)
from bastion.security.rate_limiter import CAPTCHA_BUCKET, FORM_BUCKET, RateLimiter
from bastion.security.reputation import ReputationTracker
from bastion.security.types import (
    BlacklistSource,
    CaptchaChallenge,
    FormDescriptor,
    RejectionSignal,
    Verdict,
)
from bastion.security.under_attack import UnderAttackMode

logger = get_logger(__name__)

CAPTCHA_WINDOW_SECONDS = 60


class SubmissionValidator:
    """Ordered, short-circuiting screening of form submissions."""

    def __init__(
        self,
        limiter: RateLimiter,
        reputation: ReputationTracker,
        under_attack: UnderAttackMode,
        captcha: CaptchaService,
        settings: Settings,
        clock: Clock = system_clock,
        metrics: MetricsRegistry | None = None,
    ):
        self.limiter = limiter
        self.reputation = reputation
        self.under_attack = under_attack
        self.captcha = captcha
        self.settings = settings
        self.clock = clock
        self.metrics = metrics or reputation.metrics
        limiter.configure(FORM_BUCKET, settings.form_rate_limit, settings.form_rate_window_seconds)
        limiter.configure(CAPTCHA_BUCKET, settings.captcha_rate_limit, CAPTCHA_WINDOW_SECONDS)

    def validate(
        self,
        form: FormDescriptor,
        field_values: Mapping[str, Any],
        ip: str,
        submitted_at: float | None = None,
        user_agent: str = "",
        query_string: str = "",
    ) -> Verdict:
        """Screen one submission. The first failing check names the signal."""
        signal, detail = self._first_failure(form, field_values, ip, submitted_at, user_agent, query_string)
        if signal is None:
            return Verdict.allow()
        self._reject(signal, form, ip, detail)
        return Verdict.reject(signal)

    def _first_failure(
        self,
        form: FormDescriptor,
        field_values: Mapping[str, Any],
        ip: str,
        submitted_at: float | None,
        user_agent: str,
        query_string: str,
    ) -> tuple[RejectionSignal | None, dict[str, Any]]:
        settings = self.settings

        if self.reputation.is_blacklisted(ip):
            return RejectionSignal.BLACKLISTED, {}

        if settings.form_protection_enabled:
            decision = self.limiter.allow(FORM_BUCKET, ip)
            if not decision.allowed:
                return RejectionSignal.RATE_LIMITED, {"count": decision.count, "limit": decision.limit}

            if settings.honeypot_enabled and field_values.get(form.honeypot_field) not in (None, ""):
                return RejectionSignal.HONEYPOT, {"field": form.honeypot_field}

            if settings.timing_protection_enabled and form.rendered_at is not None:
                now = submitted_at if submitted_at is not None else self.clock()
                elapsed = now - form.rendered_at
                if elapsed < settings.form_min_fill_seconds:
                    return RejectionSignal.TOO_FAST, {"elapsed": round(elapsed, 3)}

            if settings.obsolete_client_blocking_enabled and patterns.is_obsolete_client(user_agent):
                return RejectionSignal.OBSOLETE_CLIENT, {"user_agent": user_agent[:200]}

            text = patterns.spam_text(
                field_values,
                exempt={form.honeypot_field, CAPTCHA_TOKEN_FIELD, CAPTCHA_ANSWER_FIELD},
            )
            phrase = patterns.find_spam_phrase(text)
            if phrase is not None:
                return RejectionSignal.SPAM_PATTERN, {"pattern": phrase}
            if patterns.has_excessive_caps(text):
                return RejectionSignal.SPAM_PATTERN, {"pattern": "excessive_caps"}

            if settings.injection_protection_enabled:
                pattern = patterns.find_injection_pattern(patterns.request_data(field_values, query_string))
                if pattern is not None:
                    return RejectionSignal.INJECTION_PATTERN, {"pattern": pattern}

        if self.under_attack.is_under_attack():
            token = field_values.get(CAPTCHA_TOKEN_FIELD)
            answer = field_values.get(CAPTCHA_ANSWER_FIELD)
            if not self.captcha.verify(token, answer):
                return RejectionSignal.CAPTCHA_FAILED, {}

        return None, {}

    def _reject(self, signal: RejectionSignal, form: FormDescriptor, ip: str, detail: dict[str, Any]) -> None:
        self.metrics.increment(f"rejections_{signal.value}_total")
        log_security_event(
            "FORM_REJECTED",
            f"Submission rejected: {signal.value}",
            ip=normalize_ip(ip),
            signal=signal.value,
            form_id=form.form_id,
            **detail,
        )
        self.reputation.record_violation(ip, signal.value, BlacklistSource.FORM_ABUSE)

    def render_form(self, html: str, include_honeypot: bool = False, form: FormDescriptor | None = None) -> str:
        """
        Add protection fields to a rendered form.

        Under attack, a CAPTCHA fragment goes before the submit control.
        The honeypot field is added only when asked for.
        """
        form = form or FormDescriptor()
        if include_honeypot and self.settings.honeypot_enabled:
            html = inject_before_submit(html, honeypot_fragment(form.honeypot_field))
        if not self.under_attack.is_under_attack():
            return html
        try:
            challenge = self.captcha.generate()
        except StoreUnavailableError:
            logger.warning("Could not issue CAPTCHA; form rendered without it", data={"form_id": form.form_id})
            return html
        return inject_before_submit(html, captcha_fragment(challenge))

    def issue_challenge(
        self, ip: str, difficulty: str | None = None
    ) -> tuple[Verdict, CaptchaChallenge | None]:
        """
        Standalone challenge for a refresh control.

        Returns no challenge outside Under Attack mode. Requests are rate
        limited per address so that refreshes cannot fill the store.
        """
        if not self.under_attack.is_under_attack():
            return Verdict.allow(), None
        decision = self.limiter.allow(CAPTCHA_BUCKET, ip)
        if not decision.allowed:
            self.metrics.increment(f"rejections_{RejectionSignal.RATE_LIMITED.value}_total")
            log_security_event(
                "CAPTCHA_RATE_LIMITED",
                "Too many challenge requests",
                ip=normalize_ip(ip),
                count=decision.count,
                limit=decision.limit,
            )
            return Verdict.reject(RejectionSignal.RATE_LIMITED, retry_after=CAPTCHA_WINDOW_SECONDS), None
        return Verdict.allow(), self.captcha.generate(difficulty)
