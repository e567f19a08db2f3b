"""Tests for the submission validator pipeline."""

import re

import pytest

from bastion.security.markup import CAPTCHA_ANSWER_FIELD, CAPTCHA_TOKEN_FIELD
from bastion.security.types import BlacklistSource, FormDescriptor, RejectionSignal

IP = "203.0.113.40"
MODERN_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@pytest.fixture
def form(clock):
    return FormDescriptor(form_id="contact", rendered_at=clock() - 5)


@pytest.fixture
def fields():
    return {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "message": "Hello, I would like more information about your services.",
        "bastion_website_url": "",
    }


def validate(engine, form, fields, **kwargs):
    kwargs.setdefault("user_agent", MODERN_UA)
    return engine.submissions.validate(form, fields, kwargs.pop("ip", IP), **kwargs)


def test_clean_submission_is_allowed(engine, form, fields):
    verdict = validate(engine, form, fields)
    assert verdict.allowed is True
    assert verdict.signal is None
    assert engine.reputation.violation_count(IP) == 0


def test_filled_honeypot_is_rejected(engine, form, fields):
    fields["bastion_website_url"] = "http://spam.example"
    verdict = validate(engine, form, fields)
    assert verdict.allowed is False
    assert verdict.signal is RejectionSignal.HONEYPOT


def test_custom_honeypot_field(engine, clock, fields):
    form = FormDescriptor(form_id="c", honeypot_field="company_fax", rendered_at=clock() - 5)
    fields["company_fax"] = "x"
    assert validate(engine, form, fields).signal is RejectionSignal.HONEYPOT


def test_too_fast_submission_is_rejected(engine, clock, fields):
    form = FormDescriptor(form_id="contact", rendered_at=clock() - 0.5)
    assert validate(engine, form, fields).signal is RejectionSignal.TOO_FAST


def test_explicit_submitted_at_is_used(engine, clock, fields):
    form = FormDescriptor(form_id="contact", rendered_at=clock())
    assert validate(engine, form, fields, submitted_at=clock() + 3).allowed is True


def test_timing_skipped_without_render_timestamp(engine, fields):
    assert validate(engine, FormDescriptor(), fields).allowed is True


@pytest.mark.parametrize(
    "user_agent",
    [
        "",
        "curl/7",
        "Mozilla/4.0 (compatible; MSIE 6.0; Windows NT 5.1)",
        "Mozilla/5.0 (Windows NT 6.1) QQBrowser/10.0",
    ],
)
def test_obsolete_clients_are_rejected(engine, form, fields, user_agent):
    assert validate(engine, form, fields, user_agent=user_agent).signal is RejectionSignal.OBSOLETE_CLIENT


def test_spam_phrase_is_rejected(engine, form, fields):
    fields["message"] = "Get Rich Quick with our amazing program"
    assert validate(engine, form, fields).signal is RejectionSignal.SPAM_PATTERN


def test_excessive_capitals_are_rejected(engine, form, fields):
    fields["name"] = "JANE"
    fields["message"] = "BUY THESE AMAZING PRODUCTS RIGHT AWAY BEFORE THEY ARE ALL GONE"
    assert validate(engine, form, fields).signal is RejectionSignal.SPAM_PATTERN


def test_email_field_is_not_screened_for_spam(engine, form, fields):
    fields["email"] = "easy money@example.com"
    assert validate(engine, form, fields).allowed is True


def test_injection_in_fields_is_rejected(engine, form, fields):
    fields["name"] = "x' OR '1'='1"
    assert validate(engine, form, fields).signal is RejectionSignal.INJECTION_PATTERN


def test_url_encoded_injection_in_query_string_is_rejected(engine, form, fields):
    verdict = validate(engine, form, fields, query_string="id=1%20UNION%20SELECT%20password")
    assert verdict.signal is RejectionSignal.INJECTION_PATTERN


def test_rate_limit_rejects_after_threshold(engine, form, fields):
    limit = engine.settings.form_rate_limit
    for _ in range(limit):
        assert validate(engine, form, fields).allowed is True
    assert validate(engine, form, fields).signal is RejectionSignal.RATE_LIMITED


def test_blacklisted_ip_is_rejected_first(engine, form, fields):
    engine.reputation.add_to_blacklist(IP, "operator")
    fields["bastion_website_url"] = "also a honeypot hit"
    assert validate(engine, form, fields).signal is RejectionSignal.BLACKLISTED


def test_checks_run_in_order(engine, clock, fields):
    # Honeypot, timing and obsolete client all fail; honeypot comes first.
    form = FormDescriptor(form_id="contact", rendered_at=clock())
    fields["bastion_website_url"] = "x"
    assert validate(engine, form, fields, user_agent="").signal is RejectionSignal.HONEYPOT


def test_rejections_feed_reputation_as_form_abuse(engine, form, fields):
    fields["bastion_website_url"] = "bot"
    for _ in range(engine.settings.violation_threshold):
        validate(engine, form, fields)
    assert engine.reputation.get_entry(IP, BlacklistSource.FORM_ABUSE) is not None
    assert engine.metrics.get("rejections_honeypot_total") == engine.settings.violation_threshold
    assert engine.metrics.rejections() == {"honeypot": engine.settings.violation_threshold}


def test_disabled_heuristics_are_skipped(make_engine, clock, fields):
    engine = make_engine(
        honeypot_enabled=False,
        timing_protection_enabled=False,
        obsolete_client_blocking_enabled=False,
        injection_protection_enabled=False,
    )
    form = FormDescriptor(rendered_at=clock())
    fields["bastion_website_url"] = "x"
    fields["name"] = "x' OR '1'='1"
    assert validate(engine, form, fields, user_agent="").allowed is True


class TestUnderAttackGate:
    def test_missing_captcha_is_rejected(self, engine, form, fields):
        engine.under_attack.activate("test")
        assert validate(engine, form, fields).signal is RejectionSignal.CAPTCHA_FAILED

    def test_valid_captcha_passes(self, engine, form, fields):
        engine.under_attack.activate("test")
        challenge = engine.captcha.generate()
        fields[CAPTCHA_TOKEN_FIELD] = challenge.token
        fields[CAPTCHA_ANSWER_FIELD] = str(challenge.answer)
        assert validate(engine, form, fields).allowed is True

    def test_wrong_captcha_is_rejected(self, engine, form, fields):
        engine.under_attack.activate("test")
        challenge = engine.captcha.generate()
        fields[CAPTCHA_TOKEN_FIELD] = challenge.token
        fields[CAPTCHA_ANSWER_FIELD] = str(challenge.answer + 1)
        assert validate(engine, form, fields).signal is RejectionSignal.CAPTCHA_FAILED

    def test_captcha_not_required_in_normal_mode(self, engine, form, fields):
        assert validate(engine, form, fields).allowed is True


class TestRenderForm:
    HTML = '<form method="post"><input name="message"><input type="submit" value="Send"></form>'

    def test_unmodified_when_not_under_attack(self, engine):
        assert engine.submissions.render_form(self.HTML) == self.HTML

    def test_captcha_injected_before_submit(self, engine):
        engine.under_attack.activate("test")
        html = engine.submissions.render_form(self.HTML)
        assert html.index(CAPTCHA_TOKEN_FIELD) < html.index('type="submit"')
        assert html.index('name="message"') < html.index(CAPTCHA_ANSWER_FIELD)

    def test_rendered_challenge_can_be_solved(self, engine):
        engine.under_attack.activate("test")
        html = engine.submissions.render_form(self.HTML)
        a, op, b = re.search(r"What is (\d+) ([-+*]) (\d+)\?", html).groups()
        answer = {"+": int(a) + int(b), "-": int(a) - int(b), "*": int(a) * int(b)}[op]
        token = re.search(rf'name="{CAPTCHA_TOKEN_FIELD}" value="(\w+)"', html).group(1)
        assert engine.captcha.verify(token, str(answer)) is True
        assert engine.captcha.verify(token, str(answer)) is False

    def test_honeypot_only_when_asked(self, engine):
        html = engine.submissions.render_form(self.HTML, include_honeypot=True)
        assert 'name="bastion_website_url"' in html
        assert html.index("bastion_website_url") < html.index('type="submit"')


def test_store_outage_does_not_block_traffic(down_engine, form, fields):
    assert validate(down_engine, form, fields).allowed is True
