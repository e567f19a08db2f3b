"""Tests for login page bot protection."""

import pytest

from bastion.security.rate_limiter import BOT_ACTIVITY_BUCKET
from bastion.security.types import BlacklistSource, RejectionSignal

IP = "203.0.113.60"
BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"
BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
}


def test_browser_request_passes(engine):
    assert engine.bots.check(IP, BROWSER_UA, BROWSER_HEADERS).allowed is True


@pytest.mark.parametrize(
    "user_agent",
    [
        "sqlmap/1.7.2#stable",
        "python-requests/2.31.0",
        "curl/8.4.0",
        "WPScan v3.8.25",
        "Mozilla/5.0 Googlebot/2.1",
    ],
)
def test_scanner_signatures_are_rejected(engine, user_agent):
    verdict = engine.bots.check(IP, user_agent, BROWSER_HEADERS)
    assert verdict.allowed is False
    assert verdict.signal is RejectionSignal.BOT_DETECTED
    assert verdict.retry_after is None


@pytest.mark.parametrize("user_agent", ["", "Mozilla", "   x    "])
def test_missing_or_short_user_agent_is_rejected(engine, user_agent):
    assert engine.bots.check(IP, user_agent, BROWSER_HEADERS).signal is RejectionSignal.BOT_DETECTED


def test_missing_accept_headers_is_rejected(engine):
    verdict = engine.bots.check(IP, BROWSER_UA, {"Host": "example.com"})
    assert verdict.signal is RejectionSignal.BOT_DETECTED


def test_one_accept_header_is_enough(engine):
    assert engine.bots.check(IP, BROWSER_UA, {"accept-language": "de"}).allowed is True


def test_header_check_skipped_when_headers_unknown(engine):
    assert engine.bots.check(IP, BROWSER_UA, None).allowed is True


def test_login_page_rate_limit(make_engine):
    engine = make_engine(login_page_rate_limit=5)
    for _ in range(5):
        assert engine.bots.check(IP, BROWSER_UA, BROWSER_HEADERS).allowed is True
    assert engine.bots.check(IP, BROWSER_UA, BROWSER_HEADERS).signal is RejectionSignal.BOT_DETECTED
    assert engine.bots.check("203.0.113.61", BROWSER_UA, BROWSER_HEADERS).allowed is True


def test_login_page_window_resets(make_engine, clock):
    engine = make_engine(login_page_rate_limit=5)
    for _ in range(5):
        engine.bots.check(IP, BROWSER_UA, BROWSER_HEADERS)
    clock.advance(61)
    assert engine.bots.check(IP, BROWSER_UA, BROWSER_HEADERS).allowed is True


def test_repeated_detections_block_in_bot_category(engine):
    threshold = engine.settings.bot_activity_threshold
    for _ in range(threshold):
        assert engine.bots.check(IP, "nikto/2.5", BROWSER_HEADERS).retry_after is None
    assert engine.reputation.get_entry(IP, BlacklistSource.BOT) is None

    verdict = engine.bots.check(IP, "nikto/2.5", BROWSER_HEADERS)
    assert verdict.retry_after == engine.settings.bot_block_seconds

    entry = engine.reputation.get_entry(IP, BlacklistSource.BOT)
    assert entry is not None
    assert entry.source is BlacklistSource.BOT
    assert engine.limiter.count(BOT_ACTIVITY_BUCKET, IP) == 0
    assert engine.metrics.get("blacklistings_total") == 1
    assert engine.reputation.stats()["blocked"]["bot"] == 1


def test_blocked_address_is_rejected_even_as_a_browser(engine, clock):
    for _ in range(engine.settings.bot_activity_threshold + 1):
        engine.bots.check(IP, "masscan/1.3", BROWSER_HEADERS)

    clock.advance(100)
    verdict = engine.bots.check(IP, BROWSER_UA, BROWSER_HEADERS)
    assert verdict.signal is RejectionSignal.BOT_DETECTED
    assert verdict.retry_after == engine.settings.bot_block_seconds - 100
    assert engine.lockout.check_lockout(IP).signal is RejectionSignal.BLACKLISTED

    clock.advance(engine.settings.bot_block_seconds)
    assert engine.bots.check(IP, BROWSER_UA, BROWSER_HEADERS).allowed is True


def test_detections_spread_past_the_window_do_not_block(engine, clock):
    threshold = engine.settings.bot_activity_threshold
    for _ in range(threshold):
        engine.bots.check(IP, "gobuster/3.6", BROWSER_HEADERS)
    clock.advance(engine.settings.bot_activity_window_seconds + 1)
    assert engine.bots.check(IP, "gobuster/3.6", BROWSER_HEADERS).retry_after is None
    assert engine.reputation.get_entry(IP, BlacklistSource.BOT) is None


@pytest.mark.parametrize("action", ["lostpassword", "rp", "resetpass", "logout", "register"])
def test_recovery_actions_are_exempt(engine, action):
    assert engine.bots.check(IP, "curl/8.4.0", {}, action=action).allowed is True


def test_password_reset_link_is_exempt(engine):
    assert engine.bots.check(IP, "", {}, password_reset=True).allowed is True


def test_disabled_protection_allows_everything(make_engine):
    engine = make_engine(bot_protection_enabled=False)
    assert engine.bots.check(IP, "sqlmap/1.7", {}).allowed is True


def test_store_outage_fails_open(down_engine):
    assert down_engine.bots.check(IP, BROWSER_UA, BROWSER_HEADERS).allowed is True
