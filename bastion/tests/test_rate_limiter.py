"""Tests for the fixed-window rate limiter."""

import threading

from bastion.security.rate_limiter import FORM_BUCKET, LOGIN_BUCKET
from bastion.tests.conftest import FakeClock


IP = "203.0.113.10"


def test_allows_exactly_threshold_per_window(engine):
    limit = engine.settings.form_rate_limit
    decisions = [engine.limiter.allow(FORM_BUCKET, IP) for _ in range(limit + 1)]
    assert [d.allowed for d in decisions] == [True] * limit + [False]
    assert decisions[0].remaining == limit - 1
    assert decisions[-1].remaining == 0
    assert decisions[-1].count == limit + 1


def test_counter_resets_after_window(engine, clock: FakeClock):
    limit = engine.settings.form_rate_limit
    for _ in range(limit + 1):
        engine.limiter.allow(FORM_BUCKET, IP)
    clock.advance(engine.settings.form_rate_window_seconds)
    assert engine.limiter.allow(FORM_BUCKET, IP).allowed is True


def test_window_is_fixed_not_sliding(engine, clock: FakeClock):
    # A full burst right before expiry and another right after both pass.
    limit = engine.settings.form_rate_limit
    window = engine.settings.form_rate_window_seconds
    engine.limiter.allow(FORM_BUCKET, IP)
    clock.advance(window - 1)
    assert all(engine.limiter.allow(FORM_BUCKET, IP).allowed for _ in range(limit - 1))
    clock.advance(1)
    assert all(engine.limiter.allow(FORM_BUCKET, IP).allowed for _ in range(limit))


def test_buckets_and_ips_are_independent(engine):
    limit = engine.settings.form_rate_limit
    for _ in range(limit + 1):
        engine.limiter.allow(FORM_BUCKET, IP)
    assert engine.limiter.allow(FORM_BUCKET, "198.51.100.1").allowed is True
    assert engine.limiter.allow(LOGIN_BUCKET, IP).allowed is True


def test_limit_override_applies_to_single_call(engine):
    for _ in range(3):
        engine.limiter.allow(FORM_BUCKET, IP)
    assert engine.limiter.allow(FORM_BUCKET, IP, limit=3).allowed is False
    assert engine.limiter.allow(FORM_BUCKET, IP, limit=10).allowed is True


def test_reset_deletes_counter(engine):
    engine.limiter.allow(FORM_BUCKET, IP)
    assert engine.limiter.count(FORM_BUCKET, IP) == 1
    assert engine.limiter.reset(FORM_BUCKET, IP) is True
    assert engine.limiter.count(FORM_BUCKET, IP) == 0
    assert engine.limiter.reset(FORM_BUCKET, IP) is False


def test_store_outage_fails_open(down_engine):
    decision = down_engine.limiter.allow(FORM_BUCKET, IP)
    assert decision.allowed is True


def test_counts_are_eventually_correct_not_atomic(engine):
    # The memory adapter serializes its own increments, so threads in one
    # process never lose a count. Across processes only approximate counts
    # are promised.
    def hammer():
        for _ in range(25):
            engine.limiter.allow(FORM_BUCKET, IP)

    threads = [threading.Thread(target=hammer) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert engine.limiter.count(FORM_BUCKET, IP) == 200
