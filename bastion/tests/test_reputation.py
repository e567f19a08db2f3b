"""Tests for violation tracking and blacklist categories."""

import pytest

from bastion.core.errors import CorruptedStateError, StoreUnavailableError
from bastion.engine import SecurityEngine
from bastion.security.types import BlacklistSource
from bastion.store import MemoryTTLStore

IP = "203.0.113.20"


def test_threshold_violations_blacklist_and_reset_count(engine):
    threshold = engine.settings.violation_threshold
    for _ in range(threshold - 1):
        assert engine.reputation.record_violation(IP, "spam") is False
    assert engine.reputation.is_blacklisted(IP) is False
    assert engine.reputation.violation_count(IP) == threshold - 1

    assert engine.reputation.record_violation(IP, "spam") is True
    assert engine.reputation.is_blacklisted(IP) is True
    assert engine.reputation.violation_count(IP) == 0

    entry = engine.reputation.get_entry(IP, BlacklistSource.AUTO)
    assert entry is not None
    assert entry.address == IP
    assert entry.ip != IP
    assert entry.expires_at == pytest.approx(entry.blocked_at + engine.settings.blacklist_duration_seconds)
    assert engine.metrics.get("blacklistings_total") == 1


def test_violations_decay_after_inactivity(engine, clock):
    engine.reputation.record_violation(IP, "spam")
    clock.advance(engine.settings.violation_decay_seconds)
    assert engine.reputation.violation_count(IP) == 0


def test_each_violation_refreshes_decay(engine, clock):
    decay = engine.settings.violation_decay_seconds
    engine.reputation.record_violation(IP, "spam")
    clock.advance(decay - 10)
    engine.reputation.record_violation(IP, "spam")
    clock.advance(decay - 10)
    assert engine.reputation.violation_count(IP) == 2


def test_form_abuse_violations_block_in_their_own_category(engine):
    for _ in range(engine.settings.violation_threshold):
        engine.reputation.record_violation(IP, "honeypot", BlacklistSource.FORM_ABUSE)
    assert engine.reputation.get_entry(IP, BlacklistSource.FORM_ABUSE) is not None
    assert engine.reputation.get_entry(IP, BlacklistSource.AUTO) is None


def test_blacklist_expires(engine, clock):
    engine.reputation.add_to_blacklist(IP, "test", ttl=3600, source=BlacklistSource.MANUAL)
    assert engine.reputation.is_blacklisted(IP) is True
    clock.advance(3600)
    assert engine.reputation.is_blacklisted(IP) is False
    assert engine.reputation.list_blocked() == []


def test_add_then_remove(engine):
    engine.reputation.add_to_blacklist(IP, "manual block")
    assert engine.reputation.is_blacklisted(IP) is True
    assert engine.reputation.remove_from_blacklist(IP) is True
    assert engine.reputation.is_blacklisted(IP) is False


def test_remove_never_blacklisted_returns_false(engine):
    assert engine.reputation.remove_from_blacklist(IP) is False
    assert engine.reputation.is_blacklisted(IP) is False
    assert engine.reputation.list_blocked() == []


def test_new_add_replaces_entry_in_same_category(engine):
    engine.reputation.add_to_blacklist(IP, "first", ttl=3600)
    engine.reputation.add_to_blacklist(IP, "second", ttl=7200)
    entries = engine.reputation.list_blocked(BlacklistSource.MANUAL)
    assert [e.reason for e in entries] == ["second"]


def test_clear_category_only_touches_that_category(engine):
    manual_ip, auto_ip, form_ip = "198.51.100.1", "198.51.100.2", "198.51.100.3"
    engine.reputation.add_to_blacklist(manual_ip, "m", source=BlacklistSource.MANUAL)
    engine.reputation.add_to_blacklist(auto_ip, "a", ttl=3600, source=BlacklistSource.AUTO)
    engine.reputation.add_to_blacklist(form_ip, "f", ttl=3600, source=BlacklistSource.FORM_ABUSE)

    assert engine.reputation.clear_category(BlacklistSource.FORM_ABUSE) == 1

    assert engine.reputation.is_blacklisted(form_ip) is False
    assert engine.reputation.is_blacklisted(manual_ip) is True
    assert engine.reputation.is_blacklisted(auto_ip) is True
    assert engine.reputation.clear_category(BlacklistSource.FORM_ABUSE) == 0


def test_list_blocked_filters_by_source(engine, clock):
    engine.reputation.add_to_blacklist("198.51.100.1", "m")
    clock.advance(1)
    engine.reputation.add_to_blacklist("198.51.100.2", "f", ttl=3600, source=BlacklistSource.FORM_ABUSE)

    everything = engine.reputation.list_blocked()
    assert [e.address for e in everything] == ["198.51.100.2", "198.51.100.1"]
    only_form = engine.reputation.list_blocked(BlacklistSource.FORM_ABUSE)
    assert [e.source for e in only_form] == [BlacklistSource.FORM_ABUSE]


def test_remove_from_single_source(engine):
    engine.reputation.add_to_blacklist(IP, "m")
    engine.reputation.add_to_blacklist(IP, "f", ttl=3600, source=BlacklistSource.FORM_ABUSE)
    assert engine.reputation.remove_from_blacklist(IP, BlacklistSource.FORM_ABUSE) is True
    assert engine.reputation.is_blacklisted(IP) is True
    assert [e.source for e in engine.reputation.active_entries(IP)] == [BlacklistSource.MANUAL]


def test_manual_entry_survives_violation_logic(engine):
    engine.reputation.add_to_blacklist(IP, "operator")
    for _ in range(engine.settings.violation_threshold):
        engine.reputation.record_violation(IP, "spam")
    manual = engine.reputation.get_entry(IP, BlacklistSource.MANUAL)
    assert manual is not None
    assert manual.reason == "operator"
    assert manual.expires_at is None


def test_observers_receive_every_violation(engine):
    seen = []
    engine.reputation.add_observer(lambda ip, reason, source: seen.append((ip, reason, source)))
    engine.reputation.record_violation(IP, "spam", BlacklistSource.FORM_ABUSE)
    assert seen == [(IP, "spam", BlacklistSource.FORM_ABUSE)]


def test_stats_counts_categories(engine):
    engine.reputation.add_to_blacklist("198.51.100.1", "m")
    engine.reputation.add_to_blacklist("198.51.100.2", "f", ttl=3600, source=BlacklistSource.FORM_ABUSE)
    stats = engine.reputation.stats()
    assert stats["blocked"] == {"manual": 1, "auto": 0, "form-abuse": 1, "bot": 0}
    assert stats["total_blocked"] == 2


def test_corrupted_record_propagates(engine, store):
    key = engine.keyspace.violations(engine.codec.key(IP))
    store.set(key, b"{not json", 60)
    with pytest.raises(CorruptedStateError):
        engine.reputation.record_violation(IP, "spam")


def test_store_outage_fails_open(down_engine):
    assert down_engine.reputation.is_blacklisted(IP) is False
    assert down_engine.reputation.record_violation(IP, "spam") is False


def test_manual_ban_survives_a_full_store(settings, clock):
    engine = SecurityEngine(settings, store=MemoryTTLStore(maxsize=50, clock=clock), clock=clock)
    engine.reputation.add_to_blacklist(IP, "operator")
    engine.under_attack.activate("test")

    refused = 0
    for _ in range(60):
        try:
            engine.captcha.generate()
        except StoreUnavailableError:
            refused += 1

    assert refused > 0
    assert engine.reputation.is_blacklisted(IP) is True
    assert engine.reputation.get_entry(IP, BlacklistSource.MANUAL) is not None
