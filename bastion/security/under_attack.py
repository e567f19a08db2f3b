"""
Under Attack mode.

A site-wide two-state machine. Violations from enough distinct IPs within
the trigger window switch it on for a fixed duration; operators can also
switch it on until they switch it off again. The emergency override and
the feature flag are consulted before anything else.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from bastion.config import Settings
from bastion.core.errors import StoreUnavailableError
from bastion.core.logging import get_logger, log_security_event
from bastion.core.metrics import MetricsRegistry
from bastion.core.time import Clock, system_clock
from bastion.security.ip_key import IPKeyCodec
from bastion.security.keyspace import Keyspace
from bastion.security.types import AttackState, BlacklistSource
from bastion.store.base import TTLStore, dump_record, load_record

logger = get_logger(__name__)


class UnderAttackMode:
    """Automatic and manual site-wide attack state."""

    def __init__(
        self,
        store: TTLStore,
        codec: IPKeyCodec,
        keyspace: Keyspace,
        settings: Settings,
        clock: Clock = system_clock,
        metrics: MetricsRegistry | None = None,
    ):
        self.store = store
        self.codec = codec
        self.keyspace = keyspace
        self.settings = settings
        self.clock = clock
        self.metrics = metrics or MetricsRegistry()

    @property
    def available(self) -> bool:
        return self.settings.under_attack_available

    def _load_state(self) -> AttackState | None:
        key = self.keyspace.attack_state()
        record = load_record(key, self.store.get(key))
        if record is None:
            return None
        state = AttackState(**{k: v for k, v in record.items() if k in AttackState.__dataclass_fields__})
        if state.expires_at is not None and state.expires_at <= self.clock():
            return None
        return state

    def _save_state(self, state: AttackState, ttl: int | None) -> None:
        self.store.set(self.keyspace.attack_state(), dump_record(asdict(state)), ttl)

    def _load_attackers(self) -> dict[str, Any] | None:
        key = self.keyspace.attackers()
        record = load_record(key, self.store.get(key))
        if record is None:
            return None
        if record.get("window_ends", 0) <= self.clock():
            return None
        return record

    def attacker_count(self) -> int:
        """Distinct IPs seen violating in the current trigger window."""
        try:
            record = self._load_attackers()
        except StoreUnavailableError:
            return 0
        return len(record["ips"]) if record else 0

    def is_under_attack(self) -> bool:
        """False whenever the feature is unavailable or the store is down."""
        if not self.available:
            return False
        try:
            return self._load_state() is not None
        except StoreUnavailableError:
            logger.warning("Attack state unavailable; treating site as normal")
            return False

    def record_attack(self, ip: str, reason: str = "", source: BlacklistSource | None = None) -> bool:
        """
        Add ``ip`` to the distinct-attacker set for the current window.

        Returns True when this call promoted (or refreshed) the attack state.
        Signature matches a reputation observer.
        """
        if not self.available:
            return False
        now = self.clock()
        window = self.settings.under_attack_window_seconds
        try:
            record = self._load_attackers() or {"window_ends": now + window, "ips": []}
            ip_key = self.codec.key(ip)
            if ip_key not in record["ips"]:
                record["ips"].append(ip_key)
            ttl = max(1, int(round(record["window_ends"] - now)))
            self.store.set(self.keyspace.attackers(), dump_record(record), ttl)
        except StoreUnavailableError:
            logger.warning("Could not record attacking IP")
            return False

        count = len(record["ips"])
        threshold = self.settings.under_attack_threshold
        if count < threshold:
            return False
        return self._activate_automatic(count)

    def _activate_automatic(self, count: int) -> bool:
        now = self.clock()
        duration = self.settings.under_attack_duration_seconds
        try:
            current = self._load_state()
            if current is not None and current.manual:
                return False
            state = AttackState(
                active=True,
                activated_at=current.activated_at if current else now,
                reason=f"Automatic: {count} distinct attacking IPs",
                distinct_attacker_count=count,
                manual=False,
                expires_at=now + duration,
            )
            self._save_state(state, duration)
        except StoreUnavailableError:
            logger.warning("Could not persist attack state")
            return False

        if current is None:
            self.metrics.increment("attack_activations_total")
            log_security_event(
                "UNDER_ATTACK_ACTIVATED",
                state.reason,
                level=logging.ERROR,
                attackers=count,
                duration=duration,
            )
        else:
            logger.info("Under Attack mode refreshed", data={"attackers": count})
        return True

    def activate(self, reason: str, duration: int | None = None) -> bool:
        """
        Operator activation. Stays on until ``deactivate`` unless a
        ``duration`` is given. No-op when the feature is unavailable.
        """
        if not self.available:
            logger.info("Under Attack activation ignored; feature disabled")
            return False
        now = self.clock()
        state = AttackState(
            active=True,
            activated_at=now,
            reason=reason or "Manual activation",
            distinct_attacker_count=self.attacker_count(),
            manual=True,
            expires_at=None if duration is None else now + duration,
        )
        self._save_state(state, duration)
        self.metrics.increment("attack_activations_total")
        log_security_event(
            "UNDER_ATTACK_ACTIVATED",
            state.reason,
            level=logging.ERROR,
            manual=True,
            duration=duration,
        )
        return True

    def deactivate(self) -> bool:
        """Return to normal. True if the site was under attack."""
        removed = self.store.delete(self.keyspace.attack_state())
        self.store.delete(self.keyspace.attackers())
        if removed:
            log_security_event("UNDER_ATTACK_DEACTIVATED", "Under Attack mode deactivated", level=logging.INFO)
        return removed

    def status(self) -> dict[str, Any]:
        state = None
        if self.available:
            try:
                state = self._load_state()
            except StoreUnavailableError:
                state = None
        data = asdict(state or AttackState())
        data.update(
            available=self.available,
            current_attackers=self.attacker_count(),
            threshold=self.settings.under_attack_threshold,
            window_seconds=self.settings.under_attack_window_seconds,
        )
        return data
