"""
IP reputation: violation counting and blacklisting.

Violations decay after a period of inactivity. Reaching the threshold
creates a blacklist entry in the violation's category and resets the
count, so an IP released from the blacklist starts from zero.
"""

from __future__ import annotations

import logging
from typing import Callable

from bastion.config import Settings
from bastion.core.errors import StoreUnavailableError
from bastion.core.logging import get_logger, log_security_event
from bastion.core.metrics import MetricsRegistry
from bastion.core.time import Clock, system_clock
from bastion.security.ip_key import IPKeyCodec, normalize_ip
from bastion.security.keyspace import Keyspace
from bastion.security.types import BlacklistEntry, BlacklistSource, ViolationRecord
from bastion.store.base import TTLStore, dump_record, load_record

logger = get_logger(__name__)

ViolationObserver = Callable[[str, str, BlacklistSource], None]

MAX_TRACKED_REASONS = 10


class ReputationTracker:
    """Tracks violations per IP and owns every blacklist category."""

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
        self._observers: list[ViolationObserver] = []

    def add_observer(self, observer: ViolationObserver) -> None:
        """Register a callback invoked with ``(ip, reason, source)`` per violation."""
        self._observers.append(observer)

    # Violations

    def _load_violations(self, ip: str) -> tuple[str, ViolationRecord]:
        ip_key = self.codec.key(ip)
        key = self.keyspace.violations(ip_key)
        record = load_record(key, self.store.get(key))
        if record is None:
            return key, ViolationRecord(ip=ip_key)
        return key, ViolationRecord(
            ip=ip_key,
            violations=int(record.get("violations", 0)),
            last_violation_at=record.get("last_violation_at"),
            reasons=list(record.get("reasons", [])),
        )

    def violation_count(self, ip: str) -> int:
        _, record = self._load_violations(ip)
        return record.violations

    def record_violation(
        self,
        ip: str,
        reason: str,
        source: BlacklistSource = BlacklistSource.AUTO,
    ) -> bool:
        """
        Count one violation for ``ip``.

        Returns True when this violation pushed the IP onto the blacklist.
        Store outages are logged and the violation is dropped.
        """
        if source is BlacklistSource.MANUAL:
            source = BlacklistSource.AUTO
        now = self.clock()
        try:
            key, record = self._load_violations(ip)
            record.violations += 1
            record.last_violation_at = now
            record.reasons = (record.reasons + [reason])[-MAX_TRACKED_REASONS:]
            self.store.set(key, dump_record({
                "violations": record.violations,
                "last_violation_at": now,
                "reasons": record.reasons,
            }), self.settings.violation_decay_seconds)
        except StoreUnavailableError:
            logger.warning("Could not record violation", data={"reason": reason})
            return False

        self.metrics.increment("violations_total")
        log_security_event(
            "VIOLATION_RECORDED",
            "Security violation recorded",
            ip=normalize_ip(ip),
            reason=reason,
            source=source.value,
            violations=record.violations,
            threshold=self.settings.violation_threshold,
        )

        for observer in self._observers:
            observer(ip, reason, source)

        if record.violations < self.settings.violation_threshold:
            return False

        duration = (
            self.settings.form_abuse_block_seconds
            if source is BlacklistSource.FORM_ABUSE
            else self.settings.blacklist_duration_seconds
        )
        try:
            self.add_to_blacklist(
                ip,
                f"Automatic: {record.violations} violations ({reason})",
                ttl=duration,
                source=source,
            )
            self.store.delete(key)
        except StoreUnavailableError:
            logger.warning("Could not blacklist IP after threshold", data={"source": source.value})
            return False

        self.metrics.increment("blacklistings_total")
        log_security_event(
            "IP_AUTO_BLACKLISTED",
            "IP blacklisted after repeated violations",
            ip=normalize_ip(ip),
            source=source.value,
            violations=record.violations,
            duration=duration,
        )
        return True

    # Blacklist

    def _entry_key(self, ip_key: str, source: BlacklistSource) -> str:
        return self.keyspace.blacklist(source.value, ip_key)

    def _load_entry(self, key: str) -> BlacklistEntry | None:
        record = load_record(key, self.store.get(key))
        if record is None:
            return None
        entry = BlacklistEntry.from_record(record)
        if entry.expires_at is not None and entry.expires_at <= self.clock():
            return None
        return entry

    def _index(self, source: BlacklistSource) -> list[str]:
        key = self.keyspace.blacklist_index(source.value)
        record = load_record(key, self.store.get(key))
        return list(record.get("keys", [])) if record else []

    def _write_index(self, source: BlacklistSource, ip_keys: list[str]) -> None:
        key = self.keyspace.blacklist_index(source.value)
        if ip_keys:
            self.store.set(key, dump_record({"keys": ip_keys}), None)
        else:
            self.store.delete(key)

    def get_entry(self, ip: str, source: BlacklistSource) -> BlacklistEntry | None:
        return self._load_entry(self._entry_key(self.codec.key(ip), source))

    def active_entries(self, ip: str) -> list[BlacklistEntry]:
        """Every active entry for ``ip`` across all categories."""
        ip_key = self.codec.key(ip)
        entries = []
        for source in BlacklistSource:
            entry = self._load_entry(self._entry_key(ip_key, source))
            if entry is not None:
                entries.append(entry)
        return entries

    def is_blacklisted(self, ip: str) -> bool:
        """True if any category blocks ``ip``. Fails open on store outage."""
        try:
            return bool(self.active_entries(ip))
        except StoreUnavailableError:
            logger.warning("Blacklist store unavailable; allowing request")
            return False

    def add_to_blacklist(
        self,
        ip: str,
        reason: str,
        ttl: int | None = None,
        source: BlacklistSource = BlacklistSource.MANUAL,
        lockout: bool = False,
    ) -> BlacklistEntry:
        """
        Block ``ip`` in ``source``, replacing any prior entry there.

        ``ttl`` of None blocks until removed.
        """
        now = self.clock()
        ip_key = self.codec.key(ip)
        entry = BlacklistEntry(
            ip=ip_key,
            address=normalize_ip(ip),
            reason=reason,
            blocked_at=now,
            expires_at=None if ttl is None else now + ttl,
            source=source,
            lockout=lockout,
        )
        self.store.set(self._entry_key(ip_key, source), dump_record(entry.to_record()), ttl)
        index = self._index(source)
        if ip_key not in index:
            index.append(ip_key)
            self._write_index(source, index)
        log_security_event(
            "IP_BLACKLISTED",
            "IP added to blacklist",
            ip=entry.address,
            source=source.value,
            reason=reason,
            duration=ttl,
        )
        return entry

    def remove_from_blacklist(self, ip: str, source: BlacklistSource | None = None) -> bool:
        """Remove the entry in ``source`` (or every category). False if nothing existed."""
        ip_key = self.codec.key(ip)
        sources = [source] if source is not None else list(BlacklistSource)
        removed = False
        for category in sources:
            existed = self._load_entry(self._entry_key(ip_key, category)) is not None
            self.store.delete(self._entry_key(ip_key, category))
            index = self._index(category)
            if ip_key in index:
                index.remove(ip_key)
                self._write_index(category, index)
            removed = removed or existed
        if removed:
            log_security_event(
                "IP_UNBLOCKED",
                "IP removed from blacklist",
                ip=normalize_ip(ip),
                level=logging.INFO,
                source=source.value if source else "all",
            )
        return removed

    def list_blocked(self, source_filter: BlacklistSource | None = None) -> list[BlacklistEntry]:
        """Active entries, newest first. Expired index members are pruned."""
        sources = [source_filter] if source_filter is not None else list(BlacklistSource)
        entries: list[BlacklistEntry] = []
        for source in sources:
            index = self._index(source)
            live = []
            for ip_key in index:
                entry = self._load_entry(self._entry_key(ip_key, source))
                if entry is not None:
                    entries.append(entry)
                    live.append(ip_key)
            if len(live) != len(index):
                self._write_index(source, live)
        entries.sort(key=lambda e: e.blocked_at, reverse=True)
        return entries

    def clear_category(self, source: BlacklistSource) -> int:
        """Remove every entry of one category; other categories are untouched."""
        removed = 0
        for ip_key in self._index(source):
            key = self._entry_key(ip_key, source)
            if self._load_entry(key) is not None:
                removed += 1
            self.store.delete(key)
        self._write_index(source, [])
        log_security_event(
            "BLACKLIST_CATEGORY_CLEARED",
            f"Cleared {removed} {source.value} entries",
            level=logging.INFO,
            source=source.value,
            removed=removed,
        )
        return removed

    def stats(self) -> dict:
        counts = {source.value: len(self.list_blocked(source)) for source in BlacklistSource}
        return {
            "blocked": counts,
            "total_blocked": sum(counts.values()),
            "violation_threshold": self.settings.violation_threshold,
            "blacklist_duration_seconds": self.settings.blacklist_duration_seconds,
        }
