"""
Security event repository and logging bridge.

``AuditLogHandler`` attaches to the ``bastion.security`` logger and writes
each event record to the ``security_events`` table.
"""

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from bastion.core.logging import SECURITY_LOGGER, request_context
from bastion.db.models import SecurityEvent


def log_event(
    db: Session,
    event_type: str,
    message: str,
    level: str = "WARNING",
    ip_address: str | None = None,
    details: dict[str, Any] | None = None,
) -> SecurityEvent:
    """
    Create a security event entry.

    Args:
        db: Database session.
        event_type: Stable event identifier, e.g. ``IP_AUTO_BLACKLISTED``.
        message: Human-readable summary.
        level: Log level name.
        ip_address: Client address the event concerns.
        details: Additional details as dict (stored as JSON).

    Returns:
        Created SecurityEvent entry.
    """
    request_id = request_context.get().get("request_id")
    entry = SecurityEvent(
        event_type=event_type,
        level=level,
        message=message[:512],
        ip_address=ip_address[:45] if ip_address else None,
        details=json.dumps(details, default=str) if details else None,
        request_id=request_id[:36] if request_id else None,
    )
    db.add(entry)
    db.commit()
    return entry


def list_events(
    db: Session,
    *,
    event_type: str | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[SecurityEvent]:
    """Return recent security events, newest first."""
    stmt = select(SecurityEvent)
    if event_type:
        stmt = stmt.where(SecurityEvent.event_type == event_type)
    stmt = stmt.order_by(SecurityEvent.created_at.desc()).limit(limit).offset(offset)
    return list(db.execute(stmt).scalars().all())


class AuditLogHandler(logging.Handler):
    """Persists security log records that carry an ``event_type``."""

    def __init__(self, session_factory: sessionmaker[Session], level: int = logging.INFO):
        super().__init__(level)
        self.session_factory = session_factory

    def emit(self, record: logging.LogRecord) -> None:
        event_type = getattr(record, "event_type", None)
        if not event_type:
            return
        data = dict(getattr(record, "data", None) or {})
        ip_address = data.pop("ip", None)
        try:
            with self.session_factory() as db:
                log_event(
                    db,
                    event_type=event_type,
                    message=getattr(record, "event_message", record.getMessage()),
                    level=record.levelname,
                    ip_address=ip_address,
                    details=data,
                )
        except Exception:
            self.handleError(record)


def install_audit_handler(session_factory: sessionmaker[Session]) -> AuditLogHandler:
    """Attach an AuditLogHandler to the security logger."""
    handler = AuditLogHandler(session_factory)
    logging.getLogger(SECURITY_LOGGER).addHandler(handler)
    return handler


def remove_audit_handler(handler: AuditLogHandler) -> None:
    logging.getLogger(SECURITY_LOGGER).removeHandler(handler)
