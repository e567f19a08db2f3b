"""Audit trail models, engine, and session management."""

from bastion.db.audit import AuditLogHandler, install_audit_handler, list_events, log_event, remove_audit_handler
from bastion.db.base import Base
from bastion.db.engine import dispose_engine, get_engine, verify_database_connection
from bastion.db.models import SecurityEvent
from bastion.db.session import get_session_factory, reset_session_factory


def init_db() -> None:
    """Create tables that do not exist yet."""
    Base.metadata.create_all(bind=get_engine())


__all__ = [
    "AuditLogHandler",
    "Base",
    "SecurityEvent",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "init_db",
    "install_audit_handler",
    "list_events",
    "log_event",
    "remove_audit_handler",
    "reset_session_factory",
    "verify_database_connection",
]
