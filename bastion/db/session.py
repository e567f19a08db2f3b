"""Session factory for audit trail reads and writes."""

from sqlalchemy.orm import Session, sessionmaker

from bastion.db.engine import get_engine

_session_factory: sessionmaker[Session] | None = None


def get_session_factory() -> sessionmaker[Session]:
    """
    Return the process session factory bound to the audit engine.

    Objects stay readable after commit so event rows can be serialized
    once the session is closed.
    """
    global _session_factory

    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)
    return _session_factory


def reset_session_factory() -> None:
    global _session_factory
    _session_factory = None
