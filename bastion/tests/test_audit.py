"""Tests for the persisted security event trail."""

import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bastion.core.logging import SECURITY_LOGGER, log_security_event, request_context
from bastion.db import AuditLogHandler, Base, dispose_engine, list_events, log_event, reset_session_factory
from bastion.engine import SecurityEngine
from bastion.main import create_app
from bastion.tests.conftest import make_settings


@pytest.fixture
def sessions():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def audit_handler(sessions):
    handler = AuditLogHandler(sessions)
    security_logger = logging.getLogger(SECURITY_LOGGER)
    previous = security_logger.level
    security_logger.setLevel(logging.INFO)
    security_logger.addHandler(handler)
    yield handler
    security_logger.removeHandler(handler)
    security_logger.setLevel(previous)


def test_log_event_persists_entry(sessions):
    with sessions() as db:
        log_event(db, "IP_BLACKLISTED", "blocked", ip_address="203.0.113.9", details={"source": "manual"})
        rows = list_events(db)
    assert len(rows) == 1
    assert rows[0].event_type == "IP_BLACKLISTED"
    assert rows[0].ip_address == "203.0.113.9"
    assert rows[0].details == '{"source": "manual"}'


def test_log_event_truncates_long_request_id(sessions):
    token = request_context.set({"request_id": "r" * 80})
    try:
        with sessions() as db:
            log_event(db, "LOGIN_FAILED", "failed")
            (row,) = list_events(db)
    finally:
        request_context.reset(token)
    assert row.request_id == "r" * 36


def test_list_events_filters_by_type(sessions):
    with sessions() as db:
        log_event(db, "LOGIN_FAILED", "one")
        log_event(db, "LOGIN_LOCKOUT", "two")
        log_event(db, "LOGIN_FAILED", "three")
        assert len(list_events(db, event_type="LOGIN_FAILED")) == 2
        assert len(list_events(db, limit=1)) == 1


def test_handler_stores_security_events(sessions, audit_handler):
    log_security_event("UNDER_ATTACK_ACTIVATED", "Manual activation", reason="test")
    with sessions() as db:
        (row,) = list_events(db)
    assert row.event_type == "UNDER_ATTACK_ACTIVATED"
    assert row.message == "Manual activation"
    assert row.level == "WARNING"


def test_handler_ignores_plain_records(sessions, audit_handler):
    logging.getLogger(SECURITY_LOGGER).warning("no event type here")
    with sessions() as db:
        assert list_events(db) == []


def test_engine_events_reach_the_trail(sessions, audit_handler, settings, store, clock):
    engine = SecurityEngine(settings, store=store, clock=clock)
    engine.reputation.add_to_blacklist("203.0.113.7", "operator", ttl=600)
    with sessions() as db:
        (row,) = list_events(db, event_type="IP_BLACKLISTED")
    assert row.ip_address == "203.0.113.7"


@pytest.fixture
def audit_app(tmp_path, store, clock):
    dispose_engine()
    reset_session_factory()
    settings = make_settings(audit_log_enabled=True, database_url=f"sqlite:///{tmp_path}/audit.db")
    app = create_app(settings, SecurityEngine(settings, store=store, clock=clock))
    yield app
    dispose_engine()
    reset_session_factory()


def test_events_endpoint_lists_persisted_events(audit_app, admin_headers):
    with TestClient(audit_app) as client:
        response = client.post(
            "/admin/blacklist",
            json={"ip": "203.0.113.5", "reason": "abuse", "ttl_seconds": 600},
            headers=admin_headers,
        )
        assert response.status_code == 201

        data = client.get("/admin/events?event_type=IP_BLACKLISTED", headers=admin_headers).json()
        ready = client.get("/readyz").json()

    assert data["enabled"] is True
    assert len(data["events"]) == 1
    event = data["events"][0]
    assert event["ip"] == "203.0.113.5"
    assert event["details"]["reason"] == "abuse"
    assert event["request_id"]
    assert ready["checks"]["audit_db"] is True
