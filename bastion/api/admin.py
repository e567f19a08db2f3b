"""
Admin API endpoints.

Blacklist management, Under Attack control, statistics and the audit
trail. Every route requires the ``X-Admin-Token`` header.
"""

import json
from typing import Any

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field, IPvAnyAddress

from bastion.api.deps import EngineDep, RequireAdmin
from bastion.core import ForbiddenError, NotFoundError, get_logger
from bastion.core.time import to_datetime
from bastion.db.audit import list_events
from bastion.security.types import BlacklistEntry, BlacklistSource

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[RequireAdmin])


# Request schemas
class BlacklistAddRequest(BaseModel):
    """Manual blacklist entry."""

    ip: IPvAnyAddress
    reason: str = Field(default="Manual block", max_length=255)
    ttl_seconds: int | None = Field(
        default=None,
        ge=60,
        le=31536000,
        description="Block duration; omit to block until removed",
    )
    source: BlacklistSource = BlacklistSource.MANUAL


class UnderAttackRequest(BaseModel):
    reason: str = Field(default="Manual activation", max_length=255)
    duration_seconds: int | None = Field(default=None, ge=60, le=86400)


def _iso(epoch: float | None) -> str | None:
    if epoch is None:
        return None
    return to_datetime(epoch).isoformat()


def _entry_response(entry: BlacklistEntry, now: float) -> dict[str, Any]:
    return {
        "key": entry.ip,
        "ip": entry.address,
        "reason": entry.reason,
        "source": entry.source.value,
        "lockout": entry.lockout,
        "blocked_at": _iso(entry.blocked_at),
        "expires_at": _iso(entry.expires_at),
        "remaining_seconds": entry.remaining(now),
    }


# Blacklist
@router.get("/blacklist")
def list_blacklist(
    engine: EngineDep,
    source: BlacklistSource | None = Query(default=None),
) -> dict[str, Any]:
    now = engine.clock()
    entries = engine.reputation.list_blocked(source)
    return {
        "entries": [_entry_response(e, now) for e in entries],
        "count": len(entries),
    }


@router.post("/blacklist", status_code=status.HTTP_201_CREATED)
def add_blacklist(body: BlacklistAddRequest, engine: EngineDep) -> dict[str, Any]:
    entry = engine.reputation.add_to_blacklist(
        str(body.ip),
        body.reason,
        ttl=body.ttl_seconds,
        source=body.source,
    )
    logger.info("Admin blacklisted IP", data={"ip": entry.address, "source": entry.source.value})
    return _entry_response(entry, engine.clock())


@router.delete("/blacklist/{ip}")
def remove_blacklist(
    ip: str,
    engine: EngineDep,
    source: BlacklistSource | None = Query(default=None),
) -> dict[str, bool]:
    if not engine.reputation.remove_from_blacklist(ip, source):
        raise NotFoundError("IP is not blacklisted")
    return {"removed": True}


@router.delete("/blacklist")
def clear_blacklist_category(
    engine: EngineDep,
    source: BlacklistSource = Query(...),
) -> dict[str, Any]:
    removed = engine.reputation.clear_category(source)
    return {"source": source.value, "removed": removed}


# Under Attack
@router.get("/under-attack")
def under_attack_status(engine: EngineDep) -> dict[str, Any]:
    return engine.under_attack.status()


@router.post("/under-attack")
def activate_under_attack(body: UnderAttackRequest, engine: EngineDep) -> dict[str, Any]:
    if not engine.under_attack.activate(body.reason, body.duration_seconds):
        raise ForbiddenError("Under Attack mode is disabled")
    return engine.under_attack.status()


@router.delete("/under-attack")
def deactivate_under_attack(engine: EngineDep) -> dict[str, bool]:
    return {"deactivated": engine.under_attack.deactivate()}


# Observability
@router.get("/stats")
def stats(engine: EngineDep) -> dict[str, Any]:
    return engine.stats()


@router.get("/events")
def events(
    request: Request,
    event_type: str | None = Query(default=None, max_length=64),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    """Recent security events from the audit trail, newest first."""
    factory = getattr(request.app.state, "audit_sessions", None)
    if factory is None:
        return {"enabled": False, "events": []}
    with factory() as db:
        rows = list_events(db, event_type=event_type, limit=limit, offset=offset)
    return {
        "enabled": True,
        "events": [
            {
                "id": row.id,
                "event_type": row.event_type,
                "level": row.level,
                "message": row.message,
                "ip": row.ip_address,
                "details": json.loads(row.details) if row.details else None,
                "request_id": row.request_id,
                "created_at": row.created_at.isoformat(),
            }
            for row in rows
        ],
    }
