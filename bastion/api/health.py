"""
Health check endpoints.

Provides liveness and readiness probes for monitoring.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from bastion import __version__
from bastion.api.deps import EngineDep
from bastion.core import StoreUnavailableError
from bastion.db import verify_database_connection

router = APIRouter(tags=["health"])


@router.get("/health")
@router.get("/healthz")
async def healthcheck(engine: EngineDep) -> dict[str, Any]:
    """Basic liveness status."""
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
        "environment": engine.settings.environment,
    }


@router.get("/readyz")
async def readiness(request: Request, engine: EngineDep) -> JSONResponse:
    """Ready when the TTL store answers, and the audit database when enabled."""
    try:
        engine.store.get(engine.keyspace.attack_state())
        store_ok = True
    except StoreUnavailableError:
        store_ok = False

    checks = {"store": store_ok, "config": True}
    if request.app.state.audit_sessions is not None:
        checks["audit_db"] = verify_database_connection()
    ready = all(checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"ready": ready, "checks": checks},
    )
