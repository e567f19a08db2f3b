"""
Shared FastAPI dependencies.

The security engine lives on ``app.state.engine``; routes receive it via
``EngineDep`` rather than importing a global.
"""

import hmac
from typing import Annotated

from fastapi import Depends, Request

from bastion.core import ForbiddenError, UnauthorizedError
from bastion.engine import SecurityEngine
from bastion.security.ip_key import resolve_client_ip

ADMIN_TOKEN_HEADER = "X-Admin-Token"
GUARD_TOKEN_HEADER = "X-Guard-Token"


def get_security_engine(request: Request) -> SecurityEngine:
    return request.app.state.engine


def get_client_ip(request: Request) -> str:
    """Caller address from proxy headers or the socket peer."""
    remote = request.client.host if request.client else None
    return resolve_client_ip(request.headers, remote)


def require_admin(
    request: Request,
    engine: Annotated[SecurityEngine, Depends(get_security_engine)],
) -> None:
    """
    Require a matching admin token header.

    An empty configured token disables the admin API entirely.
    """
    expected = engine.settings.admin_api_token
    if not expected:
        raise ForbiddenError("Admin API is disabled")
    supplied = request.headers.get(ADMIN_TOKEN_HEADER)
    if not supplied:
        raise UnauthorizedError("Admin token required")
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise ForbiddenError("Invalid admin token")


def require_host(
    request: Request,
    engine: Annotated[SecurityEngine, Depends(get_security_engine)],
) -> None:
    """Require the shared host token on decision routes."""
    expected = engine.settings.guard_api_token
    if not expected:
        raise ForbiddenError("Guard API is disabled")
    supplied = request.headers.get(GUARD_TOKEN_HEADER)
    if not supplied:
        raise UnauthorizedError("Guard token required")
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise ForbiddenError("Invalid guard token")


EngineDep = Annotated[SecurityEngine, Depends(get_security_engine)]
ClientIP = Annotated[str, Depends(get_client_ip)]
RequireAdmin = Depends(require_admin)
RequireHost = Depends(require_host)
