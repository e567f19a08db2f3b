"""HTTP middleware: request context and body size guard."""

import secrets
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from bastion.core.errors import ErrorCode, ErrorResponse
from bastion.core.logging import get_logger, request_context

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probes are polled constantly; keep them out of the access log.
QUIET_PATHS = frozenset({"/health", "/healthz", "/readyz"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Bind a request id and the socket peer to the log context.

    Every record logged while handling the request, security events
    included, then carries the same ``request_id``.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or secrets.token_hex(8)
        token = request_context.set({
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "peer": request.client.host if request.client else None,
        })
        started = time.perf_counter()
        try:
            response = await call_next(request)
            if request.url.path not in QUIET_PATHS:
                logger.info(
                    f"{request.method} {request.url.path} -> {response.status_code}",
                    data={"duration_ms": round((time.perf_counter() - started) * 1000, 2)},
                )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_context.reset(token)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject bodies whose declared length exceeds ``max_bytes`` (413)."""

    def __init__(self, app, max_bytes: int = 1048576):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        declared = request.headers.get("content-length", "")
        if not declared.isdigit() or int(declared) <= self.max_bytes:
            return await call_next(request)

        logger.warning(
            "Request body too large",
            data={"content_length": int(declared), "max_bytes": self.max_bytes},
        )
        error = ErrorResponse(
            code=ErrorCode.REQUEST_TOO_LARGE,
            message=f"Request body exceeds {self.max_bytes} bytes",
            request_id=request_context.get().get("request_id"),
        )
        return JSONResponse(status_code=413, content=error.to_dict())
