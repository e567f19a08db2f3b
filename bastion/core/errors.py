"""
Error types for the engine and the decision API.

Engine components raise only the store errors below; policy outcomes are
``Verdict`` values. The HTTP layer turns every ``AppError`` into the
``{error: {code, message, request_id}}`` envelope with a stable code, and
never includes a traceback.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable codes clients can branch on."""

    # Request handling (1xxx)
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"
    METHOD_NOT_ALLOWED = "E1003"
    REQUEST_TOO_LARGE = "E1004"

    # Admin credentials (2xxx / 3xxx)
    UNAUTHORIZED = "E2000"
    FORBIDDEN = "E3000"

    # Security state store (5xxx)
    STORE_UNAVAILABLE = "E5000"
    CORRUPTED_STATE = "E5001"

    # Every rejection signal maps to this one code.
    REQUEST_REJECTED = "E6000"


@dataclass(frozen=True)
class ErrorResponse:
    """Body of an error reply: ``{"error": {"code", "message", ...}}``."""

    code: ErrorCode
    message: str
    request_id: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.request_id:
            body["request_id"] = self.request_id
        if self.details:
            body["details"] = self.details
        return {"error": body}


class AppError(Exception):
    """Base for errors that carry an HTTP status and a stable code."""

    status_code = 500

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        self.headers = headers

    def to_response(self, request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(self.code, self.message, request_id, self.details)


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, message: str = "Resource not found"):
        super().__init__(ErrorCode.NOT_FOUND, message)


class UnauthorizedError(AppError):
    """Admin token missing."""

    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(ErrorCode.UNAUTHORIZED, message)


class ForbiddenError(AppError):
    """Admin token wrong, admin API disabled, or feature switched off."""

    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(ErrorCode.FORBIDDEN, message)


class RequestRejectedError(AppError):
    """Generic policy denial (403).

    The message never names the signal that fired.
    """

    status_code = 403

    def __init__(
        self,
        message: str = "Security validation failed. Please try again.",
        retry_after: int | None = None,
    ):
        headers = {"Retry-After": str(retry_after)} if retry_after else None
        super().__init__(ErrorCode.REQUEST_REJECTED, message, headers=headers)


class StoreUnavailableError(AppError):
    """The TTL store could not be reached (503).

    Engine components catch this and apply their fail-open / fail-closed
    policy; it only reaches clients from administrative routes.
    """

    status_code = 503

    def __init__(self, message: str = "Security state store unavailable"):
        super().__init__(ErrorCode.STORE_UNAVAILABLE, message)


class CorruptedStateError(AppError):
    """A stored security record could not be decoded (500).

    Never swallowed: continuing with corrupted security state is worse than
    failing the request.
    """

    def __init__(self, key: str, reason: str = "undecodable record"):
        self.key = key
        super().__init__(
            ErrorCode.CORRUPTED_STATE,
            "Security state is corrupted",
            details={"reason": reason},
        )
