"""Core module with logging, errors, middleware, and exception handling."""

from bastion.core.errors import (
    AppError,
    CorruptedStateError,
    ErrorCode,
    ErrorResponse,
    ForbiddenError,
    NotFoundError,
    RequestRejectedError,
    StoreUnavailableError,
    UnauthorizedError,
)
from bastion.core.exceptions import setup_exception_handlers
from bastion.core.logging import get_logger, log_security_event, setup_logging
from bastion.core.metrics import MetricsRegistry
from bastion.core.middleware import RequestContextMiddleware, RequestSizeLimitMiddleware

__all__ = [
    "AppError",
    "CorruptedStateError",
    "ErrorCode",
    "ErrorResponse",
    "ForbiddenError",
    "NotFoundError",
    "RequestRejectedError",
    "StoreUnavailableError",
    "UnauthorizedError",
    "setup_exception_handlers",
    "get_logger",
    "log_security_event",
    "setup_logging",
    "MetricsRegistry",
    "RequestContextMiddleware",
    "RequestSizeLimitMiddleware",
]
