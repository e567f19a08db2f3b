"""Exception handlers mapping errors to the stable error envelope."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bastion.core.errors import AppError, ErrorCode, ErrorResponse
from bastion.core.logging import get_logger, request_context

logger = get_logger(__name__)

_STATUS_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    413: ErrorCode.REQUEST_TOO_LARGE,
}


def _request_id() -> str | None:
    ctx = request_context.get()
    return ctx.get("request_id") if ctx else None


def _json(status_code: int, response: ErrorResponse, headers: dict[str, str] | None = None) -> JSONResponse:
    merged = dict(headers or {})
    if response.request_id:
        merged["X-Request-ID"] = response.request_id
    return JSONResponse(status_code=status_code, content=response.to_dict(), headers=merged)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError with its stable code."""
    if exc.status_code >= 500:
        logger.error(
            f"{exc.code.value} {exc.message}",
            data={"path": request.url.path, "details": exc.details},
        )
    return _json(exc.status_code, exc.to_response(_request_id()), exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures without echoing input."""
    response = ErrorResponse(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        request_id=_request_id(),
        details={"errors": [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]},
    )
    return _json(422, response)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    response = ErrorResponse(code=code, message=str(exc.detail), request_id=_request_id())
    return _json(exc.status_code, response, getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", data={"path": request.url.path})
    response = ErrorResponse(
        code=ErrorCode.INTERNAL_ERROR,
        message="Internal server error",
        request_id=_request_id(),
    )
    return _json(500, response)


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
