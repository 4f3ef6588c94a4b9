"""API error taxonomy and the handlers that render it.

Every failure leaves the service as the standard envelope::

    {"success": false, "error": "<label>", "message": "<details>"}
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from coinfolio.utils.logging import get_logger

logger = get_logger(__name__)


class ApiError(StarletteHTTPException):
    """Base class for errors raised by route handlers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"

    def __init__(
        self,
        error: str | None = None,
        message: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=type(self).status_code, detail=message, headers=headers)
        if error:
            self.error = error
        self.message = message


class ValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Validation failed"

    def __init__(self, errors: list[str] | None = None, error: str | None = None) -> None:
        self.errors = list(errors or [])
        super().__init__(error=error, message=", ".join(self.errors) or None)


class AuthenticationError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Authentication failed"


class AuthorizationError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Admin access required"


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class InternalError(ApiError):
    pass


def envelope(success: bool, **fields) -> dict:
    body = {"success": success}
    body.update({k: v for k, v in fields.items() if v is not None})
    return body


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc, ApiError):
        error, message = exc.error, exc.message
    else:
        error, message = str(exc.detail), None

    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, error)
    else:
        logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, error)

    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(False, error=error, message=message),
        headers=getattr(exc, "headers", None),
    )


def _format_validation_error(err: dict) -> str:
    loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc)
    return f"{field}: {err.get('msg')}" if field else str(err.get("msg"))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [_format_validation_error(err) for err in exc.errors()]
    logger.info("%s %s -> 400 %s", request.method, request.url.path, messages)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=envelope(False, error="Validation failed", message=", ".join(messages)),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=envelope(False, error="Internal server error", message="An unexpected error occurred"),
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
