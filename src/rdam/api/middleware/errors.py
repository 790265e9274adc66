"""Error handling for consistent JSON error responses.

Every error leaves the API with the same structure:
- error: Machine-readable error code
- message: Human-readable description
- request_id: Correlation ID for debugging
- detail: Optional additional information

Service-layer exceptions from rdam.services.errors are mapped to HTTP
status codes here and nowhere else; routers simply let them propagate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from rdam.api.middleware.request_id import get_request_id
from rdam.services.errors import (
    AdminRequiredError,
    CertificateExpiredError,
    CertificateTooLargeError,
    ConcurrentModificationError,
    DuplicateOperatorError,
    DuplicateTramiteNumberError,
    InvalidCredentialsError,
    InvalidOperatorError,
    InvalidStateError,
    InvalidStateTransitionError,
    JurisdictionMismatchError,
    NotFoundError,
    OperatorInactiveError,
    PaymentGatewayUnavailableError,
    RdamError,
    StorageFailureError,
    TokenInvalidError,
    UnsupportedCertificateTypeError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import FastAPI, Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ErrorMapping:
    status_code: int
    error: str


# Checked in order; subclasses come before their bases
ERROR_MAPPINGS: tuple[tuple[type[RdamError], ErrorMapping], ...] = (
    (CertificateExpiredError, ErrorMapping(status.HTTP_410_GONE, "certificate_expired")),
    (TokenInvalidError, ErrorMapping(status.HTTP_401_UNAUTHORIZED, "token_invalid")),
    (
        InvalidCredentialsError,
        ErrorMapping(status.HTTP_401_UNAUTHORIZED, "invalid_credentials"),
    ),
    (OperatorInactiveError, ErrorMapping(status.HTTP_403_FORBIDDEN, "operator_inactive")),
    (AdminRequiredError, ErrorMapping(status.HTTP_403_FORBIDDEN, "forbidden")),
    (InvalidOperatorError, ErrorMapping(status.HTTP_400_BAD_REQUEST, "invalid_operator")),
    (DuplicateOperatorError, ErrorMapping(status.HTTP_409_CONFLICT, "conflict")),
    (NotFoundError, ErrorMapping(status.HTTP_404_NOT_FOUND, "not_found")),
    (
        InvalidStateTransitionError,
        ErrorMapping(status.HTTP_400_BAD_REQUEST, "invalid_state_transition"),
    ),
    (InvalidStateError, ErrorMapping(status.HTTP_400_BAD_REQUEST, "invalid_state")),
    (ConcurrentModificationError, ErrorMapping(status.HTTP_409_CONFLICT, "conflict")),
    (DuplicateTramiteNumberError, ErrorMapping(status.HTTP_409_CONFLICT, "conflict")),
    (JurisdictionMismatchError, ErrorMapping(status.HTTP_403_FORBIDDEN, "forbidden")),
    (StorageFailureError, ErrorMapping(status.HTTP_502_BAD_GATEWAY, "storage_failure")),
    (CertificateTooLargeError, ErrorMapping(413, "payload_too_large")),
    (
        UnsupportedCertificateTypeError,
        ErrorMapping(status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, "unsupported_media_type"),
    ),
    (
        PaymentGatewayUnavailableError,
        ErrorMapping(status.HTTP_503_SERVICE_UNAVAILABLE, "payment_unavailable"),
    ),
)

_DEFAULT_MAPPING = ErrorMapping(status.HTTP_400_BAD_REQUEST, "bad_request")


def map_error(exc: RdamError) -> ErrorMapping:
    """HTTP status and error code of a service-layer exception."""
    for exc_type, mapping in ERROR_MAPPINGS:
        if isinstance(exc, exc_type):
            return mapping
    return _DEFAULT_MAPPING


def error_detail(exc: RdamError) -> dict[str, Any] | None:
    """Structured detail a client needs to react to the error."""
    if isinstance(exc, TokenInvalidError):
        detail: dict[str, Any] = {"reason": exc.reason.value}
        if exc.attempts_remaining is not None:
            detail["attempts_remaining"] = exc.attempts_remaining
        return detail
    if isinstance(exc, InvalidStateError):
        return {
            "current_state": exc.current.value,
            "expected_states": [s.value for s in exc.expected],
        }
    if isinstance(exc, InvalidStateTransitionError):
        return {"from_state": exc.from_state.value, "to_state": exc.to_state.value}
    if isinstance(exc, CertificateTooLargeError):
        return {"max_bytes": exc.max_bytes}
    return None


def build_error_response(
    error: str,
    message: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build a standardized error response.

    Args:
        error: Machine-readable error code.
        message: Human-readable description.
        status_code: HTTP status code.
        detail: Optional additional details.
        headers: Optional extra response headers.

    Returns:
        JSONResponse with consistent error structure.
    """
    body: dict[str, Any] = {
        "error": error,
        "message": message,
    }

    request_id = get_request_id()
    if request_id:
        body["request_id"] = request_id

    if detail:
        body["detail"] = detail

    return JSONResponse(status_code=status_code, content=body, headers=headers)


def rdam_error_response(exc: RdamError) -> JSONResponse:
    mapping = map_error(exc)
    headers = None
    if mapping.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    if mapping.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.warning("%s: %s", type(exc).__name__, exc)
    return build_error_response(
        error=mapping.error,
        message=str(exc),
        status_code=mapping.status_code,
        detail=error_detail(exc),
        headers=headers,
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware that catches exceptions and returns consistent JSON errors.

    Service-layer errors are answered by the exception handlers installed
    with register_error_handlers(); anything reaching this middleware is
    unexpected, logged, and answered with a 500.
    """

    def __init__(self, app: Any, *, debug: bool = False) -> None:
        super().__init__(app)
        self.debug = debug

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception(
                "Unexpected error processing request: %s %s",
                request.method,
                request.url.path,
            )
            return build_error_response(
                error="internal_error",
                message=str(exc) if self.debug else "An internal error occurred",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )


async def _rdam_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    return rdam_error_response(exc)  # type: ignore[arg-type]


async def _http_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StarletteHTTPException)
    return build_error_response(
        error="http_error",
        message=str(exc.detail),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    return build_error_response(
        error="validation_error",
        message="Request validation failed",
        status_code=422,
        detail={"errors": _jsonable_errors(exc.errors())},
    )


def _jsonable_errors(errors: Any) -> list[dict[str, Any]]:
    # ctx may hold exception instances
    return [
        {key: value for key, value in err.items() if key in ("loc", "msg", "type")}
        for err in errors
    ]


def register_error_handlers(app: FastAPI) -> None:
    """Install exception handlers for errors raised inside routes.

    Handled here, responses still pass through the outer middleware and
    receive their X-Request-ID header.
    """
    app.add_exception_handler(RdamError, _rdam_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
