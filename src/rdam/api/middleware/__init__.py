"""RDAM API middleware components.

This module provides middleware for:
- Request ID tracking for log correlation
- Consistent error response formatting
"""

from rdam.api.middleware.errors import (
    ErrorHandlerMiddleware,
    build_error_response,
    map_error,
    register_error_handlers,
)
from rdam.api.middleware.request_id import (
    RequestIdLogFilter,
    RequestIDMiddleware,
    get_request_id,
)

__all__ = [
    "ErrorHandlerMiddleware",
    "RequestIDMiddleware",
    "RequestIdLogFilter",
    "build_error_response",
    "get_request_id",
    "map_error",
    "register_error_handlers",
]
