"""Request ID middleware.

Every response carries an X-Request-ID header. A client-supplied value is
kept when it looks sane; otherwise a new UUID is generated. The id is
exposed through a context variable so that error responses and log
records produced while handling the request can carry it.
"""

from __future__ import annotations

import logging
import re
import uuid
from contextvars import ContextVar
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.requests import Request
    from starlette.responses import Response

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

REQUEST_ID_HEADER = "X-Request-ID"

# Accepted client ids; anything else is replaced
_CLIENT_ID_RE = re.compile(r"^[A-Za-z0-9._\-]{1,128}$")


def get_request_id() -> str | None:
    """Request ID of the request being handled, None outside a request."""
    return request_id_ctx.get()


class RequestIdLogFilter(logging.Filter):
    """Adds request_id to every log record (None outside a request).

    Example:
        handler.addFilter(RequestIdLogFilter())
        logging.Formatter("%(asctime)s [%(request_id)s] %(message)s")
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Ensures every request has an X-Request-ID.

    Must be the outermost middleware so that error responses produced
    further in still get the header.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        supplied = request.headers.get(REQUEST_ID_HEADER)
        request_id = supplied if supplied and _CLIENT_ID_RE.match(supplied) else str(uuid.uuid4())

        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
