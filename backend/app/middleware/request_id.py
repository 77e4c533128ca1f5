"""
Catalog Backend — Request ID Middleware
=========================================

What:  Tags every request with a correlation ID and returns it in X-Request-ID.
How:   Reuses a well-formed client ID or mints a short one, publishes it
       through a ContextVar (read by the access log and exception handlers)
       and request.state, and echoes it on the response.
Who:   Outermost middleware in create_app().

Accepted client IDs:
    1-64 characters from [A-Za-z0-9._-]. Anything else (spaces, control
    characters, oversized values) is replaced, so the ID can be written into
    log lines and error bodies verbatim.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    """8 hex characters: short enough for log lines, unique enough per day."""
    return uuid.uuid4().hex[:8]


def resolve_request_id(header_value: Optional[str]) -> str:
    """Return the client's ID when it is well-formed, otherwise a fresh one."""
    if header_value and _VALID_REQUEST_ID.match(header_value):
        return header_value
    return new_request_id()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns the request ID before any other middleware sees the request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        # Left set after the response: the unhandled-error handler runs
        # outside this middleware and still reads it.
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
