"""
CaseVault Backend - Request ID Middleware
===========================================

What:  Gives every request a correlation id, exposes it to every log line
       emitted while the request runs, and echoes it in X-Request-ID.
Why:   An upload touches the database, the counter table and the object
       store; a MetadataPersistError reconciliation starts from this id.
How:   ContextVar (coroutine-local) plus a logging.Filter that copies the
       current value onto each LogRecord as `request_id`.
"""

import logging
import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Client-supplied ids are accepted only if they look like ids
_ACCEPTABLE_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def new_request_id() -> str:
    return uuid.uuid4().hex[:12]


class RequestIDLogFilter(logging.Filter):
    """Adds `request_id` to every record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("") or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get(REQUEST_ID_HEADER, "")
        rid = supplied if _ACCEPTABLE_ID.match(supplied) else new_request_id()

        # Not reset afterwards: the catch-all 500 handler runs outside this
        # middleware and still needs the id. Each request runs in its own task.
        request_id_var.set(rid)
        request.state.request_id = rid
        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
