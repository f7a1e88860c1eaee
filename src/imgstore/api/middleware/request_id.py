"""Request ID middleware for the imgstore API.

Tags every request with an id used in error envelopes and log lines, and
writes one access log record per request.
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from imgstore.api.error_model import REQUEST_ID_HEADER

logger = logging.getLogger(__name__)

MAX_REQUEST_ID_LENGTH = 128


def _accept_request_id(raw: str | None) -> str | None:
    """Return a caller-supplied id if it is short printable ASCII, else None."""
    if raw is None:
        return None
    candidate = raw.strip()
    if not candidate or len(candidate) > MAX_REQUEST_ID_LENGTH:
        return None
    if not candidate.isascii() or not candidate.isprintable():
        return None
    return candidate


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a request id to every request and response.

    A usable X-Request-Id header is reused; anything else is replaced by a
    fresh uuid4. The id is stored on request.state.request_id and echoed in
    the X-Request-Id response header.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Assign the request id, call the app and log the outcome."""
        request_id = _accept_request_id(request.headers.get(REQUEST_ID_HEADER))
        if request_id is None:
            request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        started = time.perf_counter()
        response: Response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            extra={"request_id": request_id},
        )
        return response
