"""Upload size guard middleware for the imgstore API.

Caps the request body of upload requests before the multipart parser can
spool it to disk. A declared Content-Length above the cap is refused up
front; bodies without one (chunked transfer) are counted as they arrive and
cut off once the cap is passed. The blob writer still enforces the exact
per-file ceiling while streaming.

Implemented as a pure ASGI middleware (not BaseHTTPMiddleware) so it can wrap
``receive`` and stop the body mid-stream.
"""

from __future__ import annotations

import logging

from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from imgstore.api.error_model import make_error_response_no_request

logger = logging.getLogger(__name__)

# Room for multipart boundaries and part headers around the file body.
MULTIPART_OVERHEAD_BYTES = 64 * 1024


def _declared_length(raw: str | None) -> int | None:
    """Parse a Content-Length header, None when absent or unusable."""
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class UploadLimitMiddleware:
    """Answer 413 TOO_LARGE for upload bodies above the size cap.

    Behavior:
    - Only POST requests to ``upload_path`` are inspected
    - Content-Length above the cap: rejected before the app runs
    - Otherwise body chunks are counted; past the cap the app sees a client
      disconnect, its own response is dropped and 413 is sent instead
    """

    def __init__(self, app: ASGIApp, max_upload_bytes: int, upload_path: str = "/upload") -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application.
            max_upload_bytes: Blob size ceiling in bytes.
            upload_path: Path of the upload route.
        """
        self.app = app
        self._max_upload_bytes = max_upload_bytes
        self._max_body_bytes = max_upload_bytes + MULTIPART_OVERHEAD_BYTES
        self._upload_path = upload_path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI entry point."""
        if (
            scope["type"] != "http"
            or scope["method"] != "POST"
            or scope["path"] != self._upload_path
        ):
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        request_id: str | None = getattr(request.state, "request_id", None)

        content_length = _declared_length(request.headers.get("content-length"))
        if content_length is not None and content_length > self._max_body_bytes:
            logger.info(
                "Rejected upload body of %d bytes before parsing",
                content_length,
                extra={"request_id": request_id},
            )
            await self._reject(scope, receive, send, request_id)
            return

        received = 0
        exceeded = False
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received, exceeded
            if exceeded:
                return {"type": "http.disconnect"}

            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self._max_body_bytes:
                    exceeded = True
                    logger.info(
                        "Cut off upload body after %d bytes",
                        received,
                        extra={"request_id": request_id},
                    )
                    return {"type": "http.disconnect"}
            return message

        async def guarded_send(message: Message) -> None:
            nonlocal response_started
            if exceeded and not response_started:
                return
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, guarded_send)
        except Exception as e:
            if not exceeded or response_started:
                raise
            logger.debug(
                "Upload handler stopped after body cut-off: %s",
                type(e).__name__,
                extra={"request_id": request_id},
            )

        if exceeded and not response_started:
            await self._reject(scope, receive, send, request_id)

    async def _reject(
        self, scope: Scope, receive: Receive, send: Send, request_id: str | None
    ) -> None:
        response = make_error_response_no_request(
            code="TOO_LARGE",
            message="File is too large",
            http_status=413,
            request_id=request_id,
            details={"max_size_bytes": self._max_upload_bytes},
        )
        await response(scope, receive, send)
