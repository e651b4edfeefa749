"""Request body size limit middleware for the enquiry gateway.

A valid enquiry body is two strings of at most 40 characters, so anything
over MAX_REQUEST_BODY_BYTES is rejected with HTTP 413 before the JSON is
parsed, the rate limiter is touched or the upstream is contacted.

  declared  Content-Length present: trusted for the decision, body not read
  streamed  no Content-Length: body read chunk by chunk with a running total
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from fsenquiry.constants import MAX_REQUEST_BODY_BYTES
from fsenquiry.utils.logger import get_logger

logger = get_logger(__name__)

TOO_LARGE_MESSAGE = "Request body too large"
BAD_LENGTH_MESSAGE = "Invalid Content-Length header"


def _reject(request: Request, status_code: int, message: str, **fields: object) -> JSONResponse:
    logger.warning(message, path=request.url.path, limit=MAX_REQUEST_BODY_BYTES, **fields)
    return JSONResponse(status_code=status_code, content={"error": message})


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies larger than MAX_REQUEST_BODY_BYTES.

    Registered in create_app(); added last so it wraps CORS and routing.
    A body of exactly MAX_REQUEST_BODY_BYTES is accepted.
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        declared = request.headers.get("content-length")

        if declared is not None:
            try:
                size = int(declared)
            except ValueError:
                return _reject(request, 400, BAD_LENGTH_MESSAGE, content_length=declared[:32])
            if size > MAX_REQUEST_BODY_BYTES:
                return _reject(request, 413, TOO_LARGE_MESSAGE, phase="declared", size=size)
            return await call_next(request)

        received = bytearray()
        async for chunk in request.stream():
            received.extend(chunk)
            if len(received) > MAX_REQUEST_BODY_BYTES:
                return _reject(request, 413, TOO_LARGE_MESSAGE, phase="streamed", size=len(received))

        # Request.body() returns the cached _body, so the route sees the bytes
        # consumed here instead of an exhausted stream.
        request._body = bytes(received)  # type: ignore[attr-defined]
        return await call_next(request)
