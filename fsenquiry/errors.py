"""Gateway error taxonomy.

Every failure the enquiry endpoint can report is one of these exceptions.
Each carries the HTTP status and the public message returned to the caller;
the message is deliberately generic and never includes upstream error text,
field names or stack traces. Rendering happens in one place
(``gateway_error_handler`` in fsenquiry.main).

  ValidationError      400  missing/oversized fsref or fserial, bad JSON
  RateLimited          429  per-client window or global daily cap exhausted
  UpstreamUnavailable  503  network failure or timeout talking to upstream
  UpstreamBadStatus    502  upstream answered with a non-2xx status
"""

from __future__ import annotations

from typing import Optional


class GatewayError(Exception):
    """Base class for errors rendered as ``{"error": <public_message>}``."""

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, reason: str = "", *, headers: Optional[dict[str, str]] = None) -> None:
        # reason is for logs only; it is never sent to the caller
        super().__init__(reason or self.public_message)
        self.reason = reason
        self.headers = headers or {}


class ValidationError(GatewayError):
    status_code = 400
    public_message = "Invalid input"


class RateLimited(GatewayError):
    status_code = 429
    public_message = "Rate limit exceeded"

    def __init__(self, reason: str = "", *, retry_after_s: Optional[int] = None) -> None:
        headers = {"Retry-After": str(retry_after_s)} if retry_after_s is not None else None
        super().__init__(reason, headers=headers)
        self.retry_after_s = retry_after_s


class UpstreamUnavailable(GatewayError):
    status_code = 503
    public_message = "Failed to query SAPS service"


class UpstreamBadStatus(UpstreamUnavailable):
    status_code = 502

    def __init__(self, upstream_status: int) -> None:
        super().__init__(f"upstream returned HTTP {upstream_status}")
        self.upstream_status = upstream_status
