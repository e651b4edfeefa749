"""HTTP header handling for the enquiry gateway.

  - build_upstream_headers(): the browser-like header set sent with every
    upstream form POST. The upstream runs bot checks on navigation headers
    and expects its own CSRF cookie, so the request must look like a form
    submitted from the upstream's own page.

  - client_id_from_request(): the rate-limit key for an incoming request,
    taken from the trusted forwarded-IP header set by the edge (first entry
    when comma-separated) and falling back to the socket peer address.
"""

from __future__ import annotations

from typing import Optional

from slowapi.util import get_remote_address
from starlette.requests import Request

# ─── Constants ────────────────────────────────────────────────────────────────

BROWSER_USER_AGENT: str = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 18_5 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/18.5 Mobile/15E148 Safari/604.1"
)

_BROWSER_HEADERS: dict[str, str] = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "max-age=0",
    "Content-Type": "application/x-www-form-urlencoded",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "same-origin",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
    "User-Agent": BROWSER_USER_AGENT,
}


# ─── Public API ───────────────────────────────────────────────────────────────


def build_upstream_headers(*, csrf_token: str, origin: str, referer: str) -> dict[str, str]:
    """Build the header dict for the upstream form POST.

    The CSRF token travels twice: in the form body (added by the caller) and
    in the ``csrf_token`` cookie set here; the upstream compares the two.

    Args:
        csrf_token: Configured upstream CSRF token.
        origin:     Origin header value (scheme + host of the upstream site).
        referer:    Referer header value (the enquiry page URL).

    Returns:
        ``dict[str, str]`` — a fresh dict on every call.
    """
    headers = dict(_BROWSER_HEADERS)
    headers["Origin"] = origin
    headers["Referer"] = referer
    headers["Cookie"] = f"csrf_token={csrf_token}"
    return headers


def client_id_from_request(request: Request, header_name: Optional[str]) -> str:
    """Return the rate-limit key for ``request``.

    Uses the first comma-separated value of ``header_name`` when the header
    is present and non-empty; otherwise the peer address via slowapi's
    ``get_remote_address``.
    """
    if header_name:
        forwarded = request.headers.get(header_name)
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    return get_remote_address(request)
