"""Enquiry gateway handler.

Relays a status enquiry from the browser to the government endpoint:

  POST /api/firearm-status         (primary)
  POST /api/proxy/firearm-status   (alias used by older front-end builds)

Per request:
  Received → RateChecked → Validated → Forwarded →
      {Succeeded | UpstreamFailed | TimedOut} → Responded

  - Rate check first, so an exhausted client gets 429 whether or not the
    body is valid.
  - Body must be application/json ``{fsref, fserial?}``; anything else is a
    400 "Invalid input" with no field detail.
  - Upstream call is a form POST with the configured CSRF token and
    browser-like headers, bounded by ``upstream.timeout_s`` in total. On
    timeout the in-flight call is cancelled before responding.
  - Network failure or timeout → 503; upstream non-2xx → 502. Neither
    carries upstream error text.
  - Success → 200 ``{html, fetchedAt, query}``. Nothing is stored.

Exactly one response per request and no automatic retries. Errors are
raised as fsenquiry.errors.GatewayError subclasses and rendered by the
handler registered in fsenquiry.main.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from fsenquiry.config import Config, UpstreamConfig
from fsenquiry.constants import SUCCESS_CACHE_MAX_AGE_S
from fsenquiry.errors import (
    GatewayError,
    RateLimited,
    UpstreamBadStatus,
    UpstreamUnavailable,
    ValidationError,
)
from fsenquiry.models.enquiry import EnquiryQuery, EnquiryRequest, EnquiryResponse
from fsenquiry.proxy.headers import build_upstream_headers, client_id_from_request
from fsenquiry.ratelimit import RateLimiter
from fsenquiry.utils.logger import (
    PerformanceLogger,
    clear_request_id,
    get_logger,
    mask_value,
    set_request_id,
)
from fsenquiry.utils.ulid import generate_ulid

logger = get_logger(__name__)

# ─── Router ───────────────────────────────────────────────────────────────────

router = APIRouter(tags=["enquiry"])

ENQUIRY_PATH = "/api/firearm-status"
ENQUIRY_PATH_ALIAS = "/api/proxy/firearm-status"

# ─── Constants ────────────────────────────────────────────────────────────────

POOL_MAX_CONNECTIONS: int = 20
POOL_MAX_KEEPALIVE: int = 10
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds

# ─── httpx.AsyncClient factory ────────────────────────────────────────────────


def create_http_client(timeout_s: float) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient for upstream calls.

    Created once at lifespan startup and stored in app.state.http_client;
    never instantiated per request.

    Args:
        timeout_s: Per-operation httpx timeout. The handler additionally
                   bounds the whole call with asyncio.wait_for().
    """
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=POOL_MAX_CONNECTIONS,
            max_keepalive_connections=POOL_MAX_KEEPALIVE,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=httpx.Timeout(timeout_s),
        follow_redirects=False,
    )


# ─── Handler ──────────────────────────────────────────────────────────────────


@router.post(ENQUIRY_PATH)
@router.post(ENQUIRY_PATH_ALIAS, include_in_schema=False)
async def firearm_status(request: Request) -> JSONResponse:
    """Relay one status enquiry to the upstream and return its HTML."""
    request_id = generate_ulid()
    request.state.request_id = request_id
    set_request_id(request_id)
    try:
        config: Config = request.app.state.config
        rate_limiter: RateLimiter = request.app.state.rate_limiter
        http_client: httpx.AsyncClient = request.app.state.http_client

        client_id = client_id_from_request(request, config.proxy.client_ip_header)

        decision = await rate_limiter.check(client_id)
        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded",
                client=mask_value(client_id),
                scope=decision.scope,
                retry_after_s=decision.retry_after_s,
            )
            raise RateLimited(f"{decision.scope} limit", retry_after_s=decision.retry_after_s)

        enquiry = await read_enquiry(request)
        logger.info(
            "Enquiry received",
            client=mask_value(client_id),
            reference=mask_value(enquiry.reference),
            serial_present=bool(enquiry.serial),
        )

        html = await fetch_status_page(http_client, config.upstream, enquiry)
        fetched_at = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

        body = EnquiryResponse(
            html=html,
            fetchedAt=fetched_at,
            query=EnquiryQuery(fsref=enquiry.reference, fserial=enquiry.serial or None),
        )
        logger.info(
            "Enquiry succeeded",
            reference=mask_value(enquiry.reference),
            html_length=len(html),
        )
        return JSONResponse(
            content=body.model_dump(),
            headers={
                "Cache-Control": f"private, max-age={SUCCESS_CACHE_MAX_AGE_S}",
                "X-Request-ID": request_id,
            },
        )
    finally:
        clear_request_id()


# ─── Steps ────────────────────────────────────────────────────────────────────


async def read_enquiry(request: Request) -> EnquiryRequest:
    """Parse and validate the JSON body.

    Raises:
        ValidationError: Wrong content type, undecodable JSON, a non-object
                         body, or a field that fails EnquiryRequest validation.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.split(";")[0].strip().lower() != "application/json":
        logger.warning("Enquiry rejected: content type", content_type=content_type[:100])
        raise ValidationError("content type is not application/json")

    raw = await request.body()
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Enquiry rejected: body is not JSON", body_size=len(raw))
        raise ValidationError("body is not JSON")

    if not isinstance(payload, dict):
        logger.warning("Enquiry rejected: body is not an object")
        raise ValidationError("body is not a JSON object")

    try:
        return EnquiryRequest.model_validate(payload)
    except PydanticValidationError as exc:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in exc.errors()})
        logger.warning("Enquiry rejected: validation", fields=fields)
        raise ValidationError(f"invalid fields: {fields}")


async def fetch_status_page(
    http_client: httpx.AsyncClient,
    upstream: UpstreamConfig,
    enquiry: EnquiryRequest,
) -> str:
    """POST the enquiry form upstream and return the response HTML.

    The whole call (connect, send, read) is bounded by ``upstream.timeout_s``;
    asyncio.wait_for() cancels the in-flight request when it expires.

    Raises:
        UpstreamUnavailable: Timeout or transport-level failure.
        UpstreamBadStatus:   Upstream answered with a non-2xx status.
        GatewayError:        Misconfigured upstream URL (HTTP 500).
    """
    form = {
        "csrf_token": upstream.csrf_token,
        "fsref": enquiry.reference,
        "fserial": enquiry.serial,
    }
    headers = build_upstream_headers(
        csrf_token=upstream.csrf_token,
        origin=upstream.origin,
        referer=upstream.url,
    )

    try:
        with PerformanceLogger("upstream_enquiry", logger):
            upstream_response = await asyncio.wait_for(
                http_client.post(upstream.url, data=form, headers=headers),
                timeout=upstream.timeout_s,
            )
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        logger.error(
            "Upstream timed out",
            timeout_s=upstream.timeout_s,
            error_type=type(exc).__name__,
        )
        raise UpstreamUnavailable("timeout")
    except httpx.InvalidURL as exc:
        logger.error("Invalid upstream URL", upstream_url=upstream.url, error=str(exc))
        raise GatewayError("invalid upstream url")
    except httpx.HTTPError as exc:
        logger.error(
            "Upstream request failed",
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise UpstreamUnavailable(type(exc).__name__)

    if not upstream_response.is_success:
        logger.error("Upstream returned error status", status=upstream_response.status_code)
        raise UpstreamBadStatus(upstream_response.status_code)

    return upstream_response.text


# ─── Lifecycle helpers (called from main.py lifespan) ─────────────────────────


async def shutdown_proxy_engine(http_client: httpx.AsyncClient) -> None:
    """Close the shared upstream client."""
    await http_client.aclose()
    logger.info("HTTP upstream client closed")
