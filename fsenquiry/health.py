"""Health endpoint for the enquiry gateway.

  GET /health — 503 before ``app.state.ready`` is set, 200 afterwards.

Polled by container/platform health probes. Reports configuration shape
only; the CSRF token is never included, just whether one is set.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from fsenquiry.config import Config

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok",
          "upstream_configured": true,
          "rate_limit": {"max_requests": 10, "window_s": 60, "daily_max": 0}
        }
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail="Service starting")

    config: Config = request.app.state.config
    return {
        "status": "ok",
        "upstream_configured": bool(config.upstream.csrf_token),
        "rate_limit": {
            "max_requests": config.rate_limit.max_requests,
            "window_s": config.rate_limit.window_s,
            "daily_max": config.rate_limit.daily_max,
        },
    }
