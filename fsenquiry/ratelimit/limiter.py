"""Rate limiting policy for the enquiry endpoint.

One policy, two counters, both fixed windows over an injected ``limits``
async storage (in-memory by default, lost on restart):

  per-client   ``max_requests`` per ``window_s`` seconds. The window opens on
               the client's first request and the counter restarts once it
               has elapsed.
  global daily ``daily_max`` requests across all clients per UTC calendar
               day (disabled when 0). The counter key carries the UTC date,
               so it resets at the day boundary rather than 24h after the
               first request.

Increments are atomic per key inside the storage backend, so bursts from
one client cannot undercount.

The RateLimiter instance is created by the lifespan and stored on
``app.state.rate_limiter``; tests build their own with a fresh storage.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from limits import RateLimitItemPerDay, RateLimitItemPerSecond
from limits.aio.storage import MemoryStorage, Storage
from limits.aio.strategies import FixedWindowRateLimiter

from fsenquiry.config import RateLimitConfig
from fsenquiry.utils.logger import get_logger

logger = get_logger(__name__)

_NAMESPACE = "fsenquiry"

SCOPE_CLIENT = "client"
SCOPE_GLOBAL_DAILY = "global_daily"


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass(frozen=True)
class RateDecision:
    """Result of one rate-limit check."""

    allowed: bool
    scope: Optional[str] = None  # which counter refused the request
    retry_after_s: Optional[int] = None


class RateLimiter:
    """Per-client fixed window plus optional global daily cap."""

    def __init__(
        self,
        config: RateLimitConfig,
        storage: Optional[Storage] = None,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self.config = config
        self.storage: Storage = storage if storage is not None else MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self.storage)
        self._per_client = RateLimitItemPerSecond(
            config.max_requests, config.window_s, namespace=_NAMESPACE
        )
        self._daily = (
            RateLimitItemPerDay(config.daily_max, namespace=_NAMESPACE)
            if config.daily_cap_enabled
            else None
        )
        self._today = today

    async def check(self, client_id: str) -> RateDecision:
        """Count one request for ``client_id`` and decide whether it may proceed.

        The per-client counter is consulted first; the global counter is only
        incremented for requests the per-client window admits.
        """
        if not await self._strategy.hit(self._per_client, SCOPE_CLIENT, client_id):
            stats = await self._strategy.get_window_stats(
                self._per_client, SCOPE_CLIENT, client_id
            )
            return RateDecision(
                allowed=False,
                scope=SCOPE_CLIENT,
                retry_after_s=max(1, math.ceil(stats.reset_time - time.time())),
            )

        if self._daily is not None:
            day = self._today()
            if not await self._strategy.hit(self._daily, SCOPE_GLOBAL_DAILY, day.isoformat()):
                logger.warning("Global daily request cap reached", daily_max=self.config.daily_max)
                return RateDecision(
                    allowed=False,
                    scope=SCOPE_GLOBAL_DAILY,
                    retry_after_s=_seconds_until_next_utc_day(),
                )

        return RateDecision(allowed=True)

    async def reset(self) -> None:
        """Drop all counters (tests and admin use)."""
        await self.storage.reset()


def _seconds_until_next_utc_day() -> int:
    now = datetime.now(timezone.utc)
    tomorrow = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), tzinfo=timezone.utc)
    return max(1, math.ceil((tomorrow - now).total_seconds()))
