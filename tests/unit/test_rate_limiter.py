"""Unit tests for fsenquiry/ratelimit/limiter.py — per-client window + global daily cap.

Covers:
  - M requests allowed, (M+1)-th rejected with scope "client" and Retry-After
  - Window restarts once W seconds have passed since the client's first request
  - Clients are counted independently
  - Global daily cap across clients, keyed by UTC date (resets on a new day)
  - daily_max == 0 disables the global cap
  - Injected storage is used and reset() clears every counter
  - Concurrent bursts from one client never admit more than M
"""

from __future__ import annotations

import asyncio
from datetime import date

import pytest
from limits.aio.storage import MemoryStorage

from fsenquiry.config import RateLimitConfig
from fsenquiry.ratelimit import SCOPE_CLIENT, SCOPE_GLOBAL_DAILY, RateDecision, RateLimiter


def _limiter(**kwargs) -> RateLimiter:
    return RateLimiter(RateLimitConfig(**kwargs))


# ─── Per-client window ────────────────────────────────────────────────────────


class TestPerClientWindow:
    @pytest.mark.asyncio
    async def test_requests_up_to_limit_are_allowed(self) -> None:
        limiter = _limiter(max_requests=3, window_s=60)
        decisions = [await limiter.check("10.0.0.1") for _ in range(3)]
        assert all(d.allowed for d in decisions)

    @pytest.mark.asyncio
    async def test_request_over_limit_is_rejected(self) -> None:
        limiter = _limiter(max_requests=2, window_s=60)
        await limiter.check("10.0.0.1")
        await limiter.check("10.0.0.1")
        decision = await limiter.check("10.0.0.1")
        assert decision.allowed is False
        assert decision.scope == SCOPE_CLIENT
        assert decision.retry_after_s is not None
        assert 1 <= decision.retry_after_s <= 60

    @pytest.mark.asyncio
    async def test_window_restarts_after_elapsed(self) -> None:
        limiter = _limiter(max_requests=2, window_s=1)
        assert (await limiter.check("10.0.0.1")).allowed
        assert (await limiter.check("10.0.0.1")).allowed
        assert not (await limiter.check("10.0.0.1")).allowed

        await asyncio.sleep(1.1)

        assert (await limiter.check("10.0.0.1")).allowed
        assert (await limiter.check("10.0.0.1")).allowed
        assert not (await limiter.check("10.0.0.1")).allowed

    @pytest.mark.asyncio
    async def test_clients_are_independent(self) -> None:
        limiter = _limiter(max_requests=1, window_s=60)
        assert (await limiter.check("10.0.0.1")).allowed
        assert not (await limiter.check("10.0.0.1")).allowed
        assert (await limiter.check("10.0.0.2")).allowed

    @pytest.mark.asyncio
    async def test_concurrent_burst_admits_exactly_limit(self) -> None:
        limiter = _limiter(max_requests=5, window_s=60)
        decisions = await asyncio.gather(*(limiter.check("10.0.0.9") for _ in range(20)))
        assert sum(d.allowed for d in decisions) == 5


# ─── Global daily cap ─────────────────────────────────────────────────────────


class TestGlobalDailyCap:
    @pytest.mark.asyncio
    async def test_cap_applies_across_clients(self) -> None:
        limiter = _limiter(max_requests=100, window_s=60, daily_max=2)
        assert (await limiter.check("a")).allowed
        assert (await limiter.check("b")).allowed
        decision = await limiter.check("c")
        assert decision.allowed is False
        assert decision.scope == SCOPE_GLOBAL_DAILY
        assert decision.retry_after_s is not None
        assert 1 <= decision.retry_after_s <= 86_400

    @pytest.mark.asyncio
    async def test_cap_resets_on_new_utc_day(self) -> None:
        current = {"day": date(2024, 3, 1)}
        limiter = RateLimiter(
            RateLimitConfig(max_requests=100, window_s=60, daily_max=1),
            today=lambda: current["day"],
        )
        assert (await limiter.check("a")).allowed
        assert not (await limiter.check("b")).allowed

        current["day"] = date(2024, 3, 2)

        assert (await limiter.check("b")).allowed

    @pytest.mark.asyncio
    async def test_zero_disables_cap(self) -> None:
        limiter = _limiter(max_requests=1000, window_s=60, daily_max=0)
        decisions = [await limiter.check(f"client-{i}") for i in range(50)]
        assert all(d.allowed for d in decisions)

    @pytest.mark.asyncio
    async def test_client_rejection_does_not_consume_daily_budget(self) -> None:
        limiter = _limiter(max_requests=1, window_s=60, daily_max=2)
        assert (await limiter.check("a")).allowed
        assert not (await limiter.check("a")).allowed  # per-client refusal
        assert (await limiter.check("b")).allowed


# ─── Storage ──────────────────────────────────────────────────────────────────


class TestStorage:
    @pytest.mark.asyncio
    async def test_injected_storage_is_shared(self) -> None:
        storage = MemoryStorage()
        config = RateLimitConfig(max_requests=1, window_s=60)
        first = RateLimiter(config, storage=storage)
        second = RateLimiter(config, storage=storage)
        assert (await first.check("10.0.0.1")).allowed
        assert not (await second.check("10.0.0.1")).allowed

    @pytest.mark.asyncio
    async def test_separate_instances_do_not_share_default_storage(self) -> None:
        config = RateLimitConfig(max_requests=1, window_s=60)
        assert (await RateLimiter(config).check("10.0.0.1")).allowed
        assert (await RateLimiter(config).check("10.0.0.1")).allowed

    @pytest.mark.asyncio
    async def test_reset_clears_counters(self) -> None:
        limiter = _limiter(max_requests=1, window_s=60)
        await limiter.check("10.0.0.1")
        assert not (await limiter.check("10.0.0.1")).allowed
        await limiter.reset()
        assert (await limiter.check("10.0.0.1")).allowed


def test_rate_decision_defaults() -> None:
    decision = RateDecision(allowed=True)
    assert decision.scope is None
    assert decision.retry_after_s is None
