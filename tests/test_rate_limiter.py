import pytest

from socialflow.infrastructure.rate_limiter import (
    AUTH_POLICY,
    DEFAULT_POLICY,
    FixedWindowRateLimiter,
    RateLimitExceeded,
    policy_for_path,
)
from tests.fakes import FakeClock, FakeRedis

HOUR_MS = 60 * 60 * 1000


@pytest.fixture
def clock():
    # aligned to the start of an hour window
    return FakeClock(now=(1_700_000_000_000 // HOUR_MS) * 3600)


@pytest.fixture
def limiter(clock):
    return FixedWindowRateLimiter(FakeRedis(clock=clock), clock=clock)


@pytest.mark.asyncio
async def test_five_allowed_then_rejected(limiter):
    results = [await limiter.allow("auth:login:a@socialflow.io", 5, HOUR_MS) for _ in range(6)]
    assert results == [True] * 5 + [False]


@pytest.mark.asyncio
async def test_new_window_resets_counter(limiter, clock):
    for _ in range(6):
        await limiter.allow("k", 5, HOUR_MS)
    clock.advance(3600)
    assert await limiter.allow("k", 5, HOUR_MS) is True


@pytest.mark.asyncio
async def test_first_hit_sets_expiry(limiter, clock):
    await limiter.allow("k", 5, HOUR_MS)
    window = int(clock() * 1000) // HOUR_MS
    assert await limiter.redis.ttl(f"rate-limit:k:{window}") == 3600


@pytest.mark.asyncio
async def test_keys_are_independent(limiter):
    for _ in range(5):
        await limiter.allow("a", 5, HOUR_MS)
    assert await limiter.allow("a", 5, HOUR_MS) is False
    assert await limiter.allow("b", 5, HOUR_MS) is True


@pytest.mark.asyncio
async def test_check_raises_with_retry_after(limiter):
    for _ in range(AUTH_POLICY.max_requests):
        await limiter.check("auth:x", AUTH_POLICY)
    with pytest.raises(RateLimitExceeded) as exc_info:
        await limiter.check("auth:x", AUTH_POLICY)
    assert exc_info.value.retry_after == 3600


def test_path_policies():
    assert policy_for_path("/media/upload")[1].max_requests == 80
    assert policy_for_path("/posts/123")[1].max_requests == 50
    assert policy_for_path("/billing/checkout")[1].window_ms == 30 * 60 * 1000
    assert policy_for_path("/accounts") == ("default", DEFAULT_POLICY)
