# socialflow/infrastructure/rate_limiter.py
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    max_requests: int
    window_ms: int
    message: str

    @property
    def retry_after(self) -> int:
        return math.ceil(self.window_ms / 1000)


AUTH_POLICY = RateLimitPolicy(5, 60 * 60 * 1000, "Too many authentication attempts. Try again in an hour.")
DEFAULT_POLICY = RateLimitPolicy(100, 15 * 60 * 1000, "Too many requests. Try again in 15 minutes.")

# path prefix -> (key suffix, policy); first match wins
PATH_POLICIES = [
    ("/media/upload", "media", RateLimitPolicy(80, 5 * 60 * 1000, "Too many media uploads. Try again in 5 minutes.")),
    ("/posts/", "posts", RateLimitPolicy(50, 15 * 60 * 1000, "Too many posts created. Try again in 15 minutes.")),
    ("/billing/", "billing", RateLimitPolicy(10, 30 * 60 * 1000, "Too many billing requests. Try again in 30 minutes.")),
]


def policy_for_path(path: str) -> Tuple[str, RateLimitPolicy]:
    for prefix, suffix, policy in PATH_POLICIES:
        if path.startswith(prefix):
            return suffix, policy
    return "default", DEFAULT_POLICY


class RateLimitExceeded(Exception):
    def __init__(self, policy: RateLimitPolicy):
        super().__init__(policy.message)
        self.policy = policy
        self.retry_after = policy.retry_after


class FixedWindowRateLimiter:
    """
    Fixed-window counter kept in redis.

    The window id is floor(now / window); the first hit of a window sets the
    key's expiry to the window length so counters clean themselves up. Bursts
    of up to twice the limit are possible across a window boundary.
    """

    def __init__(self, redis, clock: Optional[Callable[[], float]] = None, prefix: str = "rate-limit"):
        self.redis = redis
        self.clock = clock or time.time
        self.prefix = prefix

    async def allow(self, key: str, max_requests: int, window_ms: int) -> bool:
        now_ms = int(self.clock() * 1000)
        window = now_ms // window_ms
        counter_key = f"{self.prefix}:{key}:{window}"
        count = await self.redis.incr(counter_key)
        if count == 1:
            await self.redis.expire(counter_key, math.ceil(window_ms / 1000))
        allowed = count <= max_requests
        if not allowed:
            logger.info("rate_limited", key=key, count=count, limit=max_requests)
        return allowed

    async def check(self, key: str, policy: RateLimitPolicy) -> None:
        if not await self.allow(key, policy.max_requests, policy.window_ms):
            raise RateLimitExceeded(policy)
