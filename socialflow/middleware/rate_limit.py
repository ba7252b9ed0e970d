# socialflow/middleware/rate_limit.py
from starlette.types import ASGIApp, Receive, Scope, Send
from starlette.requests import Request
from starlette.responses import JSONResponse
import structlog

from socialflow.infrastructure.rate_limiter import FixedWindowRateLimiter, policy_for_path

logger = structlog.get_logger("http")


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware:
    """
    Per-IP fixed-window limits by path prefix. /auth/ routes are skipped here;
    they are limited per email inside the handlers.
    """

    def __init__(self, app: ASGIApp, exempt_prefixes=("/auth/",)):
        self.app = app
        self.exempt_prefixes = tuple(exempt_prefixes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive=receive)
        path = request.url.path
        if path.startswith(self.exempt_prefixes):
            await self.app(scope, receive, send)
            return

        limiter = FixedWindowRateLimiter(request.app.state.redis)
        bucket, policy = policy_for_path(path)
        if not await limiter.allow(f"{bucket}:{client_ip(request)}", policy.max_requests, policy.window_ms):
            response = JSONResponse(
                status_code=429,
                content={"error": "TooManyRequests", "message": policy.message, "retryAfter": policy.retry_after},
                headers={"Retry-After": str(policy.retry_after)},
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
