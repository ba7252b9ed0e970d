# socialflow/middleware/errors.py
from typing import Tuple

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from socialflow.infrastructure.provider_client import ProviderAPIError
from socialflow.infrastructure.rate_limiter import RateLimitExceeded
from socialflow.services.oauth.errors import AccountNotFoundError, OAuthFlowError, PersistenceError

logger = structlog.get_logger(__name__)


def describe_error(exc: Exception) -> Tuple[int, dict]:
    """Map a domain exception to (status, JSON body)."""
    if isinstance(exc, ProviderAPIError):
        if exc.is_upstream_failure:
            body = {"error": "provider_unavailable", "message": exc.message, "provider": exc.provider}
            if exc.body:
                body["details"] = exc.body
            return 500, body
        return 400, {
            "error": "provider_rejected",
            "message": f"{exc.provider} rejected the request: {exc.message}",
            "provider": exc.provider,
        }
    if isinstance(exc, RateLimitExceeded):
        return 429, {"error": "TooManyRequests", "message": exc.policy.message, "retryAfter": exc.retry_after}
    if isinstance(exc, (OAuthFlowError, PersistenceError, AccountNotFoundError)):
        body = {"error": exc.code, "message": exc.message}
        if exc.provider:
            body["provider"] = exc.provider
        return exc.status_code, body
    return 500, {"error": "internal_error", "message": "Internal server error"}


def error_code(exc: Exception) -> str:
    return describe_error(exc)[1]["error"]


async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status, body = describe_error(exc)
    log = logger.error if status >= 500 else logger.info
    log("request_failed", error=body["error"], status=status, provider=body.get("provider"))
    headers = {"Retry-After": str(body["retryAfter"])} if "retryAfter" in body else None
    return JSONResponse(status_code=status, content=body, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    for exc_class in (OAuthFlowError, PersistenceError, AccountNotFoundError, ProviderAPIError, RateLimitExceeded):
        app.add_exception_handler(exc_class, domain_error_handler)
