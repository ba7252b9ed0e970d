# socialflow/infrastructure/provider_client.py
import os
import random
from typing import List, Optional
from urllib.parse import parse_qsl

import httpx
import structlog

logger = structlog.get_logger(__name__)

PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", "30"))
PROVIDER_PROXIES = [p.strip() for p in os.getenv("PROVIDER_PROXIES", "").split(",") if p.strip()]


class ProviderAPIError(Exception):
    """A provider answered non-2xx, or could not be reached (status_code is None)."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.status_code = status_code
        self.body = body

    @property
    def is_upstream_failure(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class ProxyManager:
    def __init__(self, proxies: Optional[List[str]] = None):
        self.proxies = proxies if proxies is not None else PROVIDER_PROXIES

    def pick(self) -> Optional[str]:
        if not self.proxies:
            return None
        return random.choice(self.proxies)


class ProviderHTTPClient:
    """
    Base for the per-provider API clients.
    One short-lived httpx client per call; errors are tagged with the provider name.
    """

    provider = "PROVIDER"

    def __init__(
        self,
        proxy_manager: Optional[ProxyManager] = None,
        timeout: float = PROVIDER_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.proxy_manager = proxy_manager or ProxyManager()
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        proxy = self.proxy_manager.pick()
        return httpx.AsyncClient(proxy=proxy, timeout=self.timeout, transport=self.transport)

    async def request(self, method: str, url: str, what: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                r = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("provider_unreachable", provider=self.provider, step=what, error=str(e))
            raise ProviderAPIError(self.provider, f"{what} failed: {e}") from e

        if r.status_code >= 400:
            logger.warning("provider_error_response", provider=self.provider, step=what, status=r.status_code)
            raise ProviderAPIError(self.provider, f"{what} failed", status_code=r.status_code, body=r.text)
        return r

    async def get_json(self, url: str, what: str, **kwargs) -> dict:
        r = await self.request("GET", url, what, **kwargs)
        return r.json()

    async def post_json(self, url: str, what: str, **kwargs) -> dict:
        r = await self.request("POST", url, what, **kwargs)
        return r.json()

    async def post_form_encoded(self, url: str, what: str, **kwargs) -> dict:
        """POST and parse an application/x-www-form-urlencoded response body."""
        r = await self.request("POST", url, what, **kwargs)
        return dict(parse_qsl(r.text))
