from urllib.parse import parse_qs, urlparse

import pytest

from socialflow.infrastructure.provider_client import ProviderAPIError
from socialflow.models.connected_account import AccountStatus, Provider
from socialflow.services.connect_service import ConnectService
from socialflow.services.oauth.base import CallbackParams
from socialflow.services.oauth.errors import OAuthFlowError
from socialflow.services.oauth.facebook import FacebookExchanger
from socialflow.services.oauth.registry import ExchangerRegistry
from socialflow.services.oauth.tiktok import TikTokExchanger
from tests.fakes import FakeTikTokClient


async def run_flow(connect, user, provider):
    started = await connect.initiate(user.id, provider)
    params = CallbackParams(code="auth-code", state=started.state, cookie_state=started.state)
    return started, await connect.complete(user.id, provider, params)


@pytest.mark.asyncio
async def test_tiktok_connect(handshakes, repo, cipher, user):
    exchanger = TikTokExchanger(handshakes, client=FakeTikTokClient(), redirect_uri="http://api.test/cb/tiktok")
    connect = ConnectService(repo, cipher, ExchangerRegistry({Provider.TIKTOK: exchanger}))
    started, account = await run_flow(connect, user, Provider.TIKTOK)

    query = parse_qs(urlparse(started.auth_url).query)
    assert query["client_key"] == ["tt-key"]
    assert "client_id" not in query

    assert account.status == AccountStatus.ACTIVE
    assert account.provider_account_id == "open-1"
    assert account.followers_count == 5
    assert cipher.decrypt(account.refresh_token_enc) == "tt-refresh"
    assert account.token_expires_at is not None


class NoOpenIdTikTok(FakeTikTokClient):
    async def user_info(self, access_token):
        return {"display_name": "nobody"}


@pytest.mark.asyncio
async def test_tiktok_profile_without_open_id(handshakes, repo, cipher, user):
    exchanger = TikTokExchanger(handshakes, client=NoOpenIdTikTok(), redirect_uri="http://api.test/cb/tiktok")
    connect = ConnectService(repo, cipher, ExchangerRegistry({Provider.TIKTOK: exchanger}))
    with pytest.raises(OAuthFlowError) as exc_info:
        await run_flow(connect, user, Provider.TIKTOK)
    assert exc_info.value.code == "tiktok_invalid_profile"
    assert await repo.list_by_user(user.id) == []


class FailingTokenTikTok(FakeTikTokClient):
    async def exchange_code(self, code, redirect_uri):
        raise ProviderAPIError("TIKTOK", "code_exchange failed", status_code=502, body="bad gateway")


@pytest.mark.asyncio
async def test_upstream_failure_propagates(handshakes, repo, cipher, user):
    exchanger = TikTokExchanger(handshakes, client=FailingTokenTikTok(), redirect_uri="http://api.test/cb/tiktok")
    connect = ConnectService(repo, cipher, ExchangerRegistry({Provider.TIKTOK: exchanger}))
    with pytest.raises(ProviderAPIError) as exc_info:
        await run_flow(connect, user, Provider.TIKTOK)
    assert exc_info.value.is_upstream_failure
    assert exc_info.value.body == "bad gateway"


class FakeFacebookClient:
    app_id = "fb-app"
    app_secret = "fb-secret"

    def __init__(self, pages=None):
        self._pages = pages or []

    async def exchange_code(self, code, redirect_uri):
        return {"access_token": "fb-short"}

    async def exchange_long_lived(self, token):
        return {"access_token": "fb-long", "expires_in": 5184000}

    async def me(self, token):
        return {"id": "fb-1", "name": "Flow Page Owner", "picture": {"data": {"url": "https://cdn.test/p.jpg"}}}

    async def pages(self, token):
        return self._pages

    async def page_instagram_account_id(self, page_id, token):
        return "ig-9" if page_id == "p1" else None


@pytest.mark.asyncio
async def test_facebook_mirrors_pages(handshakes, repo, cipher, user):
    client = FakeFacebookClient(pages=[{"id": "p1", "name": "Shop"}, {"id": "p2", "name": "Blog"}])
    exchanger = FacebookExchanger(handshakes, client=client, redirect_uri="http://api.test/cb/facebook")
    connect = ConnectService(repo, cipher, ExchangerRegistry({Provider.FACEBOOK: exchanger}))
    _, account = await run_flow(connect, user, Provider.FACEBOOK)
    assert account.provider_account_id == "fb-1"
    assert account.profile_image_url == "https://cdn.test/p.jpg"
    assert account.meta["pages"] == [
        {"id": "p1", "name": "Shop", "instagram_business_account_id": "ig-9"},
        {"id": "p2", "name": "Blog", "instagram_business_account_id": None},
    ]


@pytest.mark.asyncio
async def test_facebook_without_pages(handshakes, repo, cipher, user):
    exchanger = FacebookExchanger(handshakes, client=FakeFacebookClient(), redirect_uri="http://api.test/cb/facebook")
    connect = ConnectService(repo, cipher, ExchangerRegistry({Provider.FACEBOOK: exchanger}))
    with pytest.raises(OAuthFlowError) as exc_info:
        await run_flow(connect, user, Provider.FACEBOOK)
    assert exc_info.value.code == "facebook_no_pages"
