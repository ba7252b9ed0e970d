from urllib.parse import parse_qs, urlparse

import pytest
from sqlmodel import select

from socialflow.models.connected_account import AccountStatus, ConnectedAccount, ConnectVia, Provider
from socialflow.services.connect_service import ConnectService
from socialflow.services.oauth.base import CallbackParams
from socialflow.services.oauth.errors import OAuthFlowError, SessionExpiredError
from socialflow.services.oauth.instagram import InstagramExchanger, InstagramPageExchanger
from socialflow.services.oauth.registry import ExchangerRegistry
from tests.fakes import FakeFacebookClient, FakeInstagramClient

CALLBACK = "http://api.test/accounts/callback/instagram"


def make_connect(repo, cipher, exchanger):
    return ConnectService(repo, cipher, ExchangerRegistry({Provider.INSTAGRAM: exchanger}))


async def start(connect, user):
    started = await connect.initiate(user.id, Provider.INSTAGRAM)
    return started, CallbackParams(code="auth-code", state=started.state, cookie_state=started.state)


@pytest.mark.asyncio
async def test_authorize_url_carries_state(handshakes, repo, cipher, user, fake_redis):
    connect = make_connect(repo, cipher, InstagramExchanger(handshakes, client=FakeInstagramClient(), redirect_uri=CALLBACK))
    started, _ = await start(connect, user)
    query = parse_qs(urlparse(started.auth_url).query)
    assert query["client_id"] == ["ig-app"]
    assert query["redirect_uri"] == [CALLBACK]
    assert query["response_type"] == ["code"]
    assert query["state"] == [started.state]
    assert "instagram_business_content_publish" in query["scope"][0]
    assert await fake_redis.ttl(handshakes.key(str(user.id), started.state)) == 600


@pytest.mark.asyncio
async def test_business_account_connects(handshakes, repo, cipher, user):
    client = FakeInstagramClient(account_type="BUSINESS")
    connect = make_connect(repo, cipher, InstagramExchanger(handshakes, client=client, redirect_uri=CALLBACK))
    _, params = await start(connect, user)
    account = await connect.complete(user.id, Provider.INSTAGRAM, params)

    assert ("exchange_long_lived", "ig-short") in client.calls
    assert account.status == AccountStatus.ACTIVE
    assert account.provider_account_id == "1784"
    assert account.profile_url == "https://www.instagram.com/flowgram"
    assert account.token_expires_at is not None
    assert cipher.decrypt(account.access_token_enc) == "ig-long"
    assert account.access_token_secret_enc is None
    assert account.connected_via == ConnectVia.INSTAGRAM_LOGIN


@pytest.mark.asyncio
async def test_personal_account_is_rejected_and_nothing_persisted(handshakes, repo, cipher, user, session):
    connect = make_connect(repo, cipher, InstagramExchanger(handshakes, client=FakeInstagramClient(account_type="PERSONAL"), redirect_uri=CALLBACK))
    _, params = await start(connect, user)

    with pytest.raises(OAuthFlowError) as exc_info:
        await connect.complete(user.id, Provider.INSTAGRAM, params)

    assert exc_info.value.status_code == 400
    assert exc_info.value.code == "instagram_account_type"
    assert "PERSONAL" in exc_info.value.message
    rows = (await session.execute(select(ConnectedAccount))).scalars().all()
    assert rows == []


@pytest.mark.asyncio
async def test_state_mismatch(handshakes, repo, cipher, user):
    client = FakeInstagramClient()
    connect = make_connect(repo, cipher, InstagramExchanger(handshakes, client=client, redirect_uri=CALLBACK))
    started, _ = await start(connect, user)
    params = CallbackParams(code="auth-code", state=started.state, cookie_state="forged")
    with pytest.raises(OAuthFlowError) as exc_info:
        await connect.complete(user.id, Provider.INSTAGRAM, params)
    assert exc_info.value.code == "state_mismatch"
    assert client.calls == []


@pytest.mark.asyncio
async def test_missing_state_cookie(handshakes, repo, cipher, user):
    connect = make_connect(repo, cipher, InstagramExchanger(handshakes, client=FakeInstagramClient(), redirect_uri=CALLBACK))
    started, _ = await start(connect, user)
    with pytest.raises(OAuthFlowError) as exc_info:
        await connect.complete(user.id, Provider.INSTAGRAM, CallbackParams(code="c", state=started.state))
    assert exc_info.value.code == "state_mismatch"


@pytest.mark.asyncio
async def test_unknown_state_is_session_expired(handshakes, repo, cipher, user):
    connect = make_connect(repo, cipher, InstagramExchanger(handshakes, client=FakeInstagramClient(), redirect_uri=CALLBACK))
    params = CallbackParams(code="c", state="stale", cookie_state="stale")
    with pytest.raises(SessionExpiredError):
        await connect.complete(user.id, Provider.INSTAGRAM, params)


@pytest.mark.asyncio
async def test_provider_error_is_denied(handshakes, repo, cipher, user):
    connect = make_connect(repo, cipher, InstagramExchanger(handshakes, client=FakeInstagramClient(), redirect_uri=CALLBACK))
    params = CallbackParams(error="access_denied", error_description="The user denied your request.")
    with pytest.raises(OAuthFlowError) as exc_info:
        await connect.complete(user.id, Provider.INSTAGRAM, params)
    assert exc_info.value.code == "instagram_denied"
    assert exc_info.value.message == "The user denied your request."


@pytest.mark.asyncio
async def test_page_variant_uses_first_linked_business_account(handshakes, repo, cipher, user):
    exchanger = InstagramPageExchanger(handshakes, client=FakeFacebookClient(linked={"p2": "ig-2"}), redirect_uri=CALLBACK)
    connect = make_connect(repo, cipher, exchanger)
    _, params = await start(connect, user)
    account = await connect.complete(user.id, Provider.INSTAGRAM, params)
    assert account.provider_account_id == "ig-2"
    assert account.meta["facebook_page_id"] == "p2"
    assert account.connected_via == ConnectVia.FACEBOOK_PAGE
    assert cipher.decrypt(account.access_token_enc) == "fb-long"


@pytest.mark.asyncio
async def test_page_variant_without_linked_account(handshakes, repo, cipher, user):
    exchanger = InstagramPageExchanger(handshakes, client=FakeFacebookClient(), redirect_uri=CALLBACK)
    connect = make_connect(repo, cipher, exchanger)
    _, params = await start(connect, user)
    with pytest.raises(OAuthFlowError) as exc_info:
        await connect.complete(user.id, Provider.INSTAGRAM, params)
    assert exc_info.value.code == "instagram_no_business_account"
