import os

os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "test-token-encryption-key")
os.environ.setdefault("SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("APP_URL", "http://app.test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from socialflow.UAA.models import User
from socialflow.UAA.utils import create_access_token
from socialflow.infrastructure.accounts_repo import AccountsRepository
from socialflow.infrastructure.database import get_session, init_db
from socialflow.infrastructure.handshake_store import PendingHandshakeStore
from socialflow.infrastructure.token_cipher import get_token_cipher
from socialflow.models.connected_account import Provider
from socialflow.services.oauth.instagram import InstagramExchanger
from socialflow.services.oauth.registry import ExchangerRegistry
from socialflow.services.oauth.tiktok import TikTokExchanger
from socialflow.services.oauth.twitter import TwitterExchanger
from tests.fakes import FakeFacebookClient, FakeInstagramClient, FakeRedis, FakeTikTokClient, FakeTwitterClient

CALLBACK_BASE = "http://api.test/accounts/callback"


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'socialflow-test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    async with get_session(engine) as session:
        yield session


@pytest.fixture
def cipher():
    return get_token_cipher()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def handshakes(fake_redis, cipher):
    return PendingHandshakeStore(fake_redis, cipher)


@pytest.fixture
def repo(session):
    return AccountsRepository(session)


async def make_user(session, email="owner@socialflow.io", username="owner"):
    # password hashing is exercised by the auth router tests
    user = User(email=email, username=username, hashed_password="not-a-real-hash")
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def user(session):
    return await make_user(session)


@pytest.fixture
def user_factory(session):
    async def factory(email, username):
        return await make_user(session, email=email, username=username)

    return factory


@pytest.fixture
def auth_headers(user):
    token = create_access_token(str(user.id))["token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def twitter_client():
    return FakeTwitterClient()


@pytest.fixture
def instagram_client():
    return FakeInstagramClient()


@pytest.fixture
def tiktok_client():
    return FakeTikTokClient()


@pytest.fixture
def facebook_client():
    return FakeFacebookClient()


@pytest.fixture
def registry(handshakes, twitter_client, instagram_client, tiktok_client):
    return ExchangerRegistry(
        {
            Provider.TWITTER: TwitterExchanger(handshakes, client=twitter_client, redirect_uri=f"{CALLBACK_BASE}/twitter"),
            Provider.INSTAGRAM: InstagramExchanger(handshakes, client=instagram_client, redirect_uri=f"{CALLBACK_BASE}/instagram"),
            Provider.TIKTOK: TikTokExchanger(handshakes, client=tiktok_client, redirect_uri=f"{CALLBACK_BASE}/tiktok"),
        }
    )


@pytest_asyncio.fixture
async def client(engine, fake_redis, registry, tiktok_client, instagram_client, facebook_client):
    from socialflow.dependencies.db import get_session_dep
    from socialflow.dependencies.services import (
        get_exchanger_registry,
        get_facebook_client,
        get_instagram_client,
        get_stats_fetchers,
        get_tiktok_client,
    )
    from socialflow.main import app

    async def session_override():
        async with get_session(engine) as session:
            yield session

    app.state.redis = fake_redis
    app.dependency_overrides[get_session_dep] = session_override
    app.dependency_overrides[get_exchanger_registry] = lambda: registry
    app.dependency_overrides[get_tiktok_client] = lambda: tiktok_client
    app.dependency_overrides[get_instagram_client] = lambda: instagram_client
    app.dependency_overrides[get_facebook_client] = lambda: facebook_client
    app.dependency_overrides[get_stats_fetchers] = lambda: {}

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://api.test") as client:
        yield client
    app.dependency_overrides.clear()
