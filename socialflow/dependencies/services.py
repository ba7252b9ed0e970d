# socialflow/dependencies/services.py
from fastapi import Depends, Request
from sqlmodel.ext.asyncio.session import AsyncSession

from socialflow.dependencies.db import get_session_dep
from socialflow.infrastructure.accounts_repo import AccountsRepository
from socialflow.infrastructure.handshake_store import PendingHandshakeStore
from socialflow.infrastructure.providers.facebook import FacebookClient
from socialflow.infrastructure.providers.instagram import InstagramClient
from socialflow.infrastructure.providers.tiktok import TikTokClient
from socialflow.infrastructure.rate_limiter import FixedWindowRateLimiter
from socialflow.infrastructure.token_cipher import TokenCipher, get_token_cipher
from socialflow.services.account_service import AccountService
from socialflow.services.connect_service import ConnectService
from socialflow.services.oauth.registry import ExchangerRegistry
from socialflow.services.stats_service import StatsRefresher, default_fetchers
from socialflow.services.token_refresh_service import TokenRefresher


def get_redis(request: Request):
    return request.app.state.redis


def get_cipher() -> TokenCipher:
    return get_token_cipher()


def get_rate_limiter(redis=Depends(get_redis)) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(redis)


def get_exchanger_registry(redis=Depends(get_redis), cipher: TokenCipher = Depends(get_cipher)) -> ExchangerRegistry:
    return ExchangerRegistry.default(PendingHandshakeStore(redis, cipher))


def get_stats_fetchers() -> dict:
    return default_fetchers()


def get_tiktok_client() -> TikTokClient:
    return TikTokClient()


def get_instagram_client() -> InstagramClient:
    return InstagramClient()


def get_facebook_client() -> FacebookClient:
    return FacebookClient()


def get_accounts_repo(session: AsyncSession = Depends(get_session_dep)) -> AccountsRepository:
    return AccountsRepository(session)


def get_connect_service(
    repo: AccountsRepository = Depends(get_accounts_repo),
    cipher: TokenCipher = Depends(get_cipher),
    registry: ExchangerRegistry = Depends(get_exchanger_registry),
) -> ConnectService:
    return ConnectService(repo, cipher, registry)


def get_account_service(
    repo: AccountsRepository = Depends(get_accounts_repo),
    cipher: TokenCipher = Depends(get_cipher),
    tiktok: TikTokClient = Depends(get_tiktok_client),
) -> AccountService:
    return AccountService(repo, cipher, tiktok)


def get_stats_refresher(
    repo: AccountsRepository = Depends(get_accounts_repo),
    cipher: TokenCipher = Depends(get_cipher),
    fetchers: dict = Depends(get_stats_fetchers),
) -> StatsRefresher:
    return StatsRefresher(repo, cipher, fetchers)


def get_token_refresher(
    repo: AccountsRepository = Depends(get_accounts_repo),
    cipher: TokenCipher = Depends(get_cipher),
    instagram: InstagramClient = Depends(get_instagram_client),
    tiktok: TikTokClient = Depends(get_tiktok_client),
    facebook: FacebookClient = Depends(get_facebook_client),
) -> TokenRefresher:
    return TokenRefresher(repo, cipher, instagram, tiktok, facebook)
