# socialflow/services/stats_service.py
import enum
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

import structlog

from socialflow.infrastructure.accounts_repo import AccountsRepository
from socialflow.infrastructure.provider_client import ProviderAPIError
from socialflow.infrastructure.providers.facebook import FacebookClient
from socialflow.infrastructure.providers.instagram import InstagramClient
from socialflow.infrastructure.providers.tiktok import TikTokClient
from socialflow.infrastructure.providers.twitter import TwitterClient
from socialflow.infrastructure.token_cipher import TokenCipher, TokenDecryptionError
from socialflow.models.connected_account import AccountStatus, ConnectedAccount, ConnectVia, Provider
from socialflow.models.types import utcnow

logger = structlog.get_logger(__name__)


class RefreshScope(str, enum.Enum):
    SINGLE_ACCOUNT = "single-account"
    ALL_FOR_USER = "all-for-user"
    ALL_ACTIVE = "all-active"


@dataclass
class RefreshResult:
    provider: Provider
    account_id: uuid.UUID
    status: str  # "success" | "error" | "not_supported"
    error: Optional[str] = None


FetcherKey = Union[Provider, ConnectVia]


def default_fetchers() -> Dict[FetcherKey, object]:
    return {
        Provider.TWITTER: TwitterClient(),
        Provider.INSTAGRAM: InstagramClient(),
        ConnectVia.FACEBOOK_PAGE: FacebookClient(),
        Provider.TIKTOK: TikTokClient(),
    }


def fetcher_key(account: ConnectedAccount) -> FetcherKey:
    """Instagram accounts linked through a Facebook Page hold a Facebook token and are served by graph.facebook.com."""
    if account.connected_via == ConnectVia.FACEBOOK_PAGE:
        return ConnectVia.FACEBOOK_PAGE
    return account.provider


def decrypt_tokens(cipher: TokenCipher, account: ConnectedAccount) -> dict:
    return {
        "access_token": cipher.decrypt(account.access_token_enc),
        "access_token_secret": cipher.decrypt_optional(account.access_token_secret_enc),
        "refresh_token": cipher.decrypt_optional(account.refresh_token_enc),
    }


def credential_rejected(e: Exception) -> bool:
    return isinstance(e, ProviderAPIError) and e.status_code in (401, 403)


class StatsRefresher:
    """
    Pulls follower/post counts for ACTIVE accounts, one account at a time.
    A failing account is recorded and reported; the rest of the batch still runs.
    """

    def __init__(self, repo: AccountsRepository, cipher: TokenCipher, fetchers: Optional[Dict[FetcherKey, object]] = None):
        self.repo = repo
        self.cipher = cipher
        self.fetchers = fetchers if fetchers is not None else default_fetchers()

    async def refresh(
        self,
        scope: RefreshScope,
        user_id: Optional[uuid.UUID] = None,
        account_id: Optional[uuid.UUID] = None,
        provider: Optional[Provider] = None,
    ) -> List[RefreshResult]:
        if scope == RefreshScope.SINGLE_ACCOUNT:
            if account_id is None:
                raise ValueError("single-account refresh needs an account_id")
            accounts = await self.repo.list_active(user_id=user_id, account_id=account_id)
        elif scope == RefreshScope.ALL_FOR_USER:
            if user_id is None:
                raise ValueError("all-for-user refresh needs a user_id")
            accounts = await self.repo.list_active(user_id=user_id, provider=provider)
        else:
            accounts = await self.repo.list_active(provider=provider)

        results = []
        for account in accounts:
            results.append(await self.refresh_account(account))

        logger.info(
            "stats_refresh_finished",
            scope=scope.value,
            total=len(results),
            failed=sum(1 for r in results if r.status == "error"),
        )
        return results

    async def refresh_account(self, account: ConnectedAccount) -> RefreshResult:
        provider = account.provider
        account_id = account.id
        fetcher = self.fetchers.get(fetcher_key(account))
        if fetcher is None:
            return RefreshResult(provider, account_id, "not_supported")

        try:
            tokens = decrypt_tokens(self.cipher, account)
        except TokenDecryptionError as e:
            message = f"stored credentials are unreadable: {e}"
            await self.repo.record_error(account, message, status=AccountStatus.ERROR)
            logger.error("stats_refresh_failed", provider=provider.value, account_id=str(account_id), error=message)
            return RefreshResult(provider, account_id, "error", message)

        try:
            metrics = await fetcher.fetch_metrics(tokens, account.provider_account_id)
        except Exception as e:
            message = str(e)
            status = AccountStatus.ERROR if credential_rejected(e) else None
            await self.repo.record_error(account, message, status=status)
            logger.warning("stats_refresh_failed", provider=provider.value, account_id=str(account_id), error=message)
            return RefreshResult(provider, account_id, "error", message)

        now = utcnow()
        account.followers_count = metrics.get("followers_count")
        account.posts_count = metrics.get("posts_count")
        account.last_stats_update = now
        account.last_synced_at = now
        await self.repo.save(account)
        return RefreshResult(provider, account_id, "success")
