# socialflow/services/token_refresh_service.py
from datetime import datetime, timedelta
from typing import List, Optional

import structlog

from socialflow.infrastructure.accounts_repo import AccountsRepository
from socialflow.infrastructure.providers.facebook import FacebookClient
from socialflow.infrastructure.providers.instagram import InstagramClient
from socialflow.infrastructure.providers.tiktok import TikTokClient
from socialflow.infrastructure.token_cipher import TokenCipher, TokenDecryptionError
from socialflow.models.connected_account import AccountStatus, ConnectedAccount, ConnectVia, Provider
from socialflow.models.types import utcnow
from socialflow.services.stats_service import RefreshResult, credential_rejected

logger = structlog.get_logger(__name__)

REFRESH_WINDOW = timedelta(days=7)
INSTAGRAM_DEFAULT_TTL = 60 * 24 * 3600


class TokenRefresher:
    """
    Renews long-lived Instagram tokens and TikTok tokens before they lapse.
    Instagram accounts linked through a Facebook Page renew their Facebook user token instead.
    """

    def __init__(
        self,
        repo: AccountsRepository,
        cipher: TokenCipher,
        instagram: Optional[InstagramClient] = None,
        tiktok: Optional[TikTokClient] = None,
        facebook: Optional[FacebookClient] = None,
        window: timedelta = REFRESH_WINDOW,
    ):
        self.repo = repo
        self.cipher = cipher
        self.instagram = instagram or InstagramClient()
        self.tiktok = tiktok or TikTokClient()
        self.facebook = facebook or FacebookClient()
        self.window = window

    async def refresh_expiring(self, now: Optional[datetime] = None) -> List[RefreshResult]:
        now = now or utcnow()
        accounts = await self.repo.list_expiring([Provider.INSTAGRAM, Provider.TIKTOK], now + self.window)
        results = []
        for account in accounts:
            results.append(await self.refresh_account(account))
        logger.info("token_refresh_finished", total=len(results), failed=sum(1 for r in results if r.status == "error"))
        return results

    async def purge_pending(self, now: Optional[datetime] = None) -> int:
        purged = await self.repo.purge_expired_pending(now)
        if purged:
            logger.info("pending_accounts_purged", count=purged)
        return purged

    async def refresh_account(self, account: ConnectedAccount) -> RefreshResult:
        provider = account.provider
        account_id = account.id
        try:
            if provider == Provider.INSTAGRAM:
                fields = await self._refresh_instagram(account)
            else:
                fields = await self._refresh_tiktok(account)
        except TokenDecryptionError as e:
            message = f"stored credentials are unreadable: {e}"
            await self.repo.record_error(account, message, status=AccountStatus.ERROR)
            logger.error("token_refresh_failed", provider=provider.value, account_id=str(account_id), error=message)
            return RefreshResult(provider, account_id, "error", message)
        except Exception as e:
            message = str(e)
            await self.repo.record_error(account, message, status=AccountStatus.ERROR if credential_rejected(e) else None)
            logger.warning("token_refresh_failed", provider=provider.value, account_id=str(account_id), error=message)
            return RefreshResult(provider, account_id, "error", message)

        for name, value in fields.items():
            setattr(account, name, value)
        account.last_error_at = None
        account.last_error_message = None
        await self.repo.save(account)
        logger.info("token_refreshed", provider=provider.value, account_id=str(account_id))
        return RefreshResult(provider, account_id, "success")

    async def _refresh_instagram(self, account: ConnectedAccount) -> dict:
        client = self.facebook if account.connected_via == ConnectVia.FACEBOOK_PAGE else self.instagram
        body = await client.refresh_long_lived(self.cipher.decrypt(account.access_token_enc))
        if not body.get("access_token"):
            raise ValueError("refresh returned no access token")
        return {
            "access_token_enc": self.cipher.encrypt(body["access_token"]),
            "token_expires_at": utcnow() + timedelta(seconds=int(body.get("expires_in") or INSTAGRAM_DEFAULT_TTL)),
        }

    async def _refresh_tiktok(self, account: ConnectedAccount) -> dict:
        refresh_token = self.cipher.decrypt_optional(account.refresh_token_enc)
        if not refresh_token:
            raise ValueError("account has no refresh token")
        body = await self.tiktok.refresh(refresh_token)
        if not body.get("access_token"):
            raise ValueError(body.get("error_description") or "refresh returned no access token")
        fields = {
            "access_token_enc": self.cipher.encrypt(body["access_token"]),
            "refresh_token_enc": self.cipher.encrypt(body.get("refresh_token") or refresh_token),
        }
        if body.get("expires_in"):
            fields["token_expires_at"] = utcnow() + timedelta(seconds=int(body["expires_in"]))
        return fields
