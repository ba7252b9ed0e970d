# socialflow/services/account_service.py
import uuid
from typing import List, Optional

import structlog

from socialflow.infrastructure.accounts_repo import AccountsRepository
from socialflow.infrastructure.provider_client import ProviderAPIError
from socialflow.infrastructure.providers.tiktok import TikTokClient
from socialflow.infrastructure.token_cipher import TokenCipher, TokenDecryptionError
from socialflow.models.connected_account import ConnectedAccount, Provider
from socialflow.services.oauth.errors import AccountNotFoundError

logger = structlog.get_logger(__name__)


class AccountService:
    def __init__(self, repo: AccountsRepository, cipher: TokenCipher, tiktok: Optional[TikTokClient] = None):
        self.repo = repo
        self.cipher = cipher
        self.tiktok = tiktok or TikTokClient()

    async def list_accounts(self, user_id: uuid.UUID) -> List[ConnectedAccount]:
        return await self.repo.list_by_user(user_id)

    async def publishable_accounts(self, user_id: uuid.UUID) -> List[ConnectedAccount]:
        return await self.repo.list_active(user_id=user_id)

    async def disconnect(self, user_id: uuid.UUID, account_id: uuid.UUID) -> ConnectedAccount:
        account = await self.repo.get_owned(user_id, account_id)
        if not account:
            raise AccountNotFoundError()

        if account.provider == Provider.TIKTOK and account.access_token_enc:
            await self._revoke_tiktok(account)

        account = await self.repo.soft_delete(account)
        logger.info("account_disconnected", provider=account.provider.value, user_id=str(user_id), account_id=str(account.id))
        return account

    async def _revoke_tiktok(self, account: ConnectedAccount) -> None:
        # best effort; the local record is deleted either way
        try:
            await self.tiktok.revoke(self.cipher.decrypt(account.access_token_enc))
        except (ProviderAPIError, TokenDecryptionError) as e:
            logger.warning("tiktok_revoke_failed", account_id=str(account.id), error=str(e))
