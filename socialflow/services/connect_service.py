# socialflow/services/connect_service.py
import structlog
from sqlalchemy.exc import SQLAlchemyError

from socialflow.infrastructure.accounts_repo import AccountsRepository
from socialflow.infrastructure.token_cipher import TokenCipher
from socialflow.models.connected_account import AccountStatus, ConnectedAccount, Provider
from socialflow.models.types import utcnow
from socialflow.services.oauth.base import CallbackParams, FlowState, InitiationResult, ProviderCredential
from socialflow.services.oauth.errors import PersistenceError
from socialflow.services.oauth.registry import ExchangerRegistry

logger = structlog.get_logger(__name__)


class ConnectService:
    """Drives a provider handshake and stores the resulting credential encrypted."""

    def __init__(self, repo: AccountsRepository, cipher: TokenCipher, registry: ExchangerRegistry):
        self.repo = repo
        self.cipher = cipher
        self.registry = registry

    async def initiate(self, user_id, provider: Provider) -> InitiationResult:
        return await self.registry.get(provider).initiate(user_id)

    async def complete(self, user_id, provider: Provider, params: CallbackParams) -> ConnectedAccount:
        exchanger = self.registry.get(provider)
        try:
            credential = await exchanger.complete(user_id, params)
        except Exception as e:
            exchanger.log_state(FlowState.FAILED, user_id, reason=type(e).__name__)
            raise

        try:
            account = await self.persist(user_id, credential)
        except SQLAlchemyError as e:
            await self.repo.session.rollback()
            exchanger.log_state(FlowState.FAILED, user_id, reason="persistence")
            logger.error("account_persist_failed", provider=provider.value, user_id=str(user_id), error=str(e))
            raise PersistenceError("Failed to save the connected account.", provider=provider.value) from e

        exchanger.log_state(FlowState.PERSISTED, user_id, account_id=str(account.id))
        logger.info(
            "account_connected",
            provider=provider.value,
            user_id=str(user_id),
            account_id=str(account.id),
            provider_account_id=credential.provider_account_id,
        )
        return account

    async def persist(self, user_id, credential: ProviderCredential) -> ConnectedAccount:
        now = utcnow()
        existing = await self.repo.find_identity(credential.provider, credential.provider_account_id, user_id)
        fields = {
            "status": AccountStatus.ACTIVE,
            "oauth_version": credential.oauth_version,
            "access_token_enc": self.cipher.encrypt(credential.access_token),
            "access_token_secret_enc": self.cipher.encrypt_optional(credential.access_token_secret),
            "refresh_token_enc": self.cipher.encrypt_optional(credential.refresh_token),
            "request_token_enc": None,
            "request_token_secret_enc": None,
            "request_token_expires_at": None,
            "token_expires_at": credential.token_expires_at,
            "scope": credential.scope,
            "username": credential.username,
            "display_name": credential.display_name,
            "profile_image_url": credential.profile_image_url,
            "profile_url": credential.profile_url,
            "locale": credential.locale,
            "timezone": credential.timezone,
            "meta": credential.meta or {},
            "last_error_at": None,
            "last_error_message": None,
            "deleted_at": None,
            "revoked_at": None,
            "last_synced_at": now,
        }
        if credential.followers_count is not None:
            fields["followers_count"] = credential.followers_count
            fields["last_stats_update"] = now
        if credential.posts_count is not None:
            fields["posts_count"] = credential.posts_count
        # a revived row keeps its first activation time only while it was never disconnected
        if existing is None or existing.connected_at is None or existing.deleted_at is not None:
            fields["connected_at"] = now

        account = await self.repo.upsert(user_id, credential.provider, credential.provider_account_id, fields)
        await self.repo.delete_pending(user_id, credential.provider)
        return account
