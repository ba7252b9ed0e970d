# socialflow/infrastructure/accounts_repo.py
import os
from typing import Iterable, Optional, List
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from sqlalchemy import delete
from socialflow.models.connected_account import ConnectedAccount, AccountStatus, Provider
from socialflow.models.post import PostTarget
import uuid
from datetime import datetime
from socialflow.models.types import utcnow

ACCOUNT_UNIQUENESS_SCOPE = os.getenv("ACCOUNT_UNIQUENESS_SCOPE", "global").lower()


class AccountsRepository:
    """
    Repository for ConnectedAccount entity.
    All methods are async and expect an AsyncSession to be injected from the outside.

    uniqueness_scope decides what identifies a provider identity on upsert:
    "global" -> (provider, provider_account_id), "user" -> also scoped by user_id.
    """

    def __init__(self, session: AsyncSession, uniqueness_scope: Optional[str] = None):
        self.session = session
        self.uniqueness_scope = (uniqueness_scope or ACCOUNT_UNIQUENESS_SCOPE).lower()
        if self.uniqueness_scope not in ("global", "user"):
            raise ValueError(f"unknown account uniqueness scope: {self.uniqueness_scope}")

    async def get_by_id(self, id: uuid.UUID) -> Optional[ConnectedAccount]:
        q = select(ConnectedAccount).where(ConnectedAccount.id == id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_owned(self, user_id: uuid.UUID, id: uuid.UUID) -> Optional[ConnectedAccount]:
        q = select(ConnectedAccount).where(
            ConnectedAccount.id == id,
            ConnectedAccount.user_id == user_id,
            ConnectedAccount.deleted_at.is_(None),
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def find_identity(
        self, provider: Provider, provider_account_id: str, user_id: uuid.UUID
    ) -> Optional[ConnectedAccount]:
        q = select(ConnectedAccount).where(
            ConnectedAccount.provider == provider,
            ConnectedAccount.provider_account_id == provider_account_id,
        )
        if self.uniqueness_scope == "user":
            q = q.where(ConnectedAccount.user_id == user_id)
        res = await self.session.execute(q.order_by(ConnectedAccount.updated_at.desc()))
        return res.scalars().first()

    async def list_by_user(self, user_id: uuid.UUID) -> List[ConnectedAccount]:
        """Connected (non-pending, non-deleted) accounts, newest first."""
        q = (
            select(ConnectedAccount)
            .where(
                ConnectedAccount.user_id == user_id,
                ConnectedAccount.deleted_at.is_(None),
                ConnectedAccount.status != AccountStatus.PENDING,
            )
            .order_by(ConnectedAccount.created_at.desc())
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def list_active(
        self,
        user_id: Optional[uuid.UUID] = None,
        provider: Optional[Provider] = None,
        account_id: Optional[uuid.UUID] = None,
    ) -> List[ConnectedAccount]:
        """ACTIVE, non-deleted accounts; the target set for publishing and stats refresh."""
        q = select(ConnectedAccount).where(
            ConnectedAccount.status == AccountStatus.ACTIVE,
            ConnectedAccount.deleted_at.is_(None),
        )
        if user_id is not None:
            q = q.where(ConnectedAccount.user_id == user_id)
        if provider is not None:
            q = q.where(ConnectedAccount.provider == provider)
        if account_id is not None:
            q = q.where(ConnectedAccount.id == account_id)
        res = await self.session.execute(q.order_by(ConnectedAccount.created_at))
        return list(res.scalars().all())

    async def list_expiring(self, providers: Iterable[Provider], before: datetime) -> List[ConnectedAccount]:
        q = select(ConnectedAccount).where(
            ConnectedAccount.provider.in_(list(providers)),
            ConnectedAccount.status == AccountStatus.ACTIVE,
            ConnectedAccount.deleted_at.is_(None),
            ConnectedAccount.token_expires_at.is_not(None),
            ConnectedAccount.token_expires_at <= before,
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def upsert(self, user_id: uuid.UUID, provider: Provider, provider_account_id: str, fields: dict) -> ConnectedAccount:
        """
        Insert or update the record for a provider identity; last writer wins.
        Commits and returns refreshed instance.
        """
        now = utcnow()
        account = await self.find_identity(provider, provider_account_id, user_id)
        if account is None:
            account = ConnectedAccount(user_id=user_id, provider=provider, provider_account_id=provider_account_id)
        account.user_id = user_id
        for name, value in fields.items():
            setattr(account, name, value)
        account.updated_at = now
        self.session.add(account)
        await self.session.commit()
        await self.session.refresh(account)
        return account

    async def save(self, account: ConnectedAccount) -> ConnectedAccount:
        account.updated_at = utcnow()
        self.session.add(account)
        await self.session.commit()
        await self.session.refresh(account)
        return account

    async def record_error(self, account: ConnectedAccount, message: str, status: Optional[AccountStatus] = None) -> ConnectedAccount:
        account.last_error_at = utcnow()
        account.last_error_message = message[:1000]
        if status is not None:
            account.status = status
        return await self.save(account)

    async def soft_delete(self, account: ConnectedAccount) -> ConnectedAccount:
        """
        Mark the account revoked and deleted, drop its secrets and
        delete the publish targets that point at it.
        """
        now = utcnow()
        await self.session.execute(delete(PostTarget).where(PostTarget.connected_account_id == account.id))
        account.status = AccountStatus.REVOKED
        account.deleted_at = now
        account.revoked_at = now
        account.access_token_enc = None
        account.access_token_secret_enc = None
        account.refresh_token_enc = None
        return await self.save(account)

    async def delete_pending(self, user_id: uuid.UUID, provider: Provider) -> int:
        res = await self.session.execute(
            delete(ConnectedAccount).where(
                ConnectedAccount.user_id == user_id,
                ConnectedAccount.provider == provider,
                ConnectedAccount.status == AccountStatus.PENDING,
            )
        )
        await self.session.commit()
        return res.rowcount or 0

    async def purge_expired_pending(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        res = await self.session.execute(
            delete(ConnectedAccount).where(
                ConnectedAccount.status == AccountStatus.PENDING,
                (ConnectedAccount.request_token_expires_at.is_(None)) | (ConnectedAccount.request_token_expires_at <= now),
            )
        )
        await self.session.commit()
        return res.rowcount or 0
