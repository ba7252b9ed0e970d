# socialflow/models/connected_account.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
from datetime import datetime
import enum
import uuid
from sqlalchemy import String, JSON, UniqueConstraint, Enum as SAEnum
from socialflow.models.types import utc_column, utcnow

PENDING_ACCOUNT_ID = "pending"


class Provider(str, enum.Enum):
    TWITTER = "TWITTER"
    INSTAGRAM = "INSTAGRAM"
    FACEBOOK = "FACEBOOK"
    TIKTOK = "TIKTOK"
    GOOGLE = "GOOGLE"


class AccountStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"
    ERROR = "ERROR"


class OAuthVersion(str, enum.Enum):
    OAUTH1 = "OAUTH1"
    OAUTH2 = "OAUTH2"


class ConnectVia(str, enum.Enum):
    """How an Instagram account was linked; decides which Graph API serves its token."""

    INSTAGRAM_LOGIN = "instagram"
    FACEBOOK_PAGE = "facebook_page"


class ConnectedAccount(SQLModel, table=True):
    """
    A user's link to a social provider.
    Every *_enc column holds Token Cipher output, never plaintext.
    """

    __tablename__ = "connected_account"
    __table_args__ = (
        UniqueConstraint("provider", "provider_account_id", "user_id", name="uq_account_provider_identity"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    provider: Provider = Field(sa_column=Column(SAEnum(Provider, native_enum=False, length=20), index=True, nullable=False))
    provider_account_id: str = Field(sa_column=Column(String, index=True, nullable=False))

    access_token_enc: Optional[str] = None
    access_token_secret_enc: Optional[str] = None  # OAuth1 only
    refresh_token_enc: Optional[str] = None
    request_token_enc: Optional[str] = None
    request_token_secret_enc: Optional[str] = None
    request_token_expires_at: Optional[datetime] = Field(default=None, sa_column=utc_column())
    token_expires_at: Optional[datetime] = Field(default=None, sa_column=utc_column())
    oauth_version: OAuthVersion = Field(default=OAuthVersion.OAUTH2, sa_column=Column(SAEnum(OAuthVersion, native_enum=False, length=10), nullable=False))
    scope: Optional[str] = None

    status: AccountStatus = Field(default=AccountStatus.PENDING, sa_column=Column(SAEnum(AccountStatus, native_enum=False, length=10), index=True, nullable=False))
    last_error_at: Optional[datetime] = Field(default=None, sa_column=utc_column())
    last_error_message: Optional[str] = None
    connected_at: Optional[datetime] = Field(default=None, sa_column=utc_column())
    revoked_at: Optional[datetime] = Field(default=None, sa_column=utc_column())
    deleted_at: Optional[datetime] = Field(default=None, sa_column=utc_column())

    username: Optional[str] = None
    display_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    profile_url: Optional[str] = None
    locale: Optional[str] = None
    timezone: Optional[str] = None
    meta: Optional[dict] = Field(sa_column=Column(JSON), default={})

    followers_count: Optional[int] = None
    posts_count: Optional[int] = None
    last_stats_update: Optional[datetime] = Field(default=None, sa_column=utc_column())
    last_synced_at: Optional[datetime] = Field(default=None, sa_column=utc_column())

    created_at: datetime = Field(default_factory=utcnow, sa_column=utc_column(nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=utc_column(nullable=False))

    @property
    def connected_via(self) -> Optional[ConnectVia]:
        if self.provider != Provider.INSTAGRAM:
            return None
        meta = self.meta or {}
        if meta.get("via"):
            return ConnectVia(meta["via"])
        # rows linked before "via" was recorded still carry the page id
        return ConnectVia.FACEBOOK_PAGE if meta.get("facebook_page_id") else ConnectVia.INSTAGRAM_LOGIN
