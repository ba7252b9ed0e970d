# socialflow/schemas/account_schema.py
from pydantic import BaseModel, ConfigDict
from typing import List, Optional
import uuid
from datetime import datetime

from socialflow.models.connected_account import AccountStatus, OAuthVersion, Provider


class AccountRead(BaseModel):
    """A connected account as shown to its owner; no token material."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    provider: Provider
    provider_account_id: str
    status: AccountStatus
    oauth_version: OAuthVersion
    username: Optional[str] = None
    display_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    profile_url: Optional[str] = None
    followers_count: Optional[int] = None
    posts_count: Optional[int] = None
    token_expires_at: Optional[datetime] = None
    last_stats_update: Optional[datetime] = None
    last_error_at: Optional[datetime] = None
    last_error_message: Optional[str] = None
    connected_at: Optional[datetime] = None
    created_at: datetime


class ConnectResponse(BaseModel):
    provider: Provider
    auth_url: str


class RefreshResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    provider: Provider
    account_id: uuid.UUID
    status: str
    error: Optional[str] = None


class RefreshResponse(BaseModel):
    results: List[RefreshResultRead]


class TokenRefreshResponse(BaseModel):
    results: List[RefreshResultRead]
    purged_pending: int
