# socialflow/models/post.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
import uuid
from datetime import datetime
from sqlalchemy import JSON
from socialflow.models.types import utc_column, utcnow


class Post(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    content: Optional[str] = Field(default=None)
    media_path: Optional[str] = Field(default=None)  # object storage path
    scheduled_time: Optional[datetime] = Field(default=None, sa_column=utc_column())
    created_at: datetime = Field(default_factory=utcnow, sa_column=utc_column(nullable=False))


class PostTarget(SQLModel, table=True):
    """Publish-target link between a post and the connected account it goes out on."""

    __tablename__ = "post_target"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    post_id: uuid.UUID = Field(foreign_key="post.id", index=True)
    connected_account_id: uuid.UUID = Field(foreign_key="connected_account.id", index=True)
    status: str = Field(default="pending")  # pending, published, failed
    external_post_id: Optional[str] = Field(default=None)
    meta: Optional[dict] = Field(sa_column=Column(JSON), default={})
    created_at: datetime = Field(default_factory=utcnow, sa_column=utc_column(nullable=False))
