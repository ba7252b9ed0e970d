# socialflow/UAA/models.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
from datetime import datetime
import uuid
from pydantic import EmailStr
from sqlalchemy import String
from socialflow.models.types import utc_column, utcnow

class User(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: EmailStr = Field(sa_column=Column(String, unique=True, index=True, nullable=False))
    username: str = Field(sa_column=Column(String, unique=True, index=True, nullable=False))
    hashed_password: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_column=utc_column(nullable=False))
    last_login: Optional[datetime] = Field(default=None, sa_column=utc_column())
