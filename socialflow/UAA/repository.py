# socialflow/UAA/repository.py
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from .models import User
from typing import Optional, Union
import uuid
from ..models.types import utcnow

class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_email(self, email: str) -> Optional[User]:
        q = select(User).where(User.email == email.lower())
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_by_username(self, username: str) -> Optional[User]:
        q = select(User).where(User.username == username)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_by_id(self, user_id: Union[str, uuid.UUID]) -> Optional[User]:
        # JWT subjects arrive as strings
        try:
            user_id = user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))
        except ValueError:
            return None
        q = select(User).where(User.id == user_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def create(self, user: User) -> User:
        user.email = user.email.lower()
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        return user

    async def touch_last_login(self, user: User) -> User:
        user.last_login = utcnow()
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        return user
