import os
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import SQLModel
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
import structlog

# table registration
from socialflow.UAA.models import User  # noqa: F401
from socialflow.models.connected_account import ConnectedAccount  # noqa: F401
from socialflow.models.post import Post, PostTarget  # noqa: F401

logger = structlog.get_logger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./socialflow.db")

engine: AsyncEngine = create_async_engine(DATABASE_URL, echo=False)


async def init_db(bind: AsyncEngine = engine):
    try:
        async with bind.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)
    except Exception as e:
        logger.exception("db_init_failed", error=str(e))
        raise


@asynccontextmanager
async def get_session(bind: AsyncEngine = engine):
    async with AsyncSession(bind, expire_on_commit=False) as session:
        yield session
