from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from ..config import get_settings

Base = declarative_base()


def create_session_factory(database_url: str) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Create an engine and a session factory for a database URL."""
    engine = create_async_engine(database_url, future=True)
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


engine, async_session = create_session_factory(get_settings().DATABASE_URL)


async def init_db(db_engine: AsyncEngine = engine) -> None:
    """Create all tables."""
    # Import models so they are registered on Base.metadata
    from . import models  # noqa: F401

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
