from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from typing import Any, AsyncGenerator, Dict

from roastmyapp.config import get_settings


class Base(DeclarativeBase):
    pass


def engine_options(url: str) -> Dict[str, Any]:
    """Connection pool settings shared by the API engine and the worker engine."""
    settings = get_settings()
    options: Dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    # SQLite picks its own pool class; sizing only applies to server databases
    if not url.startswith("sqlite"):
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
        options["pool_recycle"] = settings.database_pool_recycle_seconds
    return options


settings = get_settings()

engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; routes commit through ``run_command``."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
