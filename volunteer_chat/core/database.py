from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from volunteer_chat.core.config import settings

Base = declarative_base()


def build_engine(url: str = settings.DATABASE_URL, **kwargs) -> AsyncEngine:
    connect_args = {}
    if url.startswith("sqlite"):
        # Seconds a writer waits on the SQLite lock, e.g. concurrent room creators
        connect_args["timeout"] = settings.DATABASE_BUSY_TIMEOUT_SECONDS
    return create_async_engine(url, echo=settings.DATABASE_ECHO, connect_args=connect_args, **kwargs)


engine = build_engine()

AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session for the actor lookup; chat services open their own."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """Factory for services that open one short-lived session per operation."""
    return AsyncSessionLocal
