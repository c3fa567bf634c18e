from sqlalchemy.ext.asyncio import AsyncEngine
from volunteer_chat.core.config import settings
from volunteer_chat.core.database import Base, build_engine

# Models must be imported so their tables are registered on Base.metadata
from volunteer_chat.models import profile  # noqa: F401
from volunteer_chat.models import opportunity  # noqa: F401
from volunteer_chat.models import application  # noqa: F401
from volunteer_chat.models import chat  # noqa: F401


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db():
    """Create the data directory and all tables."""
    if settings.DATABASE_URL.startswith("sqlite"):
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    engine = build_engine()
    await create_tables(engine)
    await engine.dispose()
