"""
Credential store database configuration (SQLAlchemy async).

SQLite via aiosqlite by default; set DATABASE_URL to a
``postgresql+asyncpg://`` URL (``postgres`` extra) for a shared deployment.
"""
import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from utils.config import DATABASE_URL

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live as long as their single connection
        if url.rstrip("/").endswith(":memory:") or url.endswith("://"):
            options["poolclass"] = StaticPool
        return options
    return {"pool_size": 20, "max_overflow": 10}


engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    **_engine_options(DATABASE_URL)
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for obtaining an async database session.

    Usage in FastAPI:
        @router.post("/verify/complete")
        async def complete(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create the credential tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping_db() -> bool:
    """True if the database answers a trivial query."""
    from sqlalchemy import text
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database ping failed: {e}")
        return False
