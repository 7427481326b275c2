"""
Database engine and session management for the order fulfillment service.

Uses SQLAlchemy async engine with aiosqlite for non-blocking DB operations
inside FastAPI. Tables are auto-created on server startup via init_db().

Each fulfillment attempt opens its own session from `async_session`; the
database transaction is the only concurrency-control primitive.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


# ── Engine ──────────────────────────────────────────────────────────

def to_async_url(raw_url: str) -> str:
    """Convert sqlite:///... → sqlite+aiosqlite:///... for the async driver."""
    if raw_url.startswith("sqlite:///"):
        return raw_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return raw_url


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine.

    SQLite connections get a busy timeout so concurrent writers queue on the
    database lock instead of failing immediately.
    """
    async_url = to_async_url(url)
    connect_args = {}
    if async_url.startswith("sqlite"):
        connect_args["timeout"] = settings.sqlite_busy_timeout_seconds
    return create_async_engine(async_url, echo=echo, future=True, connect_args=connect_args)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(
    settings.database_url,
    echo=(settings.environment == "development"),
)

async_session = build_session_factory(engine)


# ── Helpers ─────────────────────────────────────────────────────────

async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create all tables. Called once on server startup."""
    # Import models so Base.metadata knows about them
    import db_models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created (or already exist)")


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields an async session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
