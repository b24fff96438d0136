# upload_ledger/database.py
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from .config import DATABASE_URL

Base = declarative_base()


def make_engine(url: str = DATABASE_URL) -> AsyncEngine:
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
    )


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # records are handed back to callers after the session closes
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Process-wide engine for the operator service; the ledger itself takes a store
engine: AsyncEngine = make_engine()
SessionLocal = make_sessionmaker(engine)


async def create_tables(bind: AsyncEngine = engine) -> None:
    from . import models  # noqa: F401  (registers tables on Base.metadata)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_engine(bind: AsyncEngine = engine) -> None:
    await bind.dispose()
