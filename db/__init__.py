"""
Async engine, session factory and declarative base of the wallet ledger
"""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from settings import DatabaseSettings

Base = declarative_base()

# Set by init_db
engine: Optional[AsyncEngine] = None
SessionLocal: Optional[async_sessionmaker] = None


def _register_models():
    from db import models  # noqa: F401

_register_models()


def init_db(database_settings: DatabaseSettings) -> AsyncEngine:
    """
    Create the engine and the session factory

    SQLite URLs (local runs, tests) get no connection pool options.
    """
    global engine, SessionLocal

    url = database_settings.async_url
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=database_settings.echo)
    else:
        engine = create_async_engine(
            url,
            echo=database_settings.echo,
            pool_size=database_settings.pool_size,
            max_overflow=database_settings.max_overflow,
            pool_timeout=database_settings.pool_timeout,
            pool_pre_ping=True,
        )

    SessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    return engine


async def close_db() -> None:
    """Close pooled connections on shutdown"""
    if engine is not None:
        await engine.dispose()


async def get_db():
    """Request-scoped database session"""
    if SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with SessionLocal() as session:
        yield session
