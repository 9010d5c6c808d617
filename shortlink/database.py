"""Database engine and session factory setup for the shortlink service.

This module provides SQLAlchemy async engine setup and database lifecycle
operations. PostgreSQL (asyncpg) is the production backend; SQLite
(aiosqlite) is used for local development and the test-suite.

Flow Diagram — Database Lifecycle
=================================
::
    ┌─────────────┐
    │  lifespan   │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_     │
    │ engine()    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ init_db()    │
    │ create_all  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ SQLLink-    │
    │ Repository  │
    │ (sessions)  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_db()   │
    │ dispose     │
    └─────────────┘

How to Use
===========
**Step 1 — Build the engine on startup**::
    engine = create_engine(settings)
    await init_db(engine)

**Step 2 — Hand a session factory to the repository**::
    repository = SQLLinkRepository(create_session_factory(engine))

**Step 3 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- No engine is created at import time; the composition root owns it.
- SQLite connections enable foreign keys so click events cascade on delete.
- Sessions do not expire attributes on commit, so returned rows stay readable.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_engine():  Build an AsyncEngine from settings.
    create_session_factory():  Bind an async_sessionmaker to an engine.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortlink.config import Settings

__all__ = ["Base", "create_engine", "create_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(settings: Settings) -> AsyncEngine:
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=settings.DATABASE_ECHO,
            connect_args={"timeout": 30},
        )
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        url,
        echo=settings.DATABASE_ECHO,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Imported for its side effect of registering the tables on Base.metadata
    from shortlink import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
