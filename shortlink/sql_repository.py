"""SQLAlchemy adapter of the link repository.

Every call opens its own ``AsyncSession`` and is bounded by a timeout, so a
stalled database surfaces as ``StorageTimeoutError`` instead of hanging the
request.

Flow Diagram — insert_link()
============================
::
    ┌─────────────┐
    │ session.add │
    │ (link)      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ commit      │
    └──────┬──────┘
    OK?    │
    ┌─────┴──────────┐
    │ YES             │ IntegrityError on short_code
    ▼                 ▼
┌─────────┐     ┌──────────────┐
│ return  │     │ rollback;    │
│ link    │     │ raise Unique-│
└─────────┘     │ Constraint-  │
                │ Violation    │
                └──────────────┘

Key Behaviours
===============
- Uniqueness is left to the unique index; there is no read-before-insert.
- The click counter is bumped with one UPDATE ... SET click_count = click_count + 1.
- Click-event failures are reported as a WriteStatus and logged, never raised.
- Driver errors become StorageError; timeouts become StorageTimeoutError.
"""

import asyncio
import datetime
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.enums import WriteStatus
from shortlink.errors import StorageError, StorageTimeoutError, UniqueConstraintViolation
from shortlink.models import ClickEvent, Link, utcnow
from shortlink.repository import LinkRepository

__all__ = ["SQLLinkRepository"]

T = TypeVar("T")


class SQLLinkRepository(LinkRepository):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
        logger: logging.Logger | None = None,
    ) -> None:
        assert timeout > 0, f"timeout must be positive, got {timeout!r}"
        self._session_factory = session_factory
        self._timeout = timeout
        self._logger = logger or logging.getLogger("shortlink.repository")

    async def _run(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(fn(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise StorageTimeoutError(f"{operation} timed out after {self._timeout}s") from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"{operation} failed: {exc}") from exc

    async def insert_link(self, link: Link) -> Link:
        async def _insert() -> Link:
            async with self._session_factory() as session:
                session.add(link)
                try:
                    await session.commit()
                except IntegrityError as exc:
                    await session.rollback()
                    if "short_code" in str(exc.orig):
                        raise UniqueConstraintViolation(link.short_code) from exc
                    raise
            return link

        return await self._run("insert_link", _insert)

    async def find_by_short_code(self, short_code: str) -> Link | None:
        async def _find() -> Link | None:
            async with self._session_factory() as session:
                result = await session.execute(select(Link).where(Link.short_code == short_code))
                return result.scalar_one_or_none()

        return await self._run("find_by_short_code", _find)

    async def increment_click_atomic(self, link_id: str) -> bool:
        async def _increment() -> bool:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(Link)
                    .where(Link.id == link_id)
                    .values(click_count=Link.click_count + 1, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                return result.rowcount > 0

        return await self._run("increment_click_atomic", _increment)

    async def insert_click_event(self, event: ClickEvent) -> WriteStatus:
        async def _insert() -> None:
            async with self._session_factory() as session:
                session.add(event)
                await session.commit()

        try:
            await self._run("insert_click_event", _insert)
        except StorageTimeoutError as exc:
            self._logger.warning(f"Click event for link {event.link_id} not stored: {exc}")
            return WriteStatus.TIMED_OUT
        except StorageError as exc:
            self._logger.warning(f"Click event for link {event.link_id} not stored: {exc}")
            return WriteStatus.FAILED
        return WriteStatus.OK

    async def delete_link(self, link_id: str) -> bool:
        async def _delete() -> bool:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(Link).where(Link.id == link_id).execution_options(synchronize_session=False)
                )
                await session.commit()
                return result.rowcount > 0

        return await self._run("delete_link", _delete)

    async def update_title(self, link_id: str, title: str | None) -> Link | None:
        async def _update() -> Link | None:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(Link)
                    .where(Link.id == link_id)
                    .values(title=title, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    await session.rollback()
                    return None
                await session.commit()
                refreshed = await session.execute(select(Link).where(Link.id == link_id))
                return refreshed.scalar_one_or_none()

        return await self._run("update_title", _update)

    async def delete_expired(self, now: datetime.datetime) -> int:
        async def _delete() -> int:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(Link)
                    .where(Link.expires_at.is_not(None), Link.expires_at < now)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                return result.rowcount

        return await self._run("delete_expired", _delete)

    async def count_click_events(self, link_id: str) -> int:
        async def _count() -> int:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(ClickEvent).where(ClickEvent.link_id == link_id)
                )
                return result.scalar_one()

        return await self._run("count_click_events", _count)

    async def ping(self) -> None:
        async def _ping() -> None:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))

        await self._run("ping", _ping)
