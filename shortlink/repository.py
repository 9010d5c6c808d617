"""Link repository interface and the in-memory adapter.

The link service reaches persisted state only through ``LinkRepository``. An
adapter must provide two guarantees the service relies on:

- the short_code uniqueness check happens atomically with the insert;
- ``increment_click_atomic`` adds one to the counter in a single step, so
  concurrent redirects of the same link never lose an increment.

Repository Contract
===================
::
    insert_link(link)              -> Link  | raises UniqueConstraintViolation
    find_by_short_code(code)       -> Link  | None
    increment_click_atomic(id)     -> bool  (False: no such link)
    insert_click_event(event)      -> WriteStatus (never raises)
    delete_link(id)                -> bool  (cascades click events)
    update_title(id, title)        -> Link  | None
    delete_expired(now)            -> int
    count_click_events(id)         -> int
    ping()                         -> None  | raises StorageError

Classes:
    LinkRepository:  Abstract base class for adapters.
    InMemoryLinkRepository:  Dict-backed adapter guarded by one asyncio.Lock.
"""

import abc
import asyncio
import datetime

from shortlink.enums import WriteStatus
from shortlink.errors import UniqueConstraintViolation
from shortlink.models import ClickEvent, Link, utcnow

__all__ = ["LinkRepository", "InMemoryLinkRepository"]


class LinkRepository(abc.ABC):
    @abc.abstractmethod
    async def insert_link(self, link: Link) -> Link: ...

    @abc.abstractmethod
    async def find_by_short_code(self, short_code: str) -> Link | None: ...

    @abc.abstractmethod
    async def increment_click_atomic(self, link_id: str) -> bool: ...

    @abc.abstractmethod
    async def insert_click_event(self, event: ClickEvent) -> WriteStatus: ...

    @abc.abstractmethod
    async def delete_link(self, link_id: str) -> bool: ...

    @abc.abstractmethod
    async def update_title(self, link_id: str, title: str | None) -> Link | None: ...

    @abc.abstractmethod
    async def delete_expired(self, now: datetime.datetime) -> int: ...

    @abc.abstractmethod
    async def count_click_events(self, link_id: str) -> int: ...

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None


def _copy_link(link: Link) -> Link:
    return Link(
        id=link.id,
        short_code=link.short_code,
        original_url=link.original_url,
        title=link.title,
        click_count=link.click_count,
        owner_id=link.owner_id,
        expires_at=link.expires_at,
        created_at=link.created_at,
        updated_at=link.updated_at,
    )


class InMemoryLinkRepository(LinkRepository):
    """Process-local adapter used by tests and single-process demos.

    Callers always receive copies, so a returned Link never changes underneath
    them when another task increments the stored counter.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._links: dict[str, Link] = {}
        self._ids_by_code: dict[str, str] = {}
        self._events: dict[str, list[ClickEvent]] = {}

    async def insert_link(self, link: Link) -> Link:
        async with self._lock:
            if link.short_code in self._ids_by_code:
                raise UniqueConstraintViolation(link.short_code)
            stored = _copy_link(link)
            self._links[stored.id] = stored
            self._ids_by_code[stored.short_code] = stored.id
            self._events[stored.id] = []
            return _copy_link(stored)

    async def find_by_short_code(self, short_code: str) -> Link | None:
        async with self._lock:
            link_id = self._ids_by_code.get(short_code)
            if link_id is None:
                return None
            return _copy_link(self._links[link_id])

    async def increment_click_atomic(self, link_id: str) -> bool:
        async with self._lock:
            link = self._links.get(link_id)
            if link is None:
                return False
            link.click_count += 1
            link.updated_at = utcnow()
            return True

    async def insert_click_event(self, event: ClickEvent) -> WriteStatus:
        async with self._lock:
            events = self._events.get(event.link_id)
            if events is None:
                return WriteStatus.FAILED
            events.append(event)
            return WriteStatus.OK

    async def delete_link(self, link_id: str) -> bool:
        async with self._lock:
            return self._remove(link_id)

    async def update_title(self, link_id: str, title: str | None) -> Link | None:
        async with self._lock:
            link = self._links.get(link_id)
            if link is None:
                return None
            link.title = title
            link.updated_at = utcnow()
            return _copy_link(link)

    async def delete_expired(self, now: datetime.datetime) -> int:
        async with self._lock:
            expired = [
                link.id
                for link in self._links.values()
                if link.expires_at is not None and link.expires_at < now
            ]
            for link_id in expired:
                self._remove(link_id)
            return len(expired)

    async def count_click_events(self, link_id: str) -> int:
        async with self._lock:
            return len(self._events.get(link_id, ()))

    def _remove(self, link_id: str) -> bool:
        link = self._links.pop(link_id, None)
        if link is None:
            return False
        del self._ids_by_code[link.short_code]
        self._events.pop(link_id, None)
        return True
