"""SQLAlchemy ORM models for the shortlink service.

This module defines the database schema using SQLAlchemy declarative models.
The same classes are used as plain records by the in-memory repository.

Data Model Layout
=================
::
    urls table
    ├─ id (VARCHAR(36) PRIMARY KEY, uuid4)
    ├─ short_code (VARCHAR(20) UNIQUE, INDEXED)
    ├─ original_url (TEXT NOT NULL)
    ├─ title (VARCHAR(255) NULL)
    ├─ click_count (INTEGER DEFAULT 0)
    ├─ owner_id (VARCHAR(64) NULL, INDEXED)
    ├─ expires_at (TIMESTAMPTZ NULL, INDEXED)
    ├─ created_at (TIMESTAMPTZ)
    └─ updated_at (TIMESTAMPTZ)

    click_events table
    ├─ id (VARCHAR(36) PRIMARY KEY, uuid4)
    ├─ link_id (FK urls.id ON DELETE CASCADE, INDEXED)
    ├─ ip_address, user_agent, referer, country (NULL)
    └─ clicked_at (TIMESTAMPTZ)

Key Behaviours
===============
- The unique index on short_code is what makes concurrent creation safe:
  two inserts of the same candidate cannot both commit.
- Deleting a row from urls cascades to its click_events.
- Timestamps are always returned timezone-aware (UTC), including on SQLite.

Classes:
    Link:  A shortened URL mapping with click counter and optional expiry.
    ClickEvent:  One recorded visit to a short code.
"""

import datetime
import uuid

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, TypeDecorator
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.database import Base
from shortlink.validation import MAX_SHORT_CODE_LENGTH

__all__ = ["Link", "ClickEvent", "utcnow", "new_id"]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that normalises every value to UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)


class Link(Base):
    __tablename__ = "urls"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    short_code: Mapped[str] = mapped_column(String(MAX_SHORT_CODE_LENGTH), unique=True, index=True, nullable=False)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    click_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    owner_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime, index=True, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    def is_active(self, now: datetime.datetime | None = None) -> bool:
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utcnow())

    def __repr__(self) -> str:
        return f"<Link(id={self.id}, short_code='{self.short_code}', click_count={self.click_count})>"


class ClickEvent(Base):
    __tablename__ = "click_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    link_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("urls.id", ondelete="CASCADE"), index=True, nullable=False
    )
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referer: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str | None] = mapped_column(String(8), nullable=True)
    clicked_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ClickEvent(id={self.id}, link_id={self.link_id})>"
