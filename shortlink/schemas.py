"""Pydantic schemas for request/response payloads of the shortlink service.

Schema Hierarchy
=================
::
    LinkCreate (Input)
    ├─ url: str
    ├─ custom_code: str | None
    ├─ title: str | None
    ├─ expires_at: datetime | None
    └─ expires_in_hours: int | None

    LinkUpdate (Input)
    └─ title: str | None

    LinkResponse (Output)
    ├─ id, short_code, original_url, short_url (computed)
    ├─ title, click_count, owner_id
    ├─ expires_at, created_at, updated_at
    └─ click_events: int | None

    ClickMetadata (Request context captured on redirect)
    └─ ip_address, user_agent, referer, country

    ErrorResponse / HealthResponse (Output)

Key Behaviours
===============
- Field rules (URL shape, custom code format, future expiry) are enforced by
  the link service, so every caller gets the same ValidationError.
- Unknown request fields are rejected.
- All datetime fields are timezone-aware.
"""

import datetime

from pydantic import BaseModel, ConfigDict, Field

from shortlink.enums import HealthStatus
from shortlink.models import Link

__all__ = [
    "LinkCreate",
    "LinkUpdate",
    "LinkResponse",
    "ClickMetadata",
    "ErrorResponse",
    "HealthResponse",
]


class LinkCreate(BaseModel):
    url: str
    custom_code: str | None = None
    title: str | None = None
    expires_at: datetime.datetime | None = None
    expires_in_hours: int | None = None

    model_config = ConfigDict(extra="forbid")


class LinkUpdate(BaseModel):
    title: str | None = None

    model_config = ConfigDict(extra="forbid")


class LinkResponse(BaseModel):
    id: str
    short_code: str
    original_url: str
    short_url: str
    title: str | None
    click_count: int
    owner_id: str | None
    expires_at: datetime.datetime | None
    created_at: datetime.datetime
    updated_at: datetime.datetime
    click_events: int | None = None

    @classmethod
    def from_link(cls, link: Link, base_url: str, click_events: int | None = None) -> "LinkResponse":
        return cls(
            id=link.id,
            short_code=link.short_code,
            original_url=link.original_url,
            short_url=f"{base_url.rstrip('/')}/{link.short_code}",
            title=link.title,
            click_count=link.click_count,
            owner_id=link.owner_id,
            expires_at=link.expires_at,
            created_at=link.created_at,
            updated_at=link.updated_at,
            click_events=click_events,
        )


class ClickMetadata(BaseModel):
    """Request metadata recorded with each click event."""

    ip_address: str | None = Field(None, max_length=45)
    user_agent: str | None = None
    referer: str | None = None
    country: str | None = Field(None, max_length=8)


class ErrorResponse(BaseModel):
    error: str
    message: str
    fields: dict[str, str] | None = None


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
