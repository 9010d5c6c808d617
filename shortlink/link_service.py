"""Link Service - short-code allocation, redirect and click recording.

This module holds the business logic of the shortlink service. It owns no
persisted state: every call re-reads the repository, so any number of
concurrent requests can share one ``LinkService`` instance.

Architecture Overview
=====================
::
    ┌──────────────────────────────────────────────────────┐
    │                     LinkService                      │
    │  ┌──────────────┐  ┌──────────────┐  ┌────────────┐  │
    │  │ create_link  │  │ resolve_and_ │  │ delete /   │  │
    │  │ (validate,   │  │ record       │  │ update /   │  │
    │  │  retry loop) │  │ (count+event)│  │ sweep      │  │
    │  └──────┬───────┘  └──────┬───────┘  └─────┬──────┘  │
    └─────────┼─────────────────┼────────────────┼─────────┘
              ▼                 ▼                ▼
    ┌──────────────┐   ┌──────────────────────────────────┐
    │ CodeGenerator│   │          LinkRepository          │
    │ (nanoid)     │   │  (in-memory or SQLAlchemy)       │
    └──────────────┘   └──────────────────────────────────┘

URL Creation Flow
-----------------
::
    ┌─────────────┐
    │ Validate all│──── bad fields ───▶ ValidationError
    │ fields      │
    └──────┬──────┘
           ▼
    ┌─────────────┐   conflict
    │ custom code?│──── YES ─▶ insert once ────────▶ ConflictError
    └──────┬──────┘
           │ NO
           ▼
    ┌─────────────┐   conflict, attempts left
    │ generate +  │◀──────────────┐
    │ insert      │───────────────┘
    └──────┬──────┘   attempts exhausted ──────────▶ ExhaustedError
           ▼
    ┌─────────────┐
    │ return Link │
    └─────────────┘

Redirect Flow
-------------
::
    ┌─────────────┐
    │ find by code│── absent/expired ─▶ NotFoundError
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ atomic      │── no row (raced delete) ─▶ NotFoundError
    │ increment   │── storage error ─────────▶ propagated
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ click event │── non-OK status ─▶ logged, discarded
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ original_url│
    └─────────────┘

Usage Examples
==============
```python
service = LinkService(InMemoryLinkRepository(), CodeGenerator(length=7))
link = await service.create_link("https://example.com/x")
target = await service.resolve_and_record(link.short_code, ClickMetadata(ip_address="10.0.0.1"))
```
"""

import datetime
import logging
import time

from prometheus_client import Counter, Histogram

from shortlink.codegen import CodeGenerator
from shortlink.config import Settings
from shortlink.enums import LookupMiss, RequestStatus, WriteStatus
from shortlink.errors import (
    ConflictError,
    ExhaustedError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    UniqueConstraintViolation,
    ValidationError,
)
from shortlink.models import ClickEvent, Link, new_id, utcnow
from shortlink.repository import LinkRepository
from shortlink.schemas import ClickMetadata
from shortlink.validation import (
    MAX_EXPIRES_IN_HOURS,
    as_utc,
    check_custom_code,
    check_title,
    check_url,
    is_reserved_code,
    normalize_title,
)

__all__ = ["LinkService"]


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

LINK_CREATION_TOTAL = Counter(
    "shortlink_creation_total",
    "Link creation requests by outcome",
    ["status"],
)
LINK_CREATION_DURATION = Histogram(
    "shortlink_creation_duration_seconds",
    "Time taken to create a link, including collision retries",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)
CODE_COLLISIONS_TOTAL = Counter(
    "shortlink_code_collisions_total",
    "Generated short codes rejected by the uniqueness constraint",
)
RESOLVE_TOTAL = Counter(
    "shortlink_resolve_total",
    "Short code resolutions by outcome",
    ["outcome"],
)
CLICK_EVENTS_DROPPED_TOTAL = Counter(
    "shortlink_click_events_dropped_total",
    "Click events that could not be stored",
    ["status"],
)
LINKS_SWEPT_TOTAL = Counter(
    "shortlink_links_swept_total",
    "Expired links removed by the expiry sweep",
)


class LinkService:
    """Create, resolve, edit and delete short links.

    The repository is injected at construction and is the only place state
    lives; the service itself is safe to share between concurrent tasks.

    Args:
        repository: Storage adapter honouring the LinkRepository contract.
        generator: Source of random short-code candidates.
        max_attempts: Upper bound on generated candidates per creation.
        logger: Logger or LoggerAdapter; defaults to the ``shortlink`` logger.
    """

    def __init__(
        self,
        repository: LinkRepository,
        generator: CodeGenerator,
        max_attempts: int = 5,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        assert max_attempts >= 1, f"max_attempts must be at least 1, got {max_attempts!r}"
        self._repository = repository
        self._generator = generator
        self._max_attempts = max_attempts
        self._logger = logger or logging.getLogger("shortlink")

    @classmethod
    def from_settings(
        cls,
        repository: LinkRepository,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> "LinkService":
        generator = CodeGenerator(settings.SHORT_CODE_ALPHABET, settings.SHORT_CODE_LENGTH)
        return cls(repository, generator, max_attempts=settings.MAX_CREATE_ATTEMPTS, logger=logger)

    def with_logger(self, logger: logging.Logger | logging.LoggerAdapter) -> "LinkService":
        """Same repository and generator, logging through ``logger``."""
        return LinkService(self._repository, self._generator, self._max_attempts, logger)

    @property
    def generator(self) -> CodeGenerator:
        return self._generator

    # ========================================================================
    # CREATE
    # ========================================================================

    async def create_link(
        self,
        original_url: str,
        *,
        custom_code: str | None = None,
        title: str | None = None,
        owner_id: str | None = None,
        expires_at: datetime.datetime | None = None,
        expires_in_hours: int | None = None,
    ) -> Link:
        """Persist a new link and return it with its server-assigned fields.

        Raises:
            ValidationError: One or more fields are malformed.
            ConflictError: ``custom_code`` is already taken.
            ExhaustedError: No free generated code within ``max_attempts``.
            StorageError: The repository failed; propagated unchanged.
        """
        start_time = time.perf_counter()
        try:
            title, expires_at = self._validate_create(
                original_url, custom_code, title, expires_at, expires_in_hours
            )
            if custom_code is not None:
                link = await self._insert_custom(original_url, custom_code, title, owner_id, expires_at)
            else:
                link = await self._insert_generated(original_url, title, owner_id, expires_at)
        except ValidationError as exc:
            LINK_CREATION_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            self._logger.info(f"Link creation rejected: {exc}")
            raise
        except ConflictError as exc:
            LINK_CREATION_TOTAL.labels(status=RequestStatus.CONFLICT).inc()
            self._logger.info(f"Link creation rejected: {exc}")
            raise
        except ExhaustedError as exc:
            LINK_CREATION_TOTAL.labels(status=RequestStatus.EXHAUSTED).inc()
            self._logger.error(
                f"{exc}; widen SHORT_CODE_LENGTH or SHORT_CODE_ALPHABET "
                f"(capacity {self._generator.capacity})"
            )
            raise
        except Exception as exc:
            LINK_CREATION_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Link creation error: {exc}")
            raise
        finally:
            LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)

        LINK_CREATION_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info(f"Created short URL {link.short_code} -> {link.original_url}")
        return link

    def _validate_create(
        self,
        original_url: str,
        custom_code: str | None,
        title: str | None,
        expires_at: datetime.datetime | None,
        expires_in_hours: int | None,
    ) -> tuple[str | None, datetime.datetime | None]:
        errors: dict[str, str] = {}
        now = utcnow()

        url_error = check_url(original_url)
        if url_error:
            errors["original_url"] = url_error

        if custom_code is not None:
            code_error = check_custom_code(custom_code)
            if code_error:
                errors["custom_code"] = code_error

        title = normalize_title(title)
        title_error = check_title(title)
        if title_error:
            errors["title"] = title_error

        if expires_at is not None and expires_in_hours is not None:
            errors["expires_at"] = "Provide either expires_at or expires_in_hours, not both"
        elif expires_at is not None:
            expires_at = as_utc(expires_at)
            if expires_at <= now:
                errors["expires_at"] = "Expiration must be in the future"
        elif expires_in_hours is not None:
            if not 1 <= expires_in_hours <= MAX_EXPIRES_IN_HOURS:
                errors["expires_in_hours"] = f"Must be between 1 and {MAX_EXPIRES_IN_HOURS}"
            else:
                expires_at = now + datetime.timedelta(hours=expires_in_hours)

        if errors:
            raise ValidationError(errors)
        return title, expires_at

    def _new_link(
        self,
        short_code: str,
        original_url: str,
        title: str | None,
        owner_id: str | None,
        expires_at: datetime.datetime | None,
    ) -> Link:
        now = utcnow()
        return Link(
            id=new_id(),
            short_code=short_code,
            original_url=original_url,
            title=title,
            click_count=0,
            owner_id=owner_id,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )

    async def _insert_custom(
        self,
        original_url: str,
        custom_code: str,
        title: str | None,
        owner_id: str | None,
        expires_at: datetime.datetime | None,
    ) -> Link:
        link = self._new_link(custom_code, original_url, title, owner_id, expires_at)
        try:
            return await self._repository.insert_link(link)
        except UniqueConstraintViolation as exc:
            raise ConflictError(custom_code) from exc

    async def _insert_generated(
        self,
        original_url: str,
        title: str | None,
        owner_id: str | None,
        expires_at: datetime.datetime | None,
    ) -> Link:
        for attempt in range(1, self._max_attempts + 1):
            candidate = self._generator.generate()
            if is_reserved_code(candidate):
                # Would be shadowed by an API route
                CODE_COLLISIONS_TOTAL.inc()
                self._logger.warning(
                    f"Generated reserved code {candidate} (attempt {attempt}/{self._max_attempts})"
                )
                continue
            link = self._new_link(candidate, original_url, title, owner_id, expires_at)
            try:
                return await self._repository.insert_link(link)
            except UniqueConstraintViolation:
                CODE_COLLISIONS_TOTAL.inc()
                self._logger.warning(
                    f"Short code collision on {candidate} (attempt {attempt}/{self._max_attempts})"
                )
        raise ExhaustedError(self._max_attempts)

    # ========================================================================
    # RESOLVE
    # ========================================================================

    async def _find_active(self, short_code: str) -> Link:
        link = await self._repository.find_by_short_code(short_code)
        if link is None:
            RESOLVE_TOTAL.labels(outcome=RequestStatus.NOT_FOUND).inc()
            raise NotFoundError(short_code, LookupMiss.MISSING)
        if not link.is_active():
            RESOLVE_TOTAL.labels(outcome=RequestStatus.EXPIRED).inc()
            self._logger.info(f"Attempted to access expired URL {short_code}")
            raise NotFoundError(short_code, LookupMiss.EXPIRED)
        return link

    async def resolve_and_record(self, short_code: str, metadata: ClickMetadata | None = None) -> str:
        """Count a visit to ``short_code`` and return the URL to redirect to.

        The counter increment is the primary contract: if it fails the
        redirect fails. The click event is best-effort and its status is only
        logged.
        """
        link = await self._find_active(short_code)

        if not await self._repository.increment_click_atomic(link.id):
            # Deleted between lookup and increment
            RESOLVE_TOTAL.labels(outcome=RequestStatus.NOT_FOUND).inc()
            raise NotFoundError(short_code, LookupMiss.MISSING)

        metadata = metadata or ClickMetadata()
        event = ClickEvent(
            id=new_id(),
            link_id=link.id,
            ip_address=metadata.ip_address,
            user_agent=metadata.user_agent,
            referer=metadata.referer,
            country=metadata.country,
            clicked_at=utcnow(),
        )
        status = await self._record_click_event(event)
        if status is not WriteStatus.OK:
            CLICK_EVENTS_DROPPED_TOTAL.labels(status=status).inc()
            self._logger.warning(f"Click event for {short_code} dropped ({status})")

        RESOLVE_TOTAL.labels(outcome=RequestStatus.SUCCESS).inc()
        return link.original_url

    async def _record_click_event(self, event: ClickEvent) -> WriteStatus:
        try:
            return await self._repository.insert_click_event(event)
        except StorageError as exc:
            self._logger.warning(f"Click event insert raised: {exc}")
            return WriteStatus.FAILED

    async def get_info(self, short_code: str) -> Link:
        return await self._find_active(short_code)

    async def count_click_events(self, link: Link) -> int:
        return await self._repository.count_click_events(link.id)

    # ========================================================================
    # EDIT / DELETE / EXPIRE
    # ========================================================================

    def _check_owner(self, link: Link, owner_id: str | None) -> None:
        # Anonymous links can be managed by anyone holding the code
        if link.owner_id is not None and link.owner_id != owner_id:
            self._logger.warning(f"Owner mismatch on {link.short_code}")
            raise PermissionDeniedError(link.short_code)

    async def update_title(self, short_code: str, title: str | None, *, owner_id: str | None = None) -> Link:
        title = normalize_title(title)
        title_error = check_title(title)
        if title_error:
            raise ValidationError({"title": title_error})

        link = await self._find_active(short_code)
        self._check_owner(link, owner_id)
        updated = await self._repository.update_title(link.id, title)
        if updated is None:
            raise NotFoundError(short_code, LookupMiss.MISSING)
        self._logger.info(f"Updated title of {short_code}")
        return updated

    async def delete_link(self, short_code: str, *, owner_id: str | None = None) -> None:
        """Delete a link and its click events.

        Expired links can still be deleted. Deleting a code that is already
        gone raises NotFoundError rather than succeeding silently.
        """
        link = await self._repository.find_by_short_code(short_code)
        if link is None:
            raise NotFoundError(short_code, LookupMiss.MISSING)
        self._check_owner(link, owner_id)
        if not await self._repository.delete_link(link.id):
            raise NotFoundError(short_code, LookupMiss.MISSING)
        self._logger.info(f"Deleted URL {short_code}")

    async def sweep_expired(self, now: datetime.datetime | None = None) -> int:
        deleted = await self._repository.delete_expired(as_utc(now) if now else utcnow())
        if deleted > 0:
            LINKS_SWEPT_TOTAL.inc(deleted)
            self._logger.info(f"Cleaned up {deleted} expired URLs")
        return deleted

