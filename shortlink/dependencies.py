"""Dependency injection for the shortlink HTTP layer.

The ``ServiceManager`` is the composition root: it owns the settings, the
logger, the database engine, the link repository and the ``LinkService`` built
on top of it. One manager is attached to each FastAPI app (``app.state``);
nothing here is a process-wide singleton, so tests can build as many apps as
they like, each with its own repository.
"""

import asyncio
import contextlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from shortlink import sweeper
from shortlink.config import Settings, get_settings
from shortlink.database import close_db, create_engine, create_session_factory, init_db
from shortlink.link_service import LinkService
from shortlink.repository import LinkRepository
from shortlink.schemas import ClickMetadata
from shortlink.sql_repository import SQLLinkRepository

OWNER_HEADER = "x-user-id"
COUNTRY_HEADER = "cf-ipcountry"


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Shared resources created once per application.

    Args:
        settings: Configuration; defaults to ``get_settings()``.
        repository: Pre-built repository. When omitted, an SQL repository is
            created from ``settings.DATABASE_URL`` on ``initialize()``.
    """

    def __init__(self, settings: Settings | None = None, repository: LinkRepository | None = None) -> None:
        self.settings = settings or get_settings()
        self.repository = repository
        self.link_service: LinkService | None = None
        self._engine: AsyncEngine | None = None
        self._sweeper_task: asyncio.Task | None = None
        self._initialized = False
        self.logger = self._setup_logger()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if self._initialized:
            return
        if self.repository is None:
            self._engine = create_engine(self.settings)
            await init_db(self._engine)
            self.repository = SQLLinkRepository(
                create_session_factory(self._engine),
                timeout=self.settings.STORAGE_TIMEOUT_SECONDS,
                logger=self.logger.getChild("repository"),
            )
        self.link_service = LinkService.from_settings(self.repository, self.settings, self.logger)
        if self.settings.EXPIRY_SWEEP_INTERVAL_SECONDS > 0:
            self._sweeper_task = asyncio.create_task(
                sweeper.run(self.link_service, self.settings.EXPIRY_SWEEP_INTERVAL_SECONDS)
            )
        self._initialized = True
        self.logger.info(f"{self.settings.APP_NAME} initialized ({self.settings.APP_ENV})")

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("shortlink")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper_task
            self._sweeper_task = None
        if self.repository is not None:
            await self.repository.close()
        if self._engine is not None:
            await close_db(self._engine)
            self._engine = None
            self.repository = None
        self._initialized = False


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request view of the shared resources plus caller metadata.

    Attributes:
        service_manager: Application-wide resources.
        request_id: Unique identifier for this request.
        trace_id: Correlation ID for distributed tracing.
        owner_id: Authenticated user id supplied by the auth layer, if any.
        user_agent: Client user agent string.
        client_ip: Client IP address.
        referer: Referer header.
        country: Two-letter country code set by the edge proxy, if any.
        start_time: Request start timestamp.
        tags: Request tags for categorization.
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    owner_id: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    referer: Optional[str] = None
    country: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger carrying this request's identifiers."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    def click_metadata(self) -> ClickMetadata:
        return ClickMetadata(
            ip_address=self.client_ip,
            user_agent=self.user_agent,
            referer=self.referer,
            country=self.country,
        )

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager(request: Request) -> ServiceManager:
    manager: ServiceManager = request.app.state.service_manager
    if not manager.initialized:
        await manager.initialize()
    return manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    country = request.headers.get(COUNTRY_HEADER)
    return RequestContext(
        service_manager=manager,
        trace_id=request.headers.get("x-trace-id"),
        owner_id=request.headers.get(OWNER_HEADER) or None,
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None,
        referer=request.headers.get("referer"),
        country=country.upper()[:8] if country else None,
    )


def get_link_service(ctx: RequestContext = Depends(get_request_context)) -> LinkService:
    assert ctx.service_manager.link_service is not None, "service manager not initialized"
    return ctx.service_manager.link_service.with_logger(ctx.logger)
