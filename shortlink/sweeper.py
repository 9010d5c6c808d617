"""Background expiry sweep.

Periodically deletes links whose ``expires_at`` has passed, cascading their
click events. Expired links are already unreachable through the redirect path;
the sweep only reclaims their rows and codes.

Runs inside the API process (started from the app lifespan) or standalone::

    python -m shortlink.sweeper
"""

import asyncio
import logging

from shortlink.config import get_settings
from shortlink.database import close_db, create_engine, create_session_factory, init_db
from shortlink.errors import StorageError
from shortlink.link_service import LinkService
from shortlink.sql_repository import SQLLinkRepository

__all__ = ["run", "sweep_once"]

logger = logging.getLogger("shortlink.sweeper")


async def sweep_once(service: LinkService) -> int:
    try:
        return await service.sweep_expired()
    except StorageError as e:
        logger.warning(f"Expiry sweep failed: {e}")
        return 0
    except Exception:
        logger.exception("Expiry sweep failed unexpectedly")
        return 0


async def run(service: LinkService, interval_seconds: float) -> None:
    """Sweep every ``interval_seconds`` until cancelled."""
    assert interval_seconds > 0, f"interval_seconds must be positive, got {interval_seconds!r}"
    logger.info(f"Expiry sweeper started (interval {interval_seconds}s)")
    iteration = 0
    while True:
        iteration += 1
        deleted = await sweep_once(service)
        logger.debug(f"Expiry sweep iteration {iteration} removed {deleted} links")
        await asyncio.sleep(interval_seconds)


async def main() -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    engine = create_engine(settings)
    await init_db(engine)
    repository = SQLLinkRepository(create_session_factory(engine), timeout=settings.STORAGE_TIMEOUT_SECONDS)
    service = LinkService.from_settings(repository, settings)
    try:
        await run(service, settings.EXPIRY_SWEEP_INTERVAL_SECONDS or 3600)
    finally:
        await close_db(engine)


if __name__ == "__main__":
    asyncio.run(main())
