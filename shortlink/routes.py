"""FastAPI route definitions for the shortlink REST API.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200)

    POST   /api/urls
        ├─ LinkCreate (request body)
        └─ LinkResponse (201) or 409/422/503

    GET    /api/urls/:short_code
        └─ LinkResponse (200) or 404

    PATCH  /api/urls/:short_code
        ├─ LinkUpdate (request body)
        └─ LinkResponse (200) or 403/404/422

    DELETE /api/urls/:short_code
        └─ 204 or 403/404

    GET    /:short_code
        └─ 307 Redirect or 404

Key Behaviours
===============
- Handlers only translate HTTP to LinkService calls; service errors are
  mapped to responses by the exception handlers in ``shortlink.main``.
- The acting identity comes from the ``X-User-ID`` header set by the
  authentication layer in front of this service.
- 307 redirects preserve the HTTP method of the original request.
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import RedirectResponse

from shortlink.dependencies import RequestContext, get_link_service, get_request_context
from shortlink.enums import HealthStatus
from shortlink.errors import StorageError
from shortlink.link_service import LinkService
from shortlink.schemas import ErrorResponse, HealthResponse, LinkCreate, LinkResponse, LinkUpdate

__all__ = ["router"]

router = APIRouter()

NOT_FOUND = {404: {"model": ErrorResponse}}


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    try:
        await ctx.service_manager.repository.ping()
    except StorageError as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY
    return HealthResponse(status=db_status, database=db_status)


@router.post(
    "/api/urls",
    response_model=LinkResponse,
    status_code=201,
    tags=["urls"],
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def create_url(
    payload: LinkCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    ctx.add_tag("url_creation")
    link = await service.create_link(
        payload.url,
        custom_code=payload.custom_code,
        title=payload.title,
        owner_id=ctx.owner_id,
        expires_at=payload.expires_at,
        expires_in_hours=payload.expires_in_hours,
    )
    ctx.logger.info(f"URL shortened: {link.short_code} in {ctx.get_duration():.1f}ms")
    return LinkResponse.from_link(link, ctx.settings.BASE_URL, click_events=0)


@router.get("/api/urls/{short_code}", response_model=LinkResponse, tags=["urls"], responses=NOT_FOUND)
async def get_url_info(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    link = await service.get_info(short_code)
    events = await service.count_click_events(link)
    return LinkResponse.from_link(link, ctx.settings.BASE_URL, click_events=events)


@router.patch(
    "/api/urls/{short_code}",
    response_model=LinkResponse,
    tags=["urls"],
    responses={**NOT_FOUND, 403: {"model": ErrorResponse}},
)
async def update_url(
    short_code: str,
    payload: LinkUpdate,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    link = await service.update_title(short_code, payload.title, owner_id=ctx.owner_id)
    return LinkResponse.from_link(link, ctx.settings.BASE_URL)


@router.delete(
    "/api/urls/{short_code}",
    status_code=204,
    tags=["urls"],
    responses={**NOT_FOUND, 403: {"model": ErrorResponse}},
)
async def delete_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> Response:
    await service.delete_link(short_code, owner_id=ctx.owner_id)
    return Response(status_code=204)


@router.get("/{short_code}", tags=["redirect"], responses=NOT_FOUND)
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> RedirectResponse:
    ctx.add_tag("redirect")
    target = await service.resolve_and_record(short_code, ctx.click_metadata())
    ctx.logger.debug(f"Redirecting {short_code} -> {target}")
    return RedirectResponse(url=target, status_code=307)
