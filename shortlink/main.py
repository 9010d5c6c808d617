"""FastAPI application entry point for the shortlink service.

Application Lifecycle Diagram
=============================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌──────────────┐
    │ create_app() │
    │ CORS, metrics│
    │ error maps   │
    └──────┬───────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ startup:    │
    │ manager.    │
    │ initialize()│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ manager.    │
    │ cleanup()   │
    └─────────────┘

How to Use
===========
**Run with uvicorn**::
    uvicorn shortlink.main:app --host 0.0.0.0 --port 8080

**Shorten a URL**::
    curl -X POST http://localhost:8080/api/urls \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com"}'

Error Mapping
=============
::
    ValidationError        -> 422
    PermissionDeniedError  -> 403
    NotFoundError          -> 404
    ConflictError          -> 409
    ExhaustedError         -> 503
    StorageTimeoutError    -> 503 (Retry-After: 1)
    StorageError           -> 500
"""

__all__ = ["app", "create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortlink.dependencies import ServiceManager
from shortlink.errors import (
    ConflictError,
    ExhaustedError,
    LinkServiceError,
    NotFoundError,
    PermissionDeniedError,
    StorageTimeoutError,
    ValidationError,
)
from shortlink.routes import router
from shortlink.schemas import ErrorResponse

_STATUS_BY_ERROR: list[tuple[type[LinkServiceError], int, str]] = [
    (ValidationError, 422, "validation_error"),
    (PermissionDeniedError, 403, "forbidden"),
    (NotFoundError, 404, "not_found"),
    (ConflictError, 409, "conflict"),
    (ExhaustedError, 503, "exhausted"),
    (StorageTimeoutError, 503, "storage_timeout"),
]


async def link_service_error_handler(request: Request, exc: LinkServiceError) -> JSONResponse:
    status_code, error = 500, "storage_error"
    for kind, code, name in _STATUS_BY_ERROR:
        if isinstance(exc, kind):
            status_code, error = code, name
            break

    body = ErrorResponse(
        error=error,
        message=str(exc),
        fields=exc.fields if isinstance(exc, ValidationError) else None,
    )
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True), headers=headers)


def create_app(manager: ServiceManager | None = None) -> FastAPI:
    manager = manager or ServiceManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        await manager.initialize()
        yield
        await manager.cleanup()

    app = FastAPI(
        title=manager.settings.APP_NAME,
        version="1.0.0",
        description="URL shortener with collision-safe short codes and click tracking",
        lifespan=lifespan,
    )
    app.state.service_manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app)

    app.add_exception_handler(LinkServiceError, link_service_error_handler)
    app.include_router(router)
    return app


app = create_app()
