from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from zoerag.apps.api.deps import AssistantClients, build_clients
from zoerag.apps.api.errors import (
    gateway_request_exception_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
)
from zoerag.apps.api.routes.chat import router as chat_router
from zoerag.apps.api.routes.health import router as health_router
from zoerag.apps.api.routes.ops import router as ops_router
from zoerag.core.config import get_settings
from zoerag.core.errors import GatewayRequestError
from zoerag.core.logging import configure_logging
from zoerag.services.telemetry import record_request

logger = logging.getLogger(__name__)

# Headers browser clients send on the preflight for the chat endpoint.
_CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    if getattr(app.state, "clients", None) is None:
        app.state.clients = build_clients()
    logger.info("api_startup app=%s", app.title)
    try:
        yield
    finally:
        clients = getattr(app.state, "clients", None)
        if clients is not None:
            await clients.aclose()


def create_app(clients: AssistantClients | None = None) -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.clients = clients

    origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=_CORS_ALLOW_HEADERS,
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        # For SSE this is time to first byte; relay duration is tracked separately.
        record_request(path=request.url.path, status_code=response.status_code, latency_ms=latency_ms)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(GatewayRequestError)
    async def _gateway_request_exception_handler(request: Request, exc: GatewayRequestError):
        return await gateway_request_exception_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    app.include_router(chat_router, prefix="/v1")
    app.include_router(health_router, prefix="/v1")
    app.include_router(ops_router, prefix="/v1")
    return app


app = create_app()
