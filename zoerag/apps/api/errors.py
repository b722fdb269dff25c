from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from zoerag.core.errors import GatewayRequestError

logger = logging.getLogger(__name__)


def error_json(message: str, status_code: int, headers: dict[str, str] | None = None) -> JSONResponse:
    # Every pre-stream failure uses the same flat shape: {"error": "<message>"}.
    return JSONResponse(content={"error": message}, status_code=status_code, headers=headers)


async def gateway_request_exception_handler(request: Request, exc: GatewayRequestError) -> JSONResponse:
    logger.info(
        "request_rejected request_id=%s status=%s reason=%s",
        getattr(request.state, "request_id", None),
        exc.status_code,
        exc.message,
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return error_json(exc.message, exc.status_code, headers)


async def starlette_http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # Covers router-level failures such as 404 and 405 (wrong method).
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 405:
        detail = "Method not allowed"
    return error_json(detail, exc.status_code, getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; the log keeps the details.
    logger.error(
        "unhandled_exception request_id=%s path=%s",
        getattr(request.state, "request_id", None),
        request.url.path,
        exc_info=exc,
    )
    return error_json("Internal server error", 500)
