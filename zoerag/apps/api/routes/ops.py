from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from zoerag.core.config import get_settings
from zoerag.services.auth.claims import authenticate
from zoerag.services.telemetry import (
    counters_snapshot,
    external_latency_by_integration,
    p95_latency,
    stream_duration_stats,
)

router = APIRouter(prefix="/ops", tags=["ops"])

_WINDOW_S = 300


@router.get("/metrics")
async def ops_metrics(request: Request) -> dict[str, Any]:
    settings = get_settings()
    authenticate(request.headers.get(settings.auth_header), settings)
    return {
        "window_s": _WINDOW_S,
        "chat_p95_ms": p95_latency(_WINDOW_S, path_prefix="/v1/chat"),
        "stream_duration_ms": stream_duration_stats(),
        "external_calls": external_latency_by_integration(_WINDOW_S),
        "counters": counters_snapshot(),
    }
