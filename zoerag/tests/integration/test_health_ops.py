from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from zoerag.apps.api.main import create_app
from zoerag.tests.utils.fakes import auth_headers, make_clients


@pytest.mark.asyncio
async def test_health() -> None:
    app = create_app(clients=make_clients())
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_ops_metrics_reports_chat_activity() -> None:
    app = create_app(clients=make_clients())
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.post(
            "/v1/chat",
            json={"messages": [{"role": "user", "content": "hello"}]},
            headers=auth_headers(),
        )
        response = await client.get("/v1/ops/metrics", headers=auth_headers())
        unauthorized = await client.get("/v1/ops/metrics")

    assert response.status_code == 200
    body = response.json()
    assert body["chat_p95_ms"] is not None
    assert body["stream_duration_ms"]["max"] is not None
    assert isinstance(body["counters"], dict)
    assert unauthorized.status_code == 401
