from __future__ import annotations

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio()
async def test_health_endpoint(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")
    assert response.status_code == 200

    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["service"] == "TradeConnect Identity Service"
    assert payload["environment"] == "test"
    assert payload["metrics_enabled"] is False
    assert payload["metrics_endpoint"] is None
    assert "timestamp" in payload


@pytest.mark.asyncio()
async def test_detailed_health_checks_dependencies(async_client: AsyncClient) -> None:
    response = await async_client.get("/health/detailed")
    assert response.status_code == 200

    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["redis"] == {"status": "ok", "error": None}
    assert payload["database"] == {"status": "ok", "error": None}
