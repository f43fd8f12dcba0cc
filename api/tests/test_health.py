"""Tests for the health endpoints and API landing.

GET /api/health must return 200 with exactly status, version, timestamp and
uptime_seconds; the root redirects to the OpenAPI docs.
"""

import re
from datetime import datetime

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from openclaw_bridge.main import app


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_health_api_contract(client: AsyncClient):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    data = response.json()
    assert set(data) == {"status", "version", "timestamp", "uptime_seconds"}
    assert data["status"] == "ok"
    assert re.match(r"^\d+\.\d+\.\d+", data["version"])
    assert data["timestamp"].endswith("Z")
    datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00"))
    assert isinstance(data["uptime_seconds"], int) and data["uptime_seconds"] >= 0


@pytest.mark.asyncio
async def test_ready_lists_openclaw_services(client: AsyncClient):
    response = await client.get("/api/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] in {"ready", "degraded"}
    assert set(data["openclaw"]) == {"workspace", "gateway"}


@pytest.mark.asyncio
async def test_root_redirects_to_docs(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code in (302, 307)
    assert response.headers["location"] == "/docs"

    docs = await client.get("/docs")
    assert docs.status_code == 200
