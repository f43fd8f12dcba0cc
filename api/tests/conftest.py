"""Pytest configuration and fixtures."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from openclaw_bridge.models.workspace import Principal  # noqa: E402
from openclaw_bridge.services import workspace_audit  # noqa: E402
from openclaw_bridge.services.openclaw_transport import OpenClawTransport  # noqa: E402
from openclaw_bridge.services.openclaw_workspace_client import WorkspaceClient  # noqa: E402
from openclaw_bridge.services.runtime_config import RuntimeConfig  # noqa: E402

pytest_plugins = ("pytest_asyncio",)

WORKSPACE_URL = "http://workspace.test"
GATEWAY_URL = "http://gateway.test"


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that returns immediately and remembers the delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(autouse=True)
def _isolate_audit_and_logs(monkeypatch: pytest.MonkeyPatch):
    # The app logger stops propagation; caplog listens on the root logger.
    monkeypatch.setattr(logging.getLogger("openclaw_bridge"), "propagate", True)
    workspace_audit.clear()
    yield
    workspace_audit.clear()


@pytest.fixture
def runtime_env() -> dict[str, str]:
    return {
        "OPENCLAW_WORKSPACE_URL": WORKSPACE_URL,
        "OPENCLAW_WORKSPACE_TOKEN": "ws-token",
        "OPENCLAW_GATEWAY_URL": GATEWAY_URL,
        "OPENCLAW_GATEWAY_TOKEN": "gw-token",
    }


@pytest.fixture
def runtime_config(runtime_env: dict[str, str]) -> RuntimeConfig:
    return RuntimeConfig.from_env(runtime_env)


@pytest.fixture
def unconfigured_config() -> RuntimeConfig:
    return RuntimeConfig.from_env({})


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest_asyncio.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def transport(runtime_config: RuntimeConfig, http_client: httpx.AsyncClient, sleep_recorder: SleepRecorder):
    return OpenClawTransport(runtime_config, http_client, sleep=sleep_recorder)


@pytest.fixture
def workspace_client(transport: OpenClawTransport) -> WorkspaceClient:
    return WorkspaceClient(transport)


@pytest.fixture
def admin() -> Principal:
    return Principal(id="user-1", role="admin")
