"""Tests for the OpenClaw gateway client (tool invocation, sessions, cron)."""

import json

import httpx
import pytest
import respx
from httpx import Response

from openclaw_bridge.services.openclaw_errors import ServiceNotConfigured, ToolInvocationError
from openclaw_bridge.services.openclaw_gateway_client import (
    GatewayClient,
    extract_jobs,
    parse_json_with_literal_newlines,
)
from openclaw_bridge.services.openclaw_transport import OpenClawTransport
from openclaw_bridge.services.openclaw_workspace_client import WorkspaceClient
from openclaw_bridge.services.runtime_config import RuntimeConfig

GATEWAY_URL = "http://gateway.test"
WORKSPACE_URL = "http://workspace.test"


@pytest.fixture
def gateway(transport: OpenClawTransport, workspace_client: WorkspaceClient) -> GatewayClient:
    return GatewayClient(transport, workspace_client)


@pytest.mark.asyncio
@respx.mock
async def test_invoke_tool_posts_envelope_and_returns_result(gateway):
    route = respx.post(f"{GATEWAY_URL}/tools/invoke").mock(
        return_value=Response(200, json={"ok": True, "result": {"details": {"sessions": [{"key": "main"}]}}})
    )

    result = await gateway.invoke_tool("sessions_list", {"limit": 5}, session_key="agent:main")

    assert result == {"details": {"sessions": [{"key": "main"}]}}
    request = route.calls[0].request
    assert request.headers["authorization"] == "Bearer gw-token"
    assert json.loads(request.read()) == {
        "tool": "sessions_list",
        "action": "json",
        "args": {"limit": 5},
        "sessionKey": "agent:main",
        "dryRun": False,
    }


@pytest.mark.asyncio
@respx.mock
async def test_invoke_tool_reports_tool_failure(gateway):
    respx.post(f"{GATEWAY_URL}/tools/invoke").mock(
        return_value=Response(200, json={"ok": False, "error": {"message": "unknown session"}})
    )

    with pytest.raises(ToolInvocationError) as exc_info:
        await gateway.invoke_tool("sessions_history", {"sessionKey": "x"})

    assert exc_info.value.message == "unknown session"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
@respx.mock
async def test_missing_tool_returns_none(gateway):
    respx.post(f"{GATEWAY_URL}/tools/invoke").mock(return_value=Response(404))
    assert await gateway.invoke_tool("cron.unknown") is None


@pytest.mark.asyncio
@respx.mock
async def test_sessions_list_reads_nested_rows(gateway):
    respx.post(f"{GATEWAY_URL}/tools/invoke").mock(
        return_value=Response(200, json={"result": {"details": {"sessions": [{"key": "a"}, {"key": "b"}]}}})
    )

    sessions = await gateway.sessions_list(kinds=["main"], active_minutes=30)

    assert [row["key"] for row in sessions] == ["a", "b"]


@pytest.mark.asyncio
@respx.mock
async def test_sessions_degrade_to_empty_when_gateway_unavailable(gateway):
    route = respx.post(f"{GATEWAY_URL}/tools/invoke").mock(return_value=Response(503))

    assert await gateway.sessions_list() == []
    assert await gateway.sessions_history("agent:main:sub") == []
    assert route.call_count == 2


@pytest.mark.asyncio
@respx.mock
async def test_unconfigured_gateway_raises_without_calls(runtime_env):
    config = RuntimeConfig.from_env({"OPENCLAW_WORKSPACE_URL": runtime_env["OPENCLAW_WORKSPACE_URL"]})
    async with httpx.AsyncClient() as http_client:
        transport = OpenClawTransport(config, http_client)
        gateway = GatewayClient(transport, WorkspaceClient(transport))
        with pytest.raises(ServiceNotConfigured):
            await gateway.sessions_list()
        with pytest.raises(ServiceNotConfigured):
            await gateway.sessions_history("agent:main:sub")
        with pytest.raises(ServiceNotConfigured) as exc_info:
            await gateway.cron_list()

    assert exc_info.value.status_code == 503

    assert respx.calls.call_count == 0


@pytest.mark.asyncio
@respx.mock
async def test_sessions_history_uses_target_session(gateway):
    route = respx.post(f"{GATEWAY_URL}/tools/invoke").mock(
        return_value=Response(200, json={"result": {"messages": [{"role": "user", "content": "hi"}]}})
    )

    messages = await gateway.sessions_history("agent:main:sub", limit=10, include_tools=True)

    assert messages == [{"role": "user", "content": "hi"}]
    body = json.loads(route.calls[0].request.read())
    assert body["sessionKey"] == "agent:main:sub"
    assert body["args"] == {"sessionKey": "agent:main:sub", "limit": 10, "includeTools": True}


@pytest.mark.asyncio
@respx.mock
async def test_cron_list_prefers_tool_result(gateway):
    respx.post(f"{GATEWAY_URL}/tools/invoke").mock(
        return_value=Response(200, json={"result": {"jobs": [{"jobId": "daily"}]}})
    )
    assert await gateway.cron_list() == [{"jobId": "daily"}]


@pytest.mark.asyncio
@respx.mock
async def test_cron_list_falls_back_to_jobs_file(gateway):
    respx.post(f"{GATEWAY_URL}/tools/invoke").mock(return_value=Response(404))
    jobs_file = '{"jobs": {"daily": {"name": "daily", "prompt": "line one\nline two"}}}'
    route = respx.get(f"{WORKSPACE_URL}/files/content", params={"path": "/cron/jobs.json"}).mock(
        return_value=Response(200, json={"content": jobs_file})
    )

    jobs = await gateway.cron_list()

    assert jobs == [{"name": "daily", "prompt": "line one\nline two"}]
    assert route.call_count == 1


def test_parse_json_with_literal_newlines():
    assert parse_json_with_literal_newlines('{"a": 1}') == {"a": 1}
    assert parse_json_with_literal_newlines('{"text": "a\nb"}') == {"text": "a\nb"}
    with pytest.raises(ValueError):
        parse_json_with_literal_newlines("{not json")


def test_extract_jobs_shapes():
    assert extract_jobs(None) == []
    assert extract_jobs([{"jobId": "a"}]) == [{"jobId": "a"}]
    assert extract_jobs({"details": {"jobs": [{"jobId": "b"}]}}) == [{"jobId": "b"}]
    assert extract_jobs({"jobId": "c"}) == [{"jobId": "c"}]
    assert extract_jobs({"unrelated": True}) == []
