"""OpenClaw gateway client: tool invocation, session queries and cron listing.

The gateway has returned several payload shapes over time; list helpers
normalise them and degrade to ``[]`` when the gateway is unavailable so
session and cron views keep rendering. An unconfigured gateway raises
``ServiceNotConfigured`` like every other operation.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from openclaw_bridge.services.openclaw_errors import (
    OpenClawError,
    ServiceUnavailable,
    ToolInvocationError,
    UpstreamError,
)
from openclaw_bridge.services.openclaw_transport import OpenClawTransport
from openclaw_bridge.services.openclaw_workspace_client import WorkspaceClient

logger = logging.getLogger(__name__)

SERVICE = "gateway"
CRON_JOBS_FILE = "/cron/jobs.json"
_CODE_BLOCK = re.compile(r"\n(```[a-z]*)\n([\s\S]*?)\n(```)\n")


def _escape_code_block(match: re.Match) -> str:
    opening, body, closing = match.group(1), match.group(2), match.group(3)
    escaped = (
        body.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\r", "\\r")
    )
    return f"\\n{opening}\\n{escaped}\\n{closing}\\n"


def _escape_bare_newlines(text: str) -> str:
    out: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if escaped:
            out.append(ch)
            escaped = False
        elif ch == "\\" and in_string:
            out.append(ch)
            escaped = True
        elif ch == '"':
            out.append(ch)
            in_string = not in_string
        elif in_string and ch == "\n":
            out.append("\\n")
        elif in_string and ch == "\r":
            out.append("\\r")
        else:
            out.append(ch)
    return "".join(out)


def parse_json_with_literal_newlines(text: str) -> Any:
    """Parse JSON the runtime wrote with raw newlines or quotes inside string values.

    Tries a plain parse, then escapes fenced markdown code blocks, then escapes
    any remaining bare newlines inside strings. Raises ``ValueError`` if the
    text is still not JSON.
    """
    try:
        return json.loads(text)
    except ValueError:
        pass
    fixed = _CODE_BLOCK.sub(_escape_code_block, text)
    try:
        return json.loads(fixed)
    except ValueError:
        pass
    return json.loads(_escape_bare_newlines(fixed))


def extract_jobs(data: Any) -> list[Any]:
    if not data:
        return []
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []
    jobs = data.get("jobs")
    if isinstance(jobs, list):
        return jobs
    details = data.get("details")
    if isinstance(details, dict) and isinstance(details.get("jobs"), list):
        return details["jobs"]
    # jobs.json stores {"jobs": {"<id>": {...}}}
    if isinstance(jobs, dict):
        return list(jobs.values())
    if data.get("jobId") or data.get("name"):
        return [data]
    return []


def extract_rows(result: Any, *keys: str) -> Optional[list[Any]]:
    if isinstance(result, list):
        return result
    if not isinstance(result, dict):
        return None
    details = result.get("details")
    for key in keys:
        if isinstance(details, dict) and isinstance(details.get(key), list):
            return details[key]
        if isinstance(result.get(key), list):
            return result[key]
    return None


class GatewayClient:
    def __init__(self, transport: OpenClawTransport, workspace: Optional[WorkspaceClient] = None) -> None:
        self._transport = transport
        self._workspace = workspace

    def ensure_configured(self) -> None:
        self._transport.config.ensure_configured(SERVICE)

    async def invoke_tool(
        self,
        tool: str,
        args: Optional[dict[str, Any]] = None,
        *,
        session_key: str = "main",
        action: str = "json",
        dry_run: bool = False,
    ) -> Any:
        """Run a gateway tool. Returns ``None`` when the tool is missing (404) or auth fails (401)."""
        body = {
            "tool": tool,
            "action": action,
            "args": args or {},
            "sessionKey": session_key,
            "dryRun": dry_run,
        }
        try:
            response = await self._transport.call_json(SERVICE, "POST", "/tools/invoke", json=body)
        except UpstreamError as exc:
            if exc.upstream_status == 404:
                logger.warning("gateway_tool_unavailable tool=%s", tool)
                return None
            if exc.upstream_status == 401:
                logger.warning("gateway_tool_auth_failed tool=%s session_key=%s", tool, session_key)
                return None
            raise
        if not isinstance(response, dict):
            return response
        if response.get("ok") is False:
            error = response.get("error")
            message = error.get("message") if isinstance(error, dict) else None
            raise ToolInvocationError(tool, message or "Tool invocation failed")
        if "result" in response:
            return response["result"]
        return response

    async def sessions_list(
        self,
        *,
        session_key: str = "main",
        kinds: Optional[list[str]] = None,
        limit: Optional[int] = None,
        active_minutes: Optional[int] = None,
        message_limit: Optional[int] = None,
    ) -> list[Any]:
        args: dict[str, Any] = {}
        if kinds:
            args["kinds"] = kinds
        if limit is not None:
            args["limit"] = limit
        if active_minutes is not None:
            args["activeMinutes"] = active_minutes
        if message_limit is not None:
            args["messageLimit"] = message_limit
        self.ensure_configured()
        try:
            result = await self.invoke_tool("sessions_list", args, session_key=session_key)
        except ServiceUnavailable as exc:
            logger.warning("gateway_degraded tool=sessions_list code=%s", exc.code)
            return []
        if not result:
            return []
        rows = extract_rows(result, "sessions", "rows")
        if rows is None:
            logger.warning("gateway_unexpected_shape tool=sessions_list type=%s", type(result).__name__)
            return []
        return rows

    async def sessions_history(
        self,
        session_key: str,
        *,
        limit: Optional[int] = None,
        include_tools: Optional[bool] = None,
    ) -> list[Any]:
        if not session_key:
            raise ValueError("session_key is required for sessions_history")
        args: dict[str, Any] = {"sessionKey": session_key}
        if limit is not None:
            args["limit"] = limit
        if include_tools is not None:
            args["includeTools"] = include_tools
        self.ensure_configured()
        try:
            # Invoke from the target session's own context so the gateway allows the read.
            result = await self.invoke_tool("sessions_history", args, session_key=session_key)
        except ServiceUnavailable as exc:
            logger.warning("gateway_degraded tool=sessions_history session_key=%s code=%s", session_key, exc.code)
            return []
        messages = extract_rows(result, "messages") or []
        if not messages:
            logger.warning("gateway_sessions_history_empty session_key=%s", session_key)
        return messages

    async def cron_list(self) -> list[Any]:
        """Cron jobs from ``cron.list``, falling back to the persisted jobs.json."""
        self.ensure_configured()
        try:
            jobs = extract_jobs(await self.invoke_tool("cron.list", {}))
            if jobs:
                logger.info("gateway_cron_jobs source=tool count=%s", len(jobs))
                return jobs
        except ServiceUnavailable as exc:
            logger.warning("gateway_degraded tool=cron.list code=%s", exc.code)
            return []
        except OpenClawError as exc:
            logger.warning("gateway_cron_list_failed code=%s error=%s; trying jobs.json", exc.code, exc.message)

        if self._workspace is None:
            return []
        try:
            content = await self._workspace.get_file_content(CRON_JOBS_FILE)
        except OpenClawError as exc:
            logger.warning("gateway_cron_fallback_failed code=%s error=%s", exc.code, exc.message)
            return []
        if not content:
            return []
        try:
            jobs = extract_jobs(parse_json_with_literal_newlines(content))
        except ValueError as exc:
            logger.warning("gateway_cron_fallback_unparseable error=%s", exc)
            return []
        logger.info("gateway_cron_jobs source=jobs_json count=%s", len(jobs))
        return jobs
