"""Wiring of the OpenClaw components around one config snapshot and one HTTP client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from openclaw_bridge.services.cron_jobs_service import CronJobsService
from openclaw_bridge.services.openclaw_gateway_client import GatewayClient
from openclaw_bridge.services.openclaw_transport import OpenClawTransport
from openclaw_bridge.services.openclaw_workspace_client import WorkspaceClient
from openclaw_bridge.services.runtime_config import RuntimeConfig
from openclaw_bridge.services.subagent_status_service import SubagentStatusService
from openclaw_bridge.services.workspace_write_guard import WorkspaceWriteGuard


@dataclass(frozen=True)
class OpenClawServices:
    config: RuntimeConfig
    http_client: httpx.AsyncClient
    transport: OpenClawTransport
    workspace: WorkspaceClient
    gateway: GatewayClient
    write_guard: WorkspaceWriteGuard
    subagents: SubagentStatusService
    cron_jobs: CronJobsService

    @classmethod
    def build(
        cls,
        config: RuntimeConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        *,
        transport: Optional[OpenClawTransport] = None,
    ) -> "OpenClawServices":
        client = http_client or httpx.AsyncClient(
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
        )
        transport = transport or OpenClawTransport(config, client)
        workspace = WorkspaceClient(transport)
        gateway = GatewayClient(transport, workspace)
        return cls(
            config=config,
            http_client=client,
            transport=transport,
            workspace=workspace,
            gateway=gateway,
            write_guard=WorkspaceWriteGuard(workspace),
            subagents=SubagentStatusService(workspace),
            cron_jobs=CronJobsService(workspace, gateway),
        )

    async def aclose(self) -> None:
        await self.http_client.aclose()
