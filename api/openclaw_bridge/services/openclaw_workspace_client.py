"""Typed calls against the OpenClaw workspace file service."""

from __future__ import annotations

import logging
from typing import Any, Optional

from openclaw_bridge.models.workspace import ExistenceCheck
from openclaw_bridge.services.openclaw_errors import UpstreamError
from openclaw_bridge.services.openclaw_transport import OpenClawTransport
from openclaw_bridge.services.runtime_config import RuntimeConfig

logger = logging.getLogger(__name__)

SERVICE = "workspace"


class WorkspaceClient:
    def __init__(self, transport: OpenClawTransport) -> None:
        self._transport = transport

    @property
    def config(self) -> RuntimeConfig:
        return self._transport.config

    def ensure_configured(self) -> None:
        self._transport.config.ensure_configured(SERVICE)

    async def list_files(self, path: str, *, recursive: bool = False) -> Any:
        return await self._transport.call_json(
            SERVICE,
            "GET",
            "/files",
            params={"path": path, "recursive": "true" if recursive else "false"},
        )

    async def read_file(self, path: str) -> Any:
        """Raw ``/files/content`` payload; raises ``UpstreamError`` (404) when missing."""
        return await self._transport.call_json(SERVICE, "GET", "/files/content", params={"path": path})

    async def get_file_content(self, path: str) -> Optional[str]:
        """File text, or ``None`` when the file is missing or empty."""
        try:
            data = await self.read_file(path)
        except UpstreamError as exc:
            if exc.is_not_found:
                return None
            raise
        if isinstance(data, dict):
            content = data.get("content")
        else:
            content = data
        if not isinstance(content, str) or not content:
            return None
        return content

    async def check_exists(self, path: str) -> ExistenceCheck:
        """Metadata lookup used before writes. Transient exhaustion propagates."""
        try:
            await self._transport.call(
                SERVICE,
                "GET",
                "/files",
                params={"path": path, "recursive": "false"},
            )
        except UpstreamError as exc:
            if exc.is_not_found:
                return ExistenceCheck.ABSENT
            logger.warning(
                "workspace_existence_unverified path=%s status=%s",
                path,
                exc.upstream_status,
            )
            return ExistenceCheck.UNVERIFIED
        return ExistenceCheck.PRESENT

    async def create_file(self, path: str, content: str, encoding: str = "utf8") -> Any:
        return await self._transport.call_json(
            SERVICE,
            "POST",
            "/files",
            json={"path": path, "content": content, "encoding": encoding},
        )

    async def put_file(self, path: str, content: str, encoding: str = "utf8") -> Any:
        return await self._transport.call_json(
            SERVICE,
            "PUT",
            "/files",
            json={"path": path, "content": content, "encoding": encoding},
        )

    async def delete_file(self, path: str) -> None:
        await self._transport.call(SERVICE, "DELETE", "/files", params={"path": path})

    async def status(self) -> Any:
        return await self._transport.call_json(SERVICE, "GET", "/status")
