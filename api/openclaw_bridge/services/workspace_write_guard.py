"""Create-vs-update semantics for workspace files.

Known limitation: the existence lookup and the write are separate upstream
calls, so a concurrent caller may create or delete the same path in between.
Closing that window needs an exclusive-create primitive in the workspace
service itself. Receipts expose what the lookup saw (``existence``) and how
long the answer was relied on (``race_window_ms``).
"""

from __future__ import annotations

import time
from typing import Callable

from openclaw_bridge.models.workspace import (
    ExistenceCheck,
    Principal,
    WriteAction,
    WriteReceipt,
)
from openclaw_bridge.services import workspace_audit
from openclaw_bridge.services.openclaw_errors import (
    FileExists,
    FileNotFound,
    InvalidPath,
    OpenClawError,
    ServiceNotConfigured,
    UpstreamError,
)
from openclaw_bridge.services.openclaw_workspace_client import WorkspaceClient
from openclaw_bridge.services.workspace_paths import WorkspacePath, normalize


def _failure_outcome(exc: OpenClawError) -> str:
    if isinstance(exc, ServiceNotConfigured):
        return "failed_not_configured"
    if isinstance(exc, InvalidPath):
        return "rejected_invalid_path"
    return "failed_upstream"


class WorkspaceWriteGuard:
    def __init__(self, client: WorkspaceClient, *, clock: Callable[[], float] = time.perf_counter) -> None:
        self._client = client
        self._clock = clock

    def _prepare(self, action: WriteAction, raw_path: object, actor: Principal) -> WorkspacePath:
        display_path = raw_path if isinstance(raw_path, str) else repr(raw_path)
        try:
            self._client.ensure_configured()
            path = normalize(raw_path)
        except OpenClawError as exc:
            workspace_audit.record(actor, action, display_path, _failure_outcome(exc), exc.message)
            raise
        workspace_audit.record(actor, action, path, "attempted")
        return path

    async def _lookup(self, action: WriteAction, path: WorkspacePath, actor: Principal) -> ExistenceCheck:
        try:
            return await self._client.check_exists(path)
        except OpenClawError as exc:
            workspace_audit.record(actor, action, path, _failure_outcome(exc), exc.message)
            raise

    async def create_file(
        self,
        raw_path: object,
        content: str,
        *,
        actor: Principal,
        encoding: str = "utf8",
    ) -> WriteReceipt:
        """Create a file, refusing when the lookup shows it already exists.

        An ``unverified`` lookup still proceeds; the workspace decides.
        """
        path = self._prepare("create", raw_path, actor)
        existence = await self._lookup("create", path, actor)
        checked_at = self._clock()
        if existence is ExistenceCheck.PRESENT:
            workspace_audit.record(actor, "create", path, "rejected_exists")
            raise FileExists(path)

        try:
            upstream = await self._client.create_file(path, content, encoding)
        except OpenClawError as exc:
            workspace_audit.record(actor, "create", path, _failure_outcome(exc), exc.message)
            raise
        window_ms = max(0.0, (self._clock() - checked_at) * 1000.0)
        workspace_audit.record(
            actor,
            "create",
            path,
            "accepted",
            f"existence={existence.value} bytes={len(content)}",
        )
        return WriteReceipt(
            path=path,
            action="create",
            existence=existence,
            race_window_ms=window_ms,
            upstream=upstream,
        )

    async def update_file(
        self,
        raw_path: object,
        content: str,
        *,
        actor: Principal,
        encoding: str = "utf8",
    ) -> WriteReceipt:
        """Replace an existing file. Missing or unverifiable paths are never written."""
        path = self._prepare("update", raw_path, actor)
        existence = await self._lookup("update", path, actor)
        checked_at = self._clock()
        if existence is ExistenceCheck.ABSENT:
            workspace_audit.record(actor, "update", path, "rejected_missing")
            raise FileNotFound(path)
        if existence is ExistenceCheck.UNVERIFIED:
            workspace_audit.record(actor, "update", path, "rejected_unverified")
            raise UpstreamError("workspace", 502, f"could not verify that {path} exists")

        try:
            upstream = await self._client.put_file(path, content, encoding)
        except OpenClawError as exc:
            workspace_audit.record(actor, "update", path, _failure_outcome(exc), exc.message)
            raise
        window_ms = max(0.0, (self._clock() - checked_at) * 1000.0)
        workspace_audit.record(actor, "update", path, "accepted", f"bytes={len(content)}")
        return WriteReceipt(
            path=path,
            action="update",
            existence=existence,
            race_window_ms=window_ms,
            upstream=upstream,
        )

    async def delete_file(self, raw_path: object, *, actor: Principal) -> WorkspacePath:
        path = self._prepare("delete", raw_path, actor)
        try:
            await self._client.delete_file(path)
        except UpstreamError as exc:
            if exc.is_not_found:
                workspace_audit.record(actor, "delete", path, "rejected_missing")
                raise FileNotFound(path) from exc
            workspace_audit.record(actor, "delete", path, "failed_upstream", exc.message)
            raise
        except OpenClawError as exc:
            workspace_audit.record(actor, "delete", path, _failure_outcome(exc), exc.message)
            raise
        workspace_audit.record(actor, "delete", path, "accepted")
        return path
