"""Subagent status view assembled from the runtime's workspace files.

Four files under the runtime directory feed the view:
- ``activity-log.jsonl``: append-only activity records (start times)
- ``results-cache.jsonl``: terminal snapshots
- ``spawn-active.jsonl``: running snapshot
- ``spawn-requests.json``: queued spawn requests

They are fetched concurrently. A missing or failing file degrades to empty
content; only an unconfigured workspace fails the request.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from openclaw_bridge.models.subagent import (
    ResultCacheRecord,
    RetentionInfo,
    SubagentStatusResponse,
    SubagentStatusValue,
)
from openclaw_bridge.services import subagent_correlation, subagent_projection
from openclaw_bridge.services.openclaw_errors import MalformedRecord, OpenClawError, ServiceNotConfigured
from openclaw_bridge.services.openclaw_workspace_client import WorkspaceClient
from openclaw_bridge.services.subagent_correlation import parse_result

logger = logging.getLogger(__name__)

ACTIVITY_LOG_FILE = "activity-log.jsonl"
RESULTS_CACHE_FILE = "results-cache.jsonl"
SPAWN_ACTIVE_FILE = "spawn-active.jsonl"
SPAWN_REQUESTS_FILE = "spawn-requests.json"


def next_purge_at(now: datetime, purge_hour_utc: int) -> datetime:
    candidate = now.astimezone(timezone.utc).replace(hour=purge_hour_utc, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def _snapshot_records(
    entries: list[dict[str, Any]],
    status: SubagentStatusValue,
    source: str,
) -> list[ResultCacheRecord]:
    records: list[ResultCacheRecord] = []
    for position, entry in enumerate(entries):
        try:
            records.append(parse_result(entry, position, default_status=status, source=source))
        except MalformedRecord as exc:
            logger.warning(
                "malformed_runtime_record source=%s position=%s reason=%s",
                exc.source,
                exc.position,
                exc.message,
            )
    return records


class SubagentStatusService:
    def __init__(
        self,
        client: WorkspaceClient,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._client = client
        self._now = now

    def _runtime_path(self, name: str) -> str:
        return f"{self._client.config.runtime_dir.rstrip('/')}/{name}"

    async def _read_optional(self, name: str) -> Optional[str]:
        path = self._runtime_path(name)
        try:
            return await self._client.get_file_content(path)
        except ServiceNotConfigured:
            raise
        except OpenClawError as exc:
            logger.warning("runtime_file_unavailable path=%s code=%s error=%s", path, exc.code, exc.message)
            return None

    async def _fetch_runtime_files(self) -> tuple[Optional[str], ...]:
        return await asyncio.gather(
            self._read_optional(ACTIVITY_LOG_FILE),
            self._read_optional(RESULTS_CACHE_FILE),
            self._read_optional(SPAWN_ACTIVE_FILE),
            self._read_optional(SPAWN_REQUESTS_FILE),
        )

    async def get_subagent_status(self, task_id: Optional[str] = None) -> SubagentStatusResponse:
        self._client.ensure_configured()
        activity_text, results_text, active_text, requests_text = await self._fetch_runtime_files()

        activity = subagent_correlation.parse_jsonl(activity_text, source=ACTIVITY_LOG_FILE)
        results: list[Any] = list(subagent_correlation.parse_jsonl(results_text, source=RESULTS_CACHE_FILE))
        results.extend(
            _snapshot_records(
                subagent_correlation.parse_jsonl(active_text, source=SPAWN_ACTIVE_FILE),
                SubagentStatusValue.RUNNING,
                SPAWN_ACTIVE_FILE,
            )
        )
        results.extend(
            _snapshot_records(
                subagent_correlation.parse_spawn_requests(requests_text),
                SubagentStatusValue.QUEUED,
                SPAWN_REQUESTS_FILE,
            )
        )

        views = subagent_correlation.correlate(activity, results, task_id=task_id)
        projected = subagent_projection.project(views)
        config = self._client.config
        logger.info(
            "subagent_status_built activity=%s results=%s running=%s queued=%s completed=%s",
            len(activity),
            len(results),
            len(projected.running),
            len(projected.queued),
            len(projected.completed),
        )
        return SubagentStatusResponse(
            running=projected.running,
            queued=projected.queued,
            completed=projected.completed,
            retention=RetentionInfo(
                completed_retention_days=config.subagent_retention_days,
                activity_log_retention_days=config.activity_log_retention_days,
                next_purge_at=next_purge_at(self._now(), config.purge_hour_utc),
            ),
        )

    async def list_activity(self, task_id: Optional[str] = None, limit: int = 200) -> list[dict[str, Any]]:
        """Raw activity entries, newest last, including ones without a correlation key."""
        self._client.ensure_configured()
        entries = subagent_correlation.parse_jsonl(
            await self._read_optional(ACTIVITY_LOG_FILE),
            source=ACTIVITY_LOG_FILE,
        )
        if task_id:
            entries = [
                entry
                for entry in entries
                if subagent_correlation.extract_task_id(entry) in (None, task_id)
            ]
        return entries[-limit:] if limit > 0 else []
