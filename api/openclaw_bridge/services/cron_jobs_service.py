"""Gateway cron jobs stored in the workspace ``/cron/jobs.json`` file.

Every mutation is a read-modify-write of the whole file followed by a
best-effort ``cron.reload`` on the gateway. Writes are serialised within this
process only; another writer of the same file can still interleave.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from openclaw_bridge.services.openclaw_errors import (
    CronJobConflict,
    CronJobForbidden,
    CronJobInvalid,
    CronJobNotFound,
    OpenClawError,
    UpstreamError,
)
from openclaw_bridge.services.openclaw_gateway_client import (
    CRON_JOBS_FILE,
    GatewayClient,
    parse_json_with_literal_newlines,
)
from openclaw_bridge.services.openclaw_workspace_client import WorkspaceClient

logger = logging.getLogger(__name__)

SCHEDULE_KINDS = ("cron", "every", "at")
SESSION_TARGETS = ("main", "isolated")
DELIVERY_MODES = ("announce", "none")
HEARTBEAT_PREFIX = "heartbeat-"
NAME_MAX_LENGTH = 200

JobMap = dict[str, dict[str, Any]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def validate_cron_job(job: Mapping[str, Any]) -> list[str]:
    """Return every problem with ``job``; an empty list means it is valid."""
    errors: list[str] = []
    name = job.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append("name is required and must be a non-empty string")
    elif len(name) > NAME_MAX_LENGTH:
        errors.append(f"name must be {NAME_MAX_LENGTH} characters or less")

    schedule = job.get("schedule")
    if not isinstance(schedule, Mapping):
        errors.append("schedule is required and must be an object")
    else:
        kind = schedule.get("kind")
        if kind not in SCHEDULE_KINDS:
            errors.append("schedule.kind must be one of: cron, every, at")
        if kind == "cron":
            expr = schedule.get("expr")
            if not isinstance(expr, str) or not expr.strip():
                errors.append("schedule.expr is required for cron schedules")
            elif not 5 <= len(expr.split()) <= 6:
                errors.append("schedule.expr must be a valid cron expression (5 or 6 fields)")
        if kind == "every":
            every_ms = schedule.get("everyMs")
            if isinstance(every_ms, bool) or not isinstance(every_ms, (int, float)) or not every_ms > 0:
                errors.append("schedule.everyMs is required and must be a positive number for every schedules")
        if kind == "at" and not schedule.get("at"):
            errors.append("schedule.at is required for at schedules")

    target = job.get("sessionTarget")
    if target and target not in SESSION_TARGETS:
        errors.append('sessionTarget must be either "main" or "isolated"')

    delivery = job.get("delivery")
    if delivery:
        if not isinstance(delivery, Mapping):
            errors.append("delivery must be an object")
        elif delivery.get("mode") and delivery.get("mode") not in DELIVERY_MODES:
            errors.append('delivery.mode must be either "announce" or "none"')
    return errors


def jobs_by_id(document: Any, new_id: Callable[[], str] = _new_id) -> JobMap:
    """Normalise the stored shapes (list, ``{"jobs": [...]}``, ``{"jobs": {...}}``, bare map)."""
    if isinstance(document, Mapping) and "jobs" in document:
        document = document["jobs"]
    if isinstance(document, list):
        jobs: JobMap = {}
        for entry in document:
            if not isinstance(entry, Mapping):
                continue
            job_id = str(entry.get("jobId") or entry.get("id") or new_id())
            jobs[job_id] = {**entry, "jobId": job_id}
        return jobs
    if isinstance(document, Mapping):
        return {str(key): dict(value) for key, value in document.items() if isinstance(value, Mapping)}
    return {}


def _reject_heartbeat(job_id: str, action: str) -> None:
    if job_id.startswith(HEARTBEAT_PREFIX):
        raise CronJobInvalid(
            [f"heartbeat jobs cannot be {action}; they are defined in the OpenClaw configuration"],
            prefix="Invalid cron job request",
        )


class CronJobsService:
    def __init__(
        self,
        workspace: WorkspaceClient,
        gateway: Optional[GatewayClient] = None,
        *,
        now: Callable[[], datetime] = _utc_now,
        new_id: Callable[[], str] = _new_id,
    ) -> None:
        self._workspace = workspace
        self._gateway = gateway
        self._now = now
        self._new_id = new_id
        self._lock = asyncio.Lock()

    def _stamp(self) -> str:
        return self._now().astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

    async def read_jobs(self) -> JobMap:
        """Stored jobs by id. A missing file is empty; an unreadable one raises rather than being overwritten."""
        content = await self._workspace.get_file_content(CRON_JOBS_FILE)
        if not content:
            return {}
        try:
            document = parse_json_with_literal_newlines(content)
        except ValueError as exc:
            logger.error("cron_jobs_file_unparseable path=%s error=%s", CRON_JOBS_FILE, exc)
            raise UpstreamError("workspace", 502, f"{CRON_JOBS_FILE} is not valid JSON") from exc
        return jobs_by_id(document, self._new_id)

    async def write_jobs(self, jobs: JobMap) -> None:
        await self._workspace.put_file(CRON_JOBS_FILE, json.dumps({"jobs": jobs}, indent=2, ensure_ascii=False))
        if self._gateway is None:
            return
        try:
            await self._gateway.invoke_tool("cron.reload", {})
        except OpenClawError as exc:
            logger.warning("cron_reload_failed code=%s error=%s", exc.code, exc.message)
        else:
            logger.info("cron_reload_requested path=%s", CRON_JOBS_FILE)

    def _existing(self, jobs: JobMap, job_id: str, action: str) -> dict[str, Any]:
        job = jobs.get(job_id)
        if job is None:
            raise CronJobNotFound(job_id)
        if job.get("source") == "config":
            raise CronJobForbidden(job_id, action)
        return job

    async def create_job(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        errors = validate_cron_job(payload)
        if errors:
            raise CronJobInvalid(errors)
        self._workspace.ensure_configured()
        async with self._lock:
            jobs = await self.read_jobs()
            name = payload["name"]
            if any(job.get("name") == name for job in jobs.values()):
                raise CronJobConflict(name)
            job_id = str(payload.get("jobId") or self._new_id())
            if job_id in jobs:
                raise CronJobConflict(jobs[job_id].get("name") or job_id)
            stamp = self._stamp()
            job = {
                **payload,
                "jobId": job_id,
                "id": job_id,
                "source": "gateway",
                "enabled": payload.get("enabled") is not False,
                "createdAt": stamp,
                "updatedAt": stamp,
            }
            jobs[job_id] = job
            await self.write_jobs(jobs)
        logger.info("cron_job_created job_id=%s name=%s", job_id, name)
        return job

    async def update_job(self, job_id: str, patch: Mapping[str, Any]) -> dict[str, Any]:
        _reject_heartbeat(job_id, "edited here")
        self._workspace.ensure_configured()
        async with self._lock:
            jobs = await self.read_jobs()
            existing = self._existing(jobs, job_id, "update")
            job = {
                **existing,
                **patch,
                "jobId": job_id,
                "id": job_id,
                "source": "gateway",
                "updatedAt": self._stamp(),
            }
            errors = validate_cron_job(job)
            if errors:
                raise CronJobInvalid(errors, prefix="Invalid cron job update")
            if any(other.get("name") == job["name"] for other_id, other in jobs.items() if other_id != job_id):
                raise CronJobConflict(job["name"])
            jobs[job_id] = job
            await self.write_jobs(jobs)
        logger.info("cron_job_updated job_id=%s name=%s", job_id, job["name"])
        return job

    async def set_enabled(self, job_id: str, enabled: bool) -> dict[str, Any]:
        _reject_heartbeat(job_id, "enabled or disabled")
        self._workspace.ensure_configured()
        async with self._lock:
            jobs = await self.read_jobs()
            job = {**self._existing(jobs, job_id, "update"), "enabled": enabled, "updatedAt": self._stamp()}
            jobs[job_id] = job
            await self.write_jobs(jobs)
        logger.info("cron_job_enabled_changed job_id=%s enabled=%s", job_id, enabled)
        return job

    async def delete_job(self, job_id: str) -> None:
        _reject_heartbeat(job_id, "deleted")
        self._workspace.ensure_configured()
        async with self._lock:
            jobs = await self.read_jobs()
            job = self._existing(jobs, job_id, "delete")
            del jobs[job_id]
            await self.write_jobs(jobs)
        logger.info("cron_job_deleted job_id=%s name=%s", job_id, job.get("name"))
