"""OpenClaw runtime API routes: subagent status, workspace files, sessions and cron jobs."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request, Response

from openclaw_bridge.models.cron import CronJobEnabled
from openclaw_bridge.models.error import ErrorDetail
from openclaw_bridge.models.subagent import SubagentStatusResponse
from openclaw_bridge.models.workspace import Principal, WorkspaceFileWrite, WriteReceipt
from openclaw_bridge.services.openclaw_services import OpenClawServices
from openclaw_bridge.services.workspace_paths import is_docs_path, normalize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/openclaw")

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorDetail},
    403: {"model": ErrorDetail},
    503: {"model": ErrorDetail},
}


def get_services(request: Request) -> OpenClawServices:
    return request.app.state.openclaw


def current_principal(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Principal:
    """Actor identity forwarded by the authentication layer in front of this API."""
    return Principal(
        id=(x_actor_id or "").strip() or "anonymous",
        role=(x_actor_role or "").strip().lower() or "user",
    )


def require_writer(principal: Principal = Depends(current_principal)) -> Principal:
    if not principal.can_write:
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal


@router.get("/status")
async def openclaw_status(services: OpenClawServices = Depends(get_services)) -> dict:
    """Which remote services are configured for this process."""
    return {"configured": services.config.readiness()}


@router.get("/subagents", response_model=SubagentStatusResponse, responses=_ERROR_RESPONSES)
async def list_subagents(
    task_id: Optional[str] = Query(None, min_length=1),
    services: OpenClawServices = Depends(get_services),
    principal: Principal = Depends(current_principal),
) -> SubagentStatusResponse:
    logger.info("subagent_status_requested actor_id=%s task_id=%s", principal.id, task_id or "-")
    return await services.subagents.get_subagent_status(task_id=task_id)


@router.get("/subagents/activity", responses=_ERROR_RESPONSES)
async def list_subagent_activity(
    task_id: Optional[str] = Query(None, min_length=1),
    limit: int = Query(200, ge=1, le=2000),
    services: OpenClawServices = Depends(get_services),
) -> dict:
    entries = await services.subagents.list_activity(task_id=task_id, limit=limit)
    return {"data": entries}


@router.get("/workspace/files", responses=_ERROR_RESPONSES)
async def list_workspace_files(
    path: str = Query("/"),
    recursive: bool = Query(False),
    services: OpenClawServices = Depends(get_services),
    principal: Principal = Depends(current_principal),
) -> dict:
    services.workspace.ensure_configured()
    workspace_path = normalize(path)
    logger.info(
        "workspace_list actor_id=%s role=%s path=%s recursive=%s",
        principal.id,
        principal.role,
        workspace_path,
        recursive,
    )
    return {"data": await services.workspace.list_files(workspace_path, recursive=recursive)}


@router.get("/workspace/files/content", responses=_ERROR_RESPONSES)
async def read_workspace_file(
    path: str = Query(..., min_length=1),
    services: OpenClawServices = Depends(get_services),
    principal: Principal = Depends(current_principal),
) -> dict:
    services.workspace.ensure_configured()
    workspace_path = normalize(path)
    docs = is_docs_path(workspace_path)
    if not docs and not principal.can_read_private:
        raise HTTPException(status_code=403, detail="Admin access required")
    logger.info(
        "workspace_read actor_id=%s role=%s path=%s docs=%s",
        principal.id,
        principal.role,
        workspace_path,
        docs,
    )
    return {"data": await services.workspace.read_file(workspace_path)}


@router.post(
    "/workspace/files",
    status_code=201,
    response_model=WriteReceipt,
    responses={409: {"model": ErrorDetail}, **_ERROR_RESPONSES},
)
async def create_workspace_file(
    payload: WorkspaceFileWrite,
    services: OpenClawServices = Depends(get_services),
    principal: Principal = Depends(require_writer),
) -> WriteReceipt:
    return await services.write_guard.create_file(
        payload.path,
        payload.content,
        actor=principal,
        encoding=payload.encoding,
    )


@router.put(
    "/workspace/files",
    response_model=WriteReceipt,
    responses={404: {"model": ErrorDetail}, **_ERROR_RESPONSES},
)
async def update_workspace_file(
    payload: WorkspaceFileWrite,
    services: OpenClawServices = Depends(get_services),
    principal: Principal = Depends(require_writer),
) -> WriteReceipt:
    return await services.write_guard.update_file(
        payload.path,
        payload.content,
        actor=principal,
        encoding=payload.encoding,
    )


@router.delete(
    "/workspace/files",
    status_code=204,
    responses={404: {"model": ErrorDetail}, **_ERROR_RESPONSES},
)
async def delete_workspace_file(
    path: str = Query(..., min_length=1),
    services: OpenClawServices = Depends(get_services),
    principal: Principal = Depends(require_writer),
) -> Response:
    await services.write_guard.delete_file(path, actor=principal)
    return Response(status_code=204)


@router.get("/workspace/status", responses=_ERROR_RESPONSES)
async def workspace_status(services: OpenClawServices = Depends(get_services)) -> dict:
    return {"data": await services.workspace.status()}


@router.get("/sessions", responses=_ERROR_RESPONSES)
async def list_sessions(
    session_key: str = Query("main", min_length=1),
    kinds: Optional[list[str]] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    active_minutes: Optional[int] = Query(None, ge=1),
    services: OpenClawServices = Depends(get_services),
) -> dict:
    sessions = await services.gateway.sessions_list(
        session_key=session_key,
        kinds=kinds,
        limit=limit,
        active_minutes=active_minutes,
    )
    return {"data": sessions}


@router.get("/sessions/{session_key}/messages", responses=_ERROR_RESPONSES)
async def list_session_messages(
    session_key: str,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    include_tools: Optional[bool] = Query(None),
    services: OpenClawServices = Depends(get_services),
) -> dict:
    messages = await services.gateway.sessions_history(
        session_key,
        limit=limit,
        include_tools=include_tools,
    )
    return {"data": messages}


@router.get("/cron-jobs", responses=_ERROR_RESPONSES)
async def list_cron_jobs(services: OpenClawServices = Depends(get_services)) -> dict:
    return {"data": await services.gateway.cron_list()}


@router.post(
    "/cron-jobs",
    status_code=201,
    responses={409: {"model": ErrorDetail}, **_ERROR_RESPONSES},
)
async def create_cron_job(
    payload: dict[str, Any] = Body(...),
    services: OpenClawServices = Depends(get_services),
    principal: Principal = Depends(require_writer),
) -> dict:
    logger.info("cron_job_create_requested actor_id=%s name=%s", principal.id, payload.get("name"))
    return {"data": await services.cron_jobs.create_job(payload)}


@router.put(
    "/cron-jobs/{job_id}",
    responses={404: {"model": ErrorDetail}, 409: {"model": ErrorDetail}, **_ERROR_RESPONSES},
)
async def update_cron_job(
    job_id: str,
    payload: dict[str, Any] = Body(...),
    services: OpenClawServices = Depends(get_services),
    principal: Principal = Depends(require_writer),
) -> dict:
    logger.info("cron_job_update_requested actor_id=%s job_id=%s", principal.id, job_id)
    return {"data": await services.cron_jobs.update_job(job_id, payload)}


@router.patch(
    "/cron-jobs/{job_id}/enabled",
    responses={404: {"model": ErrorDetail}, **_ERROR_RESPONSES},
)
async def set_cron_job_enabled(
    job_id: str,
    payload: CronJobEnabled,
    services: OpenClawServices = Depends(get_services),
    principal: Principal = Depends(require_writer),
) -> dict:
    logger.info(
        "cron_job_toggle_requested actor_id=%s job_id=%s enabled=%s",
        principal.id,
        job_id,
        payload.enabled,
    )
    return {"data": await services.cron_jobs.set_enabled(job_id, payload.enabled)}


@router.delete(
    "/cron-jobs/{job_id}",
    status_code=204,
    responses={404: {"model": ErrorDetail}, **_ERROR_RESPONSES},
)
async def delete_cron_job(
    job_id: str,
    services: OpenClawServices = Depends(get_services),
    principal: Principal = Depends(require_writer),
) -> Response:
    logger.info("cron_job_delete_requested actor_id=%s job_id=%s", principal.id, job_id)
    await services.cron_jobs.delete_job(job_id)
    return Response(status_code=204)
