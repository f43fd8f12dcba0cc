"""Liveness and readiness endpoints.

Readiness reports which OpenClaw services are configured. An unconfigured
runtime is a degraded state, not an outage, so ``/ready`` always answers 200.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from openclaw_bridge import __version__

router = APIRouter()

PROCESS_STARTED_AT = datetime.now(timezone.utc)


def _utc_stamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str = Field(description="Always 'ok' while the process serves requests")
    version: str = Field(description="Package version, MAJOR.MINOR.PATCH")
    timestamp: str = Field(description="Response time, ISO8601 UTC")
    uptime_seconds: int = Field(ge=0, description="Seconds since the process started")


class ReadyResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str = Field(description="'ready' when every OpenClaw service is configured, else 'degraded'")
    version: str
    timestamp: str
    openclaw: dict[str, bool] = Field(description="Configured state per OpenClaw service")


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    now = datetime.now(timezone.utc)
    uptime = int((now - PROCESS_STARTED_AT).total_seconds())
    return HealthResponse(status="ok", version=__version__, timestamp=_utc_stamp(now), uptime_seconds=max(0, uptime))


@router.get("/ready", response_model=ReadyResponse)
async def ready(request: Request) -> ReadyResponse:
    configured = request.app.state.openclaw.config.readiness()
    return ReadyResponse(
        status="ready" if all(configured.values()) else "degraded",
        version=__version__,
        timestamp=_utc_stamp(datetime.now(timezone.utc)),
        openclaw=configured,
    )
