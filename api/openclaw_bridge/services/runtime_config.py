"""Process-wide OpenClaw configuration snapshot and readiness gate.

The snapshot is read from the environment once at startup and handed to every
component through its constructor. A service whose URL is absent stays
unconfigured until the process restarts; dependent operations raise
``ServiceNotConfigured`` before any network activity.
"""

from __future__ import annotations

import os
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from openclaw_bridge.services.openclaw_errors import ServiceNotConfigured

ServiceName = Literal["workspace", "gateway"]
SERVICES: tuple[ServiceName, ...] = ("workspace", "gateway")

_PRODUCTION_DEFAULT_URLS = {
    "workspace": "http://openclaw-workspace.agents.svc.cluster.local:8080",
    "gateway": "http://openclaw.agents.svc.cluster.local:18789",
}
_RETRY_MAX_CAP = 6


def _env_str(env: Mapping[str, str], name: str) -> Optional[str]:
    value = (env.get(name) or "").strip()
    return value or None


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, value)


def _is_production(env: Mapping[str, str]) -> bool:
    raw = (env.get("APP_ENV") or "").strip().lower()
    return raw in {"production", "prod"}


class ServiceEndpoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: ServiceName
    base_url: Optional[str] = None
    token: Optional[str] = Field(default=None, repr=False)
    timeout_s: float = Field(default=10.0, gt=0.0)

    @property
    def configured(self) -> bool:
        return bool(self.base_url)


class RuntimeConfig(BaseModel):
    """Immutable configuration for both remote services and the retry envelope."""

    model_config = ConfigDict(frozen=True)

    workspace: ServiceEndpoint = Field(default_factory=lambda: ServiceEndpoint(name="workspace"))
    gateway: ServiceEndpoint = Field(default_factory=lambda: ServiceEndpoint(name="gateway", timeout_s=15.0))
    max_retries: int = Field(default=3, ge=0, le=_RETRY_MAX_CAP)
    retry_base_delay_s: float = Field(default=0.2, ge=0.0)
    retry_deadline_s: float = Field(default=30.0, gt=0.0)
    runtime_dir: str = "/runtime/mosbot"
    subagent_retention_days: int = Field(default=30, ge=1)
    activity_log_retention_days: int = Field(default=7, ge=1)
    purge_hour_utc: int = Field(default=19, ge=0, le=23)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeConfig":
        env = os.environ if environ is None else environ
        production = _is_production(env)

        def _endpoint(name: ServiceName, timeout_default_ms: int) -> ServiceEndpoint:
            prefix = f"OPENCLAW_{name.upper()}"
            url = _env_str(env, f"{prefix}_URL")
            if not url and production:
                url = _PRODUCTION_DEFAULT_URLS[name]
            timeout_ms = _env_int(env, f"{prefix}_TIMEOUT_MS", timeout_default_ms, minimum=100)
            return ServiceEndpoint(
                name=name,
                base_url=url.rstrip("/") if url else None,
                token=_env_str(env, f"{prefix}_TOKEN"),
                timeout_s=timeout_ms / 1000.0,
            )

        runtime_dir = _env_str(env, "OPENCLAW_RUNTIME_DIR") or "/runtime/mosbot"
        return cls(
            workspace=_endpoint("workspace", 10000),
            gateway=_endpoint("gateway", 15000),
            max_retries=min(_env_int(env, "OPENCLAW_RETRY_MAX", 3), _RETRY_MAX_CAP),
            retry_base_delay_s=_env_int(env, "OPENCLAW_RETRY_BASE_MS", 200) / 1000.0,
            retry_deadline_s=_env_int(env, "OPENCLAW_RETRY_DEADLINE_MS", 30000, minimum=100) / 1000.0,
            runtime_dir="/" + runtime_dir.strip("/"),
            subagent_retention_days=_env_int(env, "SUBAGENT_RETENTION_DAYS", 30, minimum=1),
            activity_log_retention_days=_env_int(env, "ACTIVITY_LOG_RETENTION_DAYS", 7, minimum=1),
            purge_hour_utc=min(_env_int(env, "SUBAGENT_PURGE_HOUR_UTC", 19), 23),
        )

    def endpoint(self, service: ServiceName) -> ServiceEndpoint:
        if service == "workspace":
            return self.workspace
        if service == "gateway":
            return self.gateway
        raise ValueError(f"unknown OpenClaw service: {service!r}")

    def is_configured(self, service: ServiceName) -> bool:
        return self.endpoint(service).configured

    def ensure_configured(self, service: ServiceName) -> ServiceEndpoint:
        endpoint = self.endpoint(service)
        if not endpoint.configured:
            raise ServiceNotConfigured(service)
        return endpoint

    def readiness(self) -> dict[str, bool]:
        return {service: self.is_configured(service) for service in SERVICES}
