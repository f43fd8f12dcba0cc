"""Error taxonomy for the OpenClaw integration layer.

Every failure an exposed operation can raise is an ``OpenClawError`` carrying a
stable ``code`` and the HTTP-equivalent ``status_code`` the API maps it to, so
callers can always classify what went wrong.
"""

from __future__ import annotations

from typing import Optional


class OpenClawError(RuntimeError):
    code = "OPENCLAW_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ServiceNotConfigured(OpenClawError):
    """The target service has no URL for the lifetime of this process."""

    code = "SERVICE_NOT_CONFIGURED"
    status_code = 503

    def __init__(self, service: str) -> None:
        env_name = f"OPENCLAW_{service.upper()}_URL"
        super().__init__(f"OpenClaw {service} service is not configured. Set {env_name} to enable.")
        self.service = service


class InvalidPath(OpenClawError):
    code = "INVALID_PATH"
    status_code = 400

    def __init__(self, message: str = "Invalid path", raw_path: object = None) -> None:
        super().__init__(message)
        self.raw_path = raw_path


class FileExists(OpenClawError):
    code = "FILE_EXISTS"
    status_code = 409

    def __init__(self, path: str) -> None:
        super().__init__(f"File already exists at path: {path}")
        self.path = path


class FileNotFound(OpenClawError):
    code = "FILE_NOT_FOUND"
    status_code = 404

    def __init__(self, path: str) -> None:
        super().__init__(f"File not found at path: {path}")
        self.path = path


class ServiceUnavailable(OpenClawError):
    """Transient upstream failure that outlived the retry budget."""

    code = "SERVICE_UNAVAILABLE"
    status_code = 503

    def __init__(
        self,
        service: str,
        message: str,
        *,
        upstream_status: Optional[int] = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(f"OpenClaw {service} service is unavailable: {message}")
        self.service = service
        self.upstream_status = upstream_status
        self.upstream_message = message
        self.attempts = attempts


class UpstreamError(OpenClawError):
    """Non-transient error status returned by the remote service."""

    code = "OPENCLAW_SERVICE_ERROR"

    def __init__(self, service: str, upstream_status: int, body: str = "") -> None:
        excerpt = " ".join((body or "").split())[:200]
        super().__init__(f"OpenClaw {service} service error: {upstream_status} {excerpt}".rstrip())
        self.service = service
        self.upstream_status = upstream_status
        self.body = excerpt

    @property
    def status_code(self) -> int:  # type: ignore[override]
        if 400 <= self.upstream_status < 500:
            return self.upstream_status
        return 502

    @property
    def is_not_found(self) -> bool:
        return self.upstream_status == 404


class ToolInvocationError(OpenClawError):
    code = "TOOL_INVOCATION_ERROR"
    status_code = 400

    def __init__(self, tool: str, message: str = "Tool invocation failed") -> None:
        super().__init__(message)
        self.tool = tool


class MalformedRecord(OpenClawError):
    """A single runtime record could not be interpreted. Recovered during correlation."""

    code = "MALFORMED_RECORD"
    status_code = 422

    def __init__(self, message: str, *, source: str = "", position: Optional[int] = None) -> None:
        super().__init__(message)
        self.source = source
        self.position = position


class CronJobInvalid(OpenClawError):
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, errors: list[str], prefix: str = "Invalid cron job") -> None:
        super().__init__(f"{prefix}: {', '.join(errors)}")
        self.errors = list(errors)


class CronJobConflict(OpenClawError):
    code = "DUPLICATE_NAME"
    status_code = 409

    def __init__(self, name: str) -> None:
        super().__init__(f'A cron job with name "{name}" already exists')
        self.name = name


class CronJobNotFound(OpenClawError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Cron job not found: {job_id}")
        self.job_id = job_id


class CronJobForbidden(OpenClawError):
    """Jobs declared in the OpenClaw config file are read-only here."""

    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, job_id: str, action: str) -> None:
        super().__init__(f"Cannot {action} config-sourced cron jobs")
        self.job_id = job_id
