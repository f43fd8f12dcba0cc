"""Authenticated HTTP transport for the OpenClaw workspace and gateway services.

Retry policy:
- transient failures are network errors (``httpx.TransportError``) and upstream
  502/503/504 responses
- exponential backoff with full jitter, bounded by ``max_retries`` and by the
  overall ``retry_deadline_s`` envelope
- POST is not idempotent upstream, so it is retried only while no response
  byte has been observed (connection never established)
- exhaustion raises ``ServiceUnavailable`` with the last upstream status
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Optional

import httpx

from openclaw_bridge.services.openclaw_errors import ServiceUnavailable, UpstreamError
from openclaw_bridge.services.runtime_config import RuntimeConfig, ServiceName

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({502, 503, 504})
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "PUT", "DELETE", "OPTIONS"})
_PRE_RESPONSE_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)
_BACKOFF_FACTOR = 2.0

SleepFn = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int, base_delay_s: float, rng: Callable[[], float] = random.random) -> float:
    """Full-jitter delay before retry number ``attempt`` (1-based)."""
    ceiling = base_delay_s * (_BACKOFF_FACTOR ** max(0, attempt - 1))
    return ceiling * rng()


def _may_retry(method: str, exc: Optional[BaseException], status: Optional[int]) -> bool:
    if method in IDEMPOTENT_METHODS:
        if exc is not None:
            return isinstance(exc, httpx.TransportError)
        return status in TRANSIENT_STATUSES
    return isinstance(exc, _PRE_RESPONSE_ERRORS)


class OpenClawTransport:
    def __init__(
        self,
        config: RuntimeConfig,
        client: httpx.AsyncClient,
        *,
        sleep: SleepFn = asyncio.sleep,
        rng: Callable[[], float] = random.random,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._client = client
        self._sleep = sleep
        self._rng = rng
        self._clock = clock

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    def _headers(self, service: ServiceName) -> dict[str, str]:
        endpoint = self._config.endpoint(service)
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if endpoint.token:
            headers["Authorization"] = f"Bearer {endpoint.token}"
        return headers

    async def call(
        self,
        service: ServiceName,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        """Issue one logical request, retrying transient failures.

        Returns the successful (< 400) response. Raises ``ServiceNotConfigured``
        before any network activity, ``UpstreamError`` for non-transient error
        statuses and ``ServiceUnavailable`` once the retry budget is spent.
        """
        endpoint = self._config.ensure_configured(service)
        method = method.upper()
        url = f"{endpoint.base_url}{path}"
        headers = self._headers(service)
        deadline = self._clock() + self._config.retry_deadline_s
        max_attempts = self._config.max_retries + 1
        attempt = 0
        status: Optional[int] = None
        message = ""

        while True:
            remaining = deadline - self._clock()
            if attempt and remaining <= 0:
                raise self._exhausted(service, method, path, attempt, status, message, retryable=True)
            attempt += 1
            failure: Optional[BaseException] = None
            status = None
            message = ""
            try:
                # No attempt may outlive the overall deadline.
                response = await self._client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=headers,
                    timeout=min(endpoint.timeout_s, remaining),
                )
            except httpx.TransportError as exc:
                failure = exc
                message = f"{exc.__class__.__name__}: {exc}" if str(exc) else exc.__class__.__name__
            else:
                status = response.status_code
                if status < 400:
                    return response
                message = (response.text or "")[:200]
                if status not in TRANSIENT_STATUSES:
                    if status == 404:
                        logger.debug(
                            "openclaw_request_not_found service=%s method=%s path=%s",
                            service,
                            method,
                            path,
                        )
                    else:
                        logger.warning(
                            "openclaw_request_failed service=%s method=%s path=%s status=%s attempt=%s",
                            service,
                            method,
                            path,
                            status,
                            attempt,
                        )
                    raise UpstreamError(service, status, response.text or "")

            retryable = _may_retry(method, failure, status)
            if retryable and attempt < max_attempts:
                delay = backoff_delay(attempt, self._config.retry_base_delay_s, self._rng)
                if self._clock() + delay < deadline:
                    logger.warning(
                        "openclaw_request_retry service=%s method=%s path=%s attempt=%s max_attempts=%s "
                        "delay_ms=%.0f status=%s error=%s",
                        service,
                        method,
                        path,
                        attempt,
                        max_attempts,
                        delay * 1000.0,
                        status,
                        message[:120],
                    )
                    await self._sleep(delay)
                    continue

            raise self._exhausted(service, method, path, attempt, status, message, retryable=retryable)

    def _exhausted(
        self,
        service: ServiceName,
        method: str,
        path: str,
        attempts: int,
        status: Optional[int],
        message: str,
        *,
        retryable: bool,
    ) -> ServiceUnavailable:
        logger.error(
            "openclaw_request_exhausted service=%s method=%s path=%s attempts=%s status=%s retryable=%s",
            service,
            method,
            path,
            attempts,
            status,
            retryable,
        )
        return ServiceUnavailable(
            service,
            message or "request failed",
            upstream_status=status,
            attempts=attempts,
        )

    async def call_json(
        self,
        service: ServiceName,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        """Like ``call`` but decode the JSON body; 204/empty bodies decode to ``None``."""
        response = await self.call(service, method, path, params=params, json=json)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(service, 502, f"response was not JSON: {response.text[:200]}") from exc
