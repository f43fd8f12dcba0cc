from __future__ import annotations

import logging
import os
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from openclaw_bridge import __version__
from openclaw_bridge.routers import health, openclaw
from openclaw_bridge.services.openclaw_errors import OpenClawError
from openclaw_bridge.services.openclaw_services import OpenClawServices
from openclaw_bridge.services.runtime_config import RuntimeConfig

app = FastAPI(title="MosBot OpenClaw Integration API", version=__version__)
logger = logging.getLogger("openclaw_bridge")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(handler)
logger.propagate = False
logger.setLevel(os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO")

request_logger = logging.getLogger("openclaw_bridge.api.slow")


def _slow_request_ms_threshold() -> float:
    raw = os.getenv("API_SLOW_REQUEST_MS", "1500").strip()
    try:
        return max(25.0, float(raw))
    except ValueError:
        return 1500.0


# Configure CORS
allowed_origins_str = os.getenv("CORS_ORIGIN", "http://localhost:5173")
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Configuration is read once; changes need a restart.
app.state.openclaw = OpenClawServices.build(RuntimeConfig.from_env())

app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(openclaw.router, prefix="/api", tags=["openclaw"])


@app.exception_handler(OpenClawError)
async def openclaw_error_handler(request: Request, exc: OpenClawError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.get("/", include_in_schema=False)
async def root():
    return RedirectResponse(url="/docs")


@app.on_event("startup")
async def _log_runtime_readiness() -> None:
    readiness = app.state.openclaw.config.readiness()
    if not all(readiness.values()):
        logger.warning(
            "openclaw_degraded workspace_configured=%s gateway_configured=%s",
            readiness["workspace"],
            readiness["gateway"],
        )
    else:
        logger.info("openclaw_configured workspace=true gateway=true")


@app.on_event("shutdown")
async def _close_http_client() -> None:
    await app.state.openclaw.aclose()


@app.middleware("http")
async def log_slow_requests(request: Request, call_next):
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        if elapsed_ms >= _slow_request_ms_threshold() or status_code >= 500:
            request_logger.warning(
                "slow_api_request method=%s path=%s status=%s elapsed_ms=%.2f",
                request.method,
                request.url.path,
                status_code,
                elapsed_ms,
            )
