"""Error response schema for OpenClaw integration failures. 422 uses FastAPI default; do not override."""

from typing import Optional

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Error body: human-readable detail plus the stable error code callers branch on."""

    detail: str
    code: Optional[str] = None
