"""Workspace file models: write requests, existence checks, receipts and audit entries."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ExistenceCheck(str, Enum):
    """Outcome of the metadata lookup that precedes a write.

    ``unverified`` is distinct from ``absent``: the workspace answered with an
    error that proves neither existence nor absence.
    """

    PRESENT = "present"
    ABSENT = "absent"
    UNVERIFIED = "unverified"


WriteAction = Literal["create", "update", "delete"]

AuditOutcome = Literal[
    "attempted",
    "accepted",
    "rejected_exists",
    "rejected_missing",
    "rejected_invalid_path",
    "rejected_unverified",
    "failed_upstream",
    "failed_not_configured",
]


class Principal(BaseModel):
    """Acting user as resolved by the upstream authentication collaborator."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default="anonymous", min_length=1)
    role: str = Field(default="user", min_length=1)
    email: Optional[str] = None

    @property
    def can_write(self) -> bool:
        return self.role in {"admin", "owner"}

    @property
    def can_read_private(self) -> bool:
        return self.role in {"admin", "agent", "owner"}


class WorkspaceFileWrite(BaseModel):
    path: str = Field(min_length=1)
    content: str
    encoding: str = Field(default="utf8", min_length=1)


class WriteReceipt(BaseModel):
    """Result of a guarded write.

    The existence lookup and the write are two separate upstream calls; a
    concurrent writer can change the path in between. ``existence`` records
    what the lookup saw and ``race_window_ms`` how long that answer was trusted.
    """

    path: str
    action: WriteAction
    existence: ExistenceCheck
    race_window_ms: float = Field(ge=0.0)
    upstream: Optional[Any] = None


class WorkspaceAuditEvent(BaseModel):
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actor_id: str
    actor_role: str
    action: WriteAction
    path: str
    outcome: AuditOutcome
    detail: str = ""
