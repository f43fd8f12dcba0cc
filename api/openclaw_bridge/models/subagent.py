"""Subagent lifecycle models: raw runtime records and the correlated view."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubagentStatusValue(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SubagentStatusValue.COMPLETED, SubagentStatusValue.FAILED)


class ActivityRecord(BaseModel):
    """One line of the runtime's append-only activity log."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    position: int = Field(ge=0)
    task_id: Optional[str] = None
    session_label: Optional[str] = None
    category: Optional[str] = None
    event: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def correlation_key(self) -> Optional[str]:
        return self.session_label or self.task_id

    @property
    def has_explicit_marker(self) -> bool:
        return bool(self.category or self.event)


class ResultCacheRecord(BaseModel):
    """Point-in-time snapshot of one subagent (results cache or spawn snapshots)."""

    model_config = ConfigDict(frozen=True)

    position: int = Field(default=0, ge=0)
    session_label: Optional[str] = None
    task_id: Optional[str] = None
    status: SubagentStatusValue
    completed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    queued_at: Optional[datetime] = None
    cached_at: Optional[datetime] = None
    outcome: Optional[str] = None
    model: Optional[str] = None
    title: Optional[str] = None
    session_key: Optional[str] = None
    timeout_minutes: Optional[int] = None

    @property
    def correlation_key(self) -> Optional[str]:
        return self.session_label or self.task_id

    @property
    def freshness(self) -> Optional[datetime]:
        return self.cached_at or self.completed_at or self.started_at or self.queued_at


class SubagentView(BaseModel):
    id: str
    status: SubagentStatusValue
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = Field(default=None, ge=0)
    session_label: Optional[str] = None
    task_id: Optional[str] = None
    session_key: Optional[str] = None
    model: Optional[str] = None
    title: Optional[str] = None
    outcome: Optional[str] = None
    queued_at: Optional[datetime] = None
    timeout_minutes: Optional[int] = None


class SubagentStatus(BaseModel):
    running: list[SubagentView] = Field(default_factory=list)
    queued: list[SubagentView] = Field(default_factory=list)
    completed: list[SubagentView] = Field(default_factory=list)


class RetentionInfo(BaseModel):
    completed_retention_days: int = Field(ge=1)
    activity_log_retention_days: int = Field(ge=1)
    next_purge_at: datetime


class SubagentStatusResponse(SubagentStatus):
    retention: RetentionInfo
