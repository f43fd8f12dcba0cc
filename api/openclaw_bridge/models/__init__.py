"""Pydantic models."""

from openclaw_bridge.models.error import ErrorDetail
from openclaw_bridge.models.subagent import (
    ActivityRecord,
    ResultCacheRecord,
    SubagentStatus,
    SubagentStatusResponse,
    SubagentStatusValue,
    SubagentView,
)
from openclaw_bridge.models.workspace import (
    ExistenceCheck,
    Principal,
    WorkspaceAuditEvent,
    WorkspaceFileWrite,
    WriteReceipt,
)

__all__ = [
    "ActivityRecord",
    "ErrorDetail",
    "ExistenceCheck",
    "Principal",
    "ResultCacheRecord",
    "SubagentStatus",
    "SubagentStatusResponse",
    "SubagentStatusValue",
    "SubagentView",
    "WorkspaceAuditEvent",
    "WorkspaceFileWrite",
    "WriteReceipt",
]
