"""Audit trail for guarded workspace writes. Inspect it with ``recent_events()``."""

from __future__ import annotations

import logging
from collections import deque

from openclaw_bridge.models.workspace import (
    AuditOutcome,
    Principal,
    WorkspaceAuditEvent,
    WriteAction,
)

logger = logging.getLogger("openclaw_bridge.audit")

# Last 200 write decisions, newest last
_events: deque[WorkspaceAuditEvent] = deque(maxlen=200)


def record(
    actor: Principal,
    action: WriteAction,
    path: str,
    outcome: AuditOutcome,
    detail: str = "",
) -> WorkspaceAuditEvent:
    event = WorkspaceAuditEvent(
        actor_id=actor.id,
        actor_role=actor.role,
        action=action,
        path=path,
        outcome=outcome,
        detail=detail[:300],
    )
    _events.append(event)
    log = logger.info if outcome in ("attempted", "accepted") else logger.warning
    log(
        "workspace_write action=%s outcome=%s path=%s actor_id=%s actor_role=%s detail=%s",
        action,
        outcome,
        path,
        actor.id,
        actor.role,
        event.detail or "-",
    )
    return event


def recent_events(limit: int = 50) -> list[WorkspaceAuditEvent]:
    if limit <= 0:
        return []
    return list(_events)[-limit:]


def clear() -> None:
    """Drop recorded events. For test isolation."""
    _events.clear()
