"""Partition correlated subagent views into the external running/queued/completed contract."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, Optional

from openclaw_bridge.models.subagent import SubagentStatus, SubagentStatusValue, SubagentView


def _newest_first(
    views: list[SubagentView],
    instant: Callable[[SubagentView], Optional[datetime]],
) -> list[SubagentView]:
    # Stable: views without an instant keep their relative order at the end.
    dated = [view for view in views if instant(view) is not None]
    undated = [view for view in views if instant(view) is None]
    dated.sort(key=instant, reverse=True)
    return dated + undated


def project(views: Iterable[SubagentView]) -> SubagentStatus:
    running: list[SubagentView] = []
    queued: list[SubagentView] = []
    completed: list[SubagentView] = []
    for view in views:
        if view.status is SubagentStatusValue.RUNNING:
            running.append(view)
        elif view.status is SubagentStatusValue.QUEUED:
            queued.append(view)
        else:
            completed.append(view)
    return SubagentStatus(
        running=_newest_first(running, lambda view: view.started_at),
        queued=_newest_first(queued, lambda view: view.started_at or view.queued_at),
        completed=_newest_first(completed, lambda view: view.completed_at),
    )
