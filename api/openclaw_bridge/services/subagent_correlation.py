"""Subagent lifecycle correlation.

Joins the runtime's append-only activity log with result-cache snapshots into
one ``SubagentView`` per correlation key. The runtime has written several
record shapes over its lifetime (camelCase vs snake_case keys, session label
nested in ``metadata`` or flat, spawn marked by ``category`` or by a legacy
``event`` or not at all) and the log mixes them, so every record is
interpreted on its own through ordered extraction rules.

Malformed records are skipped with a warning; one bad line never aborts a
batch. Everything here is pure: the same input always yields the same views.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from openclaw_bridge.models.subagent import (
    ActivityRecord,
    ResultCacheRecord,
    SubagentStatusValue,
    SubagentView,
)
from openclaw_bridge.services.openclaw_errors import MalformedRecord

logger = logging.getLogger(__name__)

SPAWN_CATEGORIES = frozenset({"spawn", "orchestration:spawn"})
SPAWN_EVENTS = frozenset({"agent_start", "subagent_start"})
QUEUED_REQUEST_STATUS = "SPAWN_QUEUED"

_STATUS_ALIASES: dict[str, SubagentStatusValue] = {
    "queued": SubagentStatusValue.QUEUED,
    "spawn_queued": SubagentStatusValue.QUEUED,
    "pending": SubagentStatusValue.QUEUED,
    "running": SubagentStatusValue.RUNNING,
    "active": SubagentStatusValue.RUNNING,
    "spawned": SubagentStatusValue.RUNNING,
    "completed": SubagentStatusValue.COMPLETED,
    "complete": SubagentStatusValue.COMPLETED,
    "done": SubagentStatusValue.COMPLETED,
    "success": SubagentStatusValue.COMPLETED,
    "succeeded": SubagentStatusValue.COMPLETED,
    "failed": SubagentStatusValue.FAILED,
    "failure": SubagentStatusValue.FAILED,
    "error": SubagentStatusValue.FAILED,
    "errored": SubagentStatusValue.FAILED,
    "timeout": SubagentStatusValue.FAILED,
    "timed_out": SubagentStatusValue.FAILED,
    "cancelled": SubagentStatusValue.FAILED,
}
_FAILED_OUTCOME_MARKERS = ("fail", "error", "timeout", "timed out", "❌")
_STATUS_RANK = {
    SubagentStatusValue.QUEUED: 0,
    SubagentStatusValue.RUNNING: 1,
    SubagentStatusValue.COMPLETED: 2,
    SubagentStatusValue.FAILED: 2,
}

RawRecord = Mapping[str, Any]
KeyRule = tuple[str, Callable[[RawRecord], Any]]


def _nested(*keys: str) -> Callable[[RawRecord], Any]:
    def _get(raw: RawRecord) -> Any:
        value: Any = raw
        for key in keys:
            if not isinstance(value, Mapping):
                return None
            value = value.get(key)
        return value

    return _get


# Tried in order; the first rule producing a non-empty string wins.
SESSION_LABEL_RULES: tuple[KeyRule, ...] = (
    ("metadata.sessionLabel", _nested("metadata", "sessionLabel")),
    ("metadata.session_label", _nested("metadata", "session_label")),
    ("sessionLabel", _nested("sessionLabel")),
    ("session_label", _nested("session_label")),
)
TASK_ID_RULES: tuple[KeyRule, ...] = (
    ("taskId", _nested("taskId")),
    ("task_id", _nested("task_id")),
    ("metadata.taskId", _nested("metadata", "taskId")),
    ("metadata.task_id", _nested("metadata", "task_id")),
)
CORRELATION_KEY_RULES: tuple[KeyRule, ...] = SESSION_LABEL_RULES + TASK_ID_RULES


def _identifier(value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedRecord(f"{field} has wrong type bool")
    if isinstance(value, int):
        return str(value)
    if not isinstance(value, str):
        raise MalformedRecord(f"{field} has wrong type {type(value).__name__}")
    text = value.strip()
    return text or None


def _apply_rules(raw: RawRecord, rules: Sequence[KeyRule]) -> Optional[str]:
    for name, rule in rules:
        found = _identifier(rule(raw), name)
        if found:
            return found
    return None


def extract_correlation_key(raw: RawRecord) -> Optional[str]:
    """Session label first, task id second, under any accepted spelling."""
    try:
        return _apply_rules(raw, CORRELATION_KEY_RULES)
    except MalformedRecord:
        return None


def extract_task_id(raw: RawRecord) -> Optional[str]:
    try:
        return _apply_rules(raw, TASK_ID_RULES)
    except MalformedRecord:
        return None


def parse_instant(value: Any, field: str = "timestamp") -> datetime:
    """Parse ISO-8601 text, epoch seconds/milliseconds or a datetime into aware UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise MalformedRecord(f"{field} has wrong type bool")
    elif isinstance(value, (int, float)):
        seconds = value / 1000.0 if abs(value) >= 1e11 else float(value)
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise MalformedRecord(f"{field} out of range: {value!r}") from exc
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise MalformedRecord(f"{field} is empty")
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise MalformedRecord(f"{field} is not ISO-8601: {value!r}") from exc
    else:
        raise MalformedRecord(f"{field} has wrong type {type(value).__name__}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError) as exc:
        raise MalformedRecord(f"{field} out of range: {value!r}") from exc


def _optional_instant(raw: RawRecord, field: str, *names: str) -> Optional[datetime]:
    for name in names:
        value = raw.get(name)
        if value is None or value == "":
            continue
        return parse_instant(value, field)
    return None


def _optional_text(raw: RawRecord, field: str, *names: str) -> Optional[str]:
    for name in names:
        value = raw.get(name)
        if value is None:
            continue
        if not isinstance(value, str):
            raise MalformedRecord(f"{field} has wrong type {type(value).__name__}")
        return value.strip() or None
    return None


def _optional_int(raw: RawRecord, field: str, *names: str) -> Optional[int]:
    for name in names:
        value = raw.get(name)
        if value is None:
            continue
        if isinstance(value, bool):
            raise MalformedRecord(f"{field} has wrong type bool")
        if isinstance(value, (int, float)):
            try:
                return int(value)
            except (OverflowError, ValueError) as exc:
                raise MalformedRecord(f"{field} is not finite: {value!r}") from exc
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        raise MalformedRecord(f"{field} is not an integer: {value!r}")
    return None


def parse_activity(raw: Any, position: int) -> ActivityRecord:
    if not isinstance(raw, Mapping):
        raise MalformedRecord("activity entry is not an object", source="activity", position=position)
    metadata = raw.get("metadata")
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, Mapping):
        raise MalformedRecord("metadata is not an object", source="activity", position=position)
    if raw.get("timestamp") in (None, ""):
        raise MalformedRecord("timestamp is missing", source="activity", position=position)
    try:
        return ActivityRecord(
            timestamp=parse_instant(raw.get("timestamp")),
            position=position,
            task_id=_apply_rules(raw, TASK_ID_RULES),
            session_label=_apply_rules(raw, SESSION_LABEL_RULES),
            category=_optional_text(raw, "category", "category"),
            event=_optional_text(raw, "event", "event"),
            metadata=dict(metadata),
        )
    except MalformedRecord as exc:
        exc.source, exc.position = "activity", position
        raise


def _status_from(raw: RawRecord, default: Optional[SubagentStatusValue]) -> SubagentStatusValue:
    value = raw.get("status")
    if value is not None:
        if not isinstance(value, str):
            raise MalformedRecord(f"status has wrong type {type(value).__name__}")
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        if normalized in _STATUS_ALIASES:
            return _STATUS_ALIASES[normalized]
        if default is None:
            raise MalformedRecord(f"unknown status {value!r}")
    if default is not None:
        return default
    outcome = raw.get("outcome")
    if isinstance(outcome, str) and any(marker in outcome.lower() for marker in _FAILED_OUTCOME_MARKERS):
        return SubagentStatusValue.FAILED
    return SubagentStatusValue.COMPLETED


def parse_result(
    raw: Any,
    position: int,
    *,
    default_status: Optional[SubagentStatusValue] = None,
    source: str = "results",
) -> ResultCacheRecord:
    """Interpret one snapshot entry.

    Result-cache lines carry no status in older runtimes; they only exist once
    a subagent finished, so they read as completed unless the outcome says
    otherwise. Spawn snapshots pass ``default_status``.
    """
    if not isinstance(raw, Mapping):
        raise MalformedRecord(f"{source} entry is not an object", source=source, position=position)
    try:
        status = _status_from(raw, default_status)
        cached_at = _optional_instant(raw, "cachedAt", "cachedAt", "cached_at", "timestamp")
        completed_at = None
        if status.is_terminal:
            completed_at = _optional_instant(raw, "completedAt", "completedAt", "completed_at") or cached_at
        return ResultCacheRecord(
            position=position,
            session_label=_apply_rules(raw, SESSION_LABEL_RULES),
            task_id=_apply_rules(raw, TASK_ID_RULES),
            status=status,
            completed_at=completed_at,
            started_at=_optional_instant(raw, "startedAt", "startedAt", "started_at"),
            queued_at=_optional_instant(raw, "queuedAt", "queuedAt", "queued_at"),
            cached_at=cached_at,
            outcome=_optional_text(raw, "outcome", "outcome"),
            model=_optional_text(raw, "model", "model"),
            title=_optional_text(raw, "title", "title"),
            session_key=_optional_text(raw, "sessionKey", "sessionKey", "session_key"),
            timeout_minutes=_optional_int(raw, "timeoutMinutes", "timeoutMinutes", "timeout_minutes"),
        )
    except MalformedRecord as exc:
        exc.source, exc.position = source, position
        raise


def parse_jsonl(content: Optional[str], *, source: str = "jsonl") -> list[dict[str, Any]]:
    """Decode JSONL text, skipping lines that are not JSON objects."""
    if not content or not isinstance(content, str):
        return []
    entries: list[dict[str, Any]] = []
    for line_no, line in enumerate(content.splitlines(), start=1):
        text = line.strip()
        if not text:
            continue
        try:
            value = json.loads(text)
        except ValueError:
            logger.warning("runtime_jsonl_line_skipped source=%s line=%s reason=invalid_json", source, line_no)
            continue
        if not isinstance(value, dict):
            logger.warning("runtime_jsonl_line_skipped source=%s line=%s reason=not_object", source, line_no)
            continue
        entries.append(value)
    return entries


def parse_spawn_requests(content: Optional[str]) -> list[dict[str, Any]]:
    """Queued entries of the spawn-requests document (``{"requests": [...]}``)."""
    if not content or not isinstance(content, str):
        return []
    try:
        document = json.loads(content)
    except ValueError as exc:
        logger.warning("spawn_requests_parse_failed error=%s", exc)
        return []
    requests = document.get("requests") if isinstance(document, dict) else None
    if not isinstance(requests, list):
        return []
    return [
        entry
        for entry in requests
        if isinstance(entry, dict) and str(entry.get("status") or "").upper() == QUEUED_REQUEST_STATUS
    ]


def _is_spawn_marker(record: ActivityRecord) -> bool:
    category = (record.category or "").strip().lower()
    event = (record.event or "").strip().lower()
    return category in SPAWN_CATEGORIES or event in SPAWN_EVENTS


def derive_started_at(group: Sequence[ActivityRecord]) -> Optional[datetime]:
    """Earliest spawn-marked record, else the earliest record carrying no marker at all.

    Older runtimes never wrote a spawn marker, so both rules apply to every
    group. The unmarked fallback can pick up unrelated unmarked lines.
    """
    ordered = sorted(group, key=lambda record: (record.timestamp, record.position))
    for record in ordered:
        if _is_spawn_marker(record):
            return record.timestamp
    for record in ordered:
        if not record.has_explicit_marker:
            return record.timestamp
    return None


def duration_ms(started_at: Optional[datetime], completed_at: Optional[datetime]) -> Optional[int]:
    if started_at is None or completed_at is None or completed_at < started_at:
        return None
    return (completed_at - started_at) // timedelta(milliseconds=1)


def _sort_key(record: ResultCacheRecord) -> tuple[int, datetime, int]:
    freshness = record.freshness or datetime.min.replace(tzinfo=timezone.utc)
    return (_STATUS_RANK[record.status], freshness, record.position)


def merge_results(records: Sequence[ResultCacheRecord]) -> ResultCacheRecord:
    """Collapse all snapshots of one key.

    Terminal beats running beats queued; among equals the freshest wins. Fields
    the winner lacks are filled from the other snapshots.
    """
    ranked = sorted(records, key=_sort_key, reverse=True)
    winner = ranked[0]
    missing = {name for name, value in winner if value is None}
    if not missing:
        return winner
    patch: dict[str, Any] = {}
    for other in ranked[1:]:
        for name in list(missing):
            if name == "completed_at":
                continue
            value = getattr(other, name)
            if value is not None:
                patch[name] = value
                missing.discard(name)
    return winner.model_copy(update=patch) if patch else winner


ActivityInput = Union[ActivityRecord, RawRecord]
ResultInput = Union[ResultCacheRecord, RawRecord]


def _activity_records(entries: Iterable[ActivityInput]) -> list[ActivityRecord]:
    records: list[ActivityRecord] = []
    for position, entry in enumerate(entries):
        if isinstance(entry, ActivityRecord):
            records.append(entry)
            continue
        try:
            records.append(parse_activity(entry, position))
        except MalformedRecord as exc:
            logger.warning(
                "malformed_runtime_record source=%s position=%s reason=%s",
                exc.source,
                exc.position,
                exc.message,
            )
    return records


def _result_records(entries: Iterable[ResultInput]) -> list[ResultCacheRecord]:
    records: list[ResultCacheRecord] = []
    for position, entry in enumerate(entries):
        if isinstance(entry, ResultCacheRecord):
            records.append(entry)
            continue
        try:
            records.append(parse_result(entry, position))
        except MalformedRecord as exc:
            logger.warning(
                "malformed_runtime_record source=%s position=%s reason=%s",
                exc.source,
                exc.position,
                exc.message,
            )
    return records


def correlate(
    activity_entries: Iterable[ActivityInput],
    result_entries: Iterable[ResultInput],
    *,
    task_id: Optional[str] = None,
) -> list[SubagentView]:
    """Build one view per correlation key, in order of first appearance.

    Activity keys come first (log order), then keys seen only in results. A
    snapshot whose key has no activity group joins the group filed under its
    task id, since older spawn lines carry the task id but no session label.
    Activity without any snapshot only yields a view when it holds a spawn
    marker; the log also records ordinary task events.
    """
    groups: dict[str, list[ActivityRecord]] = {}
    for record in _activity_records(activity_entries):
        key = record.correlation_key
        if key is None:
            continue
        groups.setdefault(key, []).append(record)

    results_by_key: dict[str, list[ResultCacheRecord]] = {}
    for record in _result_records(result_entries):
        key = record.correlation_key
        if key is None:
            logger.debug("runtime_result_without_key position=%s", record.position)
            continue
        results_by_key.setdefault(key, []).append(record)
    merged = {key: merge_results(records) for key, records in results_by_key.items()}

    # activity key -> snapshot key it was joined to through the task id
    joined: dict[str, str] = {}
    for key, result in merged.items():
        fallback = result.task_id
        if key in groups or not fallback or fallback in merged or fallback in joined:
            continue
        if fallback in groups:
            joined[fallback] = key

    group_for: dict[str, list[ActivityRecord]] = {}
    for key, group in groups.items():
        group_for[joined.get(key, key)] = group
    ordered_keys = list(group_for)
    ordered_keys.extend(key for key in merged if key not in group_for)

    views: list[SubagentView] = []
    for key in ordered_keys:
        group = group_for.get(key, [])
        result = merged.get(key)
        if result is None and not any(_is_spawn_marker(record) for record in group):
            continue
        started_at = derive_started_at(group) if group else None
        if started_at is None and result is not None:
            started_at = result.started_at
        status = result.status if result is not None else SubagentStatusValue.RUNNING
        completed_at = result.completed_at if result is not None and status.is_terminal else None
        first = group[0] if group else None
        view = SubagentView(
            id=key,
            status=status,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=duration_ms(started_at, completed_at),
            session_label=(result.session_label if result else None) or (first.session_label if first else None),
            task_id=(result.task_id if result else None) or _first_task_id(group),
            session_key=result.session_key if result else None,
            model=result.model if result else None,
            title=result.title if result else None,
            outcome=result.outcome if result else None,
            queued_at=result.queued_at if result else None,
            timeout_minutes=result.timeout_minutes if result else None,
        )
        if task_id and (view.task_id or view.id) != task_id:
            continue
        views.append(view)
    return views


def _first_task_id(group: Sequence[ActivityRecord]) -> Optional[str]:
    for record in group:
        if record.task_id:
            return record.task_id
    return None
