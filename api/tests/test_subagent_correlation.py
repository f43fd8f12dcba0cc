"""Tests for joining activity-log records with result-cache snapshots."""

import logging
from datetime import datetime, timezone

import pytest

from openclaw_bridge.models.subagent import ResultCacheRecord, SubagentStatusValue
from openclaw_bridge.services.openclaw_errors import MalformedRecord
from openclaw_bridge.services.subagent_correlation import (
    correlate,
    derive_started_at,
    duration_ms,
    extract_correlation_key,
    merge_results,
    parse_activity,
    parse_instant,
    parse_jsonl,
    parse_result,
    parse_spawn_requests,
)

T0 = "2026-03-01T10:00:00Z"
T1 = "2026-03-01T10:30:00Z"


def _utc(text: str) -> datetime:
    return datetime.fromisoformat(text.replace("Z", "+00:00")).astimezone(timezone.utc)


def test_mixed_key_spellings_collapse_into_one_view():
    activity = [
        {"taskId": "T1", "category": "spawn", "timestamp": T0},
        {"task_id": "T1", "metadata": {"session_label": "T1"}, "timestamp": T0},
    ]
    results = [{"sessionLabel": "T1", "status": "completed", "completedAt": T1}]

    views = correlate(activity, results)

    assert len(views) == 1
    view = views[0]
    assert view.id == "T1"
    assert view.status is SubagentStatusValue.COMPLETED
    assert view.started_at == _utc(T0)
    assert view.completed_at == _utc(T1)
    assert view.duration_ms == 30 * 60 * 1000
    assert view.task_id == "T1"


def test_session_label_wins_over_task_id():
    raw = {"taskId": "42", "metadata": {"sessionLabel": "mosbot-task-42"}}
    assert extract_correlation_key(raw) == "mosbot-task-42"
    assert extract_correlation_key({"task_id": 7}) == "7"
    assert extract_correlation_key({"category": "spawn"}) is None


def test_records_without_key_are_excluded_without_error():
    activity = [
        {"category": "heartbeat", "timestamp": T0},
        {"sessionLabel": "   ", "timestamp": T0},
        {"sessionLabel": "s-1", "category": "spawn", "timestamp": T0},
    ]
    results = [{"status": "completed", "completedAt": T1}]

    views = correlate(activity, results)

    assert [view.id for view in views] == ["s-1"]
    assert views[0].status is SubagentStatusValue.RUNNING


def test_malformed_records_are_skipped_and_logged(caplog):
    activity = [
        {"sessionLabel": "s-1", "timestamp": "not a date"},
        {"sessionLabel": "s-2", "category": "spawn", "timestamp": T0},
        ["not", "an", "object"],
        {"sessionLabel": {"nested": True}, "timestamp": T0},
    ]
    results = [{"sessionLabel": "s-2", "status": "exploded", "completedAt": T1}]

    with caplog.at_level(logging.WARNING):
        views = correlate(activity, results)

    assert [view.id for view in views] == ["s-2"]
    assert views[0].status is SubagentStatusValue.RUNNING
    skipped = [record for record in caplog.records if "malformed_runtime_record" in record.getMessage()]
    assert len(skipped) == 4
    assert "source=activity position=0" in skipped[0].getMessage()


def test_task_events_without_spawn_marker_yield_no_view():
    activity = [
        {"task_id": "task-5", "category": "task:status_change", "timestamp": T0},
        {"task_id": "task-5", "category": "task:comment", "timestamp": T1},
        {"sessionLabel": "s-1", "category": "spawn", "timestamp": T0},
    ]

    views = correlate(activity, [])

    assert [view.id for view in views] == ["s-1"]
    assert correlate(activity, [], task_id="task-5") == []


def test_snapshot_joins_activity_filed_under_its_task_id():
    activity = [
        {"task_id": "task-oc", "category": "spawn", "timestamp": T0},
        {"task_id": "task-oc", "category": "task:status_change", "timestamp": T1},
    ]
    results = [{"sessionLabel": "mosbot-task-oc", "taskId": "task-oc", "status": "completed", "completedAt": T1}]

    views = correlate(activity, results)

    assert len(views) == 1
    view = views[0]
    assert view.id == "mosbot-task-oc"
    assert view.task_id == "task-oc"
    assert view.status is SubagentStatusValue.COMPLETED
    assert view.started_at == _utc(T0)
    assert view.duration_ms == 30 * 60 * 1000


def test_task_id_join_leaves_activity_of_another_snapshot_alone():
    activity = [{"sessionLabel": "mosbot-task-7", "taskId": "task-7", "category": "spawn", "timestamp": T0}]
    results = [
        {"sessionLabel": "mosbot-task-7", "status": "completed", "completedAt": T1},
        {"sessionLabel": "retry-task-7", "taskId": "task-7", "status": "failed", "completedAt": T1},
    ]

    views = correlate(activity, results)

    assert [view.id for view in views] == ["mosbot-task-7", "retry-task-7"]
    assert views[0].started_at == _utc(T0)
    assert views[1].started_at is None


def test_non_finite_and_out_of_range_values_are_skipped(caplog):
    activity = [
        {"sessionLabel": "s-far", "category": "spawn", "timestamp": "9999-12-31T23:59:59-01:00"},
        {"sessionLabel": "s-ok", "category": "spawn", "timestamp": T0},
    ]
    results = [
        {"sessionLabel": "s-inf", "status": "completed", "completedAt": T1, "timeoutMinutes": float("inf")},
        {"sessionLabel": "s-nan", "status": "completed", "completedAt": T1, "timeoutMinutes": float("nan")},
        {"sessionLabel": "s-ok", "status": "completed", "completedAt": T1, "timeoutMinutes": 15},
    ]

    with caplog.at_level(logging.WARNING):
        views = correlate(activity, results)

    assert [view.id for view in views] == ["s-ok"]
    assert views[0].timeout_minutes == 15
    skipped = [record for record in caplog.records if "malformed_runtime_record" in record.getMessage()]
    assert len(skipped) == 3
    with pytest.raises(MalformedRecord):
        parse_instant("9999-12-31T23:59:59-01:00")


def test_duration_counts_whole_milliseconds():
    started = datetime(2026, 3, 1, 10, 0, 0, 999000, tzinfo=timezone.utc)

    assert duration_ms(started, datetime(2026, 3, 1, 10, 0, 2, tzinfo=timezone.utc)) == 1001
    assert duration_ms(started, datetime(2026, 3, 1, 10, 0, 3, 1000, tzinfo=timezone.utc)) == 2002
    assert duration_ms(started, started.replace(microsecond=999999)) == 0


def test_legacy_event_marker_sets_start():
    activity = [
        {"sessionLabel": "s-1", "category": "progress", "timestamp": "2026-03-01T09:00:00Z"},
        {"sessionLabel": "s-1", "event": "agent_start", "timestamp": T0},
    ]
    assert correlate(activity, [])[0].started_at == _utc(T0)


def test_unmarked_record_is_the_fallback_start():
    records = [
        parse_activity({"sessionLabel": "s-1", "category": "progress", "timestamp": "2026-03-01T09:00:00Z"}, 0),
        parse_activity({"sessionLabel": "s-1", "timestamp": T0}, 1),
        parse_activity({"sessionLabel": "s-1", "timestamp": T1}, 2),
    ]
    assert derive_started_at(records) == _utc(T0)
    assert derive_started_at(records[:1]) is None


def test_start_falls_back_to_snapshot_started_at():
    results = [{"sessionLabel": "s-9", "status": "completed", "startedAt": T0, "completedAt": T1}]

    view = correlate([], results)[0]

    assert view.started_at == _utc(T0)
    assert view.duration_ms == 30 * 60 * 1000


def test_duration_is_never_negative():
    activity = [{"sessionLabel": "s-1", "category": "spawn", "timestamp": T1}]
    results = [{"sessionLabel": "s-1", "status": "completed", "completedAt": T0}]

    view = correlate(activity, results)[0]

    assert view.completed_at == _utc(T0)
    assert view.duration_ms is None
    assert duration_ms(None, _utc(T1)) is None


def test_correlation_is_deterministic():
    activity = [
        {"sessionLabel": "a", "category": "spawn", "timestamp": T0},
        {"taskId": "b", "category": "spawn", "timestamp": T0},
    ]
    results = [
        {"sessionLabel": "a", "status": "failed", "completedAt": T1, "outcome": "❌ timed out"},
        {"taskId": "c", "status": "completed", "completedAt": T1},
    ]

    first = correlate(activity, results)
    second = correlate(activity, results)

    assert first == second
    assert [view.id for view in first] == ["a", "b", "c"]


def test_task_filter_matches_task_id_or_key():
    activity = [
        {"sessionLabel": "mosbot-task-1", "taskId": "task-1", "category": "spawn", "timestamp": T0},
        {"sessionLabel": "mosbot-task-2", "taskId": "task-2", "category": "spawn", "timestamp": T0},
        {"taskId": "task-3", "event": "subagent_start", "timestamp": T0},
    ]

    assert [view.id for view in correlate(activity, [], task_id="task-1")] == ["mosbot-task-1"]
    assert [view.id for view in correlate(activity, [], task_id="task-3")] == ["task-3"]
    assert correlate(activity, [], task_id="missing") == []


def test_terminal_snapshot_beats_running_and_fills_gaps():
    running = parse_result(
        {"sessionLabel": "s-1", "model": "sonnet", "startedAt": T0, "title": "Write docs"},
        0,
        default_status=SubagentStatusValue.RUNNING,
        source="spawn-active.jsonl",
    )
    done = parse_result({"sessionLabel": "s-1", "completedAt": T1, "outcome": "✅ done"}, 1)

    merged = merge_results([running, done])

    assert merged.status is SubagentStatusValue.COMPLETED
    assert merged.model == "sonnet"
    assert merged.title == "Write docs"
    assert merged.completed_at == _utc(T1)


def test_freshest_snapshot_wins_among_equal_status():
    older = ResultCacheRecord(session_label="s", status=SubagentStatusValue.COMPLETED, cached_at=_utc(T0), outcome="old")
    newer = ResultCacheRecord(
        session_label="s", status=SubagentStatusValue.FAILED, cached_at=_utc(T1), outcome="new", position=1
    )
    assert merge_results([newer, older]).outcome == "new"


def test_result_without_status_reads_outcome():
    assert parse_result({"sessionLabel": "s", "outcome": "❌ Failed: boom"}, 0).status is SubagentStatusValue.FAILED
    ok = parse_result({"sessionLabel": "s", "outcome": "✅ Done", "cachedAt": T1}, 0)
    assert ok.status is SubagentStatusValue.COMPLETED
    assert ok.completed_at == _utc(T1)


def test_parse_instant_accepts_epoch_and_naive_values():
    expected = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert parse_instant(int(expected.timestamp())) == expected
    assert parse_instant(int(expected.timestamp() * 1000)) == expected
    assert parse_instant("2026-03-01T10:00:00") == expected
    assert parse_instant(datetime(2026, 3, 1, 10, 0)) == expected
    with pytest.raises(MalformedRecord):
        parse_instant(True)
    with pytest.raises(MalformedRecord):
        parse_instant("")


def test_parse_jsonl_skips_bad_lines(caplog):
    content = '{"a": 1}\n\nnot json\n[1, 2]\n{"b": 2}\n'

    with caplog.at_level(logging.WARNING):
        entries = parse_jsonl(content, source="activity-log.jsonl")

    assert entries == [{"a": 1}, {"b": 2}]
    assert sum("runtime_jsonl_line_skipped" in record.getMessage() for record in caplog.records) == 2
    assert parse_jsonl(None) == []


def test_parse_spawn_requests_keeps_queued_only():
    content = (
        '{"requests": ['
        '{"sessionLabel": "q-1", "status": "SPAWN_QUEUED"},'
        '{"sessionLabel": "q-2", "status": "SPAWNED"},'
        '"junk"'
        "]}"
    )
    assert parse_spawn_requests(content) == [{"sessionLabel": "q-1", "status": "SPAWN_QUEUED"}]
    assert parse_spawn_requests("{broken") == []
    assert parse_spawn_requests('["no", "wrapper"]') == []
