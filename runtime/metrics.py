"""Screening metrics aggregated from the audit log.

Computes decision throughput, block rates, result-code breakdown and the
most frequently blocked numbers.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from contracts.audit import AuditEntry, AuditEvent
from runtime.audit.query import _read_all, as_utc

_DECISION_EVENTS = (AuditEvent.CALL_SCREENED, AuditEvent.SMS_SCREENED)


def compute_metrics(
    log_path: str | Path,
    *,
    since: datetime | None = None,
    window_seconds: int = 3600,
    top: int = 10,
) -> dict[str, Any]:
    """Compute aggregated metrics from the audit log."""
    entries = _read_all(log_path)
    since = as_utc(since)
    if since:
        entries = [e for e in entries if e.ts >= since]
    decisions = [e for e in entries if e.event in _DECISION_EVENTS]

    return {
        "throughput": _throughput_buckets(decisions, window_seconds),
        "block_rates": _block_rates(decisions),
        "result_codes": _result_codes(decisions),
        "top_blocked": _top_blocked(decisions, top),
        "skipped_rules": _skipped_rules(entries),
        "summary": _summary(entries),
    }


def _throughput_buckets(
    decisions: list[AuditEntry], window_seconds: int
) -> list[dict[str, Any]]:
    """Bucket screening decisions into time windows."""
    if not decisions:
        return []

    ordered = sorted(decisions, key=lambda e: e.ts)
    bucket_start = ordered[0].ts
    last_ts = ordered[-1].ts
    buckets: list[dict[str, Any]] = []

    while bucket_start <= last_ts:
        bucket_end = bucket_start + timedelta(seconds=window_seconds)
        in_bucket = [e for e in ordered if bucket_start <= e.ts < bucket_end]
        buckets.append({
            "time": bucket_start.isoformat(),
            "count": len(in_bucket),
            "blocked": sum(1 for e in in_bucket if e.blocks),
        })
        bucket_start = bucket_end

    return buckets


def _block_rates(decisions: list[AuditEntry]) -> dict[str, Any]:
    """Block rate overall and per channel."""
    out: dict[str, Any] = {}
    for label, event in (("call", AuditEvent.CALL_SCREENED), ("sms", AuditEvent.SMS_SCREENED)):
        subset = [e for e in decisions if e.event == event]
        blocked = sum(1 for e in subset if e.blocks)
        out[label] = {
            "total": len(subset),
            "blocked": blocked,
            "block_rate": round(blocked / max(len(subset), 1), 4),
        }
    blocked = sum(1 for e in decisions if e.blocks)
    out["overall"] = {
        "total": len(decisions),
        "blocked": blocked,
        "block_rate": round(blocked / max(len(decisions), 1), 4),
    }
    return out


def _result_codes(decisions: list[AuditEntry]) -> list[dict[str, Any]]:
    counts: dict[str, int] = {}
    for e in decisions:
        counts[e.result_code] = counts.get(e.result_code, 0) + 1
    return [{"result_code": c, "count": n} for c, n in sorted(counts.items(), key=lambda x: -x[1])]


def _top_blocked(decisions: list[AuditEntry], top: int) -> list[dict[str, Any]]:
    counts: dict[str, int] = {}
    for e in decisions:
        if e.blocks:
            counts[e.number] = counts.get(e.number, 0) + 1
    ranked = sorted(counts.items(), key=lambda x: -x[1])[:top]
    return [{"number": num, "count": n} for num, n in ranked]


def _skipped_rules(entries: list[AuditEntry]) -> list[dict[str, Any]]:
    """Rules skipped because their pattern failed to compile."""
    counts: dict[int, int] = {}
    for e in entries:
        if e.event == AuditEvent.RULE_SKIPPED and "rule_id" in e.detail:
            rid = int(e.detail["rule_id"])
            counts[rid] = counts.get(rid, 0) + 1
    return [{"rule_id": rid, "count": n} for rid, n in sorted(counts.items())]


def _summary(entries: list[AuditEntry]) -> dict[str, Any]:
    """High-level summary stats."""
    if not entries:
        return {"total_entries": 0, "first_entry": None, "last_entry": None}

    sorted_entries = sorted(entries, key=lambda e: e.ts)
    event_counts: dict[str, int] = {}
    for e in entries:
        event_counts[e.event.value] = event_counts.get(e.event.value, 0) + 1

    return {
        "total_entries": len(entries),
        "first_entry": sorted_entries[0].ts.isoformat(),
        "last_entry": sorted_entries[-1].ts.isoformat(),
        "event_counts": event_counts,
    }
