"""Audit query helpers.

Standalone read-only functions over the JSONL audit log, used by the CLI,
the HTTP service and the metrics aggregation without a logger instance.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from contracts.audit import AuditEntry, AuditEvent

_DECISION_EVENTS = (AuditEvent.CALL_SCREENED, AuditEvent.SMS_SCREENED)


def as_utc(ts: datetime | None) -> datetime | None:
    """Read a naive timestamp as UTC so it compares with logged entries."""
    if ts is not None and ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def query_by_request(log_path: str | Path, request_id: str) -> list[AuditEntry]:
    """Return all audit entries for a given request_id."""
    return [e for e in _read_all(log_path) if e.request_id == request_id]


def query_by_event(
    log_path: str | Path, event: AuditEvent, limit: int = 100
) -> list[AuditEntry]:
    """Return recent entries of a given event type."""
    matches = [e for e in _read_all(log_path) if e.event == event]
    return matches[-limit:]


def tail(log_path: str | Path, n: int = 20) -> list[AuditEntry]:
    """Return the last N entries from the audit log."""
    return _read_all(log_path)[-n:]


def query_filtered(
    log_path: str | Path,
    *,
    event: AuditEvent | None = None,
    number: str | None = None,
    blocked: bool | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[AuditEntry], int]:
    """Return paginated, filtered audit entries, most recent first.

    *blocked* only matches screening decisions.  Returns
    (entries, total_matching_count).
    """
    filtered = _read_all(log_path)
    since, until = as_utc(since), as_utc(until)

    if event is not None:
        filtered = [e for e in filtered if e.event == event]
    if number is not None:
        filtered = [e for e in filtered if e.number == number]
    if blocked is not None:
        filtered = [
            e for e in filtered if e.event in _DECISION_EVENTS and e.blocks is blocked
        ]
    if since is not None:
        filtered = [e for e in filtered if e.ts >= since]
    if until is not None:
        filtered = [e for e in filtered if e.ts <= until]

    total = len(filtered)
    filtered.sort(key=lambda e: e.ts, reverse=True)
    return filtered[offset : offset + limit], total


def _read_all(log_path: str | Path) -> list[AuditEntry]:
    p = Path(log_path)
    if not p.exists():
        return []
    entries: list[AuditEntry] = []
    with p.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            entries.append(AuditEntry(**json.loads(line)))
    return entries
