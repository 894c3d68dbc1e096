"""Append-only JSONL audit logger for screening decisions."""

from __future__ import annotations

import threading
from pathlib import Path

from contracts.audit import AuditEntry, AuditEvent, AuditLogger
from runtime.audit.query import _read_all


class JsonlAuditLogger(AuditLogger):
    """Thread-safe, append-only JSONL audit logger.

    Call and SMS events may be screened concurrently; appends are serialised
    so records never interleave.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, entry: AuditEntry) -> None:
        line = entry.model_dump_json() + "\n"
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)

    def query_by_request(self, request_id: str) -> list[AuditEntry]:
        return [e for e in _read_all(self.path) if e.request_id == request_id]

    def query_by_event(self, event: AuditEvent, limit: int = 100) -> list[AuditEntry]:
        matches = [e for e in _read_all(self.path) if e.event == event]
        return matches[-limit:]

    def query_by_number(self, number: str, limit: int = 100) -> list[AuditEntry]:
        """Return recent decisions recorded for *number* (exact string)."""
        matches = [e for e in _read_all(self.path) if e.number == number]
        return matches[-limit:]

    def tail(self, n: int = 20) -> list[AuditEntry]:
        return _read_all(self.path)[-n:]
