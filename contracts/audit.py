"""Audit logging contracts.

Append-only JSONL — one record per screening decision or skipped rule.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class AuditEvent(str, Enum):
    CALL_SCREENED = "call.screened"
    SMS_SCREENED = "sms.screened"
    QUICK_EXTRACT = "quick.extract"
    RULE_SKIPPED = "rule.skipped"


class AuditEntry(BaseModel):
    """A single audit log record."""

    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: str
    event: AuditEvent
    number: str = ""
    blocks: bool | None = None
    result_code: str = ""
    reason: str = ""     # Verdict.reason(): contact name, rule id, app id or status
    detail: dict[str, Any] = {}


class AuditLogger(ABC):
    """Interface for the append-only audit logger."""

    @abstractmethod
    def log(self, entry: AuditEntry) -> None:
        """Append an entry to the audit log."""
        ...

    @abstractmethod
    def query_by_request(self, request_id: str) -> list[AuditEntry]:
        """Return all entries for a given request_id."""
        ...

    @abstractmethod
    def query_by_event(self, event: AuditEvent, limit: int = 100) -> list[AuditEntry]:
        """Return recent entries of a given event type."""
        ...

    @abstractmethod
    def tail(self, n: int = 20) -> list[AuditEntry]:
        """Return the last N entries."""
        ...
