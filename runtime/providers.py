"""In-memory and settings-backed collaborators.

These stand in for the platform's contact store, call log, SMS log and
app-usage statistics when the engine runs as a standalone service or CLI.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from contracts.providers import AppUsage, CallHistory, Contact, ContactDirectory, PermissionGate
from contracts.settings import MAX_HISTORY_DAYS, Settings
from runtime.patterns import normalize_number


class StaticContactDirectory(ContactDirectory):
    """Contacts held in memory, looked up by normalized number."""

    def __init__(self, contacts: Iterable[Contact] = ()) -> None:
        self._by_number: dict[str, Contact] = {}
        for c in contacts:
            self._by_number.setdefault(normalize_number(c.number), c)

    @classmethod
    def from_settings(cls, settings: Settings) -> StaticContactDirectory:
        return cls(Contact(name=e.name, number=e.number) for e in settings.directory.contacts)

    def find_by_number(self, number: str) -> Contact | None:
        return self._by_number.get(normalize_number(number))


class Direction(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class Channel(str, Enum):
    CALL = "call"
    SMS = "sms"


@dataclass(frozen=True)
class HistoryEvent:
    number: str
    direction: Direction
    channel: Channel
    at: datetime


class InMemoryCallHistory(CallHistory):
    """Thread-safe record of call and SMS events.

    Events older than *retention* are dropped as new ones arrive; the default
    covers the longest window the settings accept.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        retention: timedelta = timedelta(days=MAX_HISTORY_DAYS),
    ) -> None:
        self._clock = clock
        self._retention = retention
        self._lock = threading.Lock()
        self._events: deque[HistoryEvent] = deque()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def record(
        self,
        number: str,
        direction: Direction,
        channel: Channel = Channel.CALL,
        at: datetime | None = None,
    ) -> None:
        now = self._clock()
        event = HistoryEvent(
            number=normalize_number(number),
            direction=direction,
            channel=channel,
            at=at or now,
        )
        cutoff = now - self._retention
        with self._lock:
            while self._events and self._events[0].at < cutoff:
                self._events.popleft()
            if event.at >= cutoff:
                self._events.append(event)

    def count_incoming(self, number: str, window_ms: int) -> int:
        return self._count(number, Direction.INCOMING, window_ms)

    def count_outgoing(self, number: str, window_ms: int) -> int:
        return self._count(number, Direction.OUTGOING, window_ms)

    def _count(self, number: str, direction: Direction, window_ms: int) -> int:
        since = self._clock() - timedelta(milliseconds=window_ms)
        key = normalize_number(number)
        with self._lock:
            return sum(
                1
                for e in self._events
                if e.number == key and e.direction == direction and e.at >= since
            )


class InMemoryAppUsage(AppUsage):
    """Last-foreground timestamps per app identifier."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._last_used: dict[str, datetime] = {}

    def record(self, app_id: str, at: datetime | None = None) -> None:
        with self._lock:
            self._last_used[app_id] = at or self._clock()

    def recently_used(self, window_seconds: int) -> set[str]:
        since = self._clock() - timedelta(seconds=window_seconds)
        with self._lock:
            return {app for app, ts in self._last_used.items() if ts >= since}


class SettingsPermissionGate(PermissionGate):
    """Permission grants from the ``permissions`` section of one settings snapshot."""

    def __init__(self, settings: Settings) -> None:
        self._permissions = settings.permissions

    def contacts_granted(self) -> bool:
        return self._permissions.contacts

    def history_granted(self) -> bool:
        return self._permissions.history
