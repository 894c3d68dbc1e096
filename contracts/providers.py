"""Collaborator contracts consumed by the built-in checkers.

Each data source the checkers query is an ABC so the engine can run against
the platform's real stores or the in-memory providers in runtime.providers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel


class Contact(BaseModel):
    name: str
    number: str


class ContactDirectory(ABC):
    @abstractmethod
    def find_by_number(self, number: str) -> Contact | None:
        """Return the contact saved under *number*, if any."""
        ...


class CallHistory(ABC):
    """Counts of past calls and SMS (combined) for a number."""

    @abstractmethod
    def count_incoming(self, number: str, window_ms: int) -> int:
        ...

    @abstractmethod
    def count_outgoing(self, number: str, window_ms: int) -> int:
        ...


class AppUsage(ABC):
    @abstractmethod
    def recently_used(self, window_seconds: int) -> set[str]:
        """Return identifiers of apps in the foreground within the window."""
        ...


class PermissionGate(ABC):
    """Whether the engine may query a protected data source."""

    @abstractmethod
    def contacts_granted(self) -> bool:
        ...

    @abstractmethod
    def history_granted(self) -> bool:
        ...
